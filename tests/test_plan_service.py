import json

import pytest
from pydantic import ValidationError

from conftest import stock
from finboard.core.errors import InvalidInputError, ProjectionError
from finboard.models import FinancialPlan, FinancialPlanUpdate, StockAnalysis
from finboard.services.plan_service import PlanService
from finboard.services.portfolio_service import PortfolioService
from finboard.services.storage import PLAN_KEY


def make_services(store):
    portfolio = PortfolioService(store)
    return portfolio, PlanService(store, portfolio)


def hold(portfolio, symbol, qty, price):
    portfolio.add_symbols(symbol)
    portfolio.set_quantity(symbol, qty)
    others = [a for a in portfolio.state.analyses if a.symbol != symbol]
    portfolio.replace_analysis_results(others + [StockAnalysis(**stock(symbol, price))])


def test_defaults_when_nothing_stored(store):
    _, plans = make_services(store)
    assert plans.plan == FinancialPlan()
    assert plans.cash_savings == 1000000


def test_bad_stored_fields_fall_back_individually(store):
    store.set(PLAN_KEY, json.dumps({
        "currentAge": 40,
        "retirementAge": "sixty",
        "monthlySavings": -5,
        "expectedAnnualReturn": 4.5,
    }))
    _, plans = make_services(store)

    assert plans.plan.currentAge == 40
    assert plans.plan.retirementAge == 65
    assert plans.plan.monthlySavings == 20000
    assert plans.plan.expectedAnnualReturn == 4.5


def test_unreadable_plan_uses_defaults(store):
    store.set(PLAN_KEY, "[1, 2, 3]")
    _, plans = make_services(store)
    assert plans.plan == FinancialPlan()


def test_initial_split_derives_cash_from_stored_total(store):
    store.set(PLAN_KEY, json.dumps({"currentSavings": 1000000}))
    portfolio = PortfolioService(store)
    hold(portfolio, "2330", 100, 500)

    plans = PlanService(store, portfolio)

    assert plans.cash_savings == 950000
    assert plans.effective_plan().currentSavings == 1000000


def test_initial_split_never_goes_negative(store):
    store.set(PLAN_KEY, json.dumps({"currentSavings": 10000}))
    portfolio = PortfolioService(store)
    hold(portfolio, "2330", 100, 500)

    plans = PlanService(store, portfolio)

    assert plans.cash_savings == 0
    assert plans.effective_plan().currentSavings == 50000


def test_current_savings_tracks_cash_and_portfolio(store):
    portfolio, plans = make_services(store)
    plans.set_cash(200000)
    hold(portfolio, "2330", 10, 600)

    assert plans.effective_plan().currentSavings == 206000

    portfolio.set_quantity("2330", 20)
    plans.sync()

    assert plans.effective_plan().currentSavings == plans.cash_savings + portfolio.portfolio_market_value()
    assert json.loads(store.get(PLAN_KEY))["currentSavings"] == 212000


def test_negative_cash_is_rejected(store):
    _, plans = make_services(store)
    with pytest.raises(InvalidInputError):
        plans.set_cash(-1)
    assert plans.cash_savings == 1000000


def test_update_plan_persists_and_reprojects(store):
    _, plans = make_services(store)
    plans.update_plan(FinancialPlanUpdate(retirementAge=60, expectedAnnualReturn=5))

    stored = json.loads(store.get(PLAN_KEY))
    assert stored["retirementAge"] == 60
    assert stored["expectedAnnualReturn"] == 5
    assert plans.projection(current_year=2025).yearsToRetire == 30


def test_update_plan_to_uncomputable_ages_yields_no_projection(store):
    _, plans = make_services(store)
    plans.update_plan(FinancialPlanUpdate(currentAge=70))

    view = plans.view(current_year=2025)
    assert view.projection is None
    assert view.insurance.compoundingYears == 0


def test_negative_monthly_savings_is_invalid():
    with pytest.raises(ValidationError):
        FinancialPlanUpdate(monthlySavings=-100)


def test_reload_keeps_split_consistent(store):
    portfolio, plans = make_services(store)
    plans.set_cash(300000)
    hold(portfolio, "2330", 10, 600)
    plans.sync()

    _, reloaded = make_services(store)

    assert reloaded.cash_savings == 300000
    assert reloaded.effective_plan().currentSavings == 306000


def test_unprojectable_update_is_rejected_and_not_saved(store):
    _, plans = make_services(store)
    plans.update_plan(FinancialPlanUpdate(retirementAge=60))

    with pytest.raises(ProjectionError):
        plans.update_plan(FinancialPlanUpdate(expectedAnnualReturn=1e6))

    assert plans.plan.expectedAnnualReturn == 6
    assert json.loads(store.get(PLAN_KEY))["expectedAnnualReturn"] == 6
    assert plans.view(current_year=2025).projection is not None


def test_overflowing_insurance_update_is_rejected(store):
    _, plans = make_services(store)

    with pytest.raises(ProjectionError):
        plans.update_plan(FinancialPlanUpdate(currentAge=70, insuranceRate=1e200, insuranceYearDone=1000))

    assert plans.plan == FinancialPlan()
    assert plans.view(current_year=2025).insurance.compoundingYears == 38


def test_cash_that_breaks_the_projection_is_rejected(store):
    _, plans = make_services(store)

    with pytest.raises(ProjectionError):
        plans.set_cash(1e308)

    assert plans.cash_savings == 1000000
