import math

import pytest

from finboard.core.errors import ProjectionError
from finboard.models import FinancialPlan
from finboard.services.projection_service import ProjectionService

PINNED_YEAR = 2025


def reference_plan(**overrides):
    values = dict(
        currentAge=30,
        retirementAge=65,
        currentSavings=1000000,
        monthlySavings=20000,
        targetMonthlyPension=50000,
        expectedAnnualReturn=6,
        insurancePrincipal=200000,
        insuranceRate=2.5,
        insuranceYearDone=2022,
    )
    values.update(overrides)
    return FinancialPlan(**values)


def test_reference_scenario_is_deterministic_for_pinned_year():
    result = ProjectionService.project(reference_plan(), current_year=PINNED_YEAR)

    rate = 0.06 / 12
    months = 35 * 12
    growth = (1 + rate) ** months
    expected_total = (
        1000000 * growth
        + 20000 * (growth - 1) / rate
        + 200000 * 1.025 ** (2060 - 2022)
    )

    assert result.yearsToRetire == 35
    assert result.retireYear == 2060
    assert result.insuranceCompoundingYears == 38
    assert result.totalAccumulated == pytest.approx(expected_total, rel=1e-12)
    assert 37_000_000 < result.totalAccumulated < 37_300_000
    assert result.monthlyPensionPossible == pytest.approx(expected_total * 0.04 / 12, rel=1e-12)
    assert result.isGoalReachable is True
    assert result.shortfall == 0


def test_project_is_idempotent():
    plan = reference_plan()
    first = ProjectionService.project(plan, current_year=PINNED_YEAR)
    second = ProjectionService.project(plan, current_year=PINNED_YEAR)
    assert first == second
    assert first.totalAccumulated == second.totalAccumulated


@pytest.mark.parametrize("retirement_age", [30, 25])
def test_no_result_until_retirement_is_after_current_age(retirement_age):
    plan = reference_plan(retirementAge=retirement_age)
    assert ProjectionService.project(plan, current_year=PINNED_YEAR) is None


def test_zero_return_uses_sum_of_deposits():
    plan = reference_plan(expectedAnnualReturn=0)
    result = ProjectionService.project(plan, current_year=PINNED_YEAR)

    months = 35 * 12
    assert result.breakdown.investmentGrowth == 1000000
    assert result.breakdown.contributedPrincipal == 20000 * months
    assert result.breakdown.contributionGrowth == 0
    assert ProjectionService.annuity_future_value(20000, 0, months) == 20000 * months


@pytest.mark.parametrize("monthly_rate,months", [(0.005, 420), (0.01, 12), (-0.002, 60), (0.003, 0)])
def test_annuity_matches_closed_form(monthly_rate, months):
    expected = 1500 * ((1 + monthly_rate) ** months - 1) / monthly_rate
    assert ProjectionService.annuity_future_value(1500, monthly_rate, months) == pytest.approx(expected)


def test_insurance_finished_after_retirement_does_not_compound():
    plan = reference_plan(insuranceYearDone=2100)
    result = ProjectionService.project(plan, current_year=PINNED_YEAR)

    assert result.insuranceCompoundingYears == 0
    assert result.breakdown.insuranceValue == 200000
    assert result.insuranceFinalValue == 200000


def test_goal_out_of_reach_reports_shortfall():
    plan = reference_plan(currentSavings=0, monthlySavings=1000, targetMonthlyPension=100000,
                          insurancePrincipal=0)
    result = ProjectionService.project(plan, current_year=PINNED_YEAR)

    required = 100000 * 12 / 0.04
    assert result.isGoalReachable is False
    assert result.shortfall == pytest.approx(required - result.totalAccumulated)


def test_breakdown_parts_add_up_to_total():
    result = ProjectionService.project(reference_plan(), current_year=PINNED_YEAR)
    parts = result.breakdown
    assert (
        parts.investmentGrowth + parts.insuranceValue + parts.contributedPrincipal + parts.contributionGrowth
    ) == pytest.approx(result.totalAccumulated)


def test_insurance_preview_available_without_projection():
    plan = reference_plan(retirementAge=30)
    preview = ProjectionService.insurance_preview(plan, current_year=PINNED_YEAR)

    assert preview.retireYear == PINNED_YEAR
    assert preview.compoundingYears == 3
    assert preview.finalValue == round(200000 * 1.025 ** 3)


def test_overflowing_plan_raises_instead_of_returning_infinity():
    plan = reference_plan(expectedAnnualReturn=1e6)
    with pytest.raises(ProjectionError):
        ProjectionService.project(plan, current_year=PINNED_YEAR)


def test_infinite_savings_is_rejected():
    plan = reference_plan(currentSavings=math.inf)
    with pytest.raises(ProjectionError):
        ProjectionService.project(plan, current_year=PINNED_YEAR)


def test_overflowing_insurance_preview_raises_projection_error():
    plan = reference_plan(currentAge=70, insuranceRate=1e200, insuranceYearDone=1000)

    assert ProjectionService.project(plan, current_year=PINNED_YEAR) is None
    with pytest.raises(ProjectionError):
        ProjectionService.insurance_preview(plan, current_year=PINNED_YEAR)
