import logging
import math
from typing import Any, Dict, Optional

from pydantic import ValidationError

from finboard.core.errors import InvalidInputError
from finboard.models.plan import FinancialPlan, FinancialPlanUpdate, ProjectionResult, PlanView
from finboard.services.portfolio_service import PortfolioService
from finboard.services.projection_service import ProjectionService
from finboard.services.storage import KeyValueStore, load_json, save_json, PLAN_KEY

logger = logging.getLogger(__name__)


def _parse_plan(data: Any) -> FinancialPlan:
    """
    Builds a plan from stored JSON, one field at a time.

    A missing or unreadable field falls back to its default instead of
    discarding the whole plan.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object, got {type(data).__name__}")

    values: Dict[str, Any] = {}
    for name in FinancialPlan.model_fields:
        if name not in data or data[name] is None:
            continue
        try:
            FinancialPlan.model_validate({name: data[name]})
        except ValidationError:
            logger.warning(f"Ignoring stored plan field {name}={data[name]!r}")
            continue
        values[name] = data[name]
    return FinancialPlan.model_validate(values)


class PlanService:
    """
    Owns the retirement plan and the cash / portfolio split of current savings.

    The stored plan keeps one combined `currentSavings`. On load it is split
    once into an implied cash figure (never negative) and the live portfolio
    value; after that cash is edited directly and the effective savings is
    always derived as cash + portfolio value.
    """
    def __init__(self, store: KeyValueStore, portfolio: PortfolioService):
        self.store = store
        self.portfolio = portfolio
        self.plan = load_json(store, PLAN_KEY, FinancialPlan, _parse_plan)
        self.cash_savings = max(0.0, self.plan.currentSavings - portfolio.portfolio_market_value())

    def portfolio_value(self) -> float:
        return self.portfolio.portfolio_market_value()

    def effective_plan(self) -> FinancialPlan:
        return self.plan.model_copy(update={"currentSavings": self.cash_savings + self.portfolio_value()})

    def sync(self) -> None:
        """Writes the plan back with currentSavings re-derived from cash + portfolio."""
        self.plan = self.effective_plan()
        save_json(self.store, PLAN_KEY, self.plan.model_dump())

    def save(self) -> None:
        self.plan = self.effective_plan()
        save_json(self.store, PLAN_KEY, self.plan.model_dump(), strict=True)

    def update_plan(self, changes: FinancialPlanUpdate) -> FinancialPlan:
        """
        Applies a partial update and persists it.

        Raises:
            InvalidInputError: if a value is not a finite number.
            ProjectionError: if the updated plan cannot be projected. Nothing
                is changed or saved in that case.
        """
        updates = changes.model_dump(exclude_unset=True, exclude_none=True)
        for name, value in updates.items():
            if isinstance(value, float) and not math.isfinite(value):
                raise InvalidInputError(f"{name} must be a finite number")

        candidate = self.plan.model_copy(update=updates)
        self._check_computable(candidate, self.cash_savings)
        self.plan = candidate
        self.sync()
        return self.plan

    def set_cash(self, value: float) -> float:
        if value is None or not math.isfinite(value) or value < 0:
            raise InvalidInputError("Cash savings must be a non-negative number")
        self._check_computable(self.plan, value)
        self.cash_savings = value
        self.sync()
        return self.cash_savings

    def _check_computable(self, plan: FinancialPlan, cash: float) -> None:
        candidate = plan.model_copy(update={"currentSavings": cash + self.portfolio_value()})
        ProjectionService.project(candidate)
        ProjectionService.insurance_preview(candidate)

    def projection(self, current_year: Optional[int] = None) -> Optional[ProjectionResult]:
        return ProjectionService.project(self.effective_plan(), current_year)

    def view(self, current_year: Optional[int] = None) -> PlanView:
        plan = self.effective_plan()
        return PlanView(
            plan=plan,
            cashSavings=self.cash_savings,
            portfolioValue=self.portfolio_value(),
            projection=ProjectionService.project(plan, current_year),
            insurance=ProjectionService.insurance_preview(plan, current_year),
        )
