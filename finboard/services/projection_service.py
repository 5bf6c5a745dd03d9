import math
from datetime import datetime
from typing import Optional

from finboard.core.errors import ProjectionError
from finboard.models.plan import FinancialPlan, ProjectionResult, CapitalBreakdown, InsurancePreview

SAFE_WITHDRAWAL_RATE = 0.04


class ProjectionService:
    """
    Compound-interest retirement projection.

    Investable assets (cash + portfolio) grow monthly at the expected return,
    monthly savings form an ordinary annuity (deposits at month end), and the
    legacy insurance policy grows annually at its own fixed rate. The 4% rule
    turns the accumulated capital into a sustainable monthly pension.

    Everything here is pure: pass `current_year` to pin "now".
    """

    @staticmethod
    def _current_year(current_year: Optional[int]) -> int:
        return current_year if current_year is not None else datetime.now().year

    @staticmethod
    def insurance_preview(plan: FinancialPlan, current_year: Optional[int] = None) -> InsurancePreview:
        """
        Insurance value at retirement, shown next to the inputs even when the
        full projection is not computable. Compounding years never go negative.
        """
        year = ProjectionService._current_year(current_year)
        retire_year = year + (plan.retirementAge - plan.currentAge)
        years = max(0, retire_year - plan.insuranceYearDone)
        value = ProjectionService.insurance_value(plan.insurancePrincipal, plan.insuranceRate, years)
        return InsurancePreview(retireYear=retire_year, compoundingYears=years, finalValue=round(value))

    @staticmethod
    def insurance_value(principal: float, annual_rate: float, years: int) -> float:
        """
        Raises:
            ProjectionError: if the compounded value overflows or is not finite.
        """
        try:
            value = principal * math.pow(1 + annual_rate / 100, years)
        except (OverflowError, ValueError) as e:
            raise ProjectionError(f"Insurance value is not computable for this plan: {e}") from e
        if not math.isfinite(value):
            raise ProjectionError("Insurance value is not a finite number")
        return value

    @staticmethod
    def lump_sum_future_value(amount: float, monthly_rate: float, months: int) -> float:
        if monthly_rate == 0:
            return amount
        return amount * math.pow(1 + monthly_rate, months)

    @staticmethod
    def annuity_future_value(payment: float, monthly_rate: float, months: int) -> float:
        # Closed form divides by the rate; at 0% it is just the sum of deposits
        if monthly_rate == 0:
            return payment * months
        return payment * ((math.pow(1 + monthly_rate, months) - 1) / monthly_rate)

    @staticmethod
    def project(plan: FinancialPlan, current_year: Optional[int] = None) -> Optional[ProjectionResult]:
        """
        Runs the projection for `plan`.

        Returns None while retirementAge <= currentAge: that is a normal
        "not computable yet" state for the caller, not an error.

        Raises:
            ProjectionError: if any figure comes out NaN or infinite
                (e.g. a return below -100% raised to a fractional power).
        """
        years_to_retire = plan.retirementAge - plan.currentAge
        if years_to_retire <= 0:
            return None

        year = ProjectionService._current_year(current_year)
        retire_year = year + years_to_retire
        months = years_to_retire * 12
        monthly_rate = plan.expectedAnnualReturn / 100 / 12

        try:
            # 1. General investments (cash + stocks) at the expected return
            fv_lump_sum = ProjectionService.lump_sum_future_value(plan.currentSavings, monthly_rate, months)
            fv_monthly = ProjectionService.annuity_future_value(plan.monthlySavings, monthly_rate, months)
        except (OverflowError, ValueError) as e:
            raise ProjectionError(f"Projection is not computable for this plan: {e}") from e

        # 2. Insurance at its fixed annual rate
        insurance_years = max(0, retire_year - plan.insuranceYearDone)
        fv_insurance = ProjectionService.insurance_value(plan.insurancePrincipal, plan.insuranceRate, insurance_years)

        total_accumulated = fv_lump_sum + fv_monthly + fv_insurance

        monthly_pension_possible = total_accumulated * SAFE_WITHDRAWAL_RATE / 12
        required_total = plan.targetMonthlyPension * 12 / SAFE_WITHDRAWAL_RATE
        shortfall = max(0.0, required_total - total_accumulated)

        contributed = plan.monthlySavings * months
        breakdown = CapitalBreakdown(
            investmentGrowth=fv_lump_sum,
            insuranceValue=fv_insurance,
            contributedPrincipal=contributed,
            contributionGrowth=fv_monthly - contributed,
        )

        for label, value in (
            ("totalAccumulated", total_accumulated),
            ("monthlyPensionPossible", monthly_pension_possible),
            ("shortfall", shortfall),
        ):
            if not math.isfinite(value):
                raise ProjectionError(f"Projection produced a non-finite {label}")

        return ProjectionResult(
            yearsToRetire=years_to_retire,
            retireYear=retire_year,
            totalAccumulated=total_accumulated,
            monthlyPensionPossible=monthly_pension_possible,
            isGoalReachable=monthly_pension_possible >= plan.targetMonthlyPension,
            shortfall=shortfall,
            insuranceCompoundingYears=insurance_years,
            insuranceFinalValue=round(fv_insurance),
            breakdown=breakdown,
        )
