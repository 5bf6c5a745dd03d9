from typing import Optional
from sqlmodel import SQLModel, Field

# Financial Plan Models

class FinancialPlan(SQLModel):
    # Age & Timeline
    currentAge: int = 30
    retirementAge: int = 65

    # Investable assets (cash + portfolio market value, insurance excluded)
    currentSavings: float = 1000000
    monthlySavings: float = Field(default=20000, ge=0)
    targetMonthlyPension: float = 50000
    expectedAnnualReturn: float = 6  # percent, compounded monthly

    # Legacy insurance instrument, fixed rate, compounded annually
    insurancePrincipal: float = 200000
    insuranceRate: float = 2.5  # percent
    insuranceYearDone: int = 2022


class FinancialPlanUpdate(SQLModel):
    # currentSavings is derived from cash + portfolio, edit cash instead
    currentAge: Optional[int] = None
    retirementAge: Optional[int] = None
    monthlySavings: Optional[float] = Field(default=None, ge=0)
    targetMonthlyPension: Optional[float] = None
    expectedAnnualReturn: Optional[float] = None
    insurancePrincipal: Optional[float] = None
    insuranceRate: Optional[float] = None
    insuranceYearDone: Optional[int] = None


class CashUpdate(SQLModel):
    cashSavings: float = Field(ge=0)


# Projection Models

class CapitalBreakdown(SQLModel):
    """Where the accumulated capital comes from. The four parts add up to the total."""
    investmentGrowth: float
    insuranceValue: float
    contributedPrincipal: float
    contributionGrowth: float


class InsurancePreview(SQLModel):
    retireYear: int
    compoundingYears: int
    finalValue: float


class ProjectionResult(SQLModel):
    yearsToRetire: int
    retireYear: int
    totalAccumulated: float
    monthlyPensionPossible: float
    isGoalReachable: bool
    shortfall: float
    insuranceCompoundingYears: int
    insuranceFinalValue: float
    breakdown: CapitalBreakdown


class PlanView(SQLModel):
    plan: FinancialPlan
    cashSavings: float
    portfolioValue: float
    projection: Optional[ProjectionResult] = None
    insurance: InsurancePreview


class AdviceResponse(SQLModel):
    advice: str
