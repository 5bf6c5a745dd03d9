from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from finboard.api import deps
from finboard.models import (
    FinancialPlanUpdate,
    CashUpdate,
    PlanView,
    ProjectionResult,
    AdviceResponse
)
from finboard.services.ai_service import AIService
from finboard.services.plan_service import PlanService

router = APIRouter()


@router.get("/plan", response_model=PlanView)
async def get_plan(
    plans: PlanService = Depends(deps.get_plans),
):
    """
    The plan with currentSavings derived from cash + portfolio, its projection
    (null while retirementAge <= currentAge) and the insurance preview.
    """
    return plans.view()


@router.patch("/plan", response_model=PlanView)
async def update_plan(
    plan_update: FinancialPlanUpdate,
    plans: PlanService = Depends(deps.get_plans),
):
    plans.update_plan(plan_update)
    return plans.view()


@router.put("/cash", response_model=PlanView)
async def set_cash(
    body: CashUpdate,
    plans: PlanService = Depends(deps.get_plans),
):
    plans.set_cash(body.cashSavings)
    return plans.view()


@router.get("/projection", response_model=Optional[ProjectionResult])
async def get_projection(
    plans: PlanService = Depends(deps.get_plans),
):
    return plans.projection()


@router.post("/advice", response_model=AdviceResponse)
async def get_advice(
    plans: PlanService = Depends(deps.get_plans),
    ai: AIService = Depends(deps.get_ai),
):
    result = plans.projection()
    if result is None:
        raise HTTPException(status_code=400, detail="Retirement age must be greater than current age")

    advice = await ai.get_retirement_advice(plans.effective_plan(), result)
    return AdviceResponse(advice=advice)
