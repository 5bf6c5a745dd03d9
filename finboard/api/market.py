from typing import List

from fastapi import APIRouter, Depends

from finboard.api import deps
from finboard.models import StockAnalysis
from finboard.services.ai_service import AIService

router = APIRouter()


@router.get("/trends", response_model=List[StockAnalysis])
async def get_market_trends(
    ai: AIService = Depends(deps.get_ai),
):
    """
    Currently trending Taiwan stocks picked by the AI (usually 3). Not persisted.
    """
    return await ai.analyze_market_trends()
