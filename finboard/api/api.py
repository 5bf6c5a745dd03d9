from fastapi import APIRouter
from . import portfolio, market, retirement, credentials

api_router = APIRouter()
api_router.include_router(portfolio.router, prefix="/portfolio", tags=["portfolio"])
api_router.include_router(market.router, prefix="/market", tags=["market"])
api_router.include_router(retirement.router, prefix="/retirement", tags=["retirement"])
api_router.include_router(credentials.router, prefix="/credentials", tags=["credentials"])
