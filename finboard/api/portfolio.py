from fastapi import APIRouter, Depends, HTTPException

from finboard.api import deps
from finboard.models import (
    SymbolsInput,
    QuantityInput,
    PortfolioSnapshot,
    AddSymbolsResult,
    HoldingsView,
    SignalsView,
    AnalysisOutcome
)
from finboard.services.ai_service import AIService
from finboard.services.plan_service import PlanService
from finboard.services.portfolio_service import PortfolioService

router = APIRouter()


def snapshot(portfolio: PortfolioService) -> PortfolioSnapshot:
    state = portfolio.state
    pending = portfolio.pending_symbols()
    return PortfolioSnapshot(
        watchList=state.watchList,
        quantities=state.quantities,
        analyses=state.analyses,
        # keep watch-list order for display
        pendingSymbols=[s for s in state.watchList if s in pending],
        hasPendingSymbols=bool(pending),
        marketValue=portfolio.portfolio_market_value(),
    )


@router.get("", response_model=PortfolioSnapshot)
async def get_portfolio(
    portfolio: PortfolioService = Depends(deps.get_portfolio),
):
    """
    Watch-list, quantities, cached analyses and which symbols still need analysis.
    """
    return snapshot(portfolio)


@router.post("/symbols", response_model=AddSymbolsResult)
async def add_symbols(
    body: SymbolsInput,
    portfolio: PortfolioService = Depends(deps.get_portfolio),
    plans: PlanService = Depends(deps.get_plans),
):
    added = portfolio.add_symbols(body.input)
    if added:
        # a re-added symbol may bring a cached price and quantity back into the value
        plans.sync()
    return AddSymbolsResult(added=added, watchList=portfolio.state.watchList)


@router.delete("/symbols/{symbol}", response_model=PortfolioSnapshot)
async def remove_symbol(
    symbol: str,
    portfolio: PortfolioService = Depends(deps.get_portfolio),
    plans: PlanService = Depends(deps.get_plans),
):
    portfolio.remove_symbol(symbol)
    plans.sync()
    return snapshot(portfolio)


@router.put("/quantities/{symbol}", response_model=PortfolioSnapshot)
async def set_quantity(
    symbol: str,
    body: QuantityInput,
    portfolio: PortfolioService = Depends(deps.get_portfolio),
    plans: PlanService = Depends(deps.get_plans),
):
    portfolio.set_quantity(symbol, body.quantity)
    plans.sync()
    return snapshot(portfolio)


@router.post("/analyze", response_model=AnalysisOutcome)
async def analyze_portfolio(
    portfolio: PortfolioService = Depends(deps.get_portfolio),
    plans: PlanService = Depends(deps.get_plans),
    ai: AIService = Depends(deps.get_ai),
):
    """
    Asks the AI for a fresh analysis of the whole watch-list and replaces the cache.

    On failure nothing is touched: the previous analysis stays authoritative.
    """
    symbols = list(portfolio.state.watchList)
    if not symbols:
        raise HTTPException(status_code=400, detail="Add at least one symbol before analyzing")

    ai.credentials.require()
    ticket = portfolio.begin_analysis()
    results = await ai.analyze_portfolio(symbols)

    applied = portfolio.replace_analysis_results(results, ticket)
    if applied:
        plans.sync()

    return AnalysisOutcome(
        applied=applied,
        analyses=portfolio.state.analyses,
        pendingSymbols=[s for s in portfolio.state.watchList if s in portfolio.pending_symbols()],
        ticket=ticket,
    )


@router.post("/save", response_model=PortfolioSnapshot)
async def save_portfolio(
    portfolio: PortfolioService = Depends(deps.get_portfolio),
    plans: PlanService = Depends(deps.get_plans),
):
    """
    Explicit save. Unlike the automatic writes, a storage failure here is reported.
    """
    portfolio.save_all()
    plans.save()
    return snapshot(portfolio)


@router.get("/holdings", response_model=HoldingsView)
async def get_holdings(
    search: str = "",
    recommendation: str = "ALL",
    portfolio: PortfolioService = Depends(deps.get_portfolio),
):
    return portfolio.holding_rows(search, recommendation)


@router.get("/signals", response_model=SignalsView)
async def get_signals(
    portfolio: PortfolioService = Depends(deps.get_portfolio),
):
    return portfolio.signals()
