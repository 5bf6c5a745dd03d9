from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from finboard.services.ai_service import AIService
from finboard.services.credential_service import CredentialService
from finboard.services.plan_service import PlanService
from finboard.services.portfolio_service import PortfolioService
from finboard.services.storage import KeyValueStore


@dataclass
class Dashboard:
    """
    Process-wide dashboard state, loaded once at startup like a page load.

    All mutations run on the event loop thread (async endpoints), so the
    collections are only ever touched by one handler step at a time.
    """
    store: KeyValueStore
    portfolio: PortfolioService
    plans: PlanService
    credentials: CredentialService
    ai: AIService


def build_dashboard(store: KeyValueStore, env_key: Optional[str] = None, **ai_options) -> Dashboard:
    portfolio = PortfolioService(store)
    plans = PlanService(store, portfolio)
    credentials = CredentialService(store, env_key)
    return Dashboard(
        store=store,
        portfolio=portfolio,
        plans=plans,
        credentials=credentials,
        ai=AIService(credentials, **ai_options),
    )


def get_dashboard(request: Request) -> Dashboard:
    return request.app.state.dashboard


def get_portfolio(request: Request) -> PortfolioService:
    return get_dashboard(request).portfolio


def get_plans(request: Request) -> PlanService:
    return get_dashboard(request).plans


def get_credentials(request: Request) -> CredentialService:
    return get_dashboard(request).credentials


def get_ai(request: Request) -> AIService:
    return get_dashboard(request).ai
