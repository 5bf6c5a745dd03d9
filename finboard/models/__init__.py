from .kv import KeyValueEntry
from .plan import (
    FinancialPlan,
    FinancialPlanUpdate,
    CashUpdate,
    CapitalBreakdown,
    InsurancePreview,
    ProjectionResult,
    PlanView,
    AdviceResponse
)
from .stock import (
    StockAnalysis,
    SymbolsInput,
    QuantityInput,
    PortfolioSnapshot,
    AddSymbolsResult,
    HoldingRow,
    HoldingsView,
    SignalsView,
    AnalysisOutcome
)
from .credential import CredentialInput, CredentialStatus
