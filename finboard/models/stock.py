from typing import Optional, List, Dict, Literal
from pydantic import field_validator
from sqlmodel import SQLModel, Field

Recommendation = Literal["BUY", "SELL", "HOLD"]


class StockAnalysis(SQLModel):
    symbol: str = Field(min_length=1)
    name: str = ""
    marketCap: str = ""
    high52Week: float = 0
    low52Week: float = 0
    currentPrice: float = 0
    suggestBuyPrice: float = 0
    suggestSellPrice: float = 0
    recommendation: Recommendation = "HOLD"
    analysis: str = ""
    projectedAnnualYield: str = ""  # e.g. "8-12%"
    exampleScenario: str = ""

    @field_validator("symbol", mode="before")
    @classmethod
    def clean_symbol(cls, v):
        return str(v).strip().upper() if v is not None else v

    @field_validator("recommendation", mode="before")
    @classmethod
    def normalize_recommendation(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# Request Models

class SymbolsInput(SQLModel):
    input: str


class QuantityInput(SQLModel):
    quantity: float


# Read Models for API Responses

class PortfolioSnapshot(SQLModel):
    watchList: List[str]
    quantities: Dict[str, float]
    analyses: List[StockAnalysis]
    pendingSymbols: List[str]
    hasPendingSymbols: bool
    marketValue: float


class AddSymbolsResult(SQLModel):
    added: List[str]
    watchList: List[str]


class HoldingRow(SQLModel):
    stock: StockAnalysis
    quantity: float
    value: float


class HoldingsView(SQLModel):
    rows: List[HoldingRow]
    displayedTotal: float


class SignalsView(SQLModel):
    buy: List[StockAnalysis]
    sell: List[StockAnalysis]


class AnalysisOutcome(SQLModel):
    applied: bool
    analyses: List[StockAnalysis]
    pendingSymbols: List[str]
    ticket: Optional[int] = None
