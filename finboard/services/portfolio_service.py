import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from pydantic import TypeAdapter

from finboard.core.errors import InvalidInputError
from finboard.models.stock import StockAnalysis, HoldingRow, HoldingsView, SignalsView
from finboard.services.storage import (
    KeyValueStore,
    load_json,
    save_json,
    SYMBOLS_KEY,
    QUANTITIES_KEY,
    ANALYSES_KEY,
    ANALYSIS_SEQUENCE_KEY,
    ANALYSIS_APPLIED_KEY,
)

logger = logging.getLogger(__name__)

# Known input typos, applied before de-duplication
SYMBOL_CORRECTIONS = {
    "304": "3042",
}

RECOMMENDATION_FILTERS = ("ALL", "BUY", "SELL", "HOLD")

_symbols_adapter = TypeAdapter(List[str])
_quantities_adapter = TypeAdapter(Dict[str, float])
_analyses_adapter = TypeAdapter(List[StockAnalysis])


def _parse_quantities(data) -> Dict[str, float]:
    quantities = _quantities_adapter.validate_python(data)
    return {s: q for s, q in quantities.items() if math.isfinite(q) and q >= 0}


def normalize_symbol(token: str) -> str:
    clean = token.strip().upper()
    return SYMBOL_CORRECTIONS.get(clean, clean)


def split_symbols(raw_input: str) -> List[str]:
    """Splits on commas and/or whitespace and normalizes each token; empties dropped."""
    tokens = [normalize_symbol(t) for t in re.split(r"[,\s]+", raw_input or "")]
    return [t for t in tokens if t]


def unique_by_symbol(analyses: List[StockAnalysis]) -> List[StockAnalysis]:
    """One entry per symbol: the last one wins, at the position the symbol first appeared."""
    by_symbol: Dict[str, StockAnalysis] = {}
    for stock in analyses:
        by_symbol[stock.symbol] = stock
    return list(by_symbol.values())


@dataclass
class PortfolioState:
    """
    The three loosely coupled collections, owned together.

    The watch-list is ordered and duplicate free. Quantities and analyses are
    keyed by symbol and may reference symbols that are not (or no longer)
    on the watch-list.
    """
    watchList: List[str] = field(default_factory=list)
    quantities: Dict[str, float] = field(default_factory=dict)
    analyses: List[StockAnalysis] = field(default_factory=list)

    def reconcile(self) -> bool:
        """
        Repairs state after load. Returns True if the watch-list was rebuilt.

        An empty watch-list next to non-empty quantities means the list was
        lost, so it is rebuilt from the quantity keys in sorted order.
        Duplicate symbols that crept into the stored list or analyses are dropped.
        """
        self.watchList = list(dict.fromkeys(self.watchList))
        self.analyses = unique_by_symbol(self.analyses)
        if not self.watchList and self.quantities:
            self.watchList = sorted(self.quantities)
            return True
        return False


class PortfolioService:
    """
    Watch-list, holding quantities and the analysis cache.

    Every mutation writes the collections it touched straight back to the
    store. Those writes are ambient: a failure is logged, not raised. Only
    `save_all` (the explicit save button) raises PersistenceError.
    """
    def __init__(self, store: KeyValueStore):
        self.store = store
        self.state = PortfolioState()
        self.load()

    # --- LOAD / SAVE ---

    def load(self) -> PortfolioState:
        quantities = load_json(self.store, QUANTITIES_KEY, dict, _parse_quantities)
        symbols = load_json(self.store, SYMBOLS_KEY, list, _symbols_adapter.validate_python)
        analyses = load_json(self.store, ANALYSES_KEY, list, _analyses_adapter.validate_python)

        self.state = PortfolioState(watchList=symbols, quantities=quantities, analyses=analyses)
        if self.state.reconcile():
            logger.info(f"Recovered watch-list from holding quantities: {self.state.watchList}")
            self._persist_symbols()
        return self.state

    def save_all(self) -> None:
        save_json(self.store, SYMBOLS_KEY, self.state.watchList, strict=True)
        save_json(self.store, QUANTITIES_KEY, self.state.quantities, strict=True)
        save_json(self.store, ANALYSES_KEY, self._dump_analyses(), strict=True)

    def _dump_analyses(self) -> list:
        return [a.model_dump() for a in self.state.analyses]

    def _persist_symbols(self) -> None:
        save_json(self.store, SYMBOLS_KEY, self.state.watchList)

    def _persist_quantities(self) -> None:
        save_json(self.store, QUANTITIES_KEY, self.state.quantities)

    def _persist_analyses(self) -> None:
        save_json(self.store, ANALYSES_KEY, self._dump_analyses())

    # --- WATCH-LIST ---

    def add_symbols(self, raw_input: str) -> List[str]:
        """
        Appends the new symbols from a comma/space separated input, in input order.

        Returns the symbols actually appended (empty if all were known).

        Raises:
            InvalidInputError: if the input holds no symbol at all.
        """
        tokens = split_symbols(raw_input)
        if not tokens:
            raise InvalidInputError("Enter at least one stock symbol")

        known = {s.upper() for s in self.state.watchList}
        added = []
        for symbol in tokens:
            if symbol not in known:
                known.add(symbol)
                added.append(symbol)

        if added:
            self.state.watchList = self.state.watchList + added
            self._persist_symbols()
        return added

    def remove_symbol(self, symbol: str) -> bool:
        """
        Drops `symbol` from the watch-list and the analysis cache.

        The holding quantity is kept so it comes back if the symbol is re-added.
        """
        target = normalize_symbol(symbol)
        if not target:
            raise InvalidInputError("Symbol must not be empty")

        in_list = target in self.state.watchList
        self.state.watchList = [s for s in self.state.watchList if s != target]
        self.state.analyses = [a for a in self.state.analyses if a.symbol != target]

        self._persist_symbols()
        self._persist_analyses()
        return in_list

    # --- QUANTITIES ---

    def set_quantity(self, symbol: str, qty: float) -> float:
        target = normalize_symbol(symbol)
        if not target:
            raise InvalidInputError("Symbol must not be empty")
        if qty is None or not math.isfinite(qty) or qty < 0:
            raise InvalidInputError(f"Quantity for {target} must be a non-negative number")

        self.state.quantities = {**self.state.quantities, target: qty}
        self._persist_quantities()
        return qty

    # --- ANALYSIS CACHE ---

    def begin_analysis(self) -> int:
        """
        Issues the ticket for a new analysis request.

        Tickets only order results: a batch is dropped once a batch with a
        newer ticket has been applied, so a slow response cannot overwrite a
        newer one. A request that fails never blocks an older one.
        """
        last = load_json(self.store, ANALYSIS_SEQUENCE_KEY, int, int)
        ticket = last + 1
        save_json(self.store, ANALYSIS_SEQUENCE_KEY, ticket)
        return ticket

    def replace_analysis_results(self, results: List[StockAnalysis], ticket: Optional[int] = None) -> bool:
        """
        Replaces the whole cache with a fresh batch, one entry per symbol.
        Returns False if discarded.

        Untagged results always apply (last write wins).
        """
        if ticket is not None:
            applied = load_json(self.store, ANALYSIS_APPLIED_KEY, int, int)
            if ticket < applied:
                logger.info(f"Discarding stale analysis result (ticket {ticket}, applied {applied})")
                return False

        self.state.analyses = unique_by_symbol(list(results))
        self._persist_analyses()
        if ticket is not None:
            save_json(self.store, ANALYSIS_APPLIED_KEY, ticket)
        return True

    def pending_symbols(self) -> Set[str]:
        analyzed = {a.symbol for a in self.state.analyses}
        return {s for s in self.state.watchList if s not in analyzed}

    def has_pending_symbols(self) -> bool:
        return bool(self.pending_symbols())

    # --- VALUATION ---

    def holding_value(self, stock: StockAnalysis) -> float:
        return stock.currentPrice * self.state.quantities.get(stock.symbol, 0)

    def portfolio_market_value(self) -> float:
        watched = set(self.state.watchList)
        return sum(
            self.holding_value(stock)
            for stock in self.state.analyses
            if stock.symbol in watched
        )

    def holding_rows(self, search: str = "", recommendation: str = "ALL") -> HoldingsView:
        """
        Analysis entries filtered the way the stock table filters them:
        case-insensitive match on symbol or name, plus a recommendation filter.
        """
        rec = (recommendation or "ALL").strip().upper()
        if rec not in RECOMMENDATION_FILTERS:
            raise InvalidInputError(f"Unknown recommendation filter '{recommendation}'")
        needle = (search or "").strip().lower()

        rows = []
        for stock in self.state.analyses:
            if needle and needle not in stock.symbol.lower() and needle not in stock.name.lower():
                continue
            if rec != "ALL" and stock.recommendation != rec:
                continue
            rows.append(HoldingRow(
                stock=stock,
                quantity=self.state.quantities.get(stock.symbol, 0),
                value=self.holding_value(stock),
            ))

        return HoldingsView(rows=rows, displayedTotal=sum(r.value for r in rows))

    def signals(self) -> SignalsView:
        return SignalsView(
            buy=[s for s in self.state.analyses if s.recommendation == "BUY"],
            sell=[s for s in self.state.analyses if s.recommendation == "SELL"],
        )
