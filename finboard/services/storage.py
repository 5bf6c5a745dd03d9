import json
import logging
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from finboard.core.errors import PersistenceError
from finboard.models.kv import KeyValueEntry, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Storage keys, shared with the browser dashboard layout
PLAN_KEY = "finance_retirement_plan"
SYMBOLS_KEY = "finance_portfolio_symbols"
QUANTITIES_KEY = "finance_stock_quantities"
ANALYSES_KEY = "finance_portfolio_data"
CREDENTIAL_KEY = "gemini_api_key"
ANALYSIS_SEQUENCE_KEY = "finance_analysis_sequence"
ANALYSIS_APPLIED_KEY = "finance_analysis_applied"


class KeyValueStore:
    """
    Key -> string store backed by the `kv_entries` table.

    Each write is its own short session and commit, so a write has landed
    before the caller reads the collection again. Writes overwrite; there is
    no append and no partial-write detection.
    """
    def __init__(self, engine):
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with Session(self.engine) as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(KeyValueEntry, key)
            if entry:
                entry.value = value
                entry.updatedAt = utc_now()
            else:
                entry = KeyValueEntry(key=key, value=value)
            session.add(entry)
            session.commit()

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(KeyValueEntry, key)
            if entry:
                session.delete(entry)
                session.commit()


def load_json(
    store: KeyValueStore,
    key: str,
    default_factory: Callable[[], T],
    parser: Optional[Callable[[Any], T]] = None,
) -> T:
    """
    Reads `key` and decodes it, falling back to `default_factory()`.

    Absent keys, storage errors, invalid JSON and values rejected by `parser`
    all yield the default. Failures other than absence are logged so a
    corrupted key is visible without breaking startup.
    """
    try:
        raw = store.get(key)
    except SQLAlchemyError as e:
        logger.warning(f"Failed to read '{key}' from storage: {e}")
        return default_factory()

    if raw is None:
        return default_factory()

    try:
        data = json.loads(raw)
        return parser(data) if parser else data
    except (ValueError, TypeError) as e:
        # pydantic's ValidationError is a ValueError
        logger.warning(f"Discarding unreadable value for '{key}': {e}")
        return default_factory()


def save_json(store: KeyValueStore, key: str, value: Any, strict: bool = False) -> bool:
    """
    Encodes `value` and overwrites `key`.

    Ambient writes (strict=False) log failures and return False so the user's
    flow continues. Explicit saves pass strict=True and get a PersistenceError.
    """
    try:
        store.set(key, json.dumps(value, ensure_ascii=False))
        return True
    except (SQLAlchemyError, TypeError, ValueError) as e:
        if strict:
            raise PersistenceError(f"Could not save '{key}': {e}") from e
        logger.error(f"Auto-save of '{key}' failed: {e}")
        return False
