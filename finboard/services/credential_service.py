import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from finboard.core.config import settings
from finboard.core.errors import InvalidInputError, CredentialMissingError, PersistenceError
from finboard.services.storage import KeyValueStore, CREDENTIAL_KEY, save_json, load_json

logger = logging.getLogger(__name__)


def _parse_key(data) -> str:
    if not isinstance(data, str):
        raise TypeError("Stored API key must be a string")
    return data.strip()


class CredentialService:
    """
    Gemini API key lookup. A key saved by the user wins over GEMINI_API_KEY
    from the environment; having neither is a normal state that gates AI calls.
    """
    def __init__(self, store: KeyValueStore, env_key: Optional[str] = None):
        self.store = store
        self.env_key = env_key if env_key is not None else settings.GEMINI_API_KEY

    def _stored(self) -> Optional[str]:
        stored = load_json(self.store, CREDENTIAL_KEY, lambda: None, _parse_key)
        return stored or None

    def get(self) -> Optional[str]:
        return self._stored() or (self.env_key or "").strip() or None

    def require(self) -> str:
        api_key = self.get()
        if not api_key:
            raise CredentialMissingError("Gemini API key is not configured")
        return api_key

    def source(self) -> Optional[str]:
        if self._stored():
            return "stored"
        if self.get():
            return "environment"
        return None

    def set(self, value: str) -> None:
        api_key = (value or "").strip()
        if not api_key:
            raise InvalidInputError("API key must not be empty")
        save_json(self.store, CREDENTIAL_KEY, api_key, strict=True)
        logger.info("Stored Gemini API key")

    def clear(self) -> None:
        try:
            self.store.delete(CREDENTIAL_KEY)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clear the stored API key: {e}") from e
        logger.info("Cleared stored Gemini API key")
