class FinboardError(Exception):
    """Base class for errors surfaced to the dashboard user."""


class InvalidInputError(FinboardError, ValueError):
    """Rejected input. Raised before any collection is mutated or written."""


class ProjectionError(FinboardError, ArithmeticError):
    """The projection produced a non-finite number (NaN or Infinity)."""


class CredentialMissingError(FinboardError):
    """No Gemini API key is configured, so AI features are unavailable."""


class AnalysisError(FinboardError):
    """The AI collaborator failed or returned something we could not use."""


class PersistenceError(FinboardError):
    """An explicit save could not be written to the store."""
