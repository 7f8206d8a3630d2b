"""
Custom exceptions for fire-enrich.

Provides a hierarchy of exceptions for better error handling and debugging.
"""

from typing import Any, Dict, Optional


class FireEnrichError(Exception):
    """Base exception for all fire-enrich errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FireEnrichError):
    """Raised when there are configuration issues."""
    pass


class DataAccessError(FireEnrichError):
    """Base class for data access errors."""
    pass


class ProviderError(DataAccessError):
    """A data provider call failed."""

    def __init__(self, provider: str, message: str, **kwargs):
        super().__init__(f"{provider}: {message}", **kwargs)
        self.provider = provider


class RateLimitError(ProviderError):
    """Provider answered HTTP 429."""

    def __init__(self, provider: str, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(provider, message, **kwargs)
        self.retry_after = retry_after


class ExternalServiceError(ProviderError):
    """External service is unavailable or returning errors."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(provider, message, **kwargs)
        self.status_code = status_code


class ProviderResponseError(ProviderError):
    """Provider returned a body we could not interpret."""
    pass


class CSVParsingError(FireEnrichError):
    """CSV parsing and validation errors."""
    pass


class ValidationError(FireEnrichError):
    """Data validation errors."""
    pass


class RowInputError(ValidationError):
    """A single row cannot be enriched (e.g. missing email)."""
    pass


class SessionError(FireEnrichError):
    """A session could not start."""
    pass


class EnrichmentTimeoutError(DataAccessError):
    """Operation timeout errors."""
    pass


class EnrichmentCancelledError(FireEnrichError):
    """Work was abandoned because the session was cancelled."""
    pass
