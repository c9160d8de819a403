"""Provider error kinds and classification.

Provider adapters raise the tagged errors below so the fallback manager can
react to the cause of a failure. Errors coming from elsewhere are classified
by keyword matching on their message.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Why a model call failed."""
    RATE_LIMITED = "rate_limited"
    NOT_AUTHORIZED = "not_authorized"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class ProviderError(Exception):
    """Base class for errors raised by AI provider adapters."""

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitError(ProviderError):
    """The provider throttled the request; retry after a cooldown."""
    kind = ErrorKind.RATE_LIMITED


class ModelNotAuthorizedError(ProviderError):
    """The account cannot use this model until access is granted."""
    kind = ErrorKind.NOT_AUTHORIZED


class ModelUnavailableError(ProviderError):
    """The model is not served right now or not in this region."""
    kind = ErrorKind.UNAVAILABLE


class NoValidCommandsError(ValueError):
    """The model's first reply contained no git commands."""

    def __init__(self, message: str = "No valid git commands found in the response."):
        super().__init__(message)


RATE_LIMIT_INDICATORS = (
    'rate limit',
    'rate_limit',
    'too many requests',
    '429',
    'quota exceeded',
    'usage limit',
    'throttled',
)

NOT_AUTHORIZED_INDICATORS = (
    'not authorized',
    'access denied',
    'forbidden',
    '403',
    'not enabled',
    'model not found',
    'invalid model',
    'model access',
    'insufficient permissions',
    'validationexception',
)

UNAVAILABLE_INDICATORS = (
    'model not available',
    'model unavailable',
    'service unavailable',
    'region not supported',
    'model not supported',
    'temporarily unavailable',
)


def _error_text(error: Any) -> str:
    message = getattr(error, 'message', None)
    if not isinstance(message, str):
        message = str(error)
    return message.lower()


def _matches(error: Any, indicators, kind: ErrorKind) -> bool:
    if error is None:
        return False
    if isinstance(error, ProviderError) and error.kind != ErrorKind.OTHER:
        return error.kind == kind
    text = _error_text(error)
    return any(indicator in text for indicator in indicators)


def is_rate_limit_error(error: Any) -> bool:
    """Check if an error signals provider throttling."""
    return _matches(error, RATE_LIMIT_INDICATORS, ErrorKind.RATE_LIMITED)


def is_model_not_authorized_error(error: Any) -> bool:
    """Check if an error means the model is not enabled for this account."""
    return _matches(error, NOT_AUTHORIZED_INDICATORS, ErrorKind.NOT_AUTHORIZED)


def is_model_unavailable_error(error: Any) -> bool:
    """Check if an error means the model cannot be served right now."""
    return _matches(error, UNAVAILABLE_INDICATORS, ErrorKind.UNAVAILABLE)


def classify_error(error: Any) -> ErrorKind:
    """
    Classify an error, checking authorization first, then unavailability,
    then rate limiting.
    """
    if is_model_not_authorized_error(error):
        return ErrorKind.NOT_AUTHORIZED
    if is_model_unavailable_error(error):
        return ErrorKind.UNAVAILABLE
    if is_rate_limit_error(error):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.OTHER
