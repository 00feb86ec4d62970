"""Error taxonomy and the retry classification used by the invoker.

Transient failures (timeouts, transport errors, HTTP 429/5xx, "overloaded"
or "unavailable" backend messages) are worth retrying. Everything else is
permanent and propagates immediately.
"""
from enum import Enum
from typing import Optional

import httpx

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
TRANSIENT_MARKERS = ("overloaded", "unavailable")


class ErrorClass(str, Enum):
    """Outcome of classifying a failed backend call."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class AssistantError(Exception):
    """Base class for all errors raised by lexrag."""


class CompletionBackendError(AssistantError):
    """The completion backend answered with an error payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(AssistantError):
    """A retryable failure that outlived its retry budget on one model."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class PermanentRequestError(AssistantError):
    """A non-retryable failure (4xx other than 429, malformed request)."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class MalformedResponseError(AssistantError):
    """A completion that could not be parsed. Never leaves the parser."""


class EmbeddingError(AssistantError):
    """Embedding inference failed or produced an unusable vector."""


class ModelExhaustedError(AssistantError):
    """Every candidate model exhausted its retry budget."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None, models=()):
        super().__init__(message)
        self.last_error = last_error
        self.models = list(models)


class OperationFailedError(AssistantError):
    """A service operation gave up; wraps the underlying cause."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


def _has_transient_marker(message: str) -> bool:
    text = message.lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def classify_error(exc: BaseException) -> ErrorClass:
    """Classify a failed call as transient or permanent.

    Args:
        exc: Exception raised by a backend call

    Returns:
        ErrorClass.TRANSIENT if the same call may succeed when retried
    """
    if isinstance(exc, TransientNetworkError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, PermanentRequestError):
        return ErrorClass.PERMANENT

    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in TRANSIENT_STATUS_CODES:
            return ErrorClass.TRANSIENT
        try:
            body = exc.response.text
        except httpx.ResponseNotRead:
            body = ""
        return ErrorClass.TRANSIENT if _has_transient_marker(body) else ErrorClass.PERMANENT

    # Timeouts are a subclass of TransportError
    if isinstance(exc, httpx.TransportError):
        return ErrorClass.TRANSIENT

    if isinstance(exc, CompletionBackendError):
        if exc.status_code in TRANSIENT_STATUS_CODES:
            return ErrorClass.TRANSIENT
        if _has_transient_marker(str(exc)):
            return ErrorClass.TRANSIENT
        return ErrorClass.PERMANENT

    return ErrorClass.PERMANENT
