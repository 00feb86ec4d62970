"""Tests for transient/permanent failure classification."""
import httpx
import pytest

from lexrag.errors import (
    CompletionBackendError,
    EmbeddingError,
    ErrorClass,
    OperationFailedError,
    PermanentRequestError,
    TransientNetworkError,
    classify_error,
)


def _status_error(status_code: int, body: str = "") -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://backend.test/v1/chat/completions")
    response = httpx.Response(status_code, text=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


@pytest.mark.parametrize("exc", [
    httpx.ConnectError("refused"),
    httpx.ReadTimeout("slow"),
    httpx.ConnectTimeout("slow"),
    httpx.RemoteProtocolError("reset"),
    _status_error(429),
    _status_error(500),
    _status_error(502),
    _status_error(503),
    _status_error(504),
    _status_error(400, '{"error": "Model is currently overloaded"}'),
    CompletionBackendError("Service Unavailable, try later"),
    CompletionBackendError("error", status_code=503),
    TransientNetworkError("gave up"),
])
def test_transient_failures(exc):
    assert classify_error(exc) is ErrorClass.TRANSIENT


@pytest.mark.parametrize("exc", [
    _status_error(400, "bad request"),
    _status_error(401),
    _status_error(404),
    _status_error(422),
    CompletionBackendError("Invalid model name"),
    PermanentRequestError("nope"),
    EmbeddingError("zero norm"),
    ValueError("bug"),
    KeyError("choices"),
])
def test_permanent_failures(exc):
    assert classify_error(exc) is ErrorClass.PERMANENT


def test_operation_failed_message_names_operation_and_cause():
    cause = PermanentRequestError("401 unauthorized")
    error = OperationFailedError("analyze text", cause)

    assert str(error) == "Failed to analyze text: 401 unauthorized"
    assert error.cause is cause
