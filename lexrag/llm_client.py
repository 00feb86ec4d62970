"""HTTP clients for the completion and NER backends."""
import httpx
from typing import Any, Dict, List, Optional
import structlog

from lexrag import config
from lexrag.errors import CompletionBackendError

logger = structlog.get_logger()


def _error_message(data: Any) -> Optional[str]:
    """Pull an error message out of a backend payload, if there is one."""
    if not isinstance(data, dict) or "error" not in data:
        return None
    error = data["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class CompletionClient:
    """Async client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        api_version: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        """Initialize the completion client.

        Args:
            base_url: API base URL (defaults to config.COMPLETION_BASE_URL)
            api_key: Bearer token (defaults to config.COMPLETION_API_KEY)
            api_version: Optional provider version header value
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = (base_url or config.COMPLETION_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.COMPLETION_API_KEY
        self.api_version = api_version if api_version is not None else config.COMPLETION_API_VERSION
        self.timeout = timeout or config.REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.api_version:
            headers["cerebras-version"] = self.api_version
        return headers

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: int = 1000,
        temperature: float = 0.2,
    ) -> str:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model identifier
            max_tokens: Completion token cap
            temperature: Sampling temperature

        Returns:
            Content of the first choice ("" when the backend sent none)

        Raises:
            httpx.HTTPError: On transport errors and non-2xx responses
            CompletionBackendError: If the payload carries an error object
        """
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        async with self._client() as client:
            logger.info(
                "completion_request",
                model=model,
                message_count=len(messages),
                prompt_length=sum(len(m.get("content", "")) for m in messages),
            )

            response = await client.post(f"{self.base_url}/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()

        message = _error_message(data)
        if message is not None:
            logger.error("completion_backend_error", model=model, error=message)
            raise CompletionBackendError(message, status_code=response.status_code)

        choices = (data.get("choices") if isinstance(data, dict) else None) or []
        content = ""
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content") or ""
        else:
            logger.warning("completion_without_choices", model=model)

        logger.info("completion_response", model=model, response_length=len(content))
        return content

    async def list_models(self) -> List[str]:
        """List model identifiers offered by the backend.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/models")
                response.raise_for_status()
                data = response.json()
                return [m["id"] for m in data.get("data", [])]
        except httpx.HTTPError as e:
            logger.error("list_models_error", error=str(e))
            raise


class NerClient:
    """Client for a hosted token-classification (NER) model."""

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        model: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = (base_url or config.NER_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.NER_API_KEY
        self.model = model or config.NER_MODEL
        self.timeout = timeout or config.REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def extract_entities(self, text: str) -> List[Dict[str, Any]]:
        """Run entity recognition over text.

        Returns:
            Entity dicts as returned by the backend (entity_group, word,
            score, start, end)

        Raises:
            httpx.HTTPError: On API errors
            CompletionBackendError: If the payload carries an error object
        """
        payload = {"inputs": text, "parameters": {"aggregation_strategy": "simple"}}

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self._transport,
        ) as client:
            logger.info("ner_request", model=self.model, text_length=len(text))
            response = await client.post(f"{self.base_url}/{self.model}", json=payload)
            response.raise_for_status()
            data = response.json()

        message = _error_message(data)
        if message is not None:
            raise CompletionBackendError(message, status_code=response.status_code)

        # Some deployments wrap results per input
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        if not isinstance(data, list):
            return []

        logger.info("ner_response", model=self.model, entity_count=len(data))
        return [e for e in data if isinstance(e, dict)]
