"""Retry and model-fallback wrapper around generation calls.

Two nested loops: the inner one retries a single model with exponential
backoff while failures classify as transient; the outer one moves down the
model list once a model's retry budget is spent. Permanent failures stop
both loops at once.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, TypeVar
import structlog

from lexrag import config
from lexrag.errors import (
    ErrorClass,
    ModelExhaustedError,
    PermanentRequestError,
    TransientNetworkError,
    classify_error,
)
from lexrag.generation.selector import ModelDescriptor

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Per-model retry budget."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(max_attempts=config.MAX_RETRY_ATTEMPTS, base_delay=config.RETRY_BASE_DELAY)

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given 1-based attempt failed."""
        return self.base_delay * (2 ** attempt)


class ResilientInvoker:
    """Runs backend calls under a RetryPolicy with model fallback."""

    def __init__(
        self,
        policy: RetryPolicy = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the invoker.

        Args:
            policy: Retry budget per model (default from config)
            sleep: Coroutine used for backoff waits
        """
        self.policy = policy or RetryPolicy.from_config()
        self._sleep = sleep

    async def call_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "call",
    ) -> T:
        """Run one operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            label: Name used in log events (usually the model)

        Returns:
            The operation's result

        Raises:
            PermanentRequestError: On the first non-retryable failure
            TransientNetworkError: When every attempt failed transiently
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                if classify_error(e) is ErrorClass.PERMANENT:
                    logger.error(
                        "backend_call_failed_permanently",
                        target=label,
                        attempt=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise PermanentRequestError(str(e), model=label) from e

                if attempt == self.policy.max_attempts:
                    break

                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "backend_call_retrying",
                    target=label,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)

        logger.warning(
            "backend_call_retries_exhausted",
            target=label,
            attempts=self.policy.max_attempts,
            error=str(last_error),
        )
        raise TransientNetworkError(
            f"{label}: {self.policy.max_attempts} attempts failed: {last_error}",
            model=label,
        ) from last_error

    async def invoke(
        self,
        operation: Callable[[str], Awaitable[T]],
        models: Sequence[ModelDescriptor],
    ) -> T:
        """Run an operation against each model in turn until one succeeds.

        Args:
            operation: Coroutine factory taking a model identifier
            models: Candidate models, highest priority first

        Returns:
            Result from the first model that succeeds

        Raises:
            PermanentRequestError: If any model fails permanently
            ModelExhaustedError: If every model exhausted its retries
        """
        if not models:
            raise ModelExhaustedError("No candidate models to invoke")

        last_error: Optional[BaseException] = None

        for index, model in enumerate(models):
            try:
                result = await self.call_with_retry(
                    lambda: operation(model.identifier), label=model.identifier
                )
            except TransientNetworkError as e:
                last_error = e.__cause__ or e
                if index + 1 < len(models):
                    logger.warning(
                        "model_fallback",
                        failed_model=model.identifier,
                        next_model=models[index + 1].identifier,
                    )
                continue

            logger.info("model_invocation_succeeded", model=model.identifier, position=index)
            return result

        logger.error(
            "all_models_exhausted",
            models=[m.identifier for m in models],
            error=str(last_error),
        )
        raise ModelExhaustedError(
            f"All {len(models)} candidate models failed: {last_error}",
            last_error=last_error,
            models=[m.identifier for m in models],
        )
