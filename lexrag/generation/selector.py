"""Generation model catalogue and size-based model selection."""
from dataclasses import dataclass
from enum import Enum
from typing import Collection, List, Optional, Sequence
import structlog

from lexrag import config

logger = structlog.get_logger()


class ModelCapacity(str, Enum):
    SMALL = "small"
    LARGE = "large"


@dataclass(frozen=True)
class ModelDescriptor:
    """A generation model and its relative context capacity."""

    identifier: str
    capacity: ModelCapacity = ModelCapacity.SMALL


def parse_models(spec: str) -> List[ModelDescriptor]:
    """Parse "id:capacity,id:capacity" into descriptors, keeping order.

    A missing capacity means small. Duplicate identifiers keep their first
    position.

    Raises:
        ValueError: On an unknown capacity or an empty list
    """
    models: List[ModelDescriptor] = []
    seen = set()
    for item in (spec or "").split(","):
        item = item.strip()
        if not item:
            continue
        identifier, _, capacity = item.rpartition(":") if ":" in item else (item, "", "small")
        identifier = identifier.strip()
        if identifier in seen:
            continue
        seen.add(identifier)
        models.append(ModelDescriptor(identifier, ModelCapacity(capacity.strip().lower() or "small")))

    if not models:
        raise ValueError("At least one generation model must be configured")
    return models


class ModelSelector:
    """Chooses generation models from a fixed priority list."""

    def __init__(
        self,
        models: Sequence[ModelDescriptor] = None,
        large_context_threshold: int = None,
    ):
        """Initialize the selector.

        Args:
            models: Models in priority order (default parsed from config)
            large_context_threshold: Prompt size in characters above which
                large models are preferred (default from config)
        """
        self.models = list(models) if models else parse_models(config.GENERATION_MODELS)
        self.large_context_threshold = (
            large_context_threshold
            if large_context_threshold is not None
            else config.LARGE_CONTEXT_THRESHOLD
        )

    def preferred_capacity(self, prompt_size: int) -> ModelCapacity:
        if prompt_size > self.large_context_threshold:
            return ModelCapacity.LARGE
        return ModelCapacity.SMALL

    def select(
        self,
        prompt_size: int,
        failed: Collection[str] = (),
    ) -> Optional[ModelDescriptor]:
        """Pick the next model to try.

        Args:
            prompt_size: Size of the assembled prompt in characters
            failed: Identifiers that already failed for this request

        Returns:
            The highest-priority model of the preferred capacity that has not
            failed, else the highest-priority remaining model, else None
        """
        remaining = [m for m in self.models if m.identifier not in failed]
        if not remaining:
            return None

        wanted = self.preferred_capacity(prompt_size)
        for model in remaining:
            if model.capacity == wanted:
                return model
        return remaining[0]

    def candidates(self, prompt_size: int) -> List[ModelDescriptor]:
        """Full fallback order for a prompt of the given size."""
        ordered: List[ModelDescriptor] = []
        failed: List[str] = []
        while True:
            model = self.select(prompt_size, failed)
            if model is None:
                break
            ordered.append(model)
            failed.append(model.identifier)

        logger.debug(
            "model_candidates_selected",
            prompt_size=prompt_size,
            models=[m.identifier for m in ordered],
        )
        return ordered

    def priority_order(self) -> List[ModelDescriptor]:
        """Configured order, for flows that ignore prompt size."""
        return list(self.models)
