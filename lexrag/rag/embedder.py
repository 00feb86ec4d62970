"""In-process sentence embeddings from an ONNX transformer model.

Handles:
- Tokenization with the model's vocabulary
- Inference on a shared onnxruntime session (batch size 1)
- Mean pooling over tokens and L2 normalization
- Off-loop execution on a bounded thread pool

The provider is created once per process (see get_embedding_provider) and
shared read-only by every request. Calls into the inference session are
serialized through a lock unless the provider is built with
serialize_inference=False, which is safe for onnxruntime sessions.
"""
import asyncio
import atexit
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
import numpy as np
import onnxruntime as ort
import structlog

from lexrag import config
from lexrag.errors import EmbeddingError
from lexrag.rag.tokenizer import WordPieceTokenizer

logger = structlog.get_logger()


@dataclass(frozen=True, eq=False)
class Embedding:
    """A unit-norm embedding vector."""

    vector: np.ndarray

    @property
    def dim(self) -> int:
        return int(self.vector.shape[0])


def mean_pool(token_vectors: np.ndarray) -> np.ndarray:
    """Average per-token vectors of shape (seq, dim) into one (dim,) vector."""
    if token_vectors.ndim != 2 or token_vectors.shape[0] == 0:
        raise EmbeddingError(f"Cannot pool token output of shape {token_vectors.shape}")
    return token_vectors.astype(np.float64).mean(axis=0)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale a vector to unit length.

    Raises:
        EmbeddingError: If the norm is zero or not finite
    """
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        raise EmbeddingError("Embedding has zero or non-finite norm")
    return vector / norm


class EmbeddingProvider:
    """Shared embedding backend over a loaded model and vocabulary."""

    def __init__(
        self,
        session,
        tokenizer: WordPieceTokenizer,
        max_workers: int = None,
        serialize_inference: bool = None,
    ):
        """Initialize the provider.

        Args:
            session: onnxruntime.InferenceSession (or any object with the same
                get_inputs()/run() surface)
            tokenizer: Tokenizer built from the model's vocabulary
            max_workers: Size of the inference thread pool (default from config)
            serialize_inference: Guard session.run with a lock (default from config)
        """
        self._session = session
        self.tokenizer = tokenizer
        self.max_workers = max_workers or config.EMBEDDING_MAX_WORKERS
        if serialize_inference is None:
            serialize_inference = config.SERIALIZE_INFERENCE
        self.serialize_inference = serialize_inference

        self._input_names = {i.name for i in session.get_inputs()}
        self._session_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="embedding"
        )
        self._closed = False

        logger.info(
            "embedding_provider_initialized",
            inputs=sorted(self._input_names),
            vocabulary_size=tokenizer.vocabulary_size,
            max_workers=self.max_workers,
            serialize_inference=self.serialize_inference,
        )

    @classmethod
    def load(
        cls,
        model_path: Path = None,
        vocab_path: Path = None,
        **kwargs,
    ) -> "EmbeddingProvider":
        """Load the ONNX model and vocabulary from disk.

        Args:
            model_path: Path to model.onnx (default from config)
            vocab_path: Path to vocab.txt (default from config)

        Raises:
            FileNotFoundError: If an artifact is missing
        """
        model_path = Path(model_path or config.EMBEDDING_MODEL_PATH)
        vocab_path = Path(vocab_path or config.EMBEDDING_VOCAB_PATH)

        for path in (model_path, vocab_path):
            if not path.exists():
                raise FileNotFoundError(f"Embedding artifact not found: {path}")

        tokenizer = WordPieceTokenizer.from_file(
            vocab_path,
            max_sequence_length=config.MAX_SEQUENCE_LENGTH,
            lowercase=config.EMBEDDING_LOWERCASE,
        )
        session = ort.InferenceSession(str(model_path), providers=["CPUExecutionProvider"])

        logger.info("embedding_model_loaded", model_path=str(model_path))
        return cls(session, tokenizer, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    def _feeds(self, token_ids: List[int]) -> dict:
        input_ids = np.asarray([token_ids], dtype=np.int64)
        feeds = {
            "input_ids": input_ids,
            "attention_mask": np.ones_like(input_ids),
            "token_type_ids": np.zeros_like(input_ids),
        }
        return {name: value for name, value in feeds.items() if name in self._input_names}

    def _run(self, feeds: dict) -> np.ndarray:
        if self.serialize_inference:
            with self._session_lock:
                outputs = self._session.run(None, feeds)
        else:
            outputs = self._session.run(None, feeds)

        token_vectors = np.asarray(outputs[0])
        if token_vectors.ndim == 3:
            token_vectors = token_vectors[0]
        return token_vectors

    def embed(self, text: str) -> Embedding:
        """Embed a single text (blocking).

        Args:
            text: Text to embed

        Returns:
            Unit-norm Embedding

        Raises:
            EmbeddingError: On empty input, inference failure or zero norm
        """
        if self._closed:
            raise EmbeddingError("Embedding provider is closed")
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        token_ids = self.tokenizer.encode(text)

        try:
            token_vectors = self._run(self._feeds(token_ids))
        except Exception as e:
            logger.error(
                "embedding_inference_failed",
                error=str(e),
                error_type=type(e).__name__,
                token_count=len(token_ids),
            )
            raise EmbeddingError(f"Inference failed: {e}") from e

        vector = l2_normalize(mean_pool(token_vectors)).astype(np.float32)
        vector.flags.writeable = False
        return Embedding(vector=vector)

    async def embed_async(self, text: str) -> Embedding:
        """Embed a text on the provider's thread pool."""
        if self._closed:
            raise EmbeddingError("Embedding provider is closed")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.embed, text)

    async def embed_many(self, texts: Sequence[str]) -> List[Embedding]:
        """Embed several texts concurrently, preserving input order."""
        return list(await asyncio.gather(*(self.embed_async(t) for t in texts)))

    def close(self) -> None:
        """Release the thread pool and the inference session."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        self._session = None
        logger.info("embedding_provider_closed")


# Process-wide instance, created on first use
_provider_instance: Optional[EmbeddingProvider] = None
_provider_lock = threading.Lock()


def get_embedding_provider() -> EmbeddingProvider:
    """Get or load the shared embedding provider.

    Returns:
        EmbeddingProvider loaded from the configured artifacts
    """
    global _provider_instance
    if _provider_instance is None:
        with _provider_lock:
            if _provider_instance is None:
                _provider_instance = EmbeddingProvider.load()
    return _provider_instance


def shutdown_embedding_provider() -> None:
    """Close the shared provider if it was loaded."""
    global _provider_instance
    with _provider_lock:
        if _provider_instance is not None:
            _provider_instance.close()
            _provider_instance = None


atexit.register(shutdown_embedding_provider)
