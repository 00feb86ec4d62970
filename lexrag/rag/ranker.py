"""Semantic ranking of document chunks against a question.

Handles:
- Cosine similarity between embeddings
- Concurrent chunk embedding with a bounded fan-out
- Deterministic top-K selection
- Context formatting for the LLM prompt
"""
import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
import numpy as np
import structlog

from lexrag import config
from lexrag.rag.chunker import Chunk
from lexrag.rag.embedder import Embedding, EmbeddingProvider

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with its similarity to the question."""

    chunk: Chunk
    score: float


def cosine_similarity(a, b) -> float:
    """Cosine similarity of two vectors, clipped to [-1, 1].

    Does not assume unit-norm inputs.

    Raises:
        ValueError: On dimension mismatch or a zero vector
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Dimension mismatch: {a.shape} vs {b.shape}")

    denominator = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denominator == 0.0:
        raise ValueError("Cosine similarity is undefined for zero vectors")

    return float(np.clip(np.dot(a, b) / denominator, -1.0, 1.0))


def _vector(embedding) -> np.ndarray:
    return embedding.vector if isinstance(embedding, Embedding) else np.asarray(embedding)


def rank(
    question_embedding,
    chunk_embeddings: Iterable[Tuple[Chunk, object]],
    top_k: int = None,
) -> List[ScoredChunk]:
    """Score chunks against the question and keep the best ones.

    Args:
        question_embedding: Embedding (or raw vector) of the question
        chunk_embeddings: (chunk, embedding) pairs in any order
        top_k: Number of results to keep (default from config)

    Returns:
        At most top_k ScoredChunk objects, best first; equal scores are
        ordered by chunk ordinal
    """
    top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
    if top_k <= 0:
        return []

    question = _vector(question_embedding)
    scored = [
        ScoredChunk(chunk=chunk, score=cosine_similarity(question, _vector(embedding)))
        for chunk, embedding in chunk_embeddings
    ]
    scored.sort(key=lambda s: (-s.score, s.chunk.ordinal))
    return scored[:top_k]


def build_context(scored_chunks: Sequence[ScoredChunk]) -> str:
    """Join chunk texts in ranking order (not document order)."""
    return CONTEXT_SEPARATOR.join(s.chunk.text.strip() for s in scored_chunks)


class SimilarityRanker:
    """Embeds chunks concurrently and selects the most relevant ones."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        top_k: int = None,
        max_concurrency: int = None,
    ):
        """Initialize the ranker.

        Args:
            provider: Shared embedding provider
            top_k: Number of chunks to select (default from config)
            max_concurrency: Maximum embeddings in flight (default from config)
        """
        self.provider = provider
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.max_concurrency = max_concurrency or config.EMBEDDING_MAX_WORKERS

        logger.info(
            "ranker_initialized",
            top_k=self.top_k,
            max_concurrency=self.max_concurrency,
        )

    async def embed_chunks(self, chunks: Iterable[Chunk]) -> List[Tuple[Chunk, Embedding]]:
        """Embed chunks with a bounded number of concurrent calls.

        Returns:
            (chunk, embedding) pairs in completion order
        """
        gate = asyncio.Semaphore(self.max_concurrency)
        results: List[Tuple[Chunk, Embedding]] = []

        async def _embed(chunk: Chunk) -> None:
            async with gate:
                embedding = await self.provider.embed_async(chunk.text)
            results.append((chunk, embedding))

        await asyncio.gather(*(_embed(chunk) for chunk in chunks))
        return results

    async def retrieve(
        self,
        question: str,
        chunks: Iterable[Chunk],
        top_k: Optional[int] = None,
    ) -> List[ScoredChunk]:
        """Rank chunks for a question.

        Args:
            question: User question
            chunks: Candidate chunks (consumed once)
            top_k: Override for the number of results

        Returns:
            Best chunks first

        Raises:
            EmbeddingError: If any embedding fails
        """
        top_k = self.top_k if top_k is None else top_k

        question_embedding, chunk_embeddings = await asyncio.gather(
            self.provider.embed_async(question),
            self.embed_chunks(chunks),
        )

        results = rank(question_embedding, chunk_embeddings, top_k=top_k)

        logger.info(
            "chunks_ranked",
            candidates=len(chunk_embeddings),
            selected=len(results),
            top_score=results[0].score if results else None,
        )

        return results
