"""Sentence-boundary text chunking for the RAG pipeline.

Chunks are built from whole sentences: a sentence longer than the chunk
limit gets a chunk of its own instead of being cut.
"""
import re
from dataclasses import dataclass
from typing import Iterator, List
import structlog

from lexrag import config

logger = structlog.get_logger()

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class Chunk:
    """A contiguous run of sentences with its position in the document."""

    text: str
    ordinal: int


def split_sentences(text: str) -> List[str]:
    """Split text into sentences at '.', '!' or '?' followed by whitespace.

    Args:
        text: Text to split

    Returns:
        Non-empty, stripped sentences in document order
    """
    if not text:
        return []
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


class SentenceChunker:
    """Greedy sentence accumulator bounded by a maximum chunk length."""

    separator = " "

    def __init__(self, max_chunk_length: int = None):
        """Initialize the chunker.

        Args:
            max_chunk_length: Soft limit on chunk size in characters (default from config)
        """
        self.max_chunk_length = (
            config.MAX_CHUNK_LENGTH if max_chunk_length is None else max_chunk_length
        )

        if self.max_chunk_length <= 0:
            raise ValueError(f"max_chunk_length must be positive, got {self.max_chunk_length}")

    def chunk(self, text: str) -> Iterator[Chunk]:
        """Lazily split text into chunks.

        Args:
            text: Text to chunk

        Yields:
            Chunk objects with ordinals starting at 0
        """
        current: List[str] = []
        current_length = 0
        ordinal = 0

        for sentence in split_sentences(text):
            added = len(sentence) + (len(self.separator) if current else 0)

            if current and current_length + added > self.max_chunk_length:
                yield Chunk(text=self.separator.join(current), ordinal=ordinal)
                ordinal += 1
                current = []
                current_length = 0
                added = len(sentence)

            current.append(sentence)
            current_length += added

        if current:
            yield Chunk(text=self.separator.join(current), ordinal=ordinal)
            ordinal += 1

        logger.debug(
            "text_chunked",
            text_length=len(text or ""),
            chunk_count=ordinal,
            max_chunk_length=self.max_chunk_length,
        )


def chunk_text(text: str, max_chunk_length: int = None) -> Iterator[Chunk]:
    """Chunk text with a throwaway chunker (convenience function).

    Args:
        text: Text to chunk
        max_chunk_length: Soft limit on chunk size in characters

    Returns:
        Iterator of Chunk objects
    """
    return SentenceChunker(max_chunk_length).chunk(text)
