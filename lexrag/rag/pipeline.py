"""Document-to-context retrieval: chunk, embed, rank, format."""
from typing import List
import structlog

from lexrag.rag.chunker import SentenceChunker
from lexrag.rag.ranker import ScoredChunk, SimilarityRanker, build_context

logger = structlog.get_logger()


class RetrievalPipeline:
    """Selects the passages of a document most relevant to a question."""

    def __init__(self, ranker: SimilarityRanker, chunker: SentenceChunker = None):
        self.ranker = ranker
        self.chunker = chunker or SentenceChunker()

    async def retrieve(self, document_text: str, question: str) -> List[ScoredChunk]:
        """Rank the document's chunks against the question.

        Raises:
            EmbeddingError: If embedding the question or a chunk fails
        """
        if not document_text or not document_text.strip():
            logger.warning("empty_document_provided")
            return []

        return await self.ranker.retrieve(question, self.chunker.chunk(document_text))

    async def context_for(self, document_text: str, question: str) -> str:
        """Context string for the prompt, best passage first."""
        results = await self.retrieve(document_text, question)
        context = build_context(results)

        logger.debug(
            "context_formatted",
            num_chunks=len(results),
            total_chars=len(context),
        )
        return context
