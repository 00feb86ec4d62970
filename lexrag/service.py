"""Assistant operations exposed to the web layer.

Each operation assembles a prompt, picks candidate models, runs the
completion through the resilient invoker and parses the result.
"""
from datetime import datetime, timezone
from typing import Dict, List
import structlog

from lexrag import config
from lexrag.clauses import ClauseExtractor
from lexrag.errors import ModelExhaustedError, OperationFailedError, PermanentRequestError
from lexrag.generation import prompts
from lexrag.generation.invoker import ResilientInvoker
from lexrag.generation.parser import parse_analysis, parse_explanation
from lexrag.generation.selector import ModelDescriptor, ModelSelector
from lexrag.llm_client import CompletionClient, NerClient
from lexrag.models import AnalysisKind, ChatAnswer, Clause, Explanation
from lexrag.rag.embedder import EmbeddingProvider
from lexrag.rag.pipeline import RetrievalPipeline
from lexrag.rag.ranker import SimilarityRanker

logger = structlog.get_logger()

EMPTY_CHAT_RESPONSE = "I'm sorry, I couldn't process your question."

# Failures the invoker hands back once it has given up
GENERATION_FAILURES = (ModelExhaustedError, PermanentRequestError)


class AssistantService:
    """Analysis, clause extraction, explanation and document chat."""

    def __init__(
        self,
        completion_client: CompletionClient,
        retrieval: RetrievalPipeline,
        selector: ModelSelector = None,
        invoker: ResilientInvoker = None,
        clause_extractor: ClauseExtractor = None,
        chat_fallback: bool = None,
    ):
        """Initialize the service.

        Args:
            completion_client: Completion backend client
            retrieval: Pipeline selecting document context for chat
            selector: Model selector (default from config)
            invoker: Retry/fallback runner (default from config)
            clause_extractor: Clause extractor (keyword-only by default)
            chat_fallback: Answer chat with a fixed message when generation
                fails instead of raising (default from config)
        """
        self.completion_client = completion_client
        self.retrieval = retrieval
        self.selector = selector or ModelSelector()
        self.invoker = invoker or ResilientInvoker()
        self.clause_extractor = clause_extractor or ClauseExtractor(invoker=self.invoker)
        self.chat_fallback = config.CHAT_FALLBACK_ENABLED if chat_fallback is None else chat_fallback

    async def _generate(
        self,
        messages: List[Dict[str, str]],
        models: List[ModelDescriptor],
        max_tokens: int,
        temperature: float,
    ) -> str:
        return await self.invoker.invoke(
            lambda model: self.completion_client.complete(
                messages, model=model, max_tokens=max_tokens, temperature=temperature
            ),
            models,
        )

    async def analyze_text(self, text: str, analysis_type: str):
        """Analyze legal text for risks, review points, ambiguities or general insights.

        Args:
            text: Text to analyze
            analysis_type: "risk", "review", "ambiguity"; anything else is generic

        Returns:
            AnalysisResult of the requested kind (or the generic fallback)

        Raises:
            OperationFailedError: If generation failed on every model
        """
        kind = AnalysisKind.from_name(analysis_type)
        messages = prompts.analysis_messages(text, kind)
        models = self.selector.candidates(prompts.prompt_size(messages))

        logger.info("analysis_started", kind=kind.value, text_length=len(text))

        try:
            content = await self._generate(messages, models, max_tokens=1000, temperature=0.2)
        except GENERATION_FAILURES as e:
            logger.error("analysis_failed", kind=kind.value, error=str(e))
            raise OperationFailedError("analyze text", e) from e

        return parse_analysis(content, kind)

    async def extract_clauses(self, text: str) -> List[Clause]:
        """Extract typed clauses; never fails because of a backend."""
        logger.info("clause_extraction_started", text_length=len(text))
        return await self.clause_extractor.extract(text)

    async def explain_simple(self, text: str) -> Explanation:
        """Explain legal text in plain language.

        Raises:
            OperationFailedError: If generation failed on every model
        """
        messages = prompts.explain_messages(text)

        logger.info("explanation_started", text_length=len(text))

        try:
            content = await self._generate(
                messages, self.selector.priority_order(), max_tokens=500, temperature=0.3
            )
        except GENERATION_FAILURES as e:
            logger.error("explanation_failed", error=str(e))
            raise OperationFailedError("explain text", e) from e

        return parse_explanation(content, original=text)

    async def chat(self, question: str, document_text: str) -> ChatAnswer:
        """Answer a question about a document using its most relevant passages.

        Raises:
            EmbeddingError: If the document or question cannot be embedded
            OperationFailedError: If generation failed and chat fallback is off
        """
        context = await self.retrieval.context_for(document_text, question)
        messages = prompts.chat_messages(question, context)
        models = self.selector.candidates(prompts.prompt_size(messages))

        logger.info(
            "chat_started",
            question_length=len(question),
            context_length=len(context),
        )

        try:
            content = await self._generate(messages, models, max_tokens=800, temperature=0.4)
        except GENERATION_FAILURES as e:
            if not self.chat_fallback:
                raise OperationFailedError("process chat request", e) from e
            logger.error("chat_generation_failed_using_fallback", error=str(e))
            content = config.CHAT_UNAVAILABLE_MESSAGE

        return ChatAnswer(
            text=content.strip() or EMPTY_CHAT_RESPONSE,
            timestamp=datetime.now(timezone.utc),
        )


def build_service(provider: EmbeddingProvider) -> AssistantService:
    """Wire the default service around a loaded embedding provider."""
    invoker = ResilientInvoker()
    ner_client = NerClient()
    return AssistantService(
        completion_client=CompletionClient(),
        retrieval=RetrievalPipeline(SimilarityRanker(provider)),
        selector=ModelSelector(),
        invoker=invoker,
        clause_extractor=ClauseExtractor(ner_client=ner_client, invoker=invoker),
    )
