"""Tests for the assistant operations with fake backends."""
from datetime import timezone

import httpx
import pytest

from lexrag import config
from lexrag.errors import EmbeddingError, ModelExhaustedError, OperationFailedError
from lexrag.generation.selector import ModelCapacity, ModelDescriptor, ModelSelector
from lexrag.models import GenericAnalysis, RiskAnalysis
from lexrag.rag.chunker import SentenceChunker
from lexrag.rag.embedder import EmbeddingProvider
from lexrag.rag.pipeline import RetrievalPipeline
from lexrag.rag.ranker import SimilarityRanker
from lexrag.service import EMPTY_CHAT_RESPONSE, AssistantService

from tests.conftest import FakeCompletionClient, FakeSession

MODELS = [
    ModelDescriptor("small-model", ModelCapacity.SMALL),
    ModelDescriptor("large-model", ModelCapacity.LARGE),
]

DOCUMENT = (
    "Governing law shall apply. "
    "Payment is due within thirty days. "
    "The parties agree to maintain confidentiality. "
    "Either party may end this contract."
)


def _service(client, provider, invoker, chat_fallback=True):
    return AssistantService(
        completion_client=client,
        retrieval=RetrievalPipeline(SimilarityRanker(provider, top_k=2), SentenceChunker(40)),
        selector=ModelSelector(MODELS, large_context_threshold=5000),
        invoker=invoker,
        chat_fallback=chat_fallback,
    )


def _down():
    return [httpx.ConnectError("down")] * 3


@pytest.mark.asyncio
async def test_analyze_text_parses_completion(provider, invoker):
    client = FakeCompletionClient(
        default="Risks:\n1. Unclear indemnity clause\n\nMitigations:\n1. Add explicit cap"
    )
    service = _service(client, provider, invoker)

    result = await service.analyze_text("The supplier shall indemnify the customer.", "risk")

    assert result == RiskAnalysis(
        risks=["Unclear indemnity clause"], mitigations=["Add explicit cap"], confidence=80
    )
    call = client.calls[0]
    assert call["model"] == "small-model"
    assert (call["max_tokens"], call["temperature"]) == (1000, 0.2)
    assert "risks and liabilities" in call["messages"][0]["content"]


@pytest.mark.asyncio
async def test_unknown_analysis_type_is_generic(provider, invoker):
    client = FakeCompletionClient(default='{"analysis": ["Mutual NDA"], "confidence": 64}')
    service = _service(client, provider, invoker)

    result = await service.analyze_text("Some clause.", "Something-Else")

    assert result == GenericAnalysis(analysis=["Mutual NDA"], confidence=64)


@pytest.mark.asyncio
async def test_long_text_prefers_large_model(provider, invoker):
    client = FakeCompletionClient(default="{}")
    service = _service(client, provider, invoker)

    await service.analyze_text("word " * 2000, "review")

    assert client.models_called == ["large-model"]


@pytest.mark.asyncio
async def test_analysis_falls_back_to_next_model(provider, invoker):
    client = FakeCompletionClient(
        script={"small-model": _down()},
        default='{"risks": ["Auto renewal"], "confidence": 70}',
    )
    service = _service(client, provider, invoker)

    result = await service.analyze_text("Renews automatically.", "risk")

    assert result.risks == ["Auto renewal"]
    assert client.models_called == ["small-model"] * 3 + ["large-model"]


@pytest.mark.asyncio
async def test_analysis_failure_is_wrapped(provider, invoker):
    client = FakeCompletionClient(script={"small-model": _down(), "large-model": _down()})
    service = _service(client, provider, invoker)

    with pytest.raises(OperationFailedError) as excinfo:
        await service.analyze_text("Some clause.", "risk")

    assert str(excinfo.value).startswith("Failed to analyze text")
    assert isinstance(excinfo.value.cause, ModelExhaustedError)
    assert len(client.calls) == 6


@pytest.mark.asyncio
async def test_explain_simple(provider, invoker):
    text = "Either party may terminate upon thirty days notice."
    client = FakeCompletionClient(
        default="Simplified Explanation: You can leave with notice.\n\nKey Points:\n- 30 days notice"
    )
    service = _service(client, provider, invoker)

    result = await service.explain_simple(text)

    assert result.original == text
    assert result.simplified == "You can leave with notice."
    assert result.key_points == ["30 days notice"]
    call = client.calls[0]
    assert call["model"] == "small-model"
    assert (call["max_tokens"], call["temperature"]) == (500, 0.3)
    assert call["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_explain_failure_is_wrapped(provider, invoker):
    request = httpx.Request("POST", "https://backend.test/v1/chat/completions")
    bad_request = httpx.HTTPStatusError(
        "HTTP 400", request=request, response=httpx.Response(400, text="bad request", request=request)
    )
    client = FakeCompletionClient(script={"small-model": [bad_request]})
    service = _service(client, provider, invoker)

    with pytest.raises(OperationFailedError, match="Failed to explain text"):
        await service.explain_simple("Some clause.")
    assert client.models_called == ["small-model"]


@pytest.mark.asyncio
async def test_chat_uses_most_relevant_passages(provider, invoker):
    client = FakeCompletionClient(default="  Payment is due in thirty days.  ")
    service = _service(client, provider, invoker)

    answer = await service.chat("Payment is due within thirty days.", DOCUMENT)

    assert answer.text == "Payment is due in thirty days."
    assert answer.timestamp.tzinfo == timezone.utc
    call = client.calls[0]
    assert (call["max_tokens"], call["temperature"]) == (800, 0.4)
    user_prompt = call["messages"][1]["content"]
    # Exact match ranks first; one more passage follows the separator
    assert "document:\n\nPayment is due within thirty days.\n\n---\n\n" in user_prompt
    assert user_prompt.count("\n\n---\n\n") == 1


@pytest.mark.asyncio
async def test_chat_empty_completion_gets_apology(provider, invoker):
    service = _service(FakeCompletionClient(default="   "), provider, invoker)

    answer = await service.chat("What is the term?", DOCUMENT)

    assert answer.text == EMPTY_CHAT_RESPONSE


@pytest.mark.asyncio
async def test_chat_degrades_when_generation_fails(provider, invoker):
    client = FakeCompletionClient(script={"small-model": _down(), "large-model": _down()})
    service = _service(client, provider, invoker, chat_fallback=True)

    answer = await service.chat("What is the term?", DOCUMENT)

    assert answer.text == config.CHAT_UNAVAILABLE_MESSAGE


@pytest.mark.asyncio
async def test_chat_raises_when_fallback_disabled(provider, invoker):
    client = FakeCompletionClient(script={"small-model": _down(), "large-model": _down()})
    service = _service(client, provider, invoker, chat_fallback=False)

    with pytest.raises(OperationFailedError, match="process chat request"):
        await service.chat("What is the term?", DOCUMENT)


@pytest.mark.asyncio
async def test_chat_surfaces_embedding_failures(tokenizer, invoker):
    provider = EmbeddingProvider(FakeSession(fail=True), tokenizer, max_workers=1)
    client = FakeCompletionClient()
    service = _service(client, provider, invoker)
    try:
        with pytest.raises(EmbeddingError):
            await service.chat("What is the term?", DOCUMENT)
    finally:
        provider.close()

    assert client.calls == []


@pytest.mark.asyncio
async def test_chat_without_document_still_answers(provider, fake_session, invoker):
    client = FakeCompletionClient(default="Please upload a document first.")
    service = _service(client, provider, invoker)

    answer = await service.chat("What is the term?", "")

    assert answer.text == "Please upload a document first."
    assert fake_session.calls == []


@pytest.mark.asyncio
async def test_extract_clauses_without_ner(provider, invoker):
    service = _service(FakeCompletionClient(), provider, invoker)

    clauses = await service.extract_clauses(
        "This agreement may be terminated by either party with 30 days notice. "
        "The parties agree to maintain confidentiality of all proprietary information."
    )

    assert [c.type for c in clauses] == ["termination", "confidentiality"]
