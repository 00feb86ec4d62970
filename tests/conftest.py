"""Shared fixtures: a small vocabulary, a fake ONNX session and fake backends."""
import threading
import time
from types import SimpleNamespace
from typing import Dict, List, Optional

import numpy as np
import pytest

from lexrag.generation.invoker import ResilientInvoker, RetryPolicy
from lexrag.rag.embedder import EmbeddingProvider
from lexrag.rag.tokenizer import WordPieceTokenizer

VOCAB = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]",
    "this", "agreement", "may", "be", "term", "##inate", "##d", "by", "either",
    "party", "with", "days", "notice", "the", "parties", "agree", "to",
    "maintain", "confidential", "##ity", "of", "all", "proprietary",
    "information", "pay", "##ment", "is", "due", "within", "thirty",
    "governing", "law", "shall", "apply", "what", "how", "can", "i", "end",
    "contract", "secret", "##s", "un", "##clear", ".", "30",
]

EMBEDDING_DIM = 8


class FakeSession:
    """Stands in for onnxruntime.InferenceSession.

    Returns a fixed random vector per token id and records how many run()
    calls overlapped.
    """

    def __init__(self, vocab_size: int = len(VOCAB), dim: int = EMBEDDING_DIM,
                 input_names=("input_ids", "attention_mask", "token_type_ids"),
                 delay: float = 0.0, fail: bool = False, zeros: bool = False):
        self.table = np.random.default_rng(7).normal(size=(vocab_size, dim)).astype(np.float32)
        self.input_names = input_names
        self.delay = delay
        self.fail = fail
        self.zeros = zeros
        self.calls: List[Dict[str, np.ndarray]] = []
        self._active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def get_inputs(self):
        return [SimpleNamespace(name=name) for name in self.input_names]

    def run(self, output_names, feeds):
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            self.calls.append(feeds)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail:
                raise RuntimeError("inference exploded")
            output = self.table[feeds["input_ids"]]
            if self.zeros:
                output = np.zeros_like(output)
            return [output]
        finally:
            with self._lock:
                self._active -= 1


class FakeCompletionClient:
    """Scripted completion backend.

    ``script`` maps a model identifier to a list of outcomes consumed one per
    call; an outcome is a string (returned) or an exception (raised). Models
    without a script return ``default``.
    """

    def __init__(self, script: Optional[Dict[str, list]] = None, default: str = "ok"):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: List[dict] = []

    async def complete(self, messages, model, max_tokens=1000, temperature=0.2):
        self.calls.append({
            "messages": messages,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        outcomes = self.script.get(model)
        outcome = outcomes.pop(0) if outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def list_models(self):
        return ["llama3.1-8b"]

    @property
    def models_called(self) -> List[str]:
        return [c["model"] for c in self.calls]


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def tokenizer() -> WordPieceTokenizer:
    return WordPieceTokenizer(VOCAB, max_sequence_length=16, lowercase=True)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def provider(fake_session, tokenizer):
    provider = EmbeddingProvider(fake_session, tokenizer, max_workers=4, serialize_inference=True)
    yield provider
    provider.close()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def invoker(recording_sleep) -> ResilientInvoker:
    return ResilientInvoker(RetryPolicy(max_attempts=3, base_delay=1.0), sleep=recording_sleep)
