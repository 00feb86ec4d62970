"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
MODELS_DIR = Path(os.getenv("MODELS_DIR", str(BASE_DIR / "models")))

# Completion backend (OpenAI-compatible chat completions)
COMPLETION_BASE_URL = os.getenv("COMPLETION_BASE_URL", "https://api.cerebras.ai/v1")
COMPLETION_API_KEY = os.getenv("COMPLETION_API_KEY", "")
COMPLETION_API_VERSION = os.getenv("COMPLETION_API_VERSION", "2024-05-01")  # sent as cerebras-version
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

# Generation models, highest priority first, as "identifier:capacity"
GENERATION_MODELS = os.getenv(
    "GENERATION_MODELS",
    "llama3.1-8b:small,llama-4-scout-17b-16e-instruct:large,llama-3.3-70b:large",
)
LARGE_CONTEXT_THRESHOLD = int(os.getenv("LARGE_CONTEXT_THRESHOLD", "5000"))  # characters

# Retry policy
MAX_RETRY_ATTEMPTS = int(os.getenv("MAX_RETRY_ATTEMPTS", "3"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "1.0"))  # seconds

# Embedding model artifacts
EMBEDDING_MODEL_PATH = Path(os.getenv("EMBEDDING_MODEL_PATH", str(MODELS_DIR / "model.onnx")))
EMBEDDING_VOCAB_PATH = Path(os.getenv("EMBEDDING_VOCAB_PATH", str(MODELS_DIR / "vocab.txt")))
MAX_SEQUENCE_LENGTH = int(os.getenv("MAX_SEQUENCE_LENGTH", "256"))
EMBEDDING_LOWERCASE = os.getenv("EMBEDDING_LOWERCASE", "true").lower() == "true"
EMBEDDING_MAX_WORKERS = int(os.getenv("EMBEDDING_MAX_WORKERS", str(2 * (os.cpu_count() or 1))))
# onnxruntime sessions tolerate concurrent run(); set to false to use that
SERIALIZE_INFERENCE = os.getenv("SERIALIZE_INFERENCE", "true").lower() == "true"

# RAG parameters (character-based)
MAX_CHUNK_LENGTH = int(os.getenv("MAX_CHUNK_LENGTH", "1000"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))

# Clause extraction NER backend (disabled without a key)
NER_BASE_URL = os.getenv("NER_BASE_URL", "https://api-inference.huggingface.co/models")
NER_API_KEY = os.getenv("NER_API_KEY", "")
NER_MODEL = os.getenv("NER_MODEL", "nlpaueb/legal-bert-base-uncased")

# Chat
CHAT_FALLBACK_ENABLED = os.getenv("CHAT_FALLBACK_ENABLED", "true").lower() == "true"
CHAT_UNAVAILABLE_MESSAGE = os.getenv(
    "CHAT_UNAVAILABLE_MESSAGE",
    "The assistant is temporarily unavailable. Please try again in a few minutes.",
)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
