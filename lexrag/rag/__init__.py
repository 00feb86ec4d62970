"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Sentence-boundary chunking
- Vocabulary tokenization
- In-process embedding generation
- Similarity ranking and context assembly
"""
