"""lexrag - retrieval-augmented assistant for legal documents."""
