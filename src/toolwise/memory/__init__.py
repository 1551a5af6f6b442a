"""Semantic storage for recorded experiences.

Provides the ChromaDB vector store and the embedding providers it uses to
rank stored records by meaning rather than literal text.
"""

from toolwise.memory.embeddings import (
    EmbeddingError,
    EmbeddingProvider,
    OllamaEmbeddings,
    SentenceTransformerEmbeddings,
    get_embedding_provider,
)
from toolwise.memory.vectors import (
    Document,
    SearchResult,
    VectorStore,
    VectorStoreError,
)

__all__ = [
    # Store
    "VectorStore",
    "Document",
    "SearchResult",
    "VectorStoreError",
    # Embeddings
    "EmbeddingError",
    "EmbeddingProvider",
    "OllamaEmbeddings",
    "SentenceTransformerEmbeddings",
    "get_embedding_provider",
]
