"""Storage layer - vector store interface, Qdrant adapter and document repositories."""

from .documents import DocumentRepository, InMemoryDocumentRepository
from .qdrant_store import QdrantVectorStore
from .vector_store import SearchFilter, VectorHit, VectorStore

__all__ = [
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "QdrantVectorStore",
    "SearchFilter",
    "VectorHit",
    "VectorStore",
]
