"""Context assembly: critical injection, link expansion, supersession and dedup."""

from .assembler import ContextAssembler, LinkedRetrievalResult
from .rag_context import ContextEntry, RAGContext

__all__ = [
    "ContextAssembler",
    "ContextEntry",
    "LinkedRetrievalResult",
    "RAGContext",
]
