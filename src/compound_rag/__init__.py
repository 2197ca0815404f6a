"""
compound-rag: context assembly for retrieval-augmented generation.

Combines relevance-filtered vector retrieval, a document link graph and
supersession tracking into one ranked, deduplicated context bundle.
"""

__version__ = "0.1.0"

from .config import Config
from .context import ContextAssembler, ContextEntry, RAGContext
from .errors import (
    CompoundRagError,
    ConfigError,
    InvalidRetrievalOptionsError,
    RepositoryUnavailableError,
    UpstreamUnavailableError,
    VectorStoreUnavailableError,
)
from .graph import DocumentLinkGraph, LinkGraph, RelationshipType
from .indexing import IndexEventHandler
from .models import (
    ContextSource,
    LinkedDocument,
    PromotionLevel,
    RetrievalOptions,
    RetrievalResult,
    RetrievedDocument,
    StoredDocument,
    TenantKey,
)
from .retrieval import RelevanceRetriever, ScoringConfig
from .supersession import SupersessionTracker
from .validation import ValidationReport, validate_corpus

__all__ = [
    "CompoundRagError",
    "Config",
    "ConfigError",
    "ContextAssembler",
    "ContextEntry",
    "ContextSource",
    "DocumentLinkGraph",
    "IndexEventHandler",
    "InvalidRetrievalOptionsError",
    "LinkGraph",
    "LinkedDocument",
    "PromotionLevel",
    "RAGContext",
    "RelationshipType",
    "RelevanceRetriever",
    "RepositoryUnavailableError",
    "RetrievalOptions",
    "RetrievalResult",
    "RetrievedDocument",
    "ScoringConfig",
    "StoredDocument",
    "SupersessionTracker",
    "TenantKey",
    "UpstreamUnavailableError",
    "ValidationReport",
    "VectorStoreUnavailableError",
    "validate_corpus",
]
