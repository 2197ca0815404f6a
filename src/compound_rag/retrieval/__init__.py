"""
Relevance retrieval for compound-rag.

Components:
- RelevanceRetriever: threshold + promotion boosting over the vector store
- ScoringConfig: named boost, clamp, over-fetch and decay constants
"""

from .retriever import RelevanceRetriever, search_filter_for
from .scoring import (
    ScoringConfig,
    apply_boost,
    parse_promotion_level,
    supersession_multiplier,
)

__all__ = [
    "RelevanceRetriever",
    "ScoringConfig",
    "apply_boost",
    "parse_promotion_level",
    "search_filter_for",
    "supersession_multiplier",
]
