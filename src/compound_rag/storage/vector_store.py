"""
Vector store interface consumed by the retriever and assembler.

Implementations must raise VectorStoreUnavailableError when the backend
cannot be reached; they never return an empty list for that case.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from ..models import PromotionLevel, StoredDocument, TenantKey


@dataclass(frozen=True)
class SearchFilter:
    """
    Constraints applied inside the vector-store query.

    Attributes:
        tenant: Tenant the query is scoped to (None = unscoped, tests only)
        min_promotion_level: Promotion floor; documents below are excluded
        doc_types: Lower-cased doc-type allow-list, or None for all types
    """

    tenant: TenantKey | None = None
    min_promotion_level: PromotionLevel = PromotionLevel.STANDARD
    doc_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class VectorHit:
    """One similarity match: the stored document and its raw score."""

    document: StoredDocument
    score: float


class VectorStore(ABC):
    """Similarity search and promotion listing over indexed documents."""

    @abstractmethod
    async def search(
        self,
        embedding: Sequence[float],
        top_n: int,
        search_filter: SearchFilter,
    ) -> list[VectorHit]:
        """
        Return up to ``top_n`` hits, highest similarity first.

        Raises:
            VectorStoreUnavailableError: If the backend fails or times out
        """

    @abstractmethod
    async def list_by_promotion(
        self,
        level: PromotionLevel,
        search_filter: SearchFilter,
    ) -> list[StoredDocument]:
        """
        Return every document at exactly ``level`` matching the filter.

        Raises:
            VectorStoreUnavailableError: If the backend fails or times out
        """
