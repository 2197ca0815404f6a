"""
Core data models shared by the retriever, link graph and assembler.

Retrieved and linked documents are frozen: once the retriever creates
one, downstream buckets receive copies made with ``dataclasses.replace``
so concurrent queries never alias the same mutable object.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .config import Config
from .errors import InvalidRetrievalOptionsError

SNIPPET_LENGTH = 200


class PromotionLevel(str, Enum):
    """Declared importance tier of a document."""

    STANDARD = "standard"
    IMPORTANT = "important"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal used for promotion-floor comparisons."""
        return _PROMOTION_RANKS[self]

    @classmethod
    def from_tag(cls, value: Any) -> "PromotionLevel | None":
        """
        Parse a frontmatter promotion tag.

        Accepts the canonical names plus the legacy aliases ``promoted``
        (important) and ``pinned`` (critical), case-insensitively.

        Returns:
            The parsed level, or None when the tag is missing or unknown
        """
        if isinstance(value, PromotionLevel):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        return _PROMOTION_ALIASES.get(value.strip().lower())


_PROMOTION_RANKS = {
    PromotionLevel.STANDARD: 0,
    PromotionLevel.IMPORTANT: 1,
    PromotionLevel.CRITICAL: 2,
}

_PROMOTION_ALIASES = {
    "standard": PromotionLevel.STANDARD,
    "important": PromotionLevel.IMPORTANT,
    "promoted": PromotionLevel.IMPORTANT,
    "critical": PromotionLevel.CRITICAL,
    "pinned": PromotionLevel.CRITICAL,
}


class ContextSource(str, Enum):
    """Bucket a context entry came from, in dedup precedence order."""

    CRITICAL = "critical"
    DIRECT = "direct"
    LINKED = "linked"

    @property
    def precedence(self) -> int:
        """Lower wins when the same path lands in several buckets."""
        return _SOURCE_PRECEDENCE[self]


_SOURCE_PRECEDENCE = {
    ContextSource.CRITICAL: 0,
    ContextSource.DIRECT: 1,
    ContextSource.LINKED: 2,
}


@dataclass(frozen=True)
class TenantKey:
    """Tenant identity used to scope every vector-store query."""

    project: str
    branch: str
    path_hash: str

    @property
    def key(self) -> str:
        return f"{self.project}:{self.branch}:{self.path_hash}"


@dataclass(frozen=True)
class StoredDocument:
    """
    A document as persisted by the indexer.

    ``promotion_level`` is the raw frontmatter tag; it is parsed (and
    defaulted, with a warning) by the retriever, never trusted blindly.
    """

    document_id: str
    path: str
    title: str
    content: str
    summary: str | None = None
    doc_type: str | None = None
    promotion_level: str | None = None
    date: datetime | None = None


@dataclass(frozen=True)
class RetrievedDocument:
    """
    A document selected for a query.

    Identity is the relative ``path``. ``raw_score`` is the vector
    similarity; ``boosted_score`` is the score after promotion boosting
    (equal to ``raw_score`` when boosting is disabled). Critical documents
    injected without a similarity match carry ``None`` for both.
    """

    path: str
    title: str
    content: str
    document_id: str | None = None
    summary: str | None = None
    doc_type: str | None = None
    promotion_level: PromotionLevel = PromotionLevel.STANDARD
    raw_score: float | None = None
    boosted_score: float | None = None
    date: datetime | None = None

    @property
    def char_count(self) -> int:
        return len(self.content)

    def snippet(self, max_length: int = SNIPPET_LENGTH) -> str:
        """Content preview for search-style display."""
        if len(self.content) <= max_length:
            return self.content
        return self.content[:max_length] + "..."

    @classmethod
    def from_stored(
        cls,
        stored: StoredDocument,
        promotion_level: PromotionLevel,
        raw_score: float | None = None,
        boosted_score: float | None = None,
    ) -> "RetrievedDocument":
        return cls(
            path=stored.path,
            title=stored.title,
            content=stored.content,
            document_id=stored.document_id,
            summary=stored.summary,
            doc_type=stored.doc_type,
            promotion_level=promotion_level,
            raw_score=raw_score,
            boosted_score=boosted_score,
            date=stored.date,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path,
            "document_id": self.document_id,
            "title": self.title,
            "summary": self.summary,
            "doc_type": self.doc_type,
            "promotion_level": self.promotion_level.value,
            "raw_score": self.raw_score,
            "boosted_score": self.boosted_score,
            "char_count": self.char_count,
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class LinkedDocument(RetrievedDocument):
    """A document reached by link traversal; it never has a similarity score."""

    linked_from: str = ""
    link_depth: int = 1

    def __post_init__(self):
        if self.link_depth < 1:
            raise ValueError(f"link_depth must be >= 1, got {self.link_depth}")
        if not self.linked_from:
            raise ValueError("linked_from must not be empty")

    @classmethod
    def from_traversal(
        cls,
        stored: StoredDocument,
        promotion_level: PromotionLevel,
        linked_from: str,
        link_depth: int,
    ) -> "LinkedDocument":
        return cls(
            path=stored.path,
            title=stored.title,
            content=stored.content,
            document_id=stored.document_id,
            summary=stored.summary,
            doc_type=stored.doc_type,
            promotion_level=promotion_level,
            date=stored.date,
            linked_from=linked_from,
            link_depth=link_depth,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["linked_from"] = self.linked_from
        data["link_depth"] = self.link_depth
        return data


@dataclass(frozen=True)
class RetrievalOptions:
    """
    Per-call retrieval options, already resolved by the tenant/config layer.

    Invariants (checked on construction):
    - 0 <= min_relevance_score <= 1
    - max_results >= 1
    - max_linked_docs >= 0 and max_link_depth >= 0
    - min_promotion_level is a known level (aliases accepted)
    """

    min_relevance_score: float = 0.7
    max_results: int = 10
    max_linked_docs: int = 5
    max_link_depth: int = 2
    include_critical: bool = True
    min_promotion_level: PromotionLevel = PromotionLevel.STANDARD
    doc_types: tuple[str, ...] | None = None
    apply_relevance_boosting: bool = True
    tenant: TenantKey | None = None

    def __post_init__(self):
        problems = []

        if isinstance(self.min_relevance_score, bool) or not isinstance(
            self.min_relevance_score, (int, float)
        ):
            problems.append(
                f"min_relevance_score must be a number, got {self.min_relevance_score!r}"
            )
        elif not (0.0 <= self.min_relevance_score <= 1.0):
            problems.append(
                f"min_relevance_score must be within [0, 1], got {self.min_relevance_score}"
            )

        if not isinstance(self.max_results, int) or self.max_results < 1:
            problems.append(f"max_results must be >= 1, got {self.max_results!r}")
        if not isinstance(self.max_linked_docs, int) or self.max_linked_docs < 0:
            problems.append(f"max_linked_docs must be >= 0, got {self.max_linked_docs!r}")
        if not isinstance(self.max_link_depth, int) or self.max_link_depth < 0:
            problems.append(f"max_link_depth must be >= 0, got {self.max_link_depth!r}")

        level = PromotionLevel.from_tag(self.min_promotion_level)
        if level is None:
            problems.append(f"unknown min_promotion_level {self.min_promotion_level!r}")
        else:
            object.__setattr__(self, "min_promotion_level", level)

        if self.doc_types is not None:
            if isinstance(self.doc_types, str):
                doc_types = [part for part in self.doc_types.split(",")]
            else:
                doc_types = list(self.doc_types)
            normalized = tuple(
                dict.fromkeys(d.strip().lower() for d in doc_types if d and d.strip())
            )
            if not normalized:
                problems.append("doc_types allow-list must not be empty when given")
            object.__setattr__(self, "doc_types", normalized)

        if problems:
            raise InvalidRetrievalOptionsError(problems)

    @classmethod
    def from_config(cls, **overrides: Any) -> "RetrievalOptions":
        """Build options from Config defaults, applying explicit overrides."""
        values: dict[str, Any] = {
            "min_relevance_score": Config.DEFAULT_MIN_RELEVANCE,
            "max_results": Config.DEFAULT_MAX_RESULTS,
            "max_linked_docs": Config.DEFAULT_MAX_LINKED_DOCS,
            "max_link_depth": Config.DEFAULT_MAX_LINK_DEPTH,
        }
        values.update(overrides)
        return cls(**values)

    def allows_doc_type(self, doc_type: str | None) -> bool:
        if self.doc_types is None:
            return True
        return doc_type is not None and doc_type.lower() in self.doc_types


@dataclass
class RetrievalResult:
    """Ranked direct matches plus the post-threshold, pre-truncation count."""

    documents: list[RetrievedDocument] = field(default_factory=list)
    total_matches: int = 0

    @property
    def paths(self) -> list[str]:
        return [doc.path for doc in self.documents]
