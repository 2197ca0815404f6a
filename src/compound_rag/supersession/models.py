"""Data types for supersession chains."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class SupersessionRelationship:
    """
    ``document_id`` supersedes the document at ``superseded_path``.

    ``superseded_document_id`` is None while the target is not indexed
    (dangling); it is resolved lazily on read and by chain validation.
    """

    document_id: str
    superseded_path: str
    superseded_document_id: str | None = None

    @property
    def is_dangling(self) -> bool:
        return self.superseded_document_id is None


@dataclass(frozen=True)
class RegistrationResult:
    """
    Outcome of registering a supersession relationship.

    Attributes:
        success: False when the relationship was rejected and nothing was stored
        warning: Human-readable problem description (set on failure, and on
            success when the target is not indexed yet)
        chain_depth: Number of older versions behind the registered document
    """

    success: bool
    warning: str | None = None
    chain_depth: int = 0


@dataclass(frozen=True)
class SupersessionInfo:
    """
    Supersession state of one document as seen by scoring.

    ``chain_depth`` is the number of hops from this document forward to the
    current version (0 when the document is current) and ``multiplier`` is
    ``decay ** chain_depth``, or 1.0 when a cycle was detected.
    """

    document_id: str
    supersedes: str | None = None
    superseded_by: str | None = None
    current_version_id: str | None = None
    chain_depth: int = 0
    multiplier: float = 1.0
    has_cycle: bool = False
    truncated: bool = False

    @property
    def is_superseded(self) -> bool:
        return self.superseded_by is not None

    @property
    def is_current(self) -> bool:
        return self.superseded_by is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "supersedes": self.supersedes,
            "superseded_by": self.superseded_by,
            "current_version_id": self.current_version_id,
            "chain_depth": self.chain_depth,
            "multiplier": self.multiplier,
            "has_cycle": self.has_cycle,
            "truncated": self.truncated,
        }


@dataclass(frozen=True)
class ChainEntry:
    """
    One version in a chain listing.

    ``document_id`` is None for a dangling (not yet indexed) oldest entry.
    ``versions_behind`` is 0 for the current version.
    """

    document_id: str | None
    path: str | None
    versions_behind: int

    @property
    def is_current(self) -> bool:
        return self.versions_behind == 0


@dataclass(frozen=True)
class RemovalResult:
    """Outcome of removing a document from its chain."""

    removed: bool
    chain_reconnected: bool = False
    promoted_document_id: str | None = None


class ChainIssueKind(str, Enum):
    DANGLING = "dangling"
    CYCLE = "cycle"
    DEPTH_EXCEEDED = "depth_exceeded"
    FORK = "fork"


@dataclass(frozen=True)
class ChainIssue:
    """A data-integrity problem found by chain validation."""

    kind: ChainIssueKind
    document_id: str
    message: str
