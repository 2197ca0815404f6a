"""
RAGContext: the assembled, ordered, deduplicated context bundle.
"""

from dataclasses import dataclass, field
from typing import Any

from ..models import ContextSource, LinkedDocument, RetrievedDocument
from ..supersession.models import SupersessionInfo


@dataclass(frozen=True)
class ContextEntry:
    """
    One document in the bundle with its attribution.

    Attributes:
        document: Per-query copy of the retrieved or linked document
        source: Bucket the entry was kept in after dedup
        supersession: Chain state, or None when the document has no id
        final_score: ``boosted_score * multiplier`` for scored entries;
            None for unscored critical and linked entries
    """

    document: RetrievedDocument
    source: ContextSource
    supersession: SupersessionInfo | None = None
    final_score: float | None = None

    @property
    def path(self) -> str:
        return self.document.path

    @property
    def char_count(self) -> int:
        return self.document.char_count

    @property
    def linked_from(self) -> str | None:
        if isinstance(self.document, LinkedDocument):
            return self.document.linked_from
        return None

    @property
    def link_depth(self) -> int | None:
        if isinstance(self.document, LinkedDocument):
            return self.document.link_depth
        return None

    def header(self) -> str:
        parts = [f"[{self.source.value}]", self.document.title, f"({self.path})"]
        if self.final_score is not None:
            parts.append(f"score={self.final_score:.3f}")
        if self.linked_from is not None:
            parts.append(f"linked from {self.linked_from} (depth {self.link_depth})")
        if self.supersession is not None and self.supersession.is_superseded:
            parts.append(f"superseded by {self.supersession.current_version_id}")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        data = self.document.to_dict()
        data["source"] = self.source.value
        data["final_score"] = self.final_score
        data["supersession"] = self.supersession.to_dict() if self.supersession else None
        return data


@dataclass
class RAGContext:
    """
    Context bundle returned by ContextAssembler.assemble.

    Entries are ordered critical first, then direct matches by final score
    descending, then linked documents by depth ascending. Each path appears
    at most once. ``total_characters`` is reported, never enforced; callers
    trim with ``within_budget``.
    """

    entries: list[ContextEntry] = field(default_factory=list)
    total_matches: int = 0

    @property
    def total_characters(self) -> int:
        return sum(entry.char_count for entry in self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.entries]

    def _bucket(self, source: ContextSource) -> list[ContextEntry]:
        return [entry for entry in self.entries if entry.source is source]

    @property
    def critical_entries(self) -> list[ContextEntry]:
        return self._bucket(ContextSource.CRITICAL)

    @property
    def direct_entries(self) -> list[ContextEntry]:
        return self._bucket(ContextSource.DIRECT)

    @property
    def linked_entries(self) -> list[ContextEntry]:
        return self._bucket(ContextSource.LINKED)

    @property
    def critical_count(self) -> int:
        return len(self.critical_entries)

    @property
    def direct_count(self) -> int:
        return len(self.direct_entries)

    @property
    def linked_count(self) -> int:
        return len(self.linked_entries)

    def within_budget(self, max_chars: int) -> "RAGContext":
        """
        Return a new context keeping entries, in order, that fit ``max_chars``.

        Entries too large for the remaining budget are skipped; later
        smaller entries may still fit. This context is not modified.
        """
        kept = []
        used = 0
        for entry in self.entries:
            if used + entry.char_count > max_chars:
                continue
            kept.append(entry)
            used += entry.char_count
        return RAGContext(entries=kept, total_matches=self.total_matches)

    def format(self) -> str:
        """Render the bundle as prompt text, one header per entry."""
        if self.is_empty:
            return ""
        blocks = []
        for entry in self.entries:
            blocks.append(f"### {entry.header()}\n\n{entry.document.content}")
        return "\n\n".join(blocks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "total_matches": self.total_matches,
            "total_characters": self.total_characters,
            "counts": {
                "critical": self.critical_count,
                "direct": self.direct_count,
                "linked": self.linked_count,
            },
        }
