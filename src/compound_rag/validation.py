"""Offline corpus validation: link cycles and supersession chain integrity."""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .cancellation import CancelEvent
from .graph.link_graph import LinkGraph
from .supersession.models import ChainIssue
from .supersession.tracker import SupersessionTracker


@dataclass
class ValidationReport:
    """Findings of a validation pass. Link cycles are informational, not errors."""

    link_cycles: list[list[str]] = field(default_factory=list)
    chain_issues: list[ChainIssue] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.link_cycles and not self.chain_issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "link_cycles": self.link_cycles,
            "chain_issues": [
                {"kind": issue.kind.value, "document_id": issue.document_id, "message": issue.message}
                for issue in self.chain_issues
            ],
        }


async def validate_corpus(
    graph: LinkGraph,
    tracker: SupersessionTracker,
    cancel_event: CancelEvent | None = None,
) -> ValidationReport:
    """
    Enumerate link cycles and validate every supersession chain.

    Also reconciles dangling supersession targets that have since been indexed.
    """
    link_cycles = graph.enumerate_cycles()
    chain_issues = await tracker.validate_all_chains(cancel_event=cancel_event)

    report = ValidationReport(link_cycles=link_cycles, chain_issues=chain_issues)
    if report.is_clean:
        logger.info("Corpus validation passed")
    else:
        logger.warning(
            f"Corpus validation: {len(link_cycles)} link cycle(s), "
            f"{len(chain_issues)} chain issue(s)"
        )
    return report
