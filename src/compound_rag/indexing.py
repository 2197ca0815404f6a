"""
Indexer-facing façade.

The indexing pipeline reports each change once; this handler forwards it
to the link graph and the supersession tracker.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from loguru import logger

from .graph.link_graph import Link, LinkGraph, LinkUpdateResult
from .models import StoredDocument
from .supersession.models import ChainIssue, RegistrationResult, RemovalResult
from .supersession.tracker import SupersessionTracker


@dataclass(frozen=True)
class IndexUpdate:
    """What indexing one document changed."""

    links: LinkUpdateResult
    supersession: RegistrationResult


@dataclass(frozen=True)
class DeletionUpdate:
    """What deleting one document changed."""

    removed_from_graph: bool
    supersession: RemovalResult


class IndexEventHandler:
    """Forwards indexer events to the link graph and supersession tracker."""

    def __init__(self, graph: LinkGraph, tracker: SupersessionTracker):
        self.graph = graph
        self.tracker = tracker

    async def on_document_indexed(
        self,
        document: StoredDocument,
        outgoing_links: Iterable[Link],
        superseded_path: str | None = None,
    ) -> IndexUpdate:
        """
        Apply a newly indexed or re-indexed document.

        Args:
            document: The stored document
            outgoing_links: Relative paths the document links to, in order,
                optionally paired with a RelationshipType
            superseded_path: The document's declared "supersedes" path, if any
        """
        links = self.graph.on_document_indexed(document.path, outgoing_links)
        registration = await self.tracker.on_document_indexed(
            document.document_id, superseded_path, path=document.path
        )
        if not registration.success:
            logger.warning(f"Supersession for {document.path} rejected: {registration.warning}")
        return IndexUpdate(links=links, supersession=registration)

    async def on_document_deleted(self, document_id: str, path: str) -> DeletionUpdate:
        removed = self.graph.on_document_deleted(path)
        removal = await self.tracker.on_document_deleted(document_id)
        return DeletionUpdate(removed_from_graph=removed, supersession=removal)

    async def on_full_rebuild(
        self,
        documents_with_links: Mapping[str, Iterable[Link]] | Iterable[tuple[str, Iterable[Link]]],
    ) -> list[ChainIssue]:
        """
        Rebuild the link graph from scratch and reconcile supersession chains.

        Returns:
            Chain issues still present after reconciliation
        """
        self.graph.on_full_rebuild(documents_with_links)
        return await self.tracker.validate_all_chains()
