"""
Supersession tracker: chain registration, walks and repair.

A chain is a linear lineage of document versions linked by "supersedes"
relationships (newer -> older). All walks are iterative, guarded by a
visited set and capped at ``max_chain_depth`` hops. Data problems never
raise: they are logged and reported on the returned objects.
"""

import dataclasses
from collections import defaultdict

from loguru import logger

from ..cancellation import CancelEvent, raise_if_cancelled
from ..models import TenantKey
from ..retrieval.scoring import ScoringConfig, supersession_multiplier
from ..storage.documents import DocumentRepository
from .models import (
    ChainEntry,
    ChainIssue,
    ChainIssueKind,
    RegistrationResult,
    RemovalResult,
    SupersessionInfo,
    SupersessionRelationship,
)
from .repository import SupersessionRepository


class SupersessionTracker:
    """
    Tracks which document versions supersede which.

    Args:
        repository: Durable relationship storage
        documents: Document lookup used to resolve superseded paths to ids
        scoring: Decay and depth-cap constants
        tenant: Tenant passed through to document lookups
    """

    def __init__(
        self,
        repository: SupersessionRepository,
        documents: DocumentRepository,
        scoring: ScoringConfig | None = None,
        tenant: TenantKey | None = None,
    ):
        self.repository = repository
        self.documents = documents
        self.scoring = scoring or ScoringConfig.from_config()
        self.tenant = tenant

    @property
    def max_chain_depth(self) -> int:
        return self.scoring.max_chain_depth

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def register(self, document_id: str, superseded_path: str) -> RegistrationResult:
        """
        Record that ``document_id`` supersedes the document at ``superseded_path``.

        A relationship previously registered for ``document_id`` is replaced.
        Rejected (nothing stored) when it would create a cycle or when the
        target is already superseded by another document.

        Returns:
            RegistrationResult; ``chain_depth`` counts the versions behind
            ``document_id`` after registration
        """
        target = await self.documents.get_by_path(superseded_path, self.tenant)
        target_id = target.document_id if target else None

        if target_id == document_id:
            warning = f"Document {document_id} cannot supersede itself ({superseded_path})"
            logger.warning(warning)
            return RegistrationResult(success=False, warning=warning)

        if target_id is not None:
            cycle_path = await self._find_in_history(target_id, document_id)
            if cycle_path is not None:
                warning = (
                    f"Supersession {document_id} -> {target_id} would create a cycle: "
                    f"{' -> '.join(cycle_path)}"
                )
                logger.warning(warning)
                return RegistrationResult(success=False, warning=warning)

            rivals = [
                rel
                for rel in await self.repository.find_all_superseding(target_id)
                if rel.document_id != document_id
            ]
        else:
            rivals = [
                rel
                for rel in await self.repository.find_unresolved(superseded_path)
                if rel.document_id != document_id
            ]

        if rivals:
            warning = (
                f"{superseded_path} is already superseded by {rivals[0].document_id}; "
                f"ignoring supersession from {document_id}"
            )
            logger.warning(warning)
            return RegistrationResult(success=False, warning=warning)

        await self.repository.upsert(
            SupersessionRelationship(
                document_id=document_id,
                superseded_path=superseded_path,
                superseded_document_id=target_id,
            )
        )

        warning = None
        if target_id is None:
            warning = f"Superseded document {superseded_path} is not indexed; stored as dangling"
            logger.warning(warning)

        chain_depth, _, truncated = await self._count_history(document_id)
        if truncated:
            truncated_warning = (
                f"Chain behind {document_id} exceeds {self.max_chain_depth} versions"
            )
            logger.warning(truncated_warning)
            warning = f"{warning}; {truncated_warning}" if warning else truncated_warning

        logger.info(f"Registered {document_id} supersedes {superseded_path} (depth {chain_depth})")
        return RegistrationResult(success=True, warning=warning, chain_depth=chain_depth)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_info(
        self,
        document_id: str,
        path: str | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> SupersessionInfo:
        """
        Walk forward to the current version and derive the score multiplier.

        Args:
            document_id: Document to inspect
            path: The document's path, when known, so dangling relationships
                pointing at it can be resolved without a lookup
            cancel_event: Checked between repository lookups

        Returns:
            SupersessionInfo (multiplier 1.0 for current documents and cycles)
        """
        own = await self.repository.get(document_id)
        supersedes = own.superseded_document_id if own else None

        visited = [document_id]
        current = document_id
        current_path = path
        depth = 0
        has_cycle = False
        truncated = False

        while True:
            raise_if_cancelled(cancel_event)
            successor = await self._successor_of(current, current_path)
            if successor is None:
                break
            if successor in visited:
                has_cycle = True
                logger.warning(
                    f"Supersession cycle detected from {document_id}: "
                    f"{' -> '.join(visited + [successor])}"
                )
                break
            if depth >= self.max_chain_depth:
                truncated = True
                logger.warning(
                    f"Supersession chain from {document_id} exceeds "
                    f"{self.max_chain_depth} hops; stopping at {current}"
                )
                break
            visited.append(successor)
            current = successor
            current_path = None
            depth += 1

        superseded_by = visited[1] if len(visited) > 1 else None
        if has_cycle and superseded_by is None:
            # The document's only successor is the document itself.
            superseded_by = current

        multiplier = 1.0 if has_cycle else supersession_multiplier(depth, self.scoring)
        return SupersessionInfo(
            document_id=document_id,
            supersedes=supersedes,
            superseded_by=superseded_by,
            current_version_id=current,
            chain_depth=depth,
            multiplier=multiplier,
            has_cycle=has_cycle,
            truncated=truncated,
        )

    async def get_current_version(self, document_id: str) -> str:
        """Id of the newest version in ``document_id``'s chain."""
        info = await self.get_info(document_id)
        return info.current_version_id or document_id

    async def is_superseded(self, document_id: str) -> bool:
        return await self.get_superseding(document_id) is not None

    async def get_superseding(self, document_id: str) -> str | None:
        """Id of the document that directly supersedes ``document_id``."""
        return await self._successor_of(document_id, None)

    async def get_superseded(self, document_id: str) -> str | None:
        """Id of the document ``document_id`` directly supersedes (None if dangling)."""
        relationship = await self._resolved(await self.repository.get(document_id))
        return relationship.superseded_document_id if relationship else None

    async def get_chain(self, document_id: str) -> list[ChainEntry]:
        """
        List the whole lineage ``document_id`` belongs to.

        Returns:
            Entries ordered oldest -> newest; a dangling oldest version is
            included with ``document_id`` None
        """
        current_id = await self.get_current_version(document_id)
        current_doc = await self.documents.get_by_id(current_id, self.tenant)

        entries = [
            ChainEntry(
                document_id=current_id,
                path=current_doc.path if current_doc else None,
                versions_behind=0,
            )
        ]
        seen = {current_id}
        node = current_id

        while len(entries) <= self.max_chain_depth:
            relationship = await self._resolved(await self.repository.get(node))
            if relationship is None:
                break
            older_id = relationship.superseded_document_id
            if older_id in seen:
                logger.warning(f"Supersession cycle while listing chain of {document_id}")
                break
            entries.append(
                ChainEntry(
                    document_id=older_id,
                    path=relationship.superseded_path,
                    versions_behind=len(entries),
                )
            )
            if older_id is None:
                break
            seen.add(older_id)
            node = older_id

        entries.reverse()
        return entries

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    async def remove_from_chain(self, document_id: str) -> RemovalResult:
        """
        Remove a deleted document and repair its chain.

        - middle version: the successor now supersedes the predecessor
        - current version: its predecessor becomes current
        - oldest version: the successor's target becomes dangling
        """
        own = await self.repository.get(document_id)
        successors = await self.repository.find_all_superseding(document_id)

        if own is None and not successors:
            return RemovalResult(removed=False)

        if own is not None:
            repointed = [
                dataclasses.replace(
                    relationship,
                    superseded_path=own.superseded_path,
                    superseded_document_id=own.superseded_document_id,
                )
                for relationship in successors
            ]
        else:
            repointed = [
                dataclasses.replace(relationship, superseded_document_id=None)
                for relationship in successors
            ]

        # Re-pointing and deleting land together or not at all.
        await self.repository.apply_changes(
            upserts=repointed, deletes=[document_id] if own is not None else []
        )

        chain_reconnected = own is not None and bool(successors)
        promoted = None
        for relationship in repointed:
            if own is not None:
                logger.info(
                    f"Reconnected supersession chain: {relationship.document_id} -> "
                    f"{own.superseded_path} (removed {document_id})"
                )
            else:
                logger.info(
                    f"Oldest version {document_id} removed; "
                    f"{relationship.document_id} now supersedes a dangling target"
                )

        if own is not None and not successors:
            promoted = own.superseded_document_id
            if promoted:
                logger.info(f"Promoted {promoted} to current version (removed {document_id})")

        return RemovalResult(
            removed=True, chain_reconnected=chain_reconnected, promoted_document_id=promoted
        )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    async def validate_all_chains(
        self, cancel_event: CancelEvent | None = None
    ) -> list[ChainIssue]:
        """
        Offline pass over every relationship.

        Resolves dangling targets that have since been indexed and reports
        the rest, plus forks, cycles and over-deep chains.
        """
        issues: list[ChainIssue] = []
        relationships = []

        for relationship in await self.repository.list_all():
            raise_if_cancelled(cancel_event)
            if relationship.is_dangling:
                resolved = await self._resolved(relationship)
                if resolved.is_dangling:
                    issues.append(
                        ChainIssue(
                            kind=ChainIssueKind.DANGLING,
                            document_id=relationship.document_id,
                            message=f"Superseded path {relationship.superseded_path} is not indexed",
                        )
                    )
                relationship = resolved
            relationships.append(relationship)

        older_of = {
            rel.document_id: rel.superseded_document_id
            for rel in relationships
            if rel.superseded_document_id is not None
        }

        newer_of: dict[str, list[str]] = defaultdict(list)
        for newer, older in older_of.items():
            newer_of[older].append(newer)
        for older, newers in sorted(newer_of.items()):
            if len(newers) > 1:
                issues.append(
                    ChainIssue(
                        kind=ChainIssueKind.FORK,
                        document_id=older,
                        message=f"{older} is superseded by several documents: {', '.join(sorted(newers))}",
                    )
                )

        reported_cycles: set[frozenset[str]] = set()
        for head in sorted(older_of):
            raise_if_cancelled(cancel_event)
            walk = [head]
            node = head
            while node in older_of:
                node = older_of[node]
                if node in walk:
                    members = frozenset(walk[walk.index(node):])
                    if members not in reported_cycles:
                        reported_cycles.add(members)
                        issues.append(
                            ChainIssue(
                                kind=ChainIssueKind.CYCLE,
                                document_id=min(members),
                                message=f"Supersession cycle: {' -> '.join(sorted(members))}",
                            )
                        )
                    break
                walk.append(node)
            else:
                # Only report depth once per lineage, from its newest version.
                if head not in newer_of and len(walk) - 1 > self.max_chain_depth:
                    issues.append(
                        ChainIssue(
                            kind=ChainIssueKind.DEPTH_EXCEEDED,
                            document_id=head,
                            message=(
                                f"Chain from {head} has {len(walk) - 1} older versions "
                                f"(max {self.max_chain_depth})"
                            ),
                        )
                    )

        for issue in issues:
            logger.warning(f"Chain issue [{issue.kind.value}] {issue.document_id}: {issue.message}")
        return issues

    # -------------------------------------------------------------------------
    # Indexer hooks
    # -------------------------------------------------------------------------

    async def on_document_indexed(
        self,
        document_id: str,
        declared_superseded_path: str | None,
        path: str | None = None,
    ) -> RegistrationResult:
        """
        Apply a (re-)indexed document's supersession declaration.

        Args:
            document_id: Indexed document
            declared_superseded_path: Frontmatter "supersedes" value, if any
            path: The document's own path; dangling relationships pointing
                at it are resolved immediately
        """
        if path:
            for relationship in await self.repository.find_unresolved(path):
                if relationship.document_id == document_id:
                    continue
                await self.repository.upsert(
                    dataclasses.replace(relationship, superseded_document_id=document_id)
                )
                logger.info(f"Resolved dangling supersession {relationship.document_id} -> {path}")

        if declared_superseded_path:
            return await self.register(document_id, declared_superseded_path)

        if await self.repository.delete(document_id):
            logger.info(f"Document {document_id} no longer declares a superseded version")
        return RegistrationResult(success=True)

    async def on_document_deleted(self, document_id: str) -> RemovalResult:
        return await self.remove_from_chain(document_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _resolved(
        self, relationship: SupersessionRelationship | None
    ) -> SupersessionRelationship | None:
        """Resolve a dangling target id through the document repository, persisting a hit."""
        if relationship is None or not relationship.is_dangling:
            return relationship
        target = await self.documents.get_by_path(relationship.superseded_path, self.tenant)
        if target is None:
            return relationship
        resolved = dataclasses.replace(relationship, superseded_document_id=target.document_id)
        await self.repository.upsert(resolved)
        logger.info(
            f"Resolved dangling supersession {relationship.document_id} -> {target.document_id}"
        )
        return resolved

    async def _successor_of(self, document_id: str, path: str | None) -> str | None:
        relationship = await self.repository.find_superseding(document_id)
        if relationship is not None:
            return relationship.document_id

        if path is None:
            document = await self.documents.get_by_id(document_id, self.tenant)
            if document is None:
                return None
            path = document.path

        for relationship in await self.repository.find_unresolved(path):
            if relationship.document_id == document_id:
                continue
            await self.repository.upsert(
                dataclasses.replace(relationship, superseded_document_id=document_id)
            )
            logger.info(f"Resolved dangling supersession {relationship.document_id} -> {document_id}")
            return relationship.document_id
        return None

    async def _find_in_history(self, start_id: str, wanted_id: str) -> list[str] | None:
        """
        Walk "supersedes" links from ``start_id`` looking for ``wanted_id``.

        Returns:
            The walked ids ending at ``wanted_id``, or None if unreachable
        """
        walk = [start_id]
        node = start_id
        while True:
            relationship = await self._resolved(await self.repository.get(node))
            if relationship is None or relationship.superseded_document_id is None:
                return None
            node = relationship.superseded_document_id
            if node == wanted_id:
                return walk + [node]
            if node in walk:
                return None
            walk.append(node)

    async def _count_history(self, document_id: str) -> tuple[int, bool, bool]:
        """
        Count versions behind ``document_id``.

        Returns:
            (depth, has_cycle, truncated)
        """
        seen = {document_id}
        node = document_id
        depth = 0
        while True:
            relationship = await self._resolved(await self.repository.get(node))
            if relationship is None:
                return depth, False, False
            if depth >= self.max_chain_depth:
                return depth, False, True
            depth += 1
            older = relationship.superseded_document_id
            if older is None:
                return depth, False, False
            if older in seen:
                return depth, True, False
            seen.add(older)
            node = older
