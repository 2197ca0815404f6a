"""
Context assembler: merges critical, direct and linked documents into a RAGContext.

Pipeline for ``assemble``:
1. Fetch critical documents (unconditional) and direct matches concurrently
2. Traverse the link graph from direct-match paths and hydrate linked documents
3. Look up supersession info for every candidate and apply multipliers
4. Dedup by path (critical > direct > linked) and order the buckets
"""

import asyncio
import dataclasses
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field

from loguru import logger

from ..cancellation import CancelEvent, raise_if_cancelled
from ..graph.link_graph import LinkGraph
from ..models import (
    ContextSource,
    LinkedDocument,
    PromotionLevel,
    RetrievalOptions,
    RetrievalResult,
    RetrievedDocument,
    StoredDocument,
)
from ..retrieval.retriever import RelevanceRetriever
from ..retrieval.scoring import ScoringConfig, parse_promotion_level
from ..storage.documents import DocumentRepository
from ..storage.vector_store import SearchFilter, VectorStore
from ..supersession.models import SupersessionInfo
from ..supersession.tracker import SupersessionTracker
from .rag_context import ContextEntry, RAGContext


@dataclass
class LinkedRetrievalResult:
    """Direct matches plus the linked documents reached from them."""

    direct: RetrievalResult
    linked: list[LinkedDocument] = field(default_factory=list)


class ContextAssembler:
    """
    Primary entry point for building RAG context.

    Any upstream failure (vector store, repositories) aborts the whole
    assembly with an UpstreamUnavailableError subclass. An empty corpus or
    no match above threshold yields an empty RAGContext instead.

    Example:
        assembler = ContextAssembler(store, store, graph, tracker)
        context = await assembler.assemble(embedding, RetrievalOptions(tenant=tenant))
        prompt = context.within_budget(40_000).format()
    """

    def __init__(
        self,
        vector_store: VectorStore,
        documents: DocumentRepository,
        link_graph: LinkGraph,
        tracker: SupersessionTracker,
        scoring: ScoringConfig | None = None,
    ):
        self.vector_store = vector_store
        self.documents = documents
        self.link_graph = link_graph
        self.tracker = tracker
        self.scoring = scoring or ScoringConfig.from_config()
        self.retriever = RelevanceRetriever(vector_store, self.scoring)

    # -------------------------------------------------------------------------
    # Lower-level entry points
    # -------------------------------------------------------------------------

    async def retrieve_relevant_documents(
        self, query_embedding: Sequence[float], options: RetrievalOptions | None = None
    ) -> RetrievalResult:
        """Direct matches only: thresholded, boosted and capped."""
        options = options or RetrievalOptions.from_config()
        return await self.retriever.retrieve(query_embedding, options)

    async def retrieve_with_linked_documents(
        self,
        query_embedding: Sequence[float],
        options: RetrievalOptions | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> LinkedRetrievalResult:
        """Direct matches plus bounded link expansion, without critical injection or dedup across buckets."""
        options = options or RetrievalOptions.from_config()
        direct = await self.retriever.retrieve(query_embedding, options)
        linked = await self._expand_links(direct.documents, options, cancel_event)
        return LinkedRetrievalResult(direct=direct, linked=linked)

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    async def assemble(
        self,
        query_embedding: Sequence[float],
        options: RetrievalOptions | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> RAGContext:
        """
        Build the context bundle for a query.

        Args:
            query_embedding: Query vector
            options: Resolved retrieval options (Config defaults when None)
            cancel_event: Cooperative cancellation signal

        Returns:
            RAGContext ordered critical -> direct -> linked

        Raises:
            UpstreamUnavailableError: If a backend fails
            asyncio.CancelledError: If cancelled
        """
        options = options or RetrievalOptions.from_config()
        raise_if_cancelled(cancel_event)

        if options.include_critical:
            critical_docs, direct = await asyncio.gather(
                self._fetch_critical(options),
                self.retriever.retrieve(query_embedding, options),
            )
        else:
            critical_docs = []
            direct = await self.retriever.retrieve(query_embedding, options)

        raise_if_cancelled(cancel_event)
        linked = await self._expand_links(
            direct.documents,
            options,
            cancel_event,
            exclude_paths={doc.path for doc in critical_docs},
        )

        entries = self._merge(critical_docs, direct.documents, linked)
        infos = await self._lookup_supersession(
            [entry.document for entry in entries], cancel_event
        )
        entries = [self._with_supersession(entry, infos) for entry in entries]
        entries = self._order(entries)

        context = RAGContext(entries=entries, total_matches=direct.total_matches)
        logger.info(
            f"Assembled context: {context.critical_count} critical, "
            f"{context.direct_count} direct, {context.linked_count} linked, "
            f"{context.total_characters} chars"
        )
        return context

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _fetch_critical(self, options: RetrievalOptions) -> list[RetrievedDocument]:
        stored = await self.vector_store.list_by_promotion(
            PromotionLevel.CRITICAL, SearchFilter(tenant=options.tenant)
        )
        documents = []
        for document in stored:
            level = parse_promotion_level(document.promotion_level, document.path)
            documents.append(RetrievedDocument.from_stored(document, level))
        logger.debug(f"Fetched {len(documents)} critical documents")
        return documents

    async def _expand_links(
        self,
        direct_documents: list[RetrievedDocument],
        options: RetrievalOptions,
        cancel_event: CancelEvent | None,
        exclude_paths: Collection[str] = (),
    ) -> list[LinkedDocument]:
        """
        Collect up to ``max_linked_docs`` hydratable linked documents.

        Unindexed link targets and ``exclude_paths`` (documents already in a
        higher-precedence bucket) do not count against the budget: the
        traversal is widened until enough usable hits are found or the
        reachable neighbourhood is exhausted.
        """
        wanted = options.max_linked_docs
        if not direct_documents or options.max_link_depth == 0 or wanted == 0:
            return []

        seeds = [doc.path for doc in direct_documents]
        stored: dict[str, StoredDocument] = {}
        looked_up: set[str] = set()
        limit = wanted

        while True:
            hits = self.link_graph.traverse(
                seeds,
                max_depth=options.max_link_depth,
                max_count=limit,
                cancel_event=cancel_event,
            )
            pending = [
                hit.path
                for hit in hits
                if hit.path not in looked_up and hit.path not in exclude_paths
            ]
            if pending:
                stored.update(await self.documents.get_by_paths(pending, options.tenant))
                for path in pending:
                    if path not in stored:
                        logger.debug(f"Skipping unindexed link target {path}")
                looked_up.update(pending)

            usable = [hit for hit in hits if hit.path in stored and hit.path not in exclude_paths]
            # A short traversal means every reachable vertex has been seen.
            if len(usable) >= wanted or len(hits) < limit:
                break
            limit *= 2

        linked = []
        for hit in usable[:wanted]:
            document = stored[hit.path]
            level = parse_promotion_level(document.promotion_level, document.path)
            linked.append(
                LinkedDocument.from_traversal(
                    document, level, linked_from=hit.referring_path, link_depth=hit.depth
                )
            )
        return linked

    def _merge(
        self,
        critical_docs: list[RetrievedDocument],
        direct_docs: list[RetrievedDocument],
        linked_docs: list[LinkedDocument],
    ) -> list[ContextEntry]:
        """Dedup by path, keeping the highest-precedence bucket."""
        direct_by_path = {doc.path: doc for doc in direct_docs}
        entries: dict[str, ContextEntry] = {}

        for doc in critical_docs:
            if doc.path in entries:
                continue
            # A critical document that also matched keeps its similarity scores.
            scored = direct_by_path.get(doc.path)
            document = dataclasses.replace(scored if scored is not None else doc)
            entries[doc.path] = ContextEntry(document=document, source=ContextSource.CRITICAL)

        for doc in direct_docs:
            if doc.path not in entries:
                entries[doc.path] = ContextEntry(
                    document=dataclasses.replace(doc), source=ContextSource.DIRECT
                )

        for doc in linked_docs:
            if doc.path not in entries:
                entries[doc.path] = ContextEntry(
                    document=dataclasses.replace(doc), source=ContextSource.LINKED
                )

        return list(entries.values())

    async def _lookup_supersession(
        self, documents: list[RetrievedDocument], cancel_event: CancelEvent | None
    ) -> dict[str, SupersessionInfo]:
        targets = {}
        for document in documents:
            if document.document_id and document.document_id not in targets:
                targets[document.document_id] = document.path
        if not targets:
            return {}

        raise_if_cancelled(cancel_event)
        infos = await asyncio.gather(
            *(
                self.tracker.get_info(document_id, path=path, cancel_event=cancel_event)
                for document_id, path in targets.items()
            )
        )
        return {info.document_id: info for info in infos}

    def _with_supersession(
        self, entry: ContextEntry, infos: dict[str, SupersessionInfo]
    ) -> ContextEntry:
        info = infos.get(entry.document.document_id) if entry.document.document_id else None
        final_score = None
        if entry.source is not ContextSource.LINKED and entry.document.boosted_score is not None:
            multiplier = info.multiplier if info else 1.0
            final_score = entry.document.boosted_score * multiplier
        return dataclasses.replace(entry, supersession=info, final_score=final_score)

    def _order(self, entries: list[ContextEntry]) -> list[ContextEntry]:
        def score_key(entry: ContextEntry):
            return (-entry.final_score, entry.path)

        critical = [e for e in entries if e.source is ContextSource.CRITICAL]
        critical_scored = sorted((e for e in critical if e.final_score is not None), key=score_key)
        critical_unscored = sorted(
            (e for e in critical if e.final_score is None), key=lambda e: e.path
        )
        direct = sorted(
            (e for e in entries if e.source is ContextSource.DIRECT), key=score_key
        )
        # Stable sort keeps traversal discovery order within a depth.
        linked = sorted(
            (e for e in entries if e.source is ContextSource.LINKED),
            key=lambda e: e.link_depth,
        )
        return critical_scored + critical_unscored + direct + linked
