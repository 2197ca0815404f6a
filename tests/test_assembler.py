"""
Tests for the context assembler and RAGContext.

Tests:
- Critical injection, direct retrieval and link expansion
- Cross-bucket dedup and ordering
- Supersession multipliers on scored entries
- Failure and cancellation behaviour
- RAGContext formatting, serialization and budget trimming
"""

import asyncio

import pytest

from compound_rag.errors import RepositoryUnavailableError, VectorStoreUnavailableError
from compound_rag.models import ContextSource, LinkedDocument, RetrievalOptions
from tests.test_utils import make_doc

EMBEDDING = [0.5, 0.5]


class TestAssemble:
    """End-to-end assembly scenarios."""

    @pytest.mark.asyncio
    async def test_critical_injected_below_threshold(self, assembler, corpus):
        corpus(make_doc("x.md"), 0.9)
        corpus(make_doc("y.md", promotion="critical"), 0.65)

        context = await assembler.assemble(
            EMBEDDING, RetrievalOptions(min_relevance_score=0.7, include_critical=True)
        )

        assert context.paths == ["y.md", "x.md"]
        y, x = context.entries
        assert y.source is ContextSource.CRITICAL
        assert y.final_score is None
        assert y.document.raw_score is None
        assert x.source is ContextSource.DIRECT
        assert x.final_score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_critical_excluded_when_disabled(self, assembler, corpus):
        corpus(make_doc("x.md"), 0.9)
        corpus(make_doc("y.md", promotion="critical"), 0.65)

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(include_critical=False))

        assert context.paths == ["x.md"]

    @pytest.mark.asyncio
    async def test_critical_match_keeps_scores(self, assembler, corpus):
        corpus(make_doc("crit.md", promotion="critical"), 0.8)
        corpus(make_doc("plain.md"), 0.9)

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["crit.md", "plain.md"]
        crit = context.entries[0]
        assert crit.source is ContextSource.CRITICAL
        assert crit.final_score == pytest.approx(0.95)
        assert context.direct_count == 1

    @pytest.mark.asyncio
    async def test_direct_ordered_by_final_score(self, assembler, corpus):
        corpus(make_doc("a.md"), 0.75)
        corpus(make_doc("b.md", promotion="important"), 0.72)
        corpus(make_doc("c.md"), 0.95)

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["c.md", "b.md", "a.md"]
        assert context.total_matches == 3

    @pytest.mark.asyncio
    async def test_linked_documents_tagged_with_depth(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.1)
        corpus(make_doc("c.md"), 0.1)
        graph.on_document_indexed("a.md", ["b.md"])
        graph.on_document_indexed("b.md", ["c.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(max_link_depth=2))

        assert context.paths == ["a.md", "b.md", "c.md"]
        b, c = context.linked_entries
        assert (b.linked_from, b.link_depth) == ("a.md", 1)
        assert (c.linked_from, c.link_depth) == ("b.md", 2)
        assert isinstance(c.document, LinkedDocument)
        assert c.document.raw_score is None
        assert c.final_score is None

    @pytest.mark.asyncio
    async def test_link_depth_one_only_first_hop(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.1)
        corpus(make_doc("c.md"), 0.1)
        graph.on_document_indexed("a.md", ["b.md"])
        graph.on_document_indexed("b.md", ["c.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(max_link_depth=1))

        assert [entry.path for entry in context.linked_entries] == ["b.md"]

    @pytest.mark.asyncio
    async def test_direct_and_linked_dedup(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.8)
        graph.on_document_indexed("a.md", ["b.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["a.md", "b.md"]
        assert context.entries[1].source is ContextSource.DIRECT
        assert context.linked_count == 0

    @pytest.mark.asyncio
    async def test_linked_critical_stays_critical(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("rule.md", promotion="critical"), 0.1)
        graph.on_document_indexed("a.md", ["rule.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["rule.md", "a.md"]
        assert context.entries[0].source is ContextSource.CRITICAL
        assert len(set(context.paths)) == len(context.paths)

    @pytest.mark.asyncio
    async def test_unindexed_link_targets_skipped(
        self, assembler, corpus, graph, captured_logs
    ):
        corpus(make_doc("a.md"), 0.9)
        graph.on_document_indexed("a.md", ["ghost.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["a.md"]
        assert any("ghost.md" in line for line in captured_logs)

    @pytest.mark.asyncio
    async def test_max_linked_docs_caps_expansion(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        for name in ("l1.md", "l2.md", "l3.md"):
            corpus(make_doc(name), 0.1)
        graph.on_document_indexed("a.md", ["l1.md", "l2.md", "l3.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(max_linked_docs=2))

        assert [entry.path for entry in context.linked_entries] == ["l1.md", "l2.md"]

    @pytest.mark.asyncio
    async def test_unindexed_targets_do_not_use_link_budget(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("real.md"), 0.1)
        graph.on_document_indexed("a.md", ["ghost1.md", "ghost2.md", "real.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(max_linked_docs=2))

        assert [entry.path for entry in context.linked_entries] == ["real.md"]

    @pytest.mark.asyncio
    async def test_critical_targets_do_not_use_link_budget(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("rule.md", promotion="critical"), 0.1)
        corpus(make_doc("b.md"), 0.1)
        graph.on_document_indexed("a.md", ["rule.md", "b.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions(max_linked_docs=1))

        assert context.paths == ["rule.md", "a.md", "b.md"]
        assert context.entries[2].source is ContextSource.LINKED

    @pytest.mark.asyncio
    async def test_link_budget_reached_past_unindexed_level(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        for name in ("deep1.md", "deep2.md", "deep3.md"):
            corpus(make_doc(name), 0.1)
        graph.on_document_indexed("a.md", ["ghost.md", "hub.md"])
        graph.on_document_indexed("hub.md", ["deep1.md", "deep2.md", "deep3.md"])

        context = await assembler.assemble(
            EMBEDDING, RetrievalOptions(max_linked_docs=2, max_link_depth=2)
        )

        linked = context.linked_entries
        assert [entry.path for entry in linked] == ["deep1.md", "deep2.md"]
        assert all(entry.linked_from == "hub.md" for entry in linked)

    @pytest.mark.asyncio
    async def test_superseded_document_demoted(self, assembler, corpus, tracker):
        corpus(make_doc("v1.md"), 0.9)
        corpus(make_doc("v2.md"), 0.8)
        await tracker.register("id:v2.md", "v1.md")

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.paths == ["v2.md", "v1.md"]
        old = context.entries[1]
        assert old.final_score == pytest.approx(0.45)
        assert old.supersession.is_superseded
        assert old.supersession.current_version_id == "id:v2.md"
        assert old.document.boosted_score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_linked_entries_carry_supersession_without_multiplier(
        self, assembler, corpus, graph, tracker
    ):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("old.md"), 0.1)
        corpus(make_doc("new.md"), 0.1)
        await tracker.register("id:new.md", "old.md")
        graph.on_document_indexed("a.md", ["old.md"])

        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        linked = context.linked_entries[0]
        assert linked.path == "old.md"
        assert linked.supersession.multiplier == 0.5
        assert linked.final_score is None

    @pytest.mark.asyncio
    async def test_empty_corpus_gives_empty_context(self, assembler):
        context = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert context.is_empty
        assert context.total_characters == 0
        assert context.format() == ""

    @pytest.mark.asyncio
    async def test_vector_store_failure_aborts(self, assembler, vector_store, corpus):
        corpus(make_doc("a.md"), 0.9)
        vector_store.fail = True

        with pytest.raises(VectorStoreUnavailableError):
            await assembler.assemble(EMBEDDING, RetrievalOptions())

    @pytest.mark.asyncio
    async def test_link_hydration_failure_aborts(
        self, assembler, corpus, graph, document_repo, monkeypatch
    ):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.1)
        graph.on_document_indexed("a.md", ["b.md"])

        async def unavailable(*args, **kwargs):
            raise RepositoryUnavailableError("document store offline")

        monkeypatch.setattr(document_repo, "get_by_paths", unavailable)

        with pytest.raises(RepositoryUnavailableError):
            await assembler.assemble(EMBEDDING, RetrievalOptions())

    @pytest.mark.asyncio
    async def test_supersession_lookup_failure_aborts(
        self, assembler, corpus, supersession_repo, monkeypatch
    ):
        corpus(make_doc("a.md"), 0.9)

        async def unavailable(*args, **kwargs):
            raise RepositoryUnavailableError("supersession store offline")

        monkeypatch.setattr(supersession_repo, "get", unavailable)
        monkeypatch.setattr(supersession_repo, "find_superseding", unavailable)

        with pytest.raises(RepositoryUnavailableError):
            await assembler.assemble(EMBEDDING, RetrievalOptions())

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, assembler, corpus):
        corpus(make_doc("a.md"), 0.9)
        event = asyncio.Event()
        event.set()

        with pytest.raises(asyncio.CancelledError):
            await assembler.assemble(EMBEDDING, RetrievalOptions(), cancel_event=event)

    @pytest.mark.asyncio
    async def test_defaults_from_config(self, assembler, corpus):
        corpus(make_doc("a.md"), 0.9)

        context = await assembler.assemble(EMBEDDING)

        assert context.paths == ["a.md"]

    @pytest.mark.asyncio
    async def test_results_are_independent_copies(self, assembler, corpus):
        corpus(make_doc("a.md"), 0.9)

        first = await assembler.assemble(EMBEDDING, RetrievalOptions())
        second = await assembler.assemble(EMBEDDING, RetrievalOptions())

        assert first.entries[0].document == second.entries[0].document
        assert first.entries[0].document is not second.entries[0].document


class TestLowerLevelEntryPoints:
    """retrieve_relevant_documents and retrieve_with_linked_documents."""

    @pytest.mark.asyncio
    async def test_retrieve_relevant_documents(self, assembler, corpus):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.5)

        result = await assembler.retrieve_relevant_documents(EMBEDDING, RetrievalOptions())

        assert result.paths == ["a.md"]

    @pytest.mark.asyncio
    async def test_retrieve_with_linked_documents(self, assembler, corpus, graph):
        corpus(make_doc("a.md"), 0.9)
        corpus(make_doc("b.md"), 0.1)
        graph.on_document_indexed("a.md", ["b.md"])

        result = await assembler.retrieve_with_linked_documents(EMBEDDING, RetrievalOptions())

        assert result.direct.paths == ["a.md"]
        assert [doc.path for doc in result.linked] == ["b.md"]
        assert result.linked[0].link_depth == 1


class TestRAGContext:
    """Formatting, serialization and budget helpers."""

    @pytest.fixture
    async def context(self, assembler, corpus, graph):
        corpus(make_doc("rule.md", promotion="critical", content="R" * 50), 0.1)
        corpus(make_doc("a.md", content="A" * 100), 0.9)
        corpus(make_doc("b.md", content="B" * 30), 0.1)
        graph.on_document_indexed("a.md", ["b.md"])
        return await assembler.assemble(EMBEDDING, RetrievalOptions())

    @pytest.mark.asyncio
    async def test_counts_and_total(self, context):
        assert context.paths == ["rule.md", "a.md", "b.md"]
        assert (context.critical_count, context.direct_count, context.linked_count) == (1, 1, 1)
        assert context.total_characters == 180

    @pytest.mark.asyncio
    async def test_within_budget_is_pure(self, context):
        trimmed = context.within_budget(90)

        assert trimmed.paths == ["rule.md", "b.md"]
        assert trimmed.total_characters == 80
        assert context.paths == ["rule.md", "a.md", "b.md"]

    @pytest.mark.asyncio
    async def test_format_includes_attribution(self, context):
        text = context.format()

        assert "[critical] rule.md (rule.md)" in text
        assert "[direct] a.md (a.md) score=0.900" in text
        assert "linked from a.md (depth 1)" in text
        assert "A" * 100 in text

    @pytest.mark.asyncio
    async def test_to_dict(self, context):
        data = context.to_dict()

        assert data["counts"] == {"critical": 1, "direct": 1, "linked": 1}
        assert data["total_characters"] == 180
        assert data["entries"][2]["linked_from"] == "a.md"
        assert data["entries"][0]["source"] == "critical"
        assert data["entries"][1]["supersession"]["multiplier"] == 1.0
