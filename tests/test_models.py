"""Tests for core data models."""

import dataclasses

import pytest

from compound_rag.models import (
    ContextSource,
    LinkedDocument,
    PromotionLevel,
    RetrievedDocument,
    TenantKey,
)
from tests.test_utils import make_doc


def test_promotion_rank_order():
    assert PromotionLevel.STANDARD.rank < PromotionLevel.IMPORTANT.rank < PromotionLevel.CRITICAL.rank


@pytest.mark.parametrize("raw", [None, "", "   ", 3, "legendary"])
def test_promotion_from_tag_rejects(raw):
    assert PromotionLevel.from_tag(raw) is None


def test_source_precedence():
    assert ContextSource.CRITICAL.precedence < ContextSource.DIRECT.precedence
    assert ContextSource.DIRECT.precedence < ContextSource.LINKED.precedence


def test_tenant_key():
    assert TenantKey("acme", "main", "abc").key == "acme:main:abc"


class TestRetrievedDocument:
    """Tests for RetrievedDocument helpers."""

    def test_from_stored(self):
        document = RetrievedDocument.from_stored(
            make_doc("a.md", content="hello"), PromotionLevel.IMPORTANT, 0.7, 0.8
        )
        assert document.document_id == "id:a.md"
        assert document.char_count == 5
        assert document.boosted_score == 0.8

    def test_frozen(self):
        document = RetrievedDocument(path="a.md", title="A", content="x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            document.raw_score = 1.0

    def test_snippet(self):
        document = RetrievedDocument(path="a.md", title="A", content="x" * 250)
        assert document.snippet() == "x" * 200 + "..."
        assert document.snippet(300) == "x" * 250


class TestLinkedDocument:
    """Tests for LinkedDocument invariants."""

    def test_from_traversal(self):
        linked = LinkedDocument.from_traversal(
            make_doc("b.md"), PromotionLevel.STANDARD, linked_from="a.md", link_depth=2
        )
        assert linked.raw_score is None
        assert linked.to_dict()["link_depth"] == 2

    def test_depth_must_be_positive(self):
        with pytest.raises(ValueError, match="link_depth"):
            LinkedDocument(path="b.md", title="B", content="", linked_from="a.md", link_depth=0)

    def test_referrer_required(self):
        with pytest.raises(ValueError, match="linked_from"):
            LinkedDocument(path="b.md", title="B", content="")
