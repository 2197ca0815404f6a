"""Pytest fixtures and test utilities for the compound-rag test suite."""

import pytest
from loguru import logger

from compound_rag.context import ContextAssembler
from compound_rag.graph import DocumentLinkGraph
from compound_rag.models import StoredDocument, TenantKey
from compound_rag.retrieval import ScoringConfig
from compound_rag.storage import InMemoryDocumentRepository
from compound_rag.supersession import InMemorySupersessionRepository, SupersessionTracker
from tests.test_utils import FakeVectorStore


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def tenant():
    return TenantKey(project="acme", branch="main", path_hash="abc123")


@pytest.fixture
def scoring():
    """Scoring constants pinned to the documented defaults."""
    return ScoringConfig()


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def document_repo():
    return InMemoryDocumentRepository()


@pytest.fixture
def supersession_repo():
    return InMemorySupersessionRepository()


@pytest.fixture
def tracker(supersession_repo, document_repo, scoring):
    return SupersessionTracker(supersession_repo, document_repo, scoring)


@pytest.fixture
def graph():
    return DocumentLinkGraph()


@pytest.fixture
def assembler(vector_store, document_repo, graph, tracker, scoring):
    return ContextAssembler(vector_store, document_repo, graph, tracker, scoring)


@pytest.fixture
def corpus(vector_store, document_repo):
    """
    Register documents in both the vector store and the repository.

    Usage:
        corpus(make_doc("a.md"), score=0.9)
    """

    def _add(document: StoredDocument, score: float = 0.0) -> StoredDocument:
        vector_store.add(document, score)
        document_repo.add(document)
        return document

    return _add


# ============================================================================
# LOGGING FIXTURES
# ============================================================================


@pytest.fixture
def captured_logs():
    """
    Capture loguru messages emitted during a test.

    Yields:
        List of "LEVEL|message" strings
    """
    messages: list[str] = []
    handler_id = logger.add(
        lambda msg: messages.append(msg.rstrip("\n")), format="{level}|{message}", level="DEBUG"
    )
    try:
        yield messages
    finally:
        logger.remove(handler_id)
