"""Document repository interface plus an in-memory implementation."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from loguru import logger

from ..models import StoredDocument, TenantKey


class DocumentRepository(ABC):
    """
    Lookup of indexed documents by path or id.

    Missing documents are reported as None (or omitted from batch results),
    never raised. Backend failures raise RepositoryUnavailableError.
    """

    @abstractmethod
    async def get_by_path(
        self, path: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None: ...

    @abstractmethod
    async def get_by_id(
        self, document_id: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None: ...

    async def get_by_paths(
        self, paths: Iterable[str], tenant: TenantKey | None = None
    ) -> dict[str, StoredDocument]:
        """Batch lookup; paths that are not indexed are absent from the result."""
        found = {}
        for path in paths:
            document = await self.get_by_path(path, tenant)
            if document is not None:
                found[path] = document
        return found

    async def exists(self, path: str, tenant: TenantKey | None = None) -> bool:
        return await self.get_by_path(path, tenant) is not None


class InMemoryDocumentRepository(DocumentRepository):
    """
    Dict-backed repository for a single tenant.

    Used by tests and by hosts that keep the corpus in process. The tenant
    argument is accepted for interface compatibility and ignored.
    """

    def __init__(self, documents: Iterable[StoredDocument] = ()):
        self._by_path: dict[str, StoredDocument] = {}
        self._by_id: dict[str, StoredDocument] = {}
        for document in documents:
            self.add(document)

    def add(self, document: StoredDocument) -> None:
        previous = self._by_path.get(document.path)
        if previous is not None and previous.document_id != document.document_id:
            self._by_id.pop(previous.document_id, None)
        self._by_path[document.path] = document
        self._by_id[document.document_id] = document
        logger.debug(f"Stored document {document.document_id} at {document.path}")

    def remove(self, path: str) -> bool:
        document = self._by_path.pop(path, None)
        if document is None:
            return False
        self._by_id.pop(document.document_id, None)
        return True

    def __len__(self) -> int:
        return len(self._by_path)

    async def get_by_path(
        self, path: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None:
        return self._by_path.get(path)

    async def get_by_id(
        self, document_id: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None:
        return self._by_id.get(document_id)
