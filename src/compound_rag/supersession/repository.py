"""Durable storage interface for supersession relationships."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from .models import SupersessionRelationship


class SupersessionRepository(ABC):
    """
    Keyed by the superseding document: each document supersedes at most one other.

    Backend failures raise RepositoryUnavailableError.
    """

    @abstractmethod
    async def get(self, document_id: str) -> SupersessionRelationship | None:
        """Relationship in which ``document_id`` is the newer version."""

    @abstractmethod
    async def find_superseding(
        self, superseded_document_id: str
    ) -> SupersessionRelationship | None:
        """Relationship whose target is ``superseded_document_id`` (first by id on forks)."""

    @abstractmethod
    async def find_all_superseding(
        self, superseded_document_id: str
    ) -> list[SupersessionRelationship]: ...

    @abstractmethod
    async def find_unresolved(self, superseded_path: str) -> list[SupersessionRelationship]:
        """Dangling relationships pointing at ``superseded_path``."""

    @abstractmethod
    async def upsert(self, relationship: SupersessionRelationship) -> None: ...

    @abstractmethod
    async def delete(self, document_id: str) -> bool: ...

    @abstractmethod
    async def apply_changes(
        self,
        upserts: Iterable[SupersessionRelationship] = (),
        deletes: Iterable[str] = (),
    ) -> None:
        """
        Write several upserts and deletes as one atomic change.

        Either every change is visible afterwards or none is.
        """

    @abstractmethod
    async def list_all(self) -> list[SupersessionRelationship]: ...


class InMemorySupersessionRepository(SupersessionRepository):
    """Dict-backed repository for tests and ephemeral hosts."""

    def __init__(self):
        self._relationships: dict[str, SupersessionRelationship] = {}

    async def get(self, document_id: str) -> SupersessionRelationship | None:
        return self._relationships.get(document_id)

    async def find_superseding(
        self, superseded_document_id: str
    ) -> SupersessionRelationship | None:
        matches = await self.find_all_superseding(superseded_document_id)
        return matches[0] if matches else None

    async def find_all_superseding(
        self, superseded_document_id: str
    ) -> list[SupersessionRelationship]:
        return sorted(
            (
                rel
                for rel in self._relationships.values()
                if rel.superseded_document_id == superseded_document_id
            ),
            key=lambda rel: rel.document_id,
        )

    async def find_unresolved(self, superseded_path: str) -> list[SupersessionRelationship]:
        return sorted(
            (
                rel
                for rel in self._relationships.values()
                if rel.is_dangling and rel.superseded_path == superseded_path
            ),
            key=lambda rel: rel.document_id,
        )

    async def upsert(self, relationship: SupersessionRelationship) -> None:
        self._relationships[relationship.document_id] = relationship

    async def delete(self, document_id: str) -> bool:
        return self._relationships.pop(document_id, None) is not None

    async def apply_changes(
        self,
        upserts: Iterable[SupersessionRelationship] = (),
        deletes: Iterable[str] = (),
    ) -> None:
        updated = dict(self._relationships)
        for relationship in upserts:
            updated[relationship.document_id] = relationship
        for document_id in deletes:
            updated.pop(document_id, None)
        self._relationships = updated

    async def list_all(self) -> list[SupersessionRelationship]:
        return sorted(self._relationships.values(), key=lambda rel: rel.document_id)
