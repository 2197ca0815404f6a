"""
Qdrant-backed vector store and document repository.

One point per document. Payload fields:
    tenant_key, document_id, path, title, content, summary, doc_type
    (lower-cased), promotion_level (raw tag), promotion_rank (int), date (ISO)
"""

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from loguru import logger
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointStruct,
    Range,
    VectorParams,
)

from ..config import Config
from ..errors import RepositoryUnavailableError, VectorStoreUnavailableError
from ..models import PromotionLevel, StoredDocument, TenantKey
from .documents import DocumentRepository
from .vector_store import SearchFilter, VectorHit, VectorStore

SCROLL_PAGE_SIZE = 256


def point_id_for(path: str, tenant: TenantKey | None) -> str:
    """Deterministic point id so re-indexing a path overwrites its point."""
    scope = tenant.key if tenant else "_"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{scope}:{path}"))


def _document_from_payload(payload: dict[str, Any]) -> StoredDocument:
    raw_date = payload.get("date")
    date = None
    if raw_date:
        try:
            date = datetime.fromisoformat(raw_date)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed date {raw_date!r} on {payload.get('path')}")
    return StoredDocument(
        document_id=payload["document_id"],
        path=payload["path"],
        title=payload.get("title") or payload["path"],
        content=payload.get("content") or "",
        summary=payload.get("summary"),
        doc_type=payload.get("doc_type"),
        promotion_level=payload.get("promotion_level"),
        date=date,
    )


class QdrantVectorStore(VectorStore, DocumentRepository):
    """
    Async Qdrant adapter implementing both VectorStore and DocumentRepository.

    Every query is scoped by the tenant key carried on the filter. Backend
    exceptions are logged and re-raised as VectorStoreUnavailableError
    (search paths) or RepositoryUnavailableError (lookup paths).

    Example:
        store = QdrantVectorStore.from_config()
        await store.ensure_collection(vector_size=768)
        hits = await store.search(embedding, 20, SearchFilter(tenant=tenant))
    """

    def __init__(
        self,
        client: AsyncQdrantClient | None = None,
        url: str = "http://localhost:6333",
        api_key: str | None = None,
        collection: str = "compound_documents",
        timeout: int = 30,
    ):
        if client is not None:
            self.client = client
        elif api_key:
            self.client = AsyncQdrantClient(url=url, api_key=api_key, timeout=timeout)
        else:
            self.client = AsyncQdrantClient(url=url, timeout=timeout)
        self.collection = collection

    @classmethod
    def from_config(cls) -> "QdrantVectorStore":
        return cls(
            url=Config.QDRANT_URL,
            api_key=Config.QDRANT_API_KEY,
            collection=Config.QDRANT_COLLECTION,
            timeout=Config.QDRANT_TIMEOUT,
        )

    async def close(self) -> None:
        await self.client.close()

    # ------------------------------------------------------------------
    # Indexing helpers
    # ------------------------------------------------------------------

    async def ensure_collection(self, vector_size: int) -> bool:
        """
        Create the collection if it does not exist.

        Returns:
            True if the collection was created
        """
        try:
            if await self.client.collection_exists(self.collection):
                return False
            await self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=vector_size, distance=Distance.COSINE),
            )
        except Exception as e:
            logger.error(f"Failed to create collection {self.collection}: {e}")
            raise VectorStoreUnavailableError(
                f"Qdrant collection setup failed for {self.collection}"
            ) from e
        logger.info(f"Created collection {self.collection} (size={vector_size})")
        return True

    async def upsert_document(
        self,
        document: StoredDocument,
        vector: Sequence[float],
        tenant: TenantKey | None = None,
    ) -> str:
        """
        Insert or replace the point for a document.

        Returns:
            The point id
        """
        level = PromotionLevel.from_tag(document.promotion_level) or PromotionLevel.STANDARD
        payload = {
            "tenant_key": tenant.key if tenant else None,
            "document_id": document.document_id,
            "path": document.path,
            "title": document.title,
            "content": document.content,
            "summary": document.summary,
            "doc_type": document.doc_type.lower() if document.doc_type else None,
            "promotion_level": document.promotion_level,
            "promotion_rank": level.rank,
            "date": document.date.isoformat() if document.date else None,
        }
        point_id = point_id_for(document.path, tenant)
        try:
            await self.client.upsert(
                collection_name=self.collection,
                points=[PointStruct(id=point_id, vector=list(vector), payload=payload)],
                wait=True,
            )
        except Exception as e:
            logger.error(f"Upsert failed for {document.path}: {e}")
            raise VectorStoreUnavailableError(f"Qdrant upsert failed for {document.path}") from e
        return point_id

    async def delete_document(self, path: str, tenant: TenantKey | None = None) -> None:
        try:
            await self.client.delete(
                collection_name=self.collection,
                points_selector=FilterSelector(
                    filter=self._build_filter(SearchFilter(tenant=tenant), path=path)
                ),
                wait=True,
            )
        except Exception as e:
            logger.error(f"Delete failed for {path}: {e}")
            raise VectorStoreUnavailableError(f"Qdrant delete failed for {path}") from e

    # ------------------------------------------------------------------
    # VectorStore
    # ------------------------------------------------------------------

    async def search(
        self,
        embedding: Sequence[float],
        top_n: int,
        search_filter: SearchFilter,
    ) -> list[VectorHit]:
        try:
            response = await self.client.query_points(
                collection_name=self.collection,
                query=list(embedding),
                query_filter=self._build_filter(search_filter),
                limit=top_n,
                with_payload=True,
            )
        except Exception as e:
            logger.error(f"Vector search failed on {self.collection}: {e}")
            raise VectorStoreUnavailableError(f"Qdrant search failed: {e}") from e

        return [
            VectorHit(document=_document_from_payload(point.payload), score=point.score)
            for point in response.points
            if point.payload
        ]

    async def list_by_promotion(
        self,
        level: PromotionLevel,
        search_filter: SearchFilter,
    ) -> list[StoredDocument]:
        query_filter = self._build_filter(search_filter, exact_rank=level.rank)
        try:
            return await self._scroll_documents(query_filter)
        except Exception as e:
            logger.error(f"Listing {level.value} documents failed: {e}")
            raise VectorStoreUnavailableError(f"Qdrant scroll failed: {e}") from e

    # ------------------------------------------------------------------
    # DocumentRepository
    # ------------------------------------------------------------------

    async def get_by_path(
        self, path: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None:
        found = await self._lookup(self._build_filter(SearchFilter(tenant=tenant), path=path))
        return found[0] if found else None

    async def get_by_id(
        self, document_id: str, tenant: TenantKey | None = None
    ) -> StoredDocument | None:
        query_filter = self._build_filter(SearchFilter(tenant=tenant))
        query_filter.must.append(
            FieldCondition(key="document_id", match=MatchValue(value=document_id))
        )
        found = await self._lookup(query_filter)
        return found[0] if found else None

    async def get_by_paths(
        self, paths: Iterable[str], tenant: TenantKey | None = None
    ) -> dict[str, StoredDocument]:
        wanted = list(dict.fromkeys(paths))
        if not wanted:
            return {}
        query_filter = self._build_filter(SearchFilter(tenant=tenant))
        query_filter.must.append(FieldCondition(key="path", match=MatchAny(any=wanted)))
        return {doc.path: doc for doc in await self._lookup(query_filter)}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _lookup(self, query_filter: Filter) -> list[StoredDocument]:
        try:
            return await self._scroll_documents(query_filter)
        except Exception as e:
            logger.error(f"Document lookup failed on {self.collection}: {e}")
            raise RepositoryUnavailableError(f"Qdrant lookup failed: {e}") from e

    async def _scroll_documents(self, query_filter: Filter) -> list[StoredDocument]:
        documents = []
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection,
                scroll_filter=query_filter,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            documents.extend(_document_from_payload(p.payload) for p in points if p.payload)
            if offset is None:
                break
        documents.sort(key=lambda doc: doc.path)
        return documents

    def _build_filter(
        self,
        search_filter: SearchFilter,
        path: str | None = None,
        exact_rank: int | None = None,
    ) -> Filter:
        conditions = []

        if search_filter.tenant is not None:
            conditions.append(
                FieldCondition(key="tenant_key", match=MatchValue(value=search_filter.tenant.key))
            )

        if exact_rank is not None:
            conditions.append(
                FieldCondition(key="promotion_rank", match=MatchValue(value=exact_rank))
            )
        elif search_filter.min_promotion_level.rank > 0:
            conditions.append(
                FieldCondition(
                    key="promotion_rank",
                    range=Range(gte=search_filter.min_promotion_level.rank),
                )
            )

        if search_filter.doc_types:
            conditions.append(
                FieldCondition(key="doc_type", match=MatchAny(any=list(search_filter.doc_types)))
            )

        if path is not None:
            conditions.append(FieldCondition(key="path", match=MatchValue(value=path)))

        return Filter(must=conditions)
