"""
Qdrant Vector Database Manager (ContextStore)
Read path for the daily drill: similarity search and plain category lookups
over the `knowledge_base` collection. Write helpers exist only for
seed_knowledge_base.py.
"""

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance, VectorParams, PointStruct, PayloadSchemaType,
    Filter, FieldCondition, MatchValue,
)

from generation.errors import StoreUnavailable
from generation.schemas import ContextRecord

log = logging.getLogger("generation.pipeline")

_QDRANT_ERRORS = (UnexpectedResponse, ResponseHandlingException, OSError)


def _category_filter(category: str) -> Filter:
    return Filter(must=[FieldCondition(key="category", match=MatchValue(value=category))])


def point_id_for(record_id: str) -> str:
    """Qdrant only accepts ints or UUIDs; derive a stable UUID from the record id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"knowledge_base/{record_id}"))


class QdrantManager:
    """
    Manages the knowledge_base collection.

    Payload per point: record_id, category (keyword index), text, metadata.
    """

    COLLECTION_NAME = os.getenv("KB_COLLECTION", "knowledge_base")
    EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "1024"))

    def __init__(
        self,
        host: str = None,
        port: int = None,
        url: str = None,
        client: Optional[AsyncQdrantClient] = None,
    ):
        """
        Args:
            host: Qdrant host (default: localhost)
            port: Qdrant port (default: 6333)
            url: Full URL (overrides host/port)
            client: Pre-built client (tests)
        """
        url = url or os.getenv("QDRANT_URL")
        if client is not None:
            self.client = client
        elif url:
            self.client = AsyncQdrantClient(url=url)
        else:
            host = host or os.getenv("QDRANT_HOST", "localhost")
            port = port or int(os.getenv("QDRANT_PORT", "6333"))
            self.client = AsyncQdrantClient(host=host, port=port)

    # ─── Read path ────────────────────────────────────────────────────────────

    async def search(
        self,
        vector: List[float],
        category: str,
        limit: int = 5,
    ) -> List[ContextRecord]:
        """Nearest records of one category to `vector`, best first."""
        try:
            response = await self.client.query_points(
                collection_name=self.COLLECTION_NAME,
                query=vector,
                query_filter=_category_filter(category),
                limit=limit,
                with_payload=True,
            )
        except _QDRANT_ERRORS as e:
            raise StoreUnavailable(f"Similarity search failed for {category}: {e}") from e
        return self._to_records(point.payload for point in response.points)

    async def any(self, category: str, limit: int = 1) -> List[ContextRecord]:
        """Any records of one category, no similarity ordering (fallback path)."""
        try:
            points, _next_offset = await self.client.scroll(
                collection_name=self.COLLECTION_NAME,
                scroll_filter=_category_filter(category),
                limit=limit,
                with_payload=True,
                with_vectors=False,
            )
        except _QDRANT_ERRORS as e:
            raise StoreUnavailable(f"Category lookup failed for {category}: {e}") from e
        return self._to_records(point.payload for point in points)

    @staticmethod
    def _to_records(payloads) -> List[ContextRecord]:
        records = []
        for payload in payloads:
            payload = payload or {}
            try:
                records.append(ContextRecord(
                    id=str(payload.get("record_id", "")),
                    category=payload.get("category"),
                    text=payload.get("text") or "",
                    metadata=payload.get("metadata") or {},
                ))
            except ValidationError as e:
                log.warning(f"[STORE] Skipping malformed point payload: {e}")
        return records

    # ─── Write path (indexing script only) ────────────────────────────────────

    async def create_collection(self, recreate: bool = False) -> None:
        try:
            exists = await self.client.collection_exists(self.COLLECTION_NAME)
            if exists and not recreate:
                log.info(f"[STORE] Collection exists: {self.COLLECTION_NAME}")
                return
            if exists:
                await self.client.delete_collection(self.COLLECTION_NAME)
            await self.client.create_collection(
                collection_name=self.COLLECTION_NAME,
                vectors_config=VectorParams(size=self.EMBEDDING_DIM, distance=Distance.COSINE),
            )
            await self.client.create_payload_index(
                collection_name=self.COLLECTION_NAME,
                field_name="category",
                field_schema=PayloadSchemaType.KEYWORD,
            )
        except _QDRANT_ERRORS as e:
            raise StoreUnavailable(f"Could not prepare {self.COLLECTION_NAME}: {e}") from e
        log.info(f"[STORE] Created collection: {self.COLLECTION_NAME}")

    async def index_records(
        self,
        records: List[ContextRecord],
        embeddings: List[List[float]],
    ) -> int:
        if len(records) != len(embeddings):
            raise ValueError("records and embeddings must have same length")
        points = [
            PointStruct(
                id=point_id_for(record.id),
                vector=embedding,
                payload={
                    "record_id": record.id,
                    "category": record.category,
                    "text": record.text,
                    "metadata": record.metadata,
                },
            )
            for record, embedding in zip(records, embeddings)
        ]
        try:
            await self.client.upsert(collection_name=self.COLLECTION_NAME, points=points)
        except _QDRANT_ERRORS as e:
            raise StoreUnavailable(f"Upsert failed: {e}") from e
        return len(points)

    async def count(self, category: Optional[str] = None) -> Dict[str, Any]:
        try:
            result = await self.client.count(
                collection_name=self.COLLECTION_NAME,
                count_filter=_category_filter(category) if category else None,
                exact=True,
            )
        except _QDRANT_ERRORS as e:
            raise StoreUnavailable(f"Count failed: {e}") from e
        return {"collection_name": self.COLLECTION_NAME, "category": category, "points_count": result.count}


# Singleton instance
_qdrant_manager: Optional[QdrantManager] = None


def get_qdrant_manager() -> QdrantManager:
    """Get singleton Qdrant manager instance"""
    global _qdrant_manager
    if _qdrant_manager is None:
        _qdrant_manager = QdrantManager()
    return _qdrant_manager
