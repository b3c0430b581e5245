"""Vector store for long-term memories, one Chroma collection per namespace."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, NamedTuple, Protocol

from lucidchat.config import settings

logger = logging.getLogger(__name__)


class VectorMatch(NamedTuple):
    id: str
    score: float
    metadata: dict[str, Any]


class VectorStore(Protocol):
    async def upsert(
        self, namespace: str, id: str, vector: list[float], metadata: dict[str, Any]
    ) -> None: ...

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]: ...


def _default_client():
    import chromadb
    from chromadb.config import Settings

    return chromadb.PersistentClient(
        path=settings.CHROMA_PATH,
        settings=Settings(anonymized_telemetry=False),
    )


class ChromaVectorStore:
    """Chroma-backed store. The client is created lazily on first use.

    Chroma's client is blocking, so every operation runs in a worker thread.
    """

    def __init__(self, client=None, prefix: str = settings.MEMORY_COLLECTION_PREFIX):
        self._client = client
        self.prefix = prefix

    def _collection(self, namespace: str):
        if self._client is None:
            self._client = _default_client()
            logger.info("Chroma client opened at %s", settings.CHROMA_PATH)
        return self._client.get_or_create_collection(
            name=f"{self.prefix}-{namespace}",
            metadata={"hnsw:space": "cosine"},
        )

    async def upsert(
        self, namespace: str, id: str, vector: list[float], metadata: dict[str, Any]
    ) -> None:
        await asyncio.to_thread(self._upsert, namespace, id, vector, metadata)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        return await asyncio.to_thread(self._query, namespace, vector, top_k, filter)

    def _upsert(self, namespace: str, id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        self._collection(namespace).upsert(
            ids=[id],
            embeddings=[vector],
            documents=[str(metadata.get("content", ""))],
            metadatas=[metadata],
        )

    def _query(
        self, namespace: str, vector: list[float], top_k: int, filter: dict[str, Any] | None
    ) -> list[VectorMatch]:
        collection = self._collection(namespace)
        count = collection.count()
        if count == 0:
            return []
        result = collection.query(
            query_embeddings=[vector],
            n_results=min(top_k, count),
            where=filter or None,
        )
        ids = result["ids"][0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[0.0] * len(ids)])[0]
        return [
            VectorMatch(id=match_id, score=1.0 - float(distance), metadata=dict(metadata or {}))
            for match_id, metadata, distance in zip(ids, metadatas, distances)
        ]
