"""User knowledge index used by the storeUserInfo and recallUserInfo tools."""

import asyncio
import hashlib
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import chromadb
from chromadb.config import Settings as ChromaSettings

from gateway.utils.logging import get_logger, preview

logger = get_logger(__name__)

KNOWLEDGE_TYPE = "user_knowledge"
RECALL_LIMIT = 5


@dataclass
class KnowledgeHit:
    """One search result from the knowledge index."""

    id: str
    content: str
    score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class KnowledgeIndex(Protocol):
    """Searchable document index."""

    async def upsert(self, doc_id: str, content: str, metadata: dict[str, Any]) -> None: ...

    async def search(
        self, query: str, top_k: int = RECALL_LIMIT, where: dict[str, Any] | None = None
    ) -> list[KnowledgeHit]: ...


class ChromaKnowledgeIndex:
    """Knowledge index persisted in a local Chroma collection."""

    def __init__(self, path: str, collection_name: str = "user-knowledge"):
        os.makedirs(path, exist_ok=True)
        self.client = chromadb.PersistentClient(path=path, settings=ChromaSettings(anonymized_telemetry=False))
        self.collection = self.client.get_or_create_collection(
            name=collection_name, metadata={"hnsw:space": "cosine"}
        )

    async def upsert(self, doc_id: str, content: str, metadata: dict[str, Any]) -> None:
        await asyncio.to_thread(self.collection.upsert, ids=[doc_id], documents=[content], metadatas=[metadata])

    async def search(
        self, query: str, top_k: int = RECALL_LIMIT, where: dict[str, Any] | None = None
    ) -> list[KnowledgeHit]:
        result = await asyncio.to_thread(self.collection.query, query_texts=[query], n_results=top_k, where=where)

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        hits = []
        for i, doc_id in enumerate(ids):
            distance = distances[i] if i < len(distances) else None
            hits.append(
                KnowledgeHit(
                    id=doc_id,
                    content=documents[i] or "",
                    score=None if distance is None else 1.0 - distance,
                    metadata=dict(metadatas[i] or {}),
                )
            )
        return hits


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class KnowledgeService:
    """Stores and recalls facts the user shared.

    The index is optional. Without one every call returns a no-op result so a
    missing knowledge index never aborts a chat turn.
    """

    def __init__(self, index: KnowledgeIndex | None = None):
        self.index = index

    @property
    def available(self) -> bool:
        return self.index is not None

    async def store_user_info(self, info: str, category: str = "general") -> dict[str, Any]:
        """Store a piece of user information keyed by its content hash."""
        if self.index is None:
            logger.warning(f"Knowledge index unavailable, not storing: {preview(info)}")
            return {"success": False}

        doc_id = content_hash(info)
        metadata = {
            "category": category,
            "timestamp": datetime.now(UTC).isoformat(),
            "type": KNOWLEDGE_TYPE,
            "source": "natural_conversation",
        }
        try:
            await self.index.upsert(doc_id, info, metadata)
        except Exception as e:
            logger.error(f"Failed to store user information: {e}")
            return {"success": False, "error": str(e)}

        logger.info(f"Stored user information {doc_id[:12]}")
        return {"success": True, "id": doc_id}

    async def recall_user_info(self, query: str, top_k: int = RECALL_LIMIT) -> dict[str, Any]:
        """Return the most relevant stored facts for a query."""
        if self.index is None:
            logger.warning(f"Knowledge index unavailable, cannot recall: {preview(query)}")
            return {"results": []}

        try:
            hits = await self.index.search(query, top_k=top_k, where={"type": KNOWLEDGE_TYPE})
        except Exception as e:
            logger.error(f"Failed to recall user information: {e}")
            return {"results": [], "error": str(e)}

        results = [
            {"content": hit.content, "score": hit.score, "category": hit.metadata.get("category")}
            for hit in hits[:top_k]
        ]
        logger.info(f"Recalled {len(results)} facts for query: {preview(query)}")
        return {"results": results}
