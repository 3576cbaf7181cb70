"""Qdrant vector store adapter (async client).

Why: Adapter kapselt alle externen Typen und wirft nur Domain-Fehler.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from agentic_rag.application.ports.vector_store_port import VectorStorePort
from agentic_rag.domain.errors import VectorStoreError
from agentic_rag.domain.models import VectorHit

READY_STATUS = "ready"


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection."""

    url: str
    collection: str
    api_key: str | None = None
    prefer_grpc: bool = False
    timeout_s: int = 30


class QdrantVectorStoreAdapter(VectorStorePort):
    """Read-side Qdrant adapter.

    Chunks are points whose payload holds chunk_id, document_id,
    document_title, content and the owning document's status. Only points with
    status == "ready" are searchable. A missing collection means nothing is
    indexed yet and yields no hits.
    """

    def __init__(self, cfg: QdrantConfig, client: Any | None = None) -> None:
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)

    def _init_client(self, cfg: QdrantConfig) -> Any:
        try:
            qdrant_client = import_module("qdrant_client")
            return qdrant_client.AsyncQdrantClient(
                url=cfg.url,
                api_key=cfg.api_key or None,
                timeout=cfg.timeout_s,
                prefer_grpc=cfg.prefer_grpc,
            )
        except Exception as ex:
            raise VectorStoreError(f"Qdrant init failed: {ex}") from ex

    def _ready_filter(self) -> Any:
        models = import_module("qdrant_client.models")
        return models.Filter(
            must=[
                models.FieldCondition(key="status", match=models.MatchValue(value=READY_STATUS))
            ]
        )

    @staticmethod
    def _to_hit(point: Any, score: float) -> VectorHit:
        return VectorHit(
            id=str(point.id),
            score=score,
            payload=dict(point.payload) if point.payload else {},
        )

    async def search(
        self, query_vector: Sequence[float], top_k: int = 10, only_ready: bool = True
    ) -> list[VectorHit]:
        if top_k <= 0:
            return []
        try:
            if not await self._client.collection_exists(self._cfg.collection):
                return []
            response = await self._client.query_points(
                collection_name=self._cfg.collection,
                query=list(query_vector),
                limit=top_k,
                query_filter=self._ready_filter() if only_ready else None,
                with_payload=True,
                with_vectors=False,
            )
            return [self._to_hit(p, float(p.score)) for p in response.points]
        except Exception as ex:
            raise VectorStoreError(f"search: {ex}") from ex

    async def scroll_ready(self, limit: int = 1000) -> list[VectorHit]:
        """Ready chunks in storage order (score 0), up to limit."""
        try:
            if not await self._client.collection_exists(self._cfg.collection):
                return []
            hits: list[VectorHit] = []
            offset = None
            while len(hits) < limit:
                points, offset = await self._client.scroll(
                    collection_name=self._cfg.collection,
                    scroll_filter=self._ready_filter(),
                    limit=min(256, limit - len(hits)),
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                hits.extend(self._to_hit(p, 0.0) for p in points)
                if offset is None or not points:
                    break
            return hits
        except Exception as ex:
            raise VectorStoreError(f"scroll: {ex}") from ex
