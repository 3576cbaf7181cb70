# agentic_rag/application/use_cases/hybrid_retrieval.py
from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from agentic_rag.application.dto.retrieval_dto import RerankerOptions, RetrievalOptions
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.application.ports.vector_store_port import VectorStorePort
from agentic_rag.application.use_cases.rerank_candidates import RerankingEngine
from agentic_rag.application.use_cases.vector_search import VectorSearch, to_ranking
from agentic_rag.domain.errors import DomainError, ValidationError, VectorStoreError
from agentic_rag.domain.models import (
    ChunkMetadata,
    RankedCandidate,
    RetrievalMethod,
    RetrievedChunk,
    VectorHit,
)
from agentic_rag.domain.services.bm25 import KeywordSearchEngine
from agentic_rag.domain.services.fusion import FusedScore, RankFusionEngine
from agentic_rag.domain.services.tokenization import resolve_language

logger = structlog.get_logger(__name__)

DEFAULT_KEYWORD_POOL_LIMIT = 1000


def chunk_from_payload(
    hit_id: str,
    payload: Mapping[str, Any],
    scores: FusedScore,
    method: RetrievalMethod,
) -> RetrievedChunk:
    metadata = payload.get("metadata")
    return RetrievedChunk(
        chunk_id=str(payload.get("chunk_id") or hit_id),
        document_id=str(payload.get("document_id", "")),
        document_title=str(payload.get("document_title", "")),
        content=str(payload.get("content", "")),
        vector_score=scores.vector_score,
        bm25_score=scores.bm25_score,
        fused_score=scores.fused_score,
        retrieval_method=method,
        metadata=ChunkMetadata.from_payload(metadata if isinstance(metadata, Mapping) else None),
    )


class HybridRetrieval:
    """
    Application use case: query -> fused, optionally reranked chunks.

    - vector: nearest-neighbour ranking only
    - keyword: BM25+ over the ready chunks of the store
    - hybrid: BM25+ over the vector candidates (local IDF), fused with RRF

    With keyword_pool="corpus" hybrid scores BM25 over the ready chunks of the
    store instead, and both searches run concurrently.
    """

    def __init__(
        self,
        vector_search: VectorSearch,
        vector_store: VectorStorePort,
        keyword_engine: KeywordSearchEngine | None = None,
        fusion: RankFusionEngine | None = None,
        reranking: RerankingEngine | None = None,
        telemetry: TelemetryPort | None = None,
        keyword_pool: str = "vector",
        keyword_pool_limit: int = DEFAULT_KEYWORD_POOL_LIMIT,
    ) -> None:
        if keyword_pool not in ("vector", "corpus"):
            raise ValidationError(f"unknown keyword pool '{keyword_pool}'")
        self.vector_search = vector_search
        self.vector_store = vector_store
        self.keyword_engine = keyword_engine or KeywordSearchEngine()
        self.fusion = fusion
        self.reranking = reranking
        self.telemetry = telemetry or NullTelemetry()
        self.keyword_pool = keyword_pool
        self.keyword_pool_limit = keyword_pool_limit

    async def _scroll_ready(self) -> list[VectorHit]:
        try:
            return await self.vector_store.scroll_ready(self.keyword_pool_limit)
        except DomainError:
            raise
        except Exception as ex:
            raise VectorStoreError(f"scroll failed: {ex}") from ex

    async def _candidate_pools(
        self, query: str, options: RetrievalOptions
    ) -> tuple[list[VectorHit], list[VectorHit]]:
        """(vector hits, keyword pool) for the requested strategy."""
        if options.strategy == "vector":
            return await self.vector_search.search_hits(query, options.top_k), []
        if options.strategy == "keyword":
            return [], await self._scroll_ready()
        if self.keyword_pool == "corpus":
            vector_hits, pool = await asyncio.gather(
                self.vector_search.search_hits(query, options.top_k), self._scroll_ready()
            )
            return vector_hits, pool
        vector_hits = await self.vector_search.search_hits(query, options.top_k)
        return vector_hits, vector_hits

    def _keyword_ranking(
        self, query: str, pool: Sequence[VectorHit], options: RetrievalOptions
    ) -> list[RankedCandidate]:
        if not pool:
            return []
        sample = f"{query} {pool[0].payload.get('content', '')}"
        language = resolve_language(options.language, sample)
        documents = [(h.id, str(h.payload.get("content", ""))) for h in pool]
        return self.keyword_engine.rank(query, documents, language)

    async def retrieve(
        self, query: str, options: RetrievalOptions | None = None
    ) -> list[RetrievedChunk]:
        opts = options or RetrievalOptions()
        if not query or not query.strip():
            raise ValidationError("query must not be empty")
        if opts.top_k <= 0:
            return []

        started = time.perf_counter()
        vector_hits, pool = await self._candidate_pools(query, opts)
        payloads: dict[str, Mapping[str, Any]] = {h.id: h.payload for h in pool}
        payloads.update({h.id: h.payload for h in vector_hits})

        fusion = self.fusion or RankFusionEngine(rrf_k=opts.rrf_k)
        fused = fusion.fuse(
            opts.strategy,
            to_ranking(vector_hits),
            self._keyword_ranking(query, pool, opts),
            top_k=opts.top_k,
            min_score=opts.effective_min_score(),
        )
        chunks = [chunk_from_payload(f.id, payloads[f.id], f, opts.strategy) for f in fused]

        if opts.use_reranker and self.reranking is not None and chunks:
            reranked = await self.reranking.rerank(
                query,
                chunks,
                RerankerOptions(
                    strategy=opts.reranker_strategy,
                    top_k=len(chunks),
                    min_score=0.0,
                    language=opts.language,
                ),
            )
            chunks = [r.chunk for r in reranked]

        latency_ms = (time.perf_counter() - started) * 1000.0
        self.telemetry.observe(
            "rag.retrieval.latency_ms", latency_ms, {"strategy": opts.strategy}
        )
        logger.info(
            "retrieval.completed",
            strategy=opts.strategy,
            vector_candidates=len(vector_hits),
            keyword_pool=len(pool),
            returned=len(chunks),
            latency_ms=round(latency_ms, 2),
        )
        return chunks
