# agentic_rag/application/use_cases/vector_search.py
from __future__ import annotations

from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.application.ports.vector_store_port import VectorStorePort
from agentic_rag.domain.errors import DomainError, EmbeddingError, ValidationError, VectorStoreError
from agentic_rag.domain.models import RankedCandidate, VectorHit

DEFAULT_OVERFETCH_FACTOR = 3


class VectorSearch:
    """
    Nearest-neighbour search over ready chunks.

    Asks the store for top_k * overfetch_factor hits to leave headroom for
    fusion, then ranks them by score (ties broken by id) with 1-based ranks.
    An empty index yields an empty list.
    """

    def __init__(
        self,
        embedding: EmbeddingPort,
        vector_store: VectorStorePort,
        overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
    ) -> None:
        if overfetch_factor < 1:
            raise ValidationError("overfetch_factor must be >= 1")
        self.embedding = embedding
        self.vector_store = vector_store
        self.overfetch_factor = overfetch_factor

    async def search_hits(self, query: str, top_k: int) -> list[VectorHit]:
        if top_k <= 0:
            return []

        try:
            q_vec = await self.embedding.embed_query(query)
        except DomainError:
            raise
        except Exception as ex:
            raise EmbeddingError(f"embedding failed: {ex}") from ex

        try:
            hits = await self.vector_store.search(
                q_vec, top_k * self.overfetch_factor, only_ready=True
            )
        except DomainError:
            raise
        except Exception as ex:
            raise VectorStoreError(f"vector search failed: {ex}") from ex

        return sorted(hits, key=lambda h: (-h.score, h.id))

    async def search(self, query: str, top_k: int) -> list[RankedCandidate]:
        hits = await self.search_hits(query, top_k)
        return to_ranking(hits)


def to_ranking(hits: list[VectorHit]) -> list[RankedCandidate]:
    """Hits must already be in rank order."""
    return [RankedCandidate(id=h.id, rank=i + 1, score=h.score) for i, h in enumerate(hits)]
