from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from agentic_rag.domain.models import VectorHit

__all__ = ["VectorHit", "VectorStorePort"]


@runtime_checkable
class VectorStorePort(Protocol):
    """Read side of the chunk index.

    Payloads carry at least: chunk_id, document_id, document_title, content,
    status. An empty result (or a missing collection) means "nothing indexed".
    """

    async def search(
        self, query_vector: Sequence[float], top_k: int = 10, only_ready: bool = True
    ) -> list[VectorHit]: ...

    async def scroll_ready(self, limit: int = 1000) -> list[VectorHit]: ...
