"""Reranker port for the fast local relevance classifier.

Why (SAM): Application defines the interface (port), infrastructure provides
concrete adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class RerankerPort(ABC):
    """Port for scoring query-passage pairs with a cross-encoder.

    The call is synchronous (CPU bound); the reranking engine runs it in a
    worker thread.
    """

    @abstractmethod
    def score(self, query: str, candidates: Sequence[str]) -> list[float]:
        """Score query-candidate pairs for relevance.

        Args:
            query: Query text
            candidates: Candidate texts to score against query

        Returns:
            List of scores (higher = more relevant). Length matches candidates.

        Raises:
            RuntimeError: If scoring fails (the engine falls back to fused scores)
        """
        ...
