# agentic_rag/domain/services/fusion.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from agentic_rag.domain.errors import ValidationError
from agentic_rag.domain.models import RankedCandidate

FusionStrategy = Literal["vector", "keyword", "hybrid"]

DEFAULT_RRF_K = 60


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[RankedCandidate]], k: int = DEFAULT_RRF_K
) -> dict[str, float]:
    """
    Reciprocal Rank Fusion over ranks (never raw scores):
        fused(id) = sum over rankings containing id of 1 / (k + rank)

    An id missing from a ranking contributes 0 for that ranking.
    The returned dict preserves first-seen order of ids across rankings.
    """
    if k < 0:
        raise ValidationError("rrf k must be >= 0")
    fused: dict[str, float] = {}
    for ranking in rankings:
        for cand in ranking:
            fused[cand.id] = fused.get(cand.id, 0.0) + 1.0 / (k + cand.rank)
    return fused


@dataclass(frozen=True)
class FusedScore:
    id: str
    vector_score: float
    bm25_score: float
    fused_score: float


@dataclass(frozen=True)
class RankFusionEngine:
    """Merges a vector ranking and a keyword ranking into one ordered list.

    hybrid  -> RRF over ranks
    vector  -> fused = raw cosine score
    keyword -> fused = bm25 / max(max_bm25, 1) when normalize_keyword is set

    Ties are broken by first-seen order (vector ranking first, then keyword).
    """

    rrf_k: int = DEFAULT_RRF_K
    normalize_keyword: bool = True

    def fuse(
        self,
        strategy: FusionStrategy,
        vector_ranking: Sequence[RankedCandidate],
        keyword_ranking: Sequence[RankedCandidate],
        top_k: int,
        min_score: float = 0.0,
    ) -> list[FusedScore]:
        if top_k <= 0:
            return []

        vector_scores = {c.id: c.score for c in vector_ranking}
        bm25_scores = {c.id: c.score for c in keyword_ranking}

        if strategy == "hybrid":
            fused = reciprocal_rank_fusion([vector_ranking, keyword_ranking], k=self.rrf_k)
            scores = [
                FusedScore(
                    id=id_,
                    vector_score=vector_scores.get(id_, 0.0),
                    bm25_score=bm25_scores.get(id_, 0.0),
                    fused_score=value,
                )
                for id_, value in fused.items()
            ]
        elif strategy == "vector":
            scores = [
                FusedScore(id=c.id, vector_score=c.score, bm25_score=0.0, fused_score=c.score)
                for c in vector_ranking
            ]
        elif strategy == "keyword":
            denom = 1.0
            if self.normalize_keyword and keyword_ranking:
                denom = max(max(c.score for c in keyword_ranking), 1.0)
            scores = [
                FusedScore(
                    id=c.id, vector_score=0.0, bm25_score=c.score, fused_score=c.score / denom
                )
                for c in keyword_ranking
            ]
        else:
            raise ValidationError(f"unknown fusion strategy '{strategy}'")

        # sorted() is stable, so equal fused scores keep first-seen order.
        ordered = sorted(scores, key=lambda s: s.fused_score, reverse=True)
        return [s for s in ordered if s.fused_score >= min_score][:top_k]
