"""Pure domain functions for reranking operations.

Why: These are deterministic, pure functions with no I/O or external
dependencies. They belong in the domain layer for unit testing without
infrastructure concerns.

Functions:
- clamp01: Clip a score into [0,1]
- ensemble_score: Weighted linear combination of three scorers
- listwise_rank_score: Convert a listwise rank into a score
- normalize_by_max: Divide win counts by the largest count
- sort_by_scores_desc: Stable descending sort by scores
- finalize: Sort, filter by min score and truncate reranked results
- reranker_metrics: nDCG / MRR / precision / rank change of a reranked list
"""

from __future__ import annotations

import math
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar

from agentic_rag.domain.models import RerankedResult

T = TypeVar("T")


@dataclass(frozen=True)
class EnsembleWeights:
    cross_encoder: float = 0.4
    llm: float = 0.4
    original: float = 0.2

    @property
    def total(self) -> float:
        return self.cross_encoder + self.llm + self.original


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def ensemble_score(
    cross_score: float,
    llm_score: float,
    original_score: float,
    weights: EnsembleWeights | None = None,
) -> float:
    """Weighted combination normalized by the weight sum.

    Examples:
        >>> round(ensemble_score(0.8, 0.6, 0.5), 2)
        0.66
    """
    w = weights or EnsembleWeights()
    total = w.total
    if total <= 0:
        return original_score
    raw = cross_score * w.cross_encoder + llm_score * w.llm + original_score * w.original
    return raw / total


def listwise_rank_score(rank: int, score: float | None) -> float:
    """Explicit score wins; otherwise rank 1 -> 1.0, each further rank -0.1."""
    if score:
        return clamp01(score)
    return clamp01(1.0 - (rank - 1) * 0.1)


def normalize_by_max(counts: Mapping[str, float]) -> dict[str, float]:
    """Scale win counts by the maximum count (denominator never below 1)."""
    if not counts:
        return {}
    denom = max(max(counts.values()), 1.0)
    return {k: v / denom for k, v in counts.items()}


def sort_by_scores_desc(items: Sequence[T], scores: Sequence[float]) -> list[T]:
    """Stable sort (descending) by scores, pure & deterministic.

    Examples:
        >>> sort_by_scores_desc(["a", "b", "c"], [0.2, 0.9, 0.5])
        ['b', 'c', 'a']
    """
    pairs: list[tuple[float, T]] = list(zip(scores, items, strict=True))
    pairs.sort(key=lambda p: p[0], reverse=True)
    return [it for _, it in pairs]


def finalize(results: Sequence[RerankedResult], min_score: float, top_k: int) -> list[RerankedResult]:
    """Shared tail of every strategy: sort desc, drop below min_score, keep top_k."""
    ordered = sort_by_scores_desc(list(results), [r.reranked_score for r in results])
    return [r for r in ordered if r.reranked_score >= min_score][: max(top_k, 0)]


@dataclass(frozen=True)
class RerankerMetrics:
    ndcg: float
    mrr: float
    precision: float
    rank_change: float


def reranker_metrics(
    results: Sequence[RerankedResult], relevant_ids: Collection[str]
) -> RerankerMetrics:
    """Binary-relevance quality of a reranked list.

    rank_change is the mean absolute move between original and new position.
    """
    if not results:
        return RerankerMetrics(ndcg=0.0, mrr=0.0, precision=0.0, rank_change=0.0)

    dcg = sum(
        (1.0 if r.chunk_id in relevant_ids else 0.0) / math.log2(i + 2)
        for i, r in enumerate(results)
    )
    ideal_hits = min(len(relevant_ids), len(results))
    idcg = sum(1.0 / math.log2(i + 2) for i in range(ideal_hits))
    ndcg = dcg / idcg if idcg > 0 else 0.0

    mrr = 0.0
    for i, r in enumerate(results):
        if r.chunk_id in relevant_ids:
            mrr = 1.0 / (i + 1)
            break

    precision = sum(1 for r in results if r.chunk_id in relevant_ids) / len(results)
    rank_change = sum(abs((i + 1) - r.original_rank) for i, r in enumerate(results)) / len(results)
    return RerankerMetrics(ndcg=ndcg, mrr=mrr, precision=precision, rank_change=rank_change)
