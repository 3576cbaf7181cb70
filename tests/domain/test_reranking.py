"""Tests for pure reranking functions in the domain layer."""

import math

import pytest

from agentic_rag.domain.models import RerankedResult, RetrievedChunk
from agentic_rag.domain.services.reranking import (
    EnsembleWeights,
    clamp01,
    ensemble_score,
    finalize,
    listwise_rank_score,
    normalize_by_max,
    reranker_metrics,
    sort_by_scores_desc,
)


def make_result(chunk_id: str, score: float, original_rank: int = 1) -> RerankedResult:
    chunk = RetrievedChunk(
        chunk_id=chunk_id, document_id="doc", document_title="Title", content="text"
    )
    return RerankedResult(
        chunk=chunk, original_rank=original_rank, reranked_score=score, strategy="fast_local"
    )


def test_clamp01_bounds():
    assert clamp01(-0.5) == 0.0
    assert clamp01(0.3) == 0.3
    assert clamp01(4.0) == 1.0


def test_ensemble_default_weights():
    """0.4*cross + 0.4*llm + 0.2*original."""
    assert ensemble_score(0.8, 0.6, 0.5) == pytest.approx(0.66)


def test_ensemble_normalizes_by_weight_sum():
    weights = EnsembleWeights(cross_encoder=1.0, llm=1.0, original=0.0)
    assert ensemble_score(0.8, 0.6, 0.5, weights) == pytest.approx(0.7)


def test_ensemble_zero_weights_keep_original_score():
    weights = EnsembleWeights(cross_encoder=0.0, llm=0.0, original=0.0)
    assert ensemble_score(0.8, 0.6, 0.5, weights) == 0.5


def test_listwise_rank_score_from_rank():
    assert listwise_rank_score(1, None) == 1.0
    assert listwise_rank_score(3, None) == pytest.approx(0.8)
    assert listwise_rank_score(15, None) == 0.0


def test_listwise_rank_score_prefers_explicit_score():
    assert listwise_rank_score(2, 0.95) == 0.95
    assert listwise_rank_score(1, 1.7) == 1.0


def test_listwise_rank_score_zero_score_falls_back_to_rank():
    assert listwise_rank_score(2, 0.0) == pytest.approx(0.9)


def test_normalize_by_max():
    assert normalize_by_max({"a": 2, "b": 1, "c": 0}) == {"a": 1.0, "b": 0.5, "c": 0.0}


def test_normalize_by_max_all_zero_and_empty():
    assert normalize_by_max({"a": 0, "b": 0}) == {"a": 0.0, "b": 0.0}
    assert normalize_by_max({}) == {}


def test_sort_by_scores_desc_is_stable():
    assert sort_by_scores_desc(["a", "b", "c", "d"], [0.5, 0.9, 0.5, 0.1]) == ["b", "a", "c", "d"]


def test_sort_by_scores_desc_length_mismatch_raises():
    with pytest.raises(ValueError):
        sort_by_scores_desc(["a", "b"], [0.1])


def test_finalize_sorts_filters_and_truncates():
    results = [make_result("a", 0.2), make_result("b", 0.9), make_result("c", 0.5), make_result("d", 0.9)]
    final = finalize(results, min_score=0.3, top_k=2)
    assert [r.chunk_id for r in final] == ["b", "d"]


def test_finalize_keeps_every_result_at_zero_threshold():
    results = [make_result("a", 0.0), make_result("b", 0.1)]
    assert [r.chunk_id for r in finalize(results, min_score=0.0, top_k=10)] == ["b", "a"]


def test_reranker_metrics_single_relevant():
    results = [make_result("a", 0.9, 2), make_result("b", 0.8, 1), make_result("c", 0.1, 3)]
    metrics = reranker_metrics(results, {"b"})
    assert metrics.ndcg == pytest.approx(1 / math.log2(3))
    assert metrics.mrr == 0.5
    assert metrics.precision == pytest.approx(1 / 3)
    assert metrics.rank_change == pytest.approx(2 / 3)


def test_reranker_metrics_empty():
    metrics = reranker_metrics([], {"a"})
    assert (metrics.ndcg, metrics.mrr, metrics.precision, metrics.rank_change) == (0.0, 0.0, 0.0, 0.0)
