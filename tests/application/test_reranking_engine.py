"""Tests for the RerankingEngine strategies and their fallbacks.

Scorer failures never escape rerank(); the affected candidates keep their
fused score.
"""

import math
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import pytest

from agentic_rag.application.dto.retrieval_dto import RerankerOptions
from agentic_rag.application.ports.llm_port import ChatMessage, LLMPort, LLMResponse, ToolSpec
from agentic_rag.application.ports.reranker_port import RerankerPort
from agentic_rag.application.use_cases.rerank_candidates import (
    MAX_TOURNAMENT_COMPARISONS,
    RerankingEngine,
)
from agentic_rag.domain.models import RetrievedChunk

# --- Fake Ports for Testing ---


@dataclass
class FakeReranker(RerankerPort):
    scores: list[float] = field(default_factory=list)
    should_fail: bool = False

    def score(self, query: str, candidates: Sequence[str]) -> list[float]:
        if self.should_fail:
            raise RuntimeError("Fake reranker failure")
        return self.scores[: len(candidates)]


@dataclass
class ScriptedLLM(LLMPort):
    """Answers every prompt through a reply function; records prompts."""

    reply: Callable[[str], str]
    prompts: list[str] = field(default_factory=list)

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        return LLMResponse(text=self.reply(prompt))


@dataclass
class FakeTelemetry:
    counters: list[str] = field(default_factory=list)

    def incr(self, name: str, tags: dict | None = None) -> None:
        self.counters.append(name)

    def observe(self, name: str, value: float, tags: dict | None = None) -> None:
        pass


def make_chunks(*contents: str, fused: Sequence[float] | None = None) -> list[RetrievedChunk]:
    scores = fused or [0.5] * len(contents)
    return [
        RetrievedChunk(
            chunk_id=f"c{i + 1}",
            document_id=f"d{i + 1}",
            document_title=f"Paper {i + 1}",
            content=content,
            fused_score=score,
        )
        for i, (content, score) in enumerate(zip(contents, scores))
    ]


def opts(strategy: str, **overrides) -> RerankerOptions:
    values = {"strategy": strategy, "top_k": 10, "min_score": 0.0, "language": "en"}
    values.update(overrides)
    return RerankerOptions(**values)


# --- Tests: fast local ---


@pytest.mark.asyncio
async def test_fast_local_reorders_by_cross_encoder():
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[0.1, 0.9, 0.5]))
    chunks = make_chunks("one", "two", "three")

    results = await engine.rerank("query", chunks, opts("fast_local"))

    assert [r.chunk_id for r in results] == ["c2", "c3", "c1"]
    assert [r.original_rank for r in results] == [2, 3, 1]
    assert results[0].reranked_score == 0.9
    assert results[0].strategy == "fast_local"


@pytest.mark.asyncio
async def test_fast_local_whole_failure_keeps_fused_order():
    telemetry = FakeTelemetry()
    engine = RerankingEngine(cross_encoder=FakeReranker(should_fail=True), telemetry=telemetry)
    chunks = make_chunks("one", "two", fused=[0.4, 0.8])

    results = await engine.rerank("query", chunks, opts("fast_local"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c2", 0.8), ("c1", 0.4)]
    assert telemetry.counters == ["rag.rerank.fallbacks"]


@pytest.mark.asyncio
async def test_fast_local_length_mismatch_falls_back():
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[0.9]))
    chunks = make_chunks("one", "two", fused=[0.4, 0.8])

    results = await engine.rerank("query", chunks, opts("fast_local"))

    assert [r.reranked_score for r in results] == [0.8, 0.4]


@pytest.mark.asyncio
async def test_fast_local_non_finite_item_keeps_its_fused_score():
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[0.9, math.nan]))
    chunks = make_chunks("one", "two", fused=[0.4, 0.3])

    results = await engine.rerank("query", chunks, opts("fast_local"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c1", 0.9), ("c2", 0.3)]


@pytest.mark.asyncio
async def test_missing_cross_encoder_returns_seeds():
    engine = RerankingEngine()
    results = await engine.rerank("query", make_chunks("one"), opts("fast_local"))
    assert results[0].reranked_score == 0.5


# --- Tests: LLM pointwise ---


@pytest.mark.asyncio
async def test_pointwise_detailed_parses_json_then_number():
    def reply(prompt: str) -> str:
        if "alpha" in prompt:
            return '{"score": 0.9, "reasoning": "direct answer"}'
        return "Score 0.4, loosely related"

    engine = RerankingEngine(llm=ScriptedLLM(reply))
    chunks = make_chunks("alpha passage", "beta passage")

    results = await engine.rerank("what is it", chunks, opts("llm_pointwise"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c1", 0.9), ("c2", 0.4)]
    assert results[0].reasoning == "direct answer"
    assert results[1].reasoning is None


@pytest.mark.asyncio
async def test_pointwise_clamps_out_of_range_scores():
    engine = RerankingEngine(llm=ScriptedLLM(lambda _: '{"score": 3, "reasoning": "x"}'))
    results = await engine.rerank("q", make_chunks("alpha"), opts("llm_pointwise"))
    assert results[0].reranked_score == 1.0


@pytest.mark.asyncio
async def test_pointwise_bare_score_mode():
    def reply(prompt: str) -> str:
        return "0.7" if "alpha" in prompt else "very relevant"

    engine = RerankingEngine(llm=ScriptedLLM(reply))
    chunks = make_chunks("alpha", "beta", fused=[0.2, 0.35])

    results = await engine.rerank("q", chunks, opts("llm_pointwise", detailed=False))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c1", 0.7), ("c2", 0.35)]


@pytest.mark.asyncio
async def test_pointwise_call_failure_keeps_fused_score():
    def reply(prompt: str) -> str:
        if "beta" in prompt:
            raise TimeoutError("provider timeout")
        return '{"score": 0.8, "reasoning": "ok"}'

    engine = RerankingEngine(llm=ScriptedLLM(reply))
    chunks = make_chunks("alpha", "beta", fused=[0.2, 0.6])

    results = await engine.rerank("q", chunks, opts("llm_pointwise"))

    assert {r.chunk_id: r.reranked_score for r in results} == {"c1": 0.8, "c2": 0.6}


# --- Tests: LLM listwise ---


@pytest.mark.asyncio
async def test_listwise_applies_rankings_and_ignores_unknown_ids():
    rankings = (
        '{"rankings": ['
        '{"id": "doc_2", "rank": 1, "score": 0.95, "reasoning": "best"},'
        '{"id": "doc_0", "rank": 2},'
        '{"id": "doc_9", "rank": 3, "score": 0.99}'
        "]}"
    )
    llm = ScriptedLLM(lambda _: rankings)
    engine = RerankingEngine(llm=llm)
    chunks = make_chunks("one", "two", "three", fused=[0.5, 0.05, 0.5])

    results = await engine.rerank("q", chunks, opts("llm_listwise"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [
        ("c3", 0.95),
        ("c1", pytest.approx(0.9)),
        ("c2", 0.05),
    ]
    assert results[0].reasoning == "best"
    assert "Document 1 (id: doc_0)" in llm.prompts[0]


@pytest.mark.asyncio
async def test_listwise_malformed_output_keeps_fused_order():
    engine = RerankingEngine(llm=ScriptedLLM(lambda _: "I would put doc 2 first"))
    chunks = make_chunks("one", "two", fused=[0.3, 0.7])

    results = await engine.rerank("q", chunks, opts("llm_listwise"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c2", 0.7), ("c1", 0.3)]


# --- Tests: pairwise tournament ---


def test_draw_pairs_caps_comparisons_and_avoids_self_pairs():
    engine = RerankingEngine(rng=random.Random(7))
    pairs = engine.draw_pairs(15)
    assert len(pairs) == MAX_TOURNAMENT_COMPARISONS
    assert all(a != b for a, b in pairs)
    assert len(engine.draw_pairs(3)) == 6


@pytest.mark.asyncio
async def test_tournament_is_deterministic_with_seeded_rng():
    chunks = make_chunks("one", "two", "three", "four", fused=[0.1, 0.2, 0.3, 0.4])

    async def run() -> list[tuple[str, float]]:
        engine = RerankingEngine(llm=ScriptedLLM(lambda _: "A"), rng=random.Random(42))
        results = await engine.rerank("q", chunks, opts("pairwise_tournament"))
        return [(r.chunk_id, r.reranked_score) for r in results]

    first = await run()
    second = await run()

    assert first == second
    assert all(0.0 <= score <= 1.0 for _, score in first)
    assert first[0][1] == 1.0


@pytest.mark.asyncio
async def test_tournament_single_candidate_scores_one():
    llm = ScriptedLLM(lambda _: "A")
    engine = RerankingEngine(llm=llm)

    results = await engine.rerank("q", make_chunks("only", fused=[0.2]), opts("pairwise_tournament"))

    assert results[0].reranked_score == 1.0
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_tournament_invalid_answers_keep_fused_scores():
    engine = RerankingEngine(llm=ScriptedLLM(lambda _: "neither"), rng=random.Random(1))
    chunks = make_chunks("one", "two", fused=[0.3, 0.6])

    results = await engine.rerank("q", chunks, opts("pairwise_tournament"))

    assert [(r.chunk_id, r.reranked_score) for r in results] == [("c2", 0.6), ("c1", 0.3)]


# --- Tests: ensemble ---


@pytest.mark.asyncio
async def test_ensemble_combines_cross_listwise_and_fused():
    rankings = '{"rankings": [{"id": "doc_0", "rank": 1, "score": 0.6}, {"id": "doc_1", "rank": 2, "score": 0.4}]}'
    engine = RerankingEngine(
        cross_encoder=FakeReranker(scores=[0.8, 0.2]), llm=ScriptedLLM(lambda _: rankings)
    )
    chunks = make_chunks("one", "two", fused=[0.5, 0.5])

    results = await engine.rerank("q", chunks, opts("ensemble"))

    assert [r.chunk_id for r in results] == ["c1", "c2"]
    assert results[0].reranked_score == pytest.approx(0.66)
    assert results[1].reranked_score == pytest.approx(0.34)


@pytest.mark.asyncio
async def test_ensemble_without_cross_encoder_uses_fused_score_for_it():
    rankings = '{"rankings": [{"id": "doc_0", "rank": 1, "score": 0.6}]}'
    engine = RerankingEngine(llm=ScriptedLLM(lambda _: rankings))

    results = await engine.rerank("q", make_chunks("one", fused=[0.5]), opts("ensemble"))

    # 0.4 * 0.5 + 0.4 * 0.6 + 0.2 * 0.5
    assert results[0].reranked_score == pytest.approx(0.54)


@pytest.mark.asyncio
async def test_ensemble_malformed_listwise_uses_fused_score_for_llm_component():
    telemetry = FakeTelemetry()
    engine = RerankingEngine(
        cross_encoder=FakeReranker(scores=[0.8]),
        llm=ScriptedLLM(lambda _: "not json"),
        telemetry=telemetry,
    )

    results = await engine.rerank("q", make_chunks("one", fused=[0.5]), opts("ensemble"))

    # 0.4 * 0.8 + 0.4 * 0.5 + 0.2 * 0.5
    assert results[0].reranked_score == pytest.approx(0.62)
    assert "rag.rerank.fallbacks" in telemetry.counters


@pytest.mark.asyncio
async def test_ensemble_passage_missing_from_rankings_keeps_fused_llm_component():
    rankings = '{"rankings": [{"id": "doc_0", "rank": 1, "score": 0.6}]}'
    engine = RerankingEngine(
        cross_encoder=FakeReranker(scores=[0.8, 0.2]), llm=ScriptedLLM(lambda _: rankings)
    )
    chunks = make_chunks("one", "two", fused=[0.5, 0.3])

    results = await engine.rerank("q", chunks, opts("ensemble"))

    by_id = {r.chunk_id: r.reranked_score for r in results}
    assert by_id["c1"] == pytest.approx(0.66)
    # 0.4 * 0.2 + 0.4 * 0.3 + 0.2 * 0.3
    assert by_id["c2"] == pytest.approx(0.26)


# --- Tests: shared behaviour ---


@pytest.mark.asyncio
async def test_none_strategy_returns_seeds_unfiltered():
    engine = RerankingEngine()
    chunks = make_chunks("one", "two", fused=[0.01, 0.02])

    results = await engine.rerank("q", chunks, opts("none", min_score=0.5, top_k=1))

    assert [(r.chunk_id, r.reranked_score, r.original_rank) for r in results] == [
        ("c1", 0.01, 1),
        ("c2", 0.02, 2),
    ]


@pytest.mark.asyncio
async def test_empty_input_returns_empty_list():
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[]))
    assert await engine.rerank("q", [], opts("fast_local")) == []


@pytest.mark.asyncio
async def test_min_score_and_top_k_are_applied():
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[0.9, 0.2, 0.7, 0.8]))
    chunks = make_chunks("a", "b", "c", "d")

    results = await engine.rerank("q", chunks, opts("fast_local", min_score=0.5, top_k=2))

    assert [r.chunk_id for r in results] == ["c1", "c4"]
