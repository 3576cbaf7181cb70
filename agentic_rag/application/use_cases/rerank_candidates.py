# agentic_rag/application/use_cases/rerank_candidates.py
from __future__ import annotations

import asyncio
import math
import random
import re
from collections.abc import Sequence

import structlog

from agentic_rag.application.dto.retrieval_dto import RerankerOptions, RerankerStrategy
from agentic_rag.application.ports.llm_port import LLMPort
from agentic_rag.application.ports.reranker_port import RerankerPort
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.domain.errors import ScorerFailure
from agentic_rag.domain.models import RerankedResult, RetrievedChunk
from agentic_rag.domain.services.parsing import (
    first_number,
    parse_bare_score,
    parse_json_object,
)
from agentic_rag.domain.services.query_expansion import detect_query_language
from agentic_rag.domain.services.reranking import (
    clamp01,
    ensemble_score,
    finalize,
    listwise_rank_score,
    normalize_by_max,
)
from agentic_rag.domain.services.tokenization import Language

logger = structlog.get_logger(__name__)

CROSS_ENCODER_MAX_CHARS = 512
LISTWISE_MAX_CHARS = 300
TOURNAMENT_MAX_CHARS = 500
MAX_TOURNAMENT_COMPARISONS = 20

_DOC_ID_RE = re.compile(r"doc_(\d+)")

_POINTWISE_SYSTEM = {
    "id": (
        "Anda adalah penilai relevansi dokumen akademik. Tugas Anda adalah menilai seberapa "
        "relevan sebuah bagian dokumen terhadap pertanyaan pengguna.\n\n"
        "Berikan skor dari 0.0 hingga 1.0:\n"
        "- 1.0: Sangat relevan, langsung menjawab pertanyaan\n"
        "- 0.7-0.9: Relevan, berisi informasi yang berguna\n"
        "- 0.4-0.6: Cukup relevan, berisi informasi terkait\n"
        "- 0.1-0.3: Sedikit relevan, hanya menyinggung topik\n"
        "- 0.0: Tidak relevan sama sekali"
    ),
    "en": (
        "You are an academic document relevance assessor. Your task is to score how relevant "
        "a document passage is to a user's question.\n\n"
        "Provide a score from 0.0 to 1.0:\n"
        "- 1.0: Highly relevant, directly answers the question\n"
        "- 0.7-0.9: Relevant, contains useful information\n"
        "- 0.4-0.6: Moderately relevant, contains related information\n"
        "- 0.1-0.3: Slightly relevant, only touches on the topic\n"
        "- 0.0: Not relevant at all"
    ),
}
_POINTWISE_REASONING_HINT = {
    "id": "Berikan juga alasan singkat (1 kalimat) dalam bahasa Indonesia.",
    "en": "Also provide a brief reasoning (1 sentence).",
}
_LISTWISE_SYSTEM = {
    "id": (
        "Anda adalah penilai relevansi dokumen akademik. Tugas Anda adalah mengurutkan dokumen "
        "berdasarkan relevansinya terhadap pertanyaan.\n\n"
        "Urutkan dokumen dari yang paling relevan (rank 1) hingga paling tidak relevan.\n"
        'Respond dalam format JSON: {"rankings": [{"id": "doc_X", "rank": 1, "score": 0.95, '
        '"reasoning": "..."}, ...]}'
    ),
    "en": (
        "You are an academic document relevance assessor. Your task is to rank documents by "
        "their relevance to the question.\n\n"
        "Rank documents from most relevant (rank 1) to least relevant.\n"
        'Respond in JSON format: {"rankings": [{"id": "doc_X", "rank": 1, "score": 0.95, '
        '"reasoning": "..."}, ...]}'
    ),
}
_PAIRWISE_SYSTEM = {
    "id": (
        "Bandingkan dua bagian dokumen dan tentukan mana yang lebih relevan untuk menjawab "
        'pertanyaan. Jawab hanya dengan "A" atau "B".'
    ),
    "en": (
        "Compare two document passages and determine which is more relevant for answering "
        'the question. Respond with only "A" or "B".'
    ),
}


class RerankingEngine:
    """
    Re-scores fused candidates with a selectable strategy.

    Every result starts with reranked_score = fused_score and original_rank =
    position + 1; a scorer failure leaves (or restores) that seed. No scorer
    exception escapes rerank().
    """

    def __init__(
        self,
        cross_encoder: RerankerPort | None = None,
        llm: LLMPort | None = None,
        rng: random.Random | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.cross_encoder = cross_encoder
        self.llm = llm
        self.rng = rng or random.Random()
        self.telemetry = telemetry or NullTelemetry()

    async def rerank(
        self,
        query: str,
        chunks: Sequence[RetrievedChunk],
        options: RerankerOptions | None = None,
    ) -> list[RerankedResult]:
        opts = options or RerankerOptions()
        results = [
            RerankedResult(
                chunk=c, original_rank=i + 1, reranked_score=c.fused_score, strategy=opts.strategy
            )
            for i, c in enumerate(chunks)
        ]
        if opts.strategy == "none" or not results:
            return results

        language: Language = (
            detect_query_language(query) if opts.language == "auto" else opts.language
        )

        if opts.strategy == "fast_local":
            await self._apply_fast_local(query, results)
        elif opts.strategy == "llm_pointwise":
            await self._apply_pointwise(query, results, language, opts.detailed)
        elif opts.strategy == "llm_listwise":
            await self._apply_listwise(query, results, language)
        elif opts.strategy == "pairwise_tournament":
            await self._apply_tournament(query, results, language)
        elif opts.strategy == "ensemble":
            await self._apply_ensemble(query, results, language, opts)
        else:
            self._fallback(opts.strategy, f"unknown strategy '{opts.strategy}'")

        return finalize(results, opts.min_score, opts.top_k)

    # ---- fallbacks ----

    def _fallback(self, strategy: RerankerStrategy | str, detail: str, item: int | None = None) -> None:
        failure = ScorerFailure(strategy=strategy, detail=detail)
        logger.warning(
            "rerank.fallback", strategy=failure.strategy, item=item, detail=failure.detail
        )
        self.telemetry.incr("rag.rerank.fallbacks", {"strategy": strategy})

    # ---- fast local ----

    async def _cross_encoder_scores(
        self, query: str, results: Sequence[RerankedResult]
    ) -> list[float] | None:
        """Per-item scores, or None when the whole scorer failed."""
        if self.cross_encoder is None:
            self._fallback("fast_local", "no cross-encoder configured")
            return None
        passages = [r.chunk.content[:CROSS_ENCODER_MAX_CHARS] for r in results]
        try:
            raw = await asyncio.to_thread(self.cross_encoder.score, query, passages)
        except Exception as ex:  # noqa: BLE001
            self._fallback("fast_local", str(ex))
            return None
        if len(raw) != len(results):
            self._fallback("fast_local", f"expected {len(results)} scores, got {len(raw)}")
            return None

        scores: list[float] = []
        for i, (value, r) in enumerate(zip(raw, results, strict=True)):
            try:
                score = float(value)
            except (TypeError, ValueError):
                score = math.nan
            if math.isnan(score) or math.isinf(score):
                self._fallback("fast_local", "non-finite score", item=i)
                score = r.fused_score
            scores.append(score)
        return scores

    async def _apply_fast_local(self, query: str, results: list[RerankedResult]) -> None:
        scores = await self._cross_encoder_scores(query, results)
        if scores is None:
            return
        for r, score in zip(results, scores, strict=True):
            r.reranked_score = score

    # ---- LLM pointwise ----

    async def _pointwise_one(
        self,
        llm: LLMPort,
        query: str,
        result: RerankedResult,
        language: Language,
        detailed: bool,
    ) -> tuple[float, str | None]:
        system = _POINTWISE_SYSTEM[language]
        if detailed:
            system = f"{system}\n\n{_POINTWISE_REASONING_HINT[language]}"
            prompt = (
                f"Question: {query}\n\nPassage: {result.chunk.content}\n\n"
                'Respond in JSON format: {"score": <number>, "reasoning": "<string>"}'
            )
        else:
            prompt = (
                f"Question: {query}\n\nPassage: {result.chunk.content}\n\n"
                "Respond with only the relevance score (0.0-1.0):"
            )

        try:
            text = await llm.generate(
                prompt, system=system, temperature=0.0, max_tokens=150 if detailed else 10
            )
        except Exception as ex:  # noqa: BLE001
            self._fallback("llm_pointwise", str(ex), item=result.original_rank)
            return result.fused_score, None

        if not detailed:
            parsed = parse_bare_score(text, "rerank.pointwise")
            if not parsed.ok:
                self._fallback("llm_pointwise", "unparseable score", item=result.original_rank)
            return parsed.unwrap_or(result.fused_score), None

        obj = parse_json_object(text, "rerank.pointwise")
        if obj.ok and obj.value is not None:
            reasoning = obj.value.get("reasoning")
            try:
                score = clamp01(float(obj.value.get("score") or 0.0))
            except (TypeError, ValueError):
                score = 0.0
            return score, str(reasoning) if reasoning is not None else None

        number = first_number(text, "rerank.pointwise")
        if not number.ok:
            self._fallback("llm_pointwise", "unparseable score", item=result.original_rank)
        return number.unwrap_or(result.fused_score), None

    async def _apply_pointwise(
        self, query: str, results: list[RerankedResult], language: Language, detailed: bool
    ) -> None:
        llm = self.llm
        if llm is None:
            self._fallback("llm_pointwise", "no llm configured")
            return
        scored = await asyncio.gather(
            *(self._pointwise_one(llm, query, r, language, detailed) for r in results)
        )
        for r, (score, reasoning) in zip(results, scored, strict=True):
            r.reranked_score = score
            r.reasoning = reasoning

    # ---- LLM listwise ----

    async def _listwise_scores(
        self, query: str, results: Sequence[RerankedResult], language: Language
    ) -> dict[int, tuple[float, str | None]]:
        """Index -> (score, reasoning) for every passage the model ranked."""
        if self.llm is None:
            self._fallback("llm_listwise", "no llm configured")
            return {}

        passages = "\n\n".join(
            f"Document {i + 1} (id: doc_{i}):\n{r.chunk.content[:LISTWISE_MAX_CHARS]}..."
            for i, r in enumerate(results)
        )
        prompt = f"Question: {query}\n\n{passages}\n\nRank these {len(results)} documents by relevance:"
        try:
            text = await self.llm.generate(
                prompt, system=_LISTWISE_SYSTEM[language], temperature=0.0, max_tokens=500
            )
        except Exception as ex:  # noqa: BLE001
            self._fallback("llm_listwise", str(ex))
            return {}

        parsed = parse_json_object(text, "rerank.listwise")
        if not parsed.ok or parsed.value is None:
            self._fallback("llm_listwise", "malformed rankings")
            return {}
        rankings = parsed.value.get("rankings") or []
        if not isinstance(rankings, list):
            self._fallback("llm_listwise", "rankings is not a list")
            return {}

        scores: dict[int, tuple[float, str | None]] = {}
        for entry in rankings:
            if not isinstance(entry, dict):
                continue
            match = _DOC_ID_RE.search(str(entry.get("id", "")))
            if not match:
                continue
            idx = int(match.group(1))
            if not 0 <= idx < len(results):
                continue
            try:
                rank = int(entry.get("rank") or 1)
                explicit = float(entry["score"]) if entry.get("score") is not None else None
            except (TypeError, ValueError):
                continue
            reasoning = entry.get("reasoning")
            scores[idx] = (
                listwise_rank_score(rank, explicit),
                str(reasoning) if reasoning is not None else None,
            )
        return scores

    async def _apply_listwise(
        self, query: str, results: list[RerankedResult], language: Language
    ) -> None:
        for idx, (score, reasoning) in (await self._listwise_scores(query, results, language)).items():
            results[idx].reranked_score = score
            results[idx].reasoning = reasoning

    # ---- pairwise tournament ----

    def draw_pairs(self, n: int) -> list[tuple[int, int]]:
        """min(2n, 20) ordered pairs of distinct indices from the engine's rng."""
        pairs: list[tuple[int, int]] = []
        for _ in range(min(2 * n, MAX_TOURNAMENT_COMPARISONS)):
            a = self.rng.randrange(n)
            b = self.rng.randrange(n)
            while b == a:
                b = self.rng.randrange(n)
            pairs.append((a, b))
        return pairs

    async def _compare(
        self, llm: LLMPort, query: str, a: RerankedResult, b: RerankedResult, language: Language
    ) -> str | None:
        prompt = (
            f"Question: {query}\n\n"
            f"Passage A:\n{a.chunk.content[:TOURNAMENT_MAX_CHARS]}\n\n"
            f"Passage B:\n{b.chunk.content[:TOURNAMENT_MAX_CHARS]}\n\n"
            "Which passage is more relevant?"
        )
        try:
            text = await llm.generate(
                prompt, system=_PAIRWISE_SYSTEM[language], temperature=0.0, max_tokens=5
            )
        except Exception as ex:  # noqa: BLE001
            self._fallback("pairwise_tournament", str(ex))
            return None
        winner = text.strip().upper()
        return winner if winner in ("A", "B") else None

    async def _apply_tournament(
        self, query: str, results: list[RerankedResult], language: Language
    ) -> None:
        n = len(results)
        if n <= 1:
            for r in results:
                r.reranked_score = 1.0
            return
        llm = self.llm
        if llm is None:
            self._fallback("pairwise_tournament", "no llm configured")
            return

        pairs = self.draw_pairs(n)
        winners = await asyncio.gather(
            *(self._compare(llm, query, results[a], results[b], language) for a, b in pairs)
        )
        wins = {r.chunk_id: 0.0 for r in results}
        for (a, b), winner in zip(pairs, winners, strict=True):
            if winner == "A":
                wins[results[a].chunk_id] += 1
            elif winner == "B":
                wins[results[b].chunk_id] += 1

        normalized = normalize_by_max(wins)
        for r in results:
            # Zero wins keeps the fused score.
            r.reranked_score = normalized[r.chunk_id] or r.fused_score

    # ---- ensemble ----

    async def _apply_ensemble(
        self,
        query: str,
        results: list[RerankedResult],
        language: Language,
        opts: RerankerOptions,
    ) -> None:
        cross, listwise = await asyncio.gather(
            self._cross_encoder_scores(query, results),
            self._listwise_scores(query, results, language),
        )
        weights = opts.ensemble_weights
        for i, r in enumerate(results):
            # Unscored passages keep their fused score in both components.
            cross_score = cross[i] if cross is not None else r.fused_score
            llm_score, reasoning = listwise.get(i, (r.fused_score, None))
            r.reranked_score = ensemble_score(cross_score, llm_score, r.fused_score, weights)
            if reasoning:
                r.reasoning = reasoning
