# agentic_rag/application/dto/retrieval_dto.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from agentic_rag.domain.services.fusion import DEFAULT_RRF_K, FusionStrategy
from agentic_rag.domain.services.reranking import EnsembleWeights
from agentic_rag.domain.services.tokenization import LanguageOption

RerankerStrategy = Literal[
    "fast_local",
    "llm_pointwise",
    "llm_listwise",
    "pairwise_tournament",
    "ensemble",
    "none",
]

# Applied when min_score is left unset for score-based strategies.
DEFAULT_MIN_SCORE = 0.3


@dataclass(frozen=True)
class RetrievalOptions:
    """
    Options for hybrid retrieval.

    - top_k: number of fused chunks to return
    - min_score: fused score floor; None picks 0.0 for hybrid (RRF scores are
      at most 2/(k+1)) and DEFAULT_MIN_SCORE for vector/keyword
    - strategy: "hybrid" | "vector" | "keyword"
    - rrf_k: RRF smoothing constant
    - language: tokenizer language, "auto" detects from query + first candidate
    - use_reranker / reranker_strategy: optional reranking of the fused list
    """

    top_k: int = 10
    min_score: float | None = None
    strategy: FusionStrategy = "hybrid"
    rrf_k: int = DEFAULT_RRF_K
    language: LanguageOption = "auto"
    use_reranker: bool = False
    reranker_strategy: RerankerStrategy = "fast_local"

    def effective_min_score(self) -> float:
        if self.min_score is not None:
            return self.min_score
        return 0.0 if self.strategy == "hybrid" else DEFAULT_MIN_SCORE


@dataclass(frozen=True)
class RerankerOptions:
    strategy: RerankerStrategy = "fast_local"
    top_k: int = 5
    min_score: float = DEFAULT_MIN_SCORE
    language: LanguageOption = "id"
    detailed: bool = True
    ensemble_weights: EnsembleWeights = EnsembleWeights()
