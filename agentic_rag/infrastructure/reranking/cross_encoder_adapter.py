"""Cross-encoder relevance classifier using sentence-transformers.

Why (SAM): Infrastructure adapters wrap external libraries with lazy imports,
cache expensive resources (models), and map errors to domain exceptions.
"""

from __future__ import annotations

from collections.abc import Sequence
from importlib import import_module
from typing import Any

from ...application.ports.reranker_port import RerankerPort
from ...domain.errors import RerankerError

DEFAULT_CROSS_ENCODER = "cross-encoder/ms-marco-TinyBERT-L-2-v2"


class CrossEncoderAdapter(RerankerPort):
    """Fast local reranker (the "fast_local" strategy).

    TinyBERT MS MARCO emits raw logits; apply_sigmoid maps them into [0,1] so
    they are comparable with the reranking min_score threshold.

    Args:
        model_name: HuggingFace model identifier for cross-encoder
        device: Computation device ("cpu" or "cuda")
        apply_sigmoid: Apply sigmoid to raw logits
    """

    _model_cache: dict[str, Any] = {}

    def __init__(
        self,
        model_name: str = DEFAULT_CROSS_ENCODER,
        device: str = "cpu",
        apply_sigmoid: bool = True,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.apply_sigmoid = apply_sigmoid
        self._model: Any | None = None

    def _load_model(self) -> Any:
        cache_key = f"{self.model_name}:{self.device}"
        if cache_key in self._model_cache:
            return self._model_cache[cache_key]

        try:
            st_module = import_module("sentence_transformers")
            model = st_module.CrossEncoder(self.model_name, device=self.device)
        except Exception as e:
            raise RerankerError(f"Failed to load cross-encoder model {self.model_name}: {e}") from e
        self._model_cache[cache_key] = model
        return model

    def score(self, query: str, candidates: Sequence[str]) -> list[float]:
        """Score query-candidate pairs; empty candidates give empty scores.

        Raises:
            RerankerError: If model loading or scoring fails
        """
        if not candidates:
            return []

        if self._model is None:
            self._model = self._load_model()

        try:
            pairs = [(query, str(c)) for c in candidates]
            scores = self._model.predict(pairs, convert_to_numpy=True, show_progress_bar=False)
            if self.apply_sigmoid:
                np = import_module("numpy")
                scores = 1.0 / (1.0 + np.exp(-scores))
            return [float(s) for s in scores.tolist()]
        except Exception as e:
            raise RerankerError(f"Cross-encoder scoring failed for query '{query[:50]}': {e}") from e
