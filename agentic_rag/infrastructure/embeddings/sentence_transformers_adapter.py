from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.domain.errors import EmbeddingError


@dataclass
class SentenceTransformersEmbeddingAdapter(EmbeddingPort):
    """Local embeddings; encode() runs in a worker thread."""

    # multilingual, handles Indonesian and English
    model_name: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    device: str = "cpu"  # "cuda" falls verfügbar

    def __post_init__(self) -> None:
        self._model: Any | None = None

    def _get(self) -> Any:
        if self._model is None:
            try:
                st = import_module("sentence_transformers")
            except Exception as ex:  # pragma: no cover
                raise EmbeddingError("sentence-transformers not installed") from ex
            self._model = st.SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = self._get()
        return [
            v.tolist() for v in model.encode(texts, normalize_embeddings=True, convert_to_numpy=True)
        ]

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            return await asyncio.to_thread(self._encode, list(texts))
        except EmbeddingError:
            raise
        except Exception as ex:
            raise EmbeddingError(f"local embedding failed: {ex}") from ex

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed_texts([text]))[0]
