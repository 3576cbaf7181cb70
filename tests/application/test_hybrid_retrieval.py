"""Tests for the HybridRetrieval use case across the three fusion strategies."""

from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from agentic_rag.application.dto.retrieval_dto import RetrievalOptions
from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.application.ports.reranker_port import RerankerPort
from agentic_rag.application.ports.vector_store_port import VectorStorePort
from agentic_rag.application.use_cases.hybrid_retrieval import HybridRetrieval
from agentic_rag.application.use_cases.rerank_candidates import RerankingEngine
from agentic_rag.application.use_cases.vector_search import VectorSearch
from agentic_rag.domain.errors import ValidationError
from agentic_rag.domain.models import ChunkMetadata, VectorHit

# --- Fake Ports for Testing ---


@dataclass
class FakeEmbedding(EmbeddingPort):
    queries: list[str] = field(default_factory=list)

    async def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return [0.1, 0.2, 0.3]

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [[0.1, 0.2, 0.3] for _ in texts]


@dataclass
class FakeVectorStore(VectorStorePort):
    """Vector hits for search(), a separate ready corpus for scroll_ready()."""

    hits: list[VectorHit] = field(default_factory=list)
    corpus: list[VectorHit] = field(default_factory=list)
    scroll_calls: int = 0

    async def search(
        self, query_vector: Sequence[float], top_k: int = 10, only_ready: bool = True
    ) -> list[VectorHit]:
        return self.hits[:top_k]

    async def scroll_ready(self, limit: int = 1000) -> list[VectorHit]:
        self.scroll_calls += 1
        return self.corpus[:limit]


@dataclass
class FakeReranker(RerankerPort):
    scores: list[float]

    def score(self, query: str, candidates: Sequence[str]) -> list[float]:
        return self.scores[: len(candidates)]


def hit(id_: str, score: float, content: str, **extra) -> VectorHit:
    payload = {
        "chunk_id": id_,
        "document_id": f"doc-{id_}",
        "document_title": f"Paper {id_}",
        "content": content,
        "status": "ready",
    }
    payload.update(extra)
    return VectorHit(id=id_, score=score, payload=payload)


def make_retrieval(store: FakeVectorStore, **kwargs) -> tuple[HybridRetrieval, FakeEmbedding]:
    embedding = FakeEmbedding()
    retrieval = HybridRetrieval(
        vector_search=VectorSearch(embedding, store), vector_store=store, **kwargs
    )
    return retrieval, embedding


# --- Tests ---


@pytest.mark.asyncio
async def test_vector_strategy_uses_cosine_scores():
    store = FakeVectorStore(hits=[hit("a", 0.9, "graph theory"), hit("b", 0.6, "pasta")])
    retrieval, _ = make_retrieval(store)

    chunks = await retrieval.retrieve("graph", RetrievalOptions(strategy="vector", top_k=5))

    assert [c.chunk_id for c in chunks] == ["a", "b"]
    assert chunks[0].fused_score == chunks[0].vector_score == 0.9
    assert chunks[0].retrieval_method == "vector"
    assert chunks[0].document_title == "Paper a"


@pytest.mark.asyncio
async def test_vector_strategy_default_min_score_filters_weak_hits():
    store = FakeVectorStore(hits=[hit("a", 0.9, "graph"), hit("b", 0.2, "graph")])
    retrieval, _ = make_retrieval(store)

    chunks = await retrieval.retrieve("graph", RetrievalOptions(strategy="vector"))

    assert [c.chunk_id for c in chunks] == ["a"]


@pytest.mark.asyncio
async def test_hybrid_keyword_signal_lifts_candidate():
    """C is last by vector but first by BM25, so RRF moves it above B."""
    store = FakeVectorStore(
        hits=[
            hit("A", 0.9, "cooking pasta recipes"),
            hit("B", 0.8, "graph theory basics"),
            hit("C", 0.7, "graph graph networks"),
        ]
    )
    retrieval, _ = make_retrieval(store)

    chunks = await retrieval.retrieve("graph", RetrievalOptions(strategy="hybrid", top_k=3))

    assert [c.chunk_id for c in chunks] == ["A", "C", "B"]
    by_id = {c.chunk_id: c for c in chunks}
    assert by_id["C"].bm25_score > by_id["B"].bm25_score > 0.0
    assert by_id["A"].bm25_score == 0.0
    assert by_id["C"].fused_score == pytest.approx(1 / 63 + 1 / 61)
    assert all(c.retrieval_method == "hybrid" for c in chunks)


@pytest.mark.asyncio
async def test_keyword_strategy_scores_ready_corpus_without_embedding():
    store = FakeVectorStore(
        corpus=[hit("X", 0.0, "graph graph"), hit("Y", 0.0, "graph cooking"), hit("Z", 0.0, "pasta")]
    )
    retrieval, embedding = make_retrieval(store)

    chunks = await retrieval.retrieve("graph", RetrievalOptions(strategy="keyword", top_k=5))

    assert [c.chunk_id for c in chunks] == ["X", "Y"]
    assert chunks[0].fused_score == 1.0
    assert embedding.queries == []
    assert store.scroll_calls == 1


@pytest.mark.asyncio
async def test_corpus_keyword_pool_scrolls_for_hybrid():
    store = FakeVectorStore(
        hits=[hit("A", 0.9, "graph basics")],
        corpus=[hit("A", 0.0, "graph basics"), hit("K", 0.0, "graph graph graph")],
    )
    retrieval, _ = make_retrieval(store, keyword_pool="corpus")

    chunks = await retrieval.retrieve("graph", RetrievalOptions(strategy="hybrid", top_k=5))

    assert store.scroll_calls == 1
    assert {c.chunk_id for c in chunks} == {"A", "K"}
    assert chunks[0].chunk_id == "A"


@pytest.mark.asyncio
async def test_metadata_is_parsed_from_payload():
    store = FakeVectorStore(
        hits=[hit("a", 0.9, "graph", metadata={"page_number": 4, "section": "Methods"})]
    )
    retrieval, _ = make_retrieval(store)

    [chunk] = await retrieval.retrieve("graph", RetrievalOptions(strategy="vector"))

    assert chunk.metadata == ChunkMetadata(page_number=4, section="Methods")


@pytest.mark.asyncio
async def test_optional_reranking_reorders_results():
    store = FakeVectorStore(hits=[hit("a", 0.9, "first"), hit("b", 0.8, "second")])
    engine = RerankingEngine(cross_encoder=FakeReranker(scores=[0.1, 0.95]))
    retrieval, _ = make_retrieval(store, reranking=engine)

    chunks = await retrieval.retrieve(
        "query", RetrievalOptions(strategy="vector", use_reranker=True, language="en")
    )

    assert [c.chunk_id for c in chunks] == ["b", "a"]


@pytest.mark.asyncio
async def test_empty_query_is_rejected():
    retrieval, _ = make_retrieval(FakeVectorStore())
    with pytest.raises(ValidationError):
        await retrieval.retrieve("   ")


@pytest.mark.asyncio
async def test_non_positive_top_k_returns_empty():
    retrieval, embedding = make_retrieval(FakeVectorStore(hits=[hit("a", 0.9, "x")]))
    assert await retrieval.retrieve("graph", RetrievalOptions(top_k=0)) == []
    assert embedding.queries == []


def test_unknown_keyword_pool_is_rejected():
    store = FakeVectorStore()
    with pytest.raises(ValidationError):
        HybridRetrieval(VectorSearch(FakeEmbedding(), store), store, keyword_pool="everything")
