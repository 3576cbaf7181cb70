# agentic_rag/domain/services/bm25.py
# Pure domain services: no I/O, deterministic, no external libraries.
"""Okapi BM25+ keyword scoring over a candidate pool.

IDF is computed over the pool that is being scored. When the pool is the
output of vector search this is a local IDF, not a corpus-wide one.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from agentic_rag.domain.models import RankedCandidate
from agentic_rag.domain.services.tokenization import Language, tokenize

BM25_K1 = 1.2
BM25_B = 0.75
BM25_K3 = 8.0
BM25_DELTA = 1.0


def assign_ranks(scored: Sequence[tuple[str, float]]) -> list[RankedCandidate]:
    """Stable descending sort by score, then 1-based ranks.

    Equal scores keep their input order.
    """
    ordered = sorted(scored, key=lambda p: p[1], reverse=True)
    return [RankedCandidate(id=id_, rank=i + 1, score=s) for i, (id_, s) in enumerate(ordered)]


@dataclass(frozen=True)
class KeywordSearchEngine:
    """BM25+ with query-term saturation (k3) and an additive floor (delta).

    score(d) = sum over query terms t with tf(t, d) > 0 of
        idf(t) * (tf_norm(t, d) + delta) * qtf(t)
    """

    k1: float = BM25_K1
    b: float = BM25_B
    k3: float = BM25_K3
    delta: float = BM25_DELTA

    def idf(self, df: int, total_docs: int) -> float:
        return math.log((total_docs - df + 0.5) / (df + 0.5) + 1.0)

    def score_document(
        self,
        query_terms: Sequence[str],
        doc_terms: Sequence[str],
        avg_doc_length: float,
        doc_frequencies: Mapping[str, int],
        total_docs: int,
    ) -> float:
        doc_length = len(doc_terms)
        term_freqs = Counter(doc_terms)
        query_freqs = Counter(query_terms)
        # Guard empty pools where every document tokenized to nothing.
        length_ratio = doc_length / avg_doc_length if avg_doc_length > 0 else 0.0

        score = 0.0
        # Each distinct query term counts once; repeats are handled by qtf.
        for term, qf in query_freqs.items():
            tf = term_freqs.get(term, 0)
            df = doc_frequencies.get(term, 0)
            if tf <= 0 or df <= 0:
                continue
            tf_norm = (tf * (self.k1 + 1)) / (tf + self.k1 * (1 - self.b + self.b * length_ratio))
            qtf = ((self.k3 + 1) * qf) / (self.k3 + qf)
            score += self.idf(df, total_docs) * (tf_norm + self.delta) * qtf
        return score

    def score(
        self, query: str, documents: Sequence[tuple[str, str]], language: Language = "en"
    ) -> list[tuple[str, float]]:
        """Raw BM25+ score per (id, text) document, in input order."""
        if not documents:
            return []

        query_terms = tokenize(query, language)
        doc_terms = [tokenize(text, language) for _, text in documents]

        doc_frequencies: Counter[str] = Counter()
        for terms in doc_terms:
            doc_frequencies.update(set(terms))

        total_docs = len(documents)
        avg_doc_length = sum(len(t) for t in doc_terms) / total_docs

        return [
            (
                doc_id,
                self.score_document(
                    query_terms, terms, avg_doc_length, doc_frequencies, total_docs
                ),
            )
            for (doc_id, _), terms in zip(documents, doc_terms, strict=True)
        ]

    def rank(
        self, query: str, documents: Sequence[tuple[str, str]], language: Language = "en"
    ) -> list[RankedCandidate]:
        return assign_ranks(self.score(query, documents, language))
