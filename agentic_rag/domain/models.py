# agentic_rag/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

RetrievalMethod = Literal["vector", "keyword", "hybrid"]
StepType = Literal["reasoning", "tool_call", "retrieval", "synthesis", "reranking"]
Severity = Literal["none", "low", "medium", "high", "critical"]
GuardrailAction = Literal["blocked", "flagged", "modified", "allowed", "redirect"]
RunState = Literal["done", "failed"]


@dataclass(frozen=True)
class ChunkMetadata:
    page_number: int | None = None
    section: str | None = None
    headings: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> ChunkMetadata | None:
        if not payload:
            return None
        headings = payload.get("headings") or ()
        return cls(
            page_number=payload.get("page_number", payload.get("pageNumber")),
            section=payload.get("section"),
            headings=tuple(str(h) for h in headings),
        )


@dataclass(frozen=True)
class RetrievedChunk:
    """
    Immutable domain entity that represents a retrieved passage.

    - chunk_id:         stable identifier, the only key used for deduplication
    - document_id:      owning document
    - document_title:   human readable title used in citations
    - content:          passage text
    - vector_score:     cosine similarity from vector search (0 if not scored)
    - bm25_score:       raw BM25+ score (0 if not scored)
    - fused_score:      score after rank fusion, comparable across methods
    - retrieval_method: which strategy produced the chunk
    """

    chunk_id: str
    document_id: str
    document_title: str
    content: str
    vector_score: float = 0.0
    bm25_score: float = 0.0
    fused_score: float = 0.0
    retrieval_method: RetrievalMethod = "hybrid"
    metadata: ChunkMetadata | None = None


@dataclass(frozen=True)
class RankedCandidate:
    """A candidate's 1-based position inside one specific ranking."""

    id: str
    rank: int
    score: float


@dataclass(frozen=True)
class VectorHit:
    """Raw nearest-neighbour hit as returned by a vector store."""

    id: str
    score: float
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class RerankedResult:
    chunk: RetrievedChunk
    original_rank: int
    reranked_score: float
    strategy: str
    reasoning: str | None = None

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def fused_score(self) -> float:
        return self.chunk.fused_score


@dataclass(frozen=True)
class Citation:
    """Citation reference for a generated answer."""

    id: str
    document_title: str
    citation_number: int


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class AgentStep:
    """One recorded unit of work inside an agent run.

    duration_ms is filled in after the run finishes (gap to the next step).
    timestamp is epoch milliseconds.
    """

    step_index: int
    step_type: StepType
    timestamp: float
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_output: Any = None
    reasoning: str | None = None
    duration_ms: float = 0.0
    token_usage: TokenUsage | None = None


@dataclass(frozen=True)
class GuardrailViolation:
    rule: str
    type: str
    severity: Severity
    description: str
    action: GuardrailAction


@dataclass(frozen=True)
class GuardrailResult:
    passed: bool
    violations: tuple[GuardrailViolation, ...] = ()
    severity: Severity = "none"
    suggested_response: str | None = None
    requires_escalation: bool | None = None

    @property
    def blocked(self) -> bool:
        return any(v.action == "blocked" for v in self.violations)


@dataclass(frozen=True)
class NegativeReaction:
    detected: bool
    type: str | None = None
    confidence: float = 0.0
    severity: Severity = "none"
    suggested_response: str | None = None


@dataclass
class GuardrailReport:
    input: GuardrailResult | None = None
    output: GuardrailResult | None = None
    negative_reaction: NegativeReaction | None = None


@dataclass
class AgenticRunResult:
    answer: str
    steps: list[AgentStep]
    retrieved_chunks: list[RetrievedChunk]
    citations: list[Citation]
    guardrail_results: GuardrailReport
    language: str
    total_latency_ms: float
    session_id: str = ""
    state: RunState = "done"
    reasoning: list[str] | None = None
