"""Domain errors (typed) for the retrieval and agent pipeline.

Why: Unified error family for Application layer, without Infra leaks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentic_rag.domain.models import AgenticRunResult


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


class RetrievalError(DomainError):
    """Generic retrieval failure (after infra errors were mapped)."""


# Infrastructure-mapped errors
class EmbeddingError(DomainError):
    """Embedding backend failed or is misconfigured."""


class VectorStoreError(DomainError):
    """Vector store backend failed or is misconfigured."""


class LLMError(DomainError):
    """LLM backend failed or is misconfigured."""


@dataclass(frozen=True)
class RerankerError(DomainError):
    """Reranking operation failed or is misconfigured."""

    detail: str = ""


# Agent / orchestration errors
@dataclass(frozen=True)
class InputRejectedError(DomainError):
    """Input guardrail blocked the query before any retrieval or generation."""

    message: str
    severity: str = "none"


@dataclass(frozen=True)
class ToolNotFoundError(DomainError):
    """The model referenced a tool that is not registered."""

    tool_name: str
    available: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"tool '{self.tool_name}' not found (available: {', '.join(self.available)})"


@dataclass(frozen=True)
class ScorerFailure(DomainError):
    """A single reranking/verification call failed; caller substitutes a fallback."""

    strategy: str
    detail: str = ""


@dataclass(frozen=True)
class ParseFailure(DomainError):
    """Structured provider output could not be parsed."""

    call_site: str
    raw: str = ""
    detail: str = ""


class OutputBlockedError(DomainError):
    """Output guardrail returned an explicit 'blocked' action.

    Carries the assembled run result so callers can inspect steps and sources.
    """

    def __init__(self, result: AgenticRunResult) -> None:
        super().__init__("output blocked by guardrail")
        self.result = result
