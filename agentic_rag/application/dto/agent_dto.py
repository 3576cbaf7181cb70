# agentic_rag/application/dto/agent_dto.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from agentic_rag.domain.models import AgenticRunResult, AgentStep
from agentic_rag.domain.services.fusion import FusionStrategy
from agentic_rag.domain.services.tokenization import Language

StepCallback = Callable[[AgentStep], None]
StreamEventKind = Literal["text", "step", "done"]


@dataclass(frozen=True)
class AgentRunOptions:
    """
    Options for one agent run.

    - session_id: conversation key; a fresh uuid4 is used when omitted
    - retrieval_strategy: default strategy for the search tool
    - enable_guardrails: run input/output validation
    - max_steps: provider turns before the loop stops
    - step_callback: invoked synchronously after every recorded step
    - response_language: answers in another language are resynthesized
    """

    session_id: str | None = None
    retrieval_strategy: FusionStrategy = "hybrid"
    enable_guardrails: bool = True
    max_steps: int = 5
    step_callback: StepCallback | None = None
    response_language: Language = "id"


@dataclass(frozen=True)
class AgentStreamEvent:
    """
    One event of a streamed run.

    - text: a text delta of the current provider turn
    - step: a step as soon as it is recorded
    - done: the final result, always the last event
    """

    kind: StreamEventKind
    text: str = ""
    step: AgentStep | None = None
    result: AgenticRunResult | None = None
