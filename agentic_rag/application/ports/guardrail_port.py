"""Safety validation boundary around the agent run.

Content rules live behind this port; the orchestrator only consumes results.
"""

from collections.abc import Sequence
from typing import Protocol

from agentic_rag.domain.models import GuardrailResult, NegativeReaction


class GuardrailPort(Protocol):
    async def validate_input(self, text: str) -> GuardrailResult: ...

    async def validate_output(
        self, text: str, context: Sequence[str], query: str | None = None
    ) -> GuardrailResult: ...

    async def detect_negative_reaction(self, text: str) -> NegativeReaction: ...
