"""Pass-through guardrail used when no content validator is wired."""

from __future__ import annotations

from collections.abc import Sequence

from agentic_rag.application.ports.guardrail_port import GuardrailPort
from agentic_rag.domain.models import GuardrailResult, NegativeReaction


class NullGuardrail(GuardrailPort):
    async def validate_input(self, text: str) -> GuardrailResult:
        return GuardrailResult(passed=True)

    async def validate_output(
        self, text: str, context: Sequence[str], query: str | None = None
    ) -> GuardrailResult:
        return GuardrailResult(passed=True)

    async def detect_negative_reaction(self, text: str) -> NegativeReaction:
        return NegativeReaction(detected=False)
