from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from agentic_rag.domain.models import TokenUsage


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolSpec:
    """Function-calling declaration; parameters is a JSON schema object."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "system" | "user" | "assistant" | "tool"
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class LLMResponse:
    text: str
    finish_reason: str = "stop"
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class StreamChunk:
    """One piece of a streamed turn.

    Text arrives as deltas; the last chunk of a turn carries the assembled
    response, tool calls included.
    """

    text_delta: str = ""
    response: LLMResponse | None = None


class LLMPort(Protocol):
    async def chat(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMResponse: ...

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> str:
        """Convenience method for single-shot text generation.

        Note:
            Default implementation uses chat with an optional system message
            followed by a single user message. Adapters can override it.
        """
        messages = []
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.append(ChatMessage(role="user", content=prompt))
        response = await self.chat(messages, temperature=temperature, max_tokens=max_tokens)
        return response.text

    async def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Streamed variant of chat.

        Note:
            Default implementation emits the whole text of one chat call as a
            single delta. Adapters with native streaming override it.
        """
        response = await self.chat(messages, tools=tools, temperature=temperature, max_tokens=max_tokens)
        if response.text:
            yield StreamChunk(text_delta=response.text)
        yield StreamChunk(response=response)
