"""OpenAI-compatible chat and embedding adapters.

Works against any endpoint speaking the OpenAI API (OpenAI, vLLM, Azure
gateways) by pointing base_url at it.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.application.ports.llm_port import (
    ChatMessage,
    LLMPort,
    LLMResponse,
    StreamChunk,
    ToolCall,
    ToolSpec,
)
from agentic_rag.domain.errors import EmbeddingError, LLMError
from agentic_rag.domain.models import TokenUsage


def _load_async_client(base_url: str | None, api_key: str) -> Any:
    module = import_module("openai")
    return module.AsyncOpenAI(base_url=base_url or None, api_key=api_key)


def message_to_wire(msg: ChatMessage) -> dict[str, Any]:
    wire: dict[str, Any] = {"role": msg.role, "content": msg.content}
    if msg.tool_calls:
        wire["tool_calls"] = [
            {
                "id": c.id,
                "type": "function",
                "function": {
                    "name": c.name,
                    "arguments": json.dumps(c.arguments, ensure_ascii=False),
                },
            }
            for c in msg.tool_calls
        ]
    if msg.tool_call_id is not None:
        wire["tool_call_id"] = msg.tool_call_id
    if msg.name is not None and msg.role == "tool":
        wire["name"] = msg.name
    return wire


def tool_to_wire(spec: ToolSpec) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.parameters,
        },
    }


def _usage(raw: Any) -> TokenUsage | None:
    if raw is None:
        return None
    return TokenUsage(
        input_tokens=raw.prompt_tokens or 0,
        output_tokens=raw.completion_tokens or 0,
        total_tokens=raw.total_tokens or 0,
    )


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # Validation of the tool arguments reports the problem to the model.
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": parsed}


@dataclass
class OpenAIChatAdapter(LLMPort):
    base_url: str | None = None  # e.g. "http://localhost:8000/v1" for vLLM
    api_key: str = "EMPTY"
    model: str = "gpt-4o-mini"

    def __post_init__(self) -> None:
        # Deferred so that importing this module never requires openai
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = _load_async_client(self.base_url, self.api_key)
        return self._client

    def _request(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None,
        temperature: float,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [message_to_wire(m) for m in messages],
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if tools:
            kwargs["tools"] = [tool_to_wire(t) for t in tools]
        return kwargs

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        try:
            kwargs = self._request(messages, tools, temperature, max_tokens)
            resp: Any = await self._get_client().chat.completions.create(**kwargs)
            choice = resp.choices[0]
            calls = tuple(
                ToolCall(
                    id=c.id,
                    name=c.function.name,
                    arguments=_parse_arguments(c.function.arguments),
                )
                for c in (choice.message.tool_calls or [])
            )
            return LLMResponse(
                text=choice.message.content or "",
                finish_reason=choice.finish_reason or "stop",
                tool_calls=calls,
                usage=_usage(resp.usage),
            )
        except Exception as ex:  # noqa: BLE001
            # Translate external errors to domain-specific errors
            raise LLMError(f"LLM communication failed: {ex}") from ex

    async def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec] | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Native streaming; tool-call fragments are assembled by their index."""
        text_parts: list[str] = []
        partial_calls: dict[int, dict[str, str]] = {}
        finish_reason = "stop"
        usage: TokenUsage | None = None
        try:
            kwargs = self._request(messages, tools, temperature, max_tokens)
            stream: Any = await self._get_client().chat.completions.create(
                **kwargs, stream=True, stream_options={"include_usage": True}
            )
            async for chunk in stream:
                if getattr(chunk, "usage", None) is not None:
                    usage = _usage(chunk.usage)
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                delta = choice.delta
                for fragment in getattr(delta, "tool_calls", None) or []:
                    call = partial_calls.setdefault(
                        fragment.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        call["id"] = fragment.id
                    if fragment.function is not None:
                        call["name"] += fragment.function.name or ""
                        call["arguments"] += fragment.function.arguments or ""
                if delta.content:
                    text_parts.append(delta.content)
                    yield StreamChunk(text_delta=delta.content)
        except Exception as ex:  # noqa: BLE001
            raise LLMError(f"LLM streaming failed: {ex}") from ex

        calls = tuple(
            ToolCall(id=c["id"], name=c["name"], arguments=_parse_arguments(c["arguments"]))
            for _, c in sorted(partial_calls.items())
        )
        yield StreamChunk(
            response=LLMResponse(
                text="".join(text_parts),
                finish_reason=finish_reason,
                tool_calls=calls,
                usage=usage,
            )
        )


@dataclass
class OpenAIEmbeddingAdapter(EmbeddingPort):
    base_url: str | None = None
    api_key: str = "EMPTY"
    model: str = "text-embedding-3-small"

    def __post_init__(self) -> None:
        self._client: Any | None = None

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            if self._client is None:
                self._client = _load_async_client(self.base_url, self.api_key)
            resp: Any = await self._client.embeddings.create(model=self.model, input=list(texts))
            ordered = sorted(resp.data, key=lambda d: d.index)
            return [list(d.embedding) for d in ordered]
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"embedding request failed: {ex}") from ex

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        if not vectors:
            raise EmbeddingError("embedding response was empty")
        return vectors[0]
