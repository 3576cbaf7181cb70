"""Application ports package."""

from agentic_rag.application.ports.clock_port import ClockPort
from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.application.ports.guardrail_port import GuardrailPort
from agentic_rag.application.ports.llm_port import (
    ChatMessage,
    LLMPort,
    LLMResponse,
    ToolCall,
    ToolSpec,
)
from agentic_rag.application.ports.reranker_port import RerankerPort
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.application.ports.vector_store_port import VectorHit, VectorStorePort

__all__ = [
    "ClockPort",
    "EmbeddingPort",
    "GuardrailPort",
    "LLMPort",
    "ChatMessage",
    "LLMResponse",
    "ToolCall",
    "ToolSpec",
    "RerankerPort",
    "TelemetryPort",
    "NullTelemetry",
    "VectorHit",
    "VectorStorePort",
]
