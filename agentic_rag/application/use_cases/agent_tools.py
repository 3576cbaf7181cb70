# agentic_rag/application/use_cases/agent_tools.py
"""Tool set exposed to the chat provider during the reasoning loop.

Arguments are validated with pydantic models whose JSON schema is sent to the
provider as the function declaration.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel, Field

from agentic_rag.application.dto.retrieval_dto import RetrievalOptions
from agentic_rag.application.ports.llm_port import LLMPort, ToolCall, ToolSpec
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.application.session_store import SessionState
from agentic_rag.application.use_cases.hybrid_retrieval import HybridRetrieval
from agentic_rag.domain.errors import ToolNotFoundError
from agentic_rag.domain.services.fusion import FusionStrategy
from agentic_rag.domain.services.parsing import parse_json_object, parse_string_list
from agentic_rag.domain.services.query_expansion import expand_query
from agentic_rag.domain.services.tokenization import Language

logger = structlog.get_logger(__name__)

SEARCH_CONTENT_PREVIEW = 500
MAX_EXPANDED_QUERIES = 5

NEXT_ACTION_PARALLEL = (
    "CRITICAL: Call search_documents for ALL sub-questions IN PARALLEL "
    "(multiple tool calls in the same response). Do NOT call them one at a time."
)
NEXT_ACTION_SINGLE = "Call search_documents for this question."

_LANGUAGE_NAMES = {"id": "Bahasa Indonesia", "en": "English"}

_UNVERIFIED_EVIDENCE = {"id": "Tidak dapat memverifikasi", "en": "Unable to verify"}


# ---- argument models ----


class SearchDocumentsArgs(BaseModel):
    query: str = Field(description="The search query")
    strategy: FusionStrategy = "hybrid"
    top_k: int = Field(default=5, ge=1, le=20)


class ExpandQueryArgs(BaseModel):
    query: str


class DecomposeQueryArgs(BaseModel):
    query: str
    max_sub_questions: int = Field(default=3, ge=2, le=5)


class VerifyClaimArgs(BaseModel):
    claim: str
    context: str


class SourceArg(BaseModel):
    title: str
    content: str


class SynthesizeAnswerArgs(BaseModel):
    question: str
    sources: list[SourceArg]


class ClaimVerdict(BaseModel):
    """Shape the verify_claim reply must have."""

    supported: bool
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: str


def format_sources(sources: list[tuple[str, str]]) -> str:
    """Numbered source block: "[i] title:\\ncontent" separated by blank lines."""
    return "\n\n".join(f"[{i + 1}] {title}:\n{content}" for i, (title, content) in enumerate(sources))


def synthesis_prompt(question: str, sources_text: str, language: Language) -> str:
    if language == "id":
        return (
            "Sintesis jawaban komprehensif dalam Bahasa Indonesia untuk pertanyaan ini "
            "menggunakan sumber-sumber yang disediakan. Sertakan kutipan [1], [2], dst.\n\n"
            f"Pertanyaan: {question}\n\nSumber:\n{sources_text}"
        )
    return (
        "Synthesize a comprehensive answer in English to this question using the provided "
        "sources. Include citations [1], [2], etc.\n\n"
        f"Question: {question}\n\nSources:\n{sources_text}"
    )


ToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


class AgentToolbox:
    """
    The five agent tools bound to one session.

    - search_documents mutates the session (chunks + citations)
    - expand_query is local and synchronous in spirit
    - decompose_query, verify_claim and synthesize_answer call the LLM port;
      a failing call is replaced by the tool's fallback payload
    """

    def __init__(
        self,
        retrieval: HybridRetrieval,
        llm: LLMPort,
        session: SessionState,
        language: Language = "id",
        default_strategy: FusionStrategy = "hybrid",
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.retrieval = retrieval
        self.llm = llm
        self.session = session
        self.language = language
        self.default_strategy = default_strategy
        self.telemetry = telemetry or NullTelemetry()
        self._tools: dict[str, tuple[str, type[BaseModel], ToolHandler]] = {
            "search_documents": (
                "Search the knowledge base for relevant documents using hybrid retrieval "
                "(Okapi BM25 + vector similarity). Use it for every sub-question after "
                "decomposition.",
                SearchDocumentsArgs,
                self.search_documents,
            ),
            "expand_query": (
                "Expand a query with academic synonyms to improve retrieval coverage.",
                ExpandQueryArgs,
                self.expand_query,
            ),
            "decompose_query": (
                "Break a complex academic question into simpler sub-questions. Afterwards call "
                "search_documents for ALL sub-questions in parallel in one turn.",
                DecomposeQueryArgs,
                self.decompose_query,
            ),
            "verify_claim": (
                "Verify a claim against retrieved documents to prevent hallucination.",
                VerifyClaimArgs,
                self.verify_claim,
            ),
            "synthesize_answer": (
                "Synthesize a final answer from several sources with proper citations.",
                SynthesizeAnswerArgs,
                self.synthesize_answer,
            ),
        }

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(name=name, description=desc, parameters=model.model_json_schema())
            for name, (desc, model, _) in self._tools.items()
        ]

    async def execute(self, call: ToolCall) -> dict[str, Any]:
        """Run one tool call.

        Raises:
            ToolNotFoundError: the provider named a tool that is not registered
        """
        entry = self._tools.get(call.name)
        if entry is None:
            raise ToolNotFoundError(tool_name=call.name, available=self.names)
        _, model, handler = entry
        try:
            args = model.model_validate(call.arguments)
        except pydantic.ValidationError as ex:
            logger.warning("tool.invalid_arguments", tool=call.name, errors=ex.error_count())
            return {"error": f"invalid arguments for {call.name}: {ex.errors(include_url=False)}"}
        return await handler(args)

    def _fallback(self, tool: str, detail: str) -> None:
        logger.warning("tool.fallback", tool=tool, detail=detail)
        self.telemetry.incr("rag.tool.fallbacks", {"tool": tool})

    # ---- tools ----

    async def search_documents(self, args: SearchDocumentsArgs) -> dict[str, Any]:
        # The run-level strategy applies unless the model picked one explicitly.
        strategy = args.strategy if "strategy" in args.model_fields_set else self.default_strategy
        chunks = await self.retrieval.retrieve(
            args.query,
            RetrievalOptions(
                top_k=args.top_k,
                strategy=strategy,
                language=self.language,
                use_reranker=True,
                reranker_strategy="fast_local",
            ),
        )
        await self.session.add_chunks(chunks)
        documents = []
        for c in chunks:
            preview = c.content[:SEARCH_CONTENT_PREVIEW]
            if len(c.content) > SEARCH_CONTENT_PREVIEW:
                preview += "..."
            documents.append(
                {
                    "title": c.document_title,
                    "content": preview,
                    "score": f"{c.fused_score:.3f}",
                    "method": c.retrieval_method,
                    "citation": self.session.citation_number(c.chunk_id),
                }
            )
        return {"found": len(chunks), "documents": documents}

    async def expand_query(self, args: ExpandQueryArgs) -> dict[str, Any]:
        return {
            "original_query": args.query,
            "language": self.language,
            "expanded_queries": expand_query(args.query, self.language)[:MAX_EXPANDED_QUERIES],
        }

    async def decompose_query(self, args: DecomposeQueryArgs) -> dict[str, Any]:
        if self.language == "id":
            prompt = (
                f"Uraikan pertanyaan akademis ini menjadi {args.max_sub_questions} sub-pertanyaan "
                "yang lebih sederhana yang bersama-sama menjawab pertanyaan asli. Jawab dalam "
                f"Bahasa Indonesia.\n\nPertanyaan: {args.query}\n\n"
                "Kembalikan hanya array JSON berisi sub-pertanyaan."
            )
        else:
            prompt = (
                f"Decompose this academic question into {args.max_sub_questions} simpler "
                "sub-questions that together answer the original question. Answer in English."
                f"\n\nQuestion: {args.query}\n\nReturn only a JSON array of sub-questions."
            )
        fallback = {
            "sub_questions": [args.query],
            "language": self.language,
            "next_action": NEXT_ACTION_SINGLE,
        }
        try:
            text = await self.llm.generate(prompt, temperature=0.3)
        except Exception as ex:  # noqa: BLE001
            self._fallback("decompose_query", str(ex))
            return fallback
        parsed = parse_string_list(text, "tool.decompose_query")
        if not parsed.ok:
            logger.info("parse.fallback", call_site="tool.decompose_query")
            return fallback
        return {
            "sub_questions": parsed.unwrap_or([args.query]),
            "language": self.language,
            "next_action": NEXT_ACTION_PARALLEL,
        }

    async def verify_claim(self, args: VerifyClaimArgs) -> dict[str, Any]:
        lang_name = _LANGUAGE_NAMES[self.language]
        prompt = (
            f"Verify whether this claim is supported by the context. Answer in {lang_name}.\n\n"
            f"Claim: {args.claim}\n\nContext: {args.context}\n\n"
            'Answer with JSON: { "supported": boolean, "confidence": number (0-1), '
            '"evidence": string }'
        )
        fallback = {
            "supported": False,
            "confidence": 0.0,
            "evidence": _UNVERIFIED_EVIDENCE[self.language],
        }
        try:
            text = await self.llm.generate(prompt, temperature=0.1)
        except Exception as ex:  # noqa: BLE001
            self._fallback("verify_claim", str(ex))
            return fallback
        parsed = parse_json_object(text, "tool.verify_claim")
        if not parsed.ok or parsed.value is None:
            logger.info("parse.fallback", call_site="tool.verify_claim")
            return fallback
        try:
            verdict = ClaimVerdict.model_validate(parsed.value)
        except pydantic.ValidationError as ex:
            logger.info(
                "parse.fallback", call_site="tool.verify_claim", errors=ex.error_count()
            )
            return fallback
        return verdict.model_dump()

    async def synthesize_answer(self, args: SynthesizeAnswerArgs) -> dict[str, Any]:
        sources_text = format_sources([(s.title, s.content) for s in args.sources])
        try:
            text = await self.llm.generate(
                synthesis_prompt(args.question, sources_text, self.language), temperature=0.3
            )
        except Exception as ex:  # noqa: BLE001
            self._fallback("synthesize_answer", str(ex))
            return {
                "error": f"synthesis failed: {ex}",
                "synthesized_answer": "",
                "source_count": len(args.sources),
            }
        return {"synthesized_answer": text, "source_count": len(args.sources)}
