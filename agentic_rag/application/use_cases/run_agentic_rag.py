# agentic_rag/application/use_cases/run_agentic_rag.py
from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from agentic_rag.application.dto.agent_dto import AgentRunOptions, AgentStreamEvent
from agentic_rag.application.dto.retrieval_dto import RetrievalOptions
from agentic_rag.application.ports.clock_port import ClockPort
from agentic_rag.application.ports.guardrail_port import GuardrailPort
from agentic_rag.application.ports.llm_port import ChatMessage, LLMPort, LLMResponse
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.application.session_store import SessionState, SessionStateStore
from agentic_rag.application.use_cases.agent_tools import (
    AgentToolbox,
    format_sources,
    synthesis_prompt,
)
from agentic_rag.application.use_cases.hybrid_retrieval import HybridRetrieval
from agentic_rag.domain.errors import InputRejectedError, OutputBlockedError, ToolNotFoundError
from agentic_rag.domain.models import (
    AgenticRunResult,
    AgentStep,
    GuardrailReport,
    StepType,
    TokenUsage,
)
from agentic_rag.domain.services.query_expansion import detect_query_language
from agentic_rag.domain.services.tokenization import Language

logger = structlog.get_logger(__name__)

BLOCKED_INPUT_ANSWER = "Maaf, permintaan Anda tidak dapat diproses karena melanggar kebijakan konten."
TOOL_NOT_FOUND_ANSWER = "Maaf, terjadi kesalahan: alat yang diminta tidak tersedia."

SYNTHESIS_PREVIEW_CHARS = 200
RESYNTHESIS_MAX_SOURCES = 10
STREAM_INITIAL_TOP_K = 5
# Latency floor so that an immediate return still reports a positive duration.
MIN_LATENCY_MS = 0.001

AGENTIC_SYSTEM_PROMPT = {
    "id": """Anda adalah asisten penelitian akademis canggih dengan akses ke alat-alat khusus.

Kemampuan Anda:
1. Mencari dokumen menggunakan pengambilan hibrida (Okapi BM25 + kesamaan vektor)
2. Memperluas kueri dengan sinonim akademis
3. Menguraikan pertanyaan akademis kompleks menjadi sub-pertanyaan yang lebih sederhana
4. Memverifikasi fakta terhadap sumber yang diambil
5. Mensintesis informasi dari beberapa dokumen

Pedoman:
- Selalu kutip sumber dengan format [1], [2], [3]
- Akui ketidakpastian ketika informasi tidak lengkap
- Gunakan terminologi akademis yang sesuai
- Selalu jawab dalam Bahasa Indonesia
- Verifikasi klaim penting dengan alat verify_claim

PENTING - Eksekusi Alat Paralel:
- Untuk kueri kompleks, PERTAMA gunakan decompose_query untuk memecah pertanyaan
- Setelah dekomposisi, Anda HARUS memanggil search_documents untuk SEMUA sub-pertanyaan DALAM SATU GILIRAN
- Panggil beberapa alat search_documents secara bersamaan (paralel) - JANGAN panggil satu per satu
- Contoh: Jika ada 3 sub-pertanyaan, buat 3 panggilan search_documents dalam respons yang sama""",
    "en": """You are an advanced academic research assistant with access to specialised tools.

Your capabilities:
1. Search documents with hybrid retrieval (Okapi BM25 + vector similarity)
2. Expand queries with academic synonyms
3. Decompose complex academic questions into simpler sub-questions
4. Verify facts against retrieved sources
5. Synthesize information from several documents

Guidelines:
- Always cite sources as [1], [2], [3]
- Acknowledge uncertainty when information is incomplete
- Use appropriate academic terminology
- Always answer in English
- Verify important claims with the verify_claim tool

IMPORTANT - Parallel tool execution:
- For complex queries, FIRST use decompose_query to break the question down
- After decomposition you MUST call search_documents for ALL sub-questions IN ONE TURN
- Issue several search_documents calls at once (in parallel) - do NOT call them one by one
- Example: with 3 sub-questions, make 3 search_documents calls in the same response""",
}

LANGUAGE_ENFORCEMENT = {
    "id": "[PENEGAK BAHASA] Selalu jawab HANYA dalam Bahasa Indonesia.",
    "en": "[LANGUAGE ENFORCEMENT] Always answer ONLY in English.",
}


class RunPhase(str, Enum):
    VALIDATING_INPUT = "validating_input"
    REASONING_LOOP = "reasoning_loop"
    VALIDATING_OUTPUT = "validating_output"
    RESYNTHESIZING = "resynthesizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _RunContext:
    query: str
    options: AgentRunOptions
    session_id: str
    session: SessionState
    started: float
    report: GuardrailReport = field(default_factory=GuardrailReport)
    steps: list[AgentStep] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    phase: RunPhase = RunPhase.VALIDATING_INPUT


def compute_step_durations(steps: list[AgentStep], now_ms: float) -> None:
    """Each step lasts until the next one starts; the last one until now_ms."""
    for i, step in enumerate(steps):
        end = steps[i + 1].timestamp if i + 1 < len(steps) else now_ms
        step.duration_ms = max(end - step.timestamp, 0.0)


class AgentOrchestrator:
    """
    Application use case running one agentic RAG request as a state machine:

        VALIDATING_INPUT -> REASONING_LOOP -> VALIDATING_OUTPUT
            -> [RESYNTHESIZING] -> DONE

    FAILED is reached only when the provider names an unregistered tool.
    Any other exception propagates to the caller.

    stream() runs the same loop over the provider's streamed turns and skips
    the output phases.
    """

    def __init__(
        self,
        llm: LLMPort,
        retrieval: HybridRetrieval,
        guardrail: GuardrailPort | None = None,
        sessions: SessionStateStore | None = None,
        clock: ClockPort | None = None,
        telemetry: TelemetryPort | None = None,
        temperature: float = 0.3,
    ) -> None:
        self.llm = llm
        self.retrieval = retrieval
        self.guardrail = guardrail
        self.sessions = sessions or SessionStateStore()
        self.clock = clock
        self.telemetry = telemetry or NullTelemetry()
        self.temperature = temperature

    # ---- helpers ----

    def _now_ms(self) -> float:
        if self.clock is not None:
            return self.clock.now().timestamp() * 1000.0
        return time.time() * 1000.0

    @staticmethod
    def _latency_ms(ctx: _RunContext) -> float:
        return max((time.perf_counter() - ctx.started) * 1000.0, MIN_LATENCY_MS)

    @staticmethod
    def system_prompt(language: Language) -> str:
        return f"{AGENTIC_SYSTEM_PROMPT[language]}\n\n{LANGUAGE_ENFORCEMENT[language]}"

    def _record(
        self,
        ctx: _RunContext,
        step_type: StepType,
        usage: TokenUsage | None,
        **fields: Any,
    ) -> AgentStep:
        step = AgentStep(
            step_index=len(ctx.steps),
            step_type=step_type,
            timestamp=self._now_ms(),
            token_usage=usage,
            **fields,
        )
        ctx.steps.append(step)
        logger.debug(
            "agent.step.recorded",
            session_id=ctx.session_id,
            step_index=step.step_index,
            step_type=step.step_type,
            tool=step.tool_name,
        )
        if ctx.options.step_callback is not None:
            ctx.options.step_callback(step)
        return step

    def _result(self, ctx: _RunContext, answer: str, state: str = "done") -> AgenticRunResult:
        return AgenticRunResult(
            answer=answer,
            steps=ctx.steps,
            retrieved_chunks=ctx.session.snapshot(),
            citations=ctx.session.citation_list(),
            guardrail_results=ctx.report,
            language=ctx.options.response_language,
            total_latency_ms=self._latency_ms(ctx),
            session_id=ctx.session_id,
            state="failed" if state == "failed" else "done",
            reasoning=ctx.reasoning or None,
        )

    def _finish(self, ctx: _RunContext, result: AgenticRunResult) -> AgenticRunResult:
        self.telemetry.incr("rag.agent.runs", {"state": result.state})
        self.telemetry.observe("rag.agent.steps", float(len(result.steps)), {})
        logger.info(
            "agent.run.finish",
            session_id=ctx.session_id,
            phase=ctx.phase.value,
            steps=len(result.steps),
            chunks=len(result.retrieved_chunks),
            latency_ms=round(result.total_latency_ms, 2),
        )
        return result

    # ---- phases ----

    async def _validate_input(self, ctx: _RunContext) -> bool:
        if not ctx.options.enable_guardrails or self.guardrail is None:
            return True
        result = await self.guardrail.validate_input(ctx.query)
        ctx.report.input = result
        logger.info(
            "guardrail.decision",
            stage="input",
            passed=result.passed,
            severity=result.severity,
            violations=len(result.violations),
        )
        if not result.passed:
            return False
        reaction = await self.guardrail.detect_negative_reaction(ctx.query)
        if reaction.detected:
            ctx.report.negative_reaction = reaction
        return True

    async def _execute_turn_tools(
        self, ctx: _RunContext, toolbox: AgentToolbox, response: LLMResponse
    ) -> list[ChatMessage]:
        """Run every tool call of one provider turn concurrently."""
        outputs = await asyncio.gather(
            *(toolbox.execute(call) for call in response.tool_calls), return_exceptions=True
        )
        for output in outputs:
            if isinstance(output, BaseException):
                raise output

        messages: list[ChatMessage] = []
        for call, output in zip(response.tool_calls, outputs, strict=True):
            self._record(
                ctx,
                "tool_call",
                response.usage,
                tool_name=call.name,
                tool_input=dict(call.arguments),
                tool_output=output,
            )
            messages.append(
                ChatMessage(
                    role="tool",
                    content=json.dumps(output, ensure_ascii=False, default=str),
                    tool_call_id=call.id,
                    name=call.name,
                )
            )
        return messages

    def _toolbox(self, ctx: _RunContext) -> AgentToolbox:
        return AgentToolbox(
            retrieval=self.retrieval,
            llm=self.llm,
            session=ctx.session,
            language=ctx.options.response_language,
            default_strategy=ctx.options.retrieval_strategy,
            telemetry=self.telemetry,
        )

    async def _handle_turn(
        self,
        ctx: _RunContext,
        toolbox: AgentToolbox,
        messages: list[ChatMessage],
        response: LLMResponse,
    ) -> bool:
        """Apply one provider turn; True while the model keeps calling tools."""
        answer = response.text or ""
        if response.tool_calls:
            if answer:
                ctx.reasoning.append(answer)
            messages.append(
                ChatMessage(role="assistant", content=answer, tool_calls=response.tool_calls)
            )
            messages.extend(await self._execute_turn_tools(ctx, toolbox, response))
            return True
        if answer:
            self._record(
                ctx, "synthesis", response.usage, reasoning=answer[:SYNTHESIS_PREVIEW_CHARS]
            )
        return False

    async def _reasoning_loop(self, ctx: _RunContext) -> str:
        toolbox = self._toolbox(ctx)
        tools = toolbox.specs()
        messages: list[ChatMessage] = [
            ChatMessage(role="system", content=self.system_prompt(ctx.options.response_language)),
            ChatMessage(role="user", content=ctx.query),
        ]

        answer = ""
        for _ in range(max(ctx.options.max_steps, 0)):
            response = await self.llm.chat(messages, tools=tools, temperature=self.temperature)
            answer = response.text or ""
            if not await self._handle_turn(ctx, toolbox, messages, response):
                break
        return answer

    async def _validate_output(self, ctx: _RunContext, answer: str) -> None:
        if not ctx.options.enable_guardrails or self.guardrail is None:
            return
        context = [c.content for c in ctx.session.snapshot()]
        result = await self.guardrail.validate_output(answer, context, query=ctx.query)
        ctx.report.output = result
        logger.info(
            "guardrail.decision",
            stage="output",
            passed=result.passed,
            severity=result.severity,
            blocked=result.blocked,
        )
        if result.blocked:
            compute_step_durations(ctx.steps, self._now_ms())
            raise OutputBlockedError(self._result(ctx, answer))

    async def _resynthesize(self, ctx: _RunContext, answer: str) -> str:
        language = ctx.options.response_language
        detected = detect_query_language(answer)
        if detected == language:
            return answer

        ctx.phase = RunPhase.RESYNTHESIZING
        logger.warning(
            "agent.language_mismatch", session_id=ctx.session_id, expected=language, actual=detected
        )
        sources = [
            (c.document_title, c.content)
            for c in ctx.session.snapshot()[:RESYNTHESIS_MAX_SOURCES]
        ]
        try:
            text = await self.llm.generate(
                synthesis_prompt(ctx.query, format_sources(sources), language),
                system=self.system_prompt(language),
                temperature=self.temperature,
            )
        except Exception as ex:  # noqa: BLE001
            logger.error("agent.resynthesis_failed", session_id=ctx.session_id, error=str(ex))
            return answer
        if text and text.strip():
            return text
        return answer

    # ---- entry points ----

    def _start(self, query: str, options: AgentRunOptions | None, mode: str) -> _RunContext:
        opts = options or AgentRunOptions()
        session_id = opts.session_id or str(uuid.uuid4())
        logger.info(
            "agent.run.start",
            session_id=session_id,
            mode=mode,
            strategy=opts.retrieval_strategy,
            guardrails=opts.enable_guardrails,
            max_steps=opts.max_steps,
        )
        return _RunContext(
            query=query,
            options=opts,
            session_id=session_id,
            session=self.sessions.get(session_id),
            started=time.perf_counter(),
        )

    async def run(self, query: str, options: AgentRunOptions | None = None) -> AgenticRunResult:
        """Execute one request.

        Raises:
            OutputBlockedError: output guardrail returned a blocking action
        """
        ctx = self._start(query, options, mode="run")
        opts = ctx.options
        session_id = ctx.session_id

        if not await self._validate_input(ctx):
            result = AgenticRunResult(
                answer=BLOCKED_INPUT_ANSWER,
                steps=[],
                retrieved_chunks=[],
                citations=[],
                guardrail_results=ctx.report,
                language=opts.response_language,
                total_latency_ms=self._latency_ms(ctx),
                session_id=session_id,
            )
            return self._finish(ctx, result)

        ctx.phase = RunPhase.REASONING_LOOP
        try:
            answer = await self._reasoning_loop(ctx)
        except ToolNotFoundError as ex:
            ctx.phase = RunPhase.FAILED
            logger.error("agent.tool_not_found", session_id=session_id, tool=ex.tool_name)
            compute_step_durations(ctx.steps, self._now_ms())
            return self._finish(ctx, self._result(ctx, TOOL_NOT_FOUND_ANSWER, state="failed"))

        ctx.phase = RunPhase.VALIDATING_OUTPUT
        await self._validate_output(ctx, answer)

        answer = await self._resynthesize(ctx, answer)

        ctx.phase = RunPhase.DONE
        compute_step_durations(ctx.steps, self._now_ms())
        return self._finish(ctx, self._result(ctx, answer))

    async def stream(
        self, query: str, options: AgentRunOptions | None = None
    ) -> AsyncIterator[AgentStreamEvent]:
        """Execute one request, yielding text deltas and steps as they happen.

        The session is seeded with a fast-local reranked retrieval of the query
        and the provider sees those chunks as context from the first turn.
        Streamed text has already reached the caller, so output validation and
        resynthesis do not apply here. The last event is always "done".

        Raises:
            InputRejectedError: input guardrail did not pass the query
        """
        ctx = self._start(query, options, mode="stream")
        opts = ctx.options
        if not await self._validate_input(ctx):
            severity = ctx.report.input.severity if ctx.report.input is not None else "none"
            logger.warning("agent.input_rejected", session_id=ctx.session_id, severity=severity)
            raise InputRejectedError(message=BLOCKED_INPUT_ANSWER, severity=severity)

        ctx.phase = RunPhase.REASONING_LOOP
        initial = await self.retrieval.retrieve(
            query,
            RetrievalOptions(
                top_k=STREAM_INITIAL_TOP_K,
                strategy=opts.retrieval_strategy,
                language=opts.response_language,
                use_reranker=True,
                reranker_strategy="fast_local",
            ),
        )
        await ctx.session.add_chunks(initial)
        yield AgentStreamEvent(
            kind="step",
            step=self._record(
                ctx,
                "retrieval",
                None,
                tool_input={"query": query, "top_k": STREAM_INITIAL_TOP_K},
                tool_output={"found": len(initial)},
            ),
        )

        context = "\n\n".join(f"[{c.document_title}]: {c.content}" for c in ctx.session.snapshot())
        toolbox = self._toolbox(ctx)
        tools = toolbox.specs()
        messages: list[ChatMessage] = [
            ChatMessage(role="system", content=self.system_prompt(opts.response_language)),
            ChatMessage(role="user", content=f"Context:\n{context}\n\nQuestion: {query}"),
        ]

        answer = ""
        try:
            for _ in range(max(opts.max_steps, 0)):
                parts: list[str] = []
                response: LLMResponse | None = None
                async for chunk in self.llm.chat_stream(
                    messages, tools=tools, temperature=self.temperature
                ):
                    if chunk.text_delta:
                        parts.append(chunk.text_delta)
                        yield AgentStreamEvent(kind="text", text=chunk.text_delta)
                    if chunk.response is not None:
                        response = chunk.response
                if response is None:
                    response = LLMResponse(text="".join(parts))
                answer = response.text or ""

                mark = len(ctx.steps)
                more = await self._handle_turn(ctx, toolbox, messages, response)
                for step in ctx.steps[mark:]:
                    yield AgentStreamEvent(kind="step", step=step)
                if not more:
                    break
        except ToolNotFoundError as ex:
            ctx.phase = RunPhase.FAILED
            logger.error("agent.tool_not_found", session_id=ctx.session_id, tool=ex.tool_name)
            compute_step_durations(ctx.steps, self._now_ms())
            result = self._result(ctx, TOOL_NOT_FOUND_ANSWER, state="failed")
            yield AgentStreamEvent(kind="done", result=self._finish(ctx, result))
            return

        ctx.phase = RunPhase.DONE
        compute_step_durations(ctx.steps, self._now_ms())
        yield AgentStreamEvent(kind="done", result=self._finish(ctx, self._result(ctx, answer)))
