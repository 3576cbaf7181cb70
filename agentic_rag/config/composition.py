import random

from agentic_rag.application.dto.agent_dto import AgentRunOptions
from agentic_rag.application.dto.retrieval_dto import RetrievalOptions
from agentic_rag.application.ports.clock_port import ClockPort
from agentic_rag.application.ports.embedding_port import EmbeddingPort
from agentic_rag.application.ports.guardrail_port import GuardrailPort
from agentic_rag.application.ports.llm_port import LLMPort
from agentic_rag.application.ports.reranker_port import RerankerPort
from agentic_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from agentic_rag.application.ports.vector_store_port import VectorStorePort
from agentic_rag.application.session_store import SessionStateStore
from agentic_rag.application.use_cases.hybrid_retrieval import HybridRetrieval
from agentic_rag.application.use_cases.rerank_candidates import RerankingEngine
from agentic_rag.application.use_cases.run_agentic_rag import AgentOrchestrator
from agentic_rag.application.use_cases.vector_search import VectorSearch
from agentic_rag.config.settings import AppSettings
from agentic_rag.domain.errors import ValidationError
from agentic_rag.domain.services.bm25 import KeywordSearchEngine
from agentic_rag.domain.services.fusion import RankFusionEngine
from agentic_rag.infrastructure.embeddings.sentence_transformers_adapter import (
    SentenceTransformersEmbeddingAdapter,
)
from agentic_rag.infrastructure.guardrails.null_guardrail import NullGuardrail
from agentic_rag.infrastructure.llm.openai_adapter import OpenAIChatAdapter, OpenAIEmbeddingAdapter
from agentic_rag.infrastructure.reranking.cross_encoder_adapter import CrossEncoderAdapter
from agentic_rag.infrastructure.telemetry.structlog_config import configure_logging
from agentic_rag.infrastructure.time.system_clock import SystemClock
from agentic_rag.infrastructure.vectorstore.qdrant_adapter import (
    QdrantConfig,
    QdrantVectorStoreAdapter,
)


def build_embedding(settings: AppSettings) -> EmbeddingPort:
    backend = settings.embedding_backend
    if backend == "sentence_transformers":
        return SentenceTransformersEmbeddingAdapter(
            model_name=settings.embedding_model,
            device=settings.embedding_device,
        )
    if backend == "openai":
        return OpenAIEmbeddingAdapter(
            base_url=settings.llm_base_url or None,
            api_key=settings.llm_api_key,
            model=settings.embedding_model,
        )
    raise ValidationError(f"unknown embedding backend '{backend}'")


def build_vector_store(settings: AppSettings) -> VectorStorePort:
    return QdrantVectorStoreAdapter(
        QdrantConfig(
            url=settings.qdrant_url,
            collection=settings.collection,
            api_key=settings.qdrant_api_key or None,
            prefer_grpc=settings.qdrant_prefer_grpc,
            timeout_s=settings.qdrant_timeout_s,
        )
    )


def build_llm(settings: AppSettings) -> LLMPort:
    return OpenAIChatAdapter(
        base_url=settings.llm_base_url or None,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
    )


def build_clock() -> ClockPort:
    """Tests should inject a fake clock instead."""
    return SystemClock()


def build_reranker(settings: AppSettings) -> RerankerPort:
    """Fast local cross-encoder.

    Environment variables:
        RERANKER_MODEL: Model name (default: cross-encoder/ms-marco-TinyBERT-L-2-v2)
        RERANKER_DEVICE: cpu or cuda (default: cpu)
        RERANKER_APPLY_SIGMOID: Apply sigmoid to scores (default: true)
    """
    return CrossEncoderAdapter(
        model_name=settings.reranker_model,
        device=settings.reranker_device,
        apply_sigmoid=settings.reranker_apply_sigmoid,
    )


def build_guardrail(settings: AppSettings) -> GuardrailPort:
    # Content rules are external; wire a real validator here.
    return NullGuardrail()


def build_telemetry(settings: AppSettings) -> TelemetryPort:
    """OpenTelemetryAdapter when enabled, otherwise a no-op."""
    if not settings.telemetry_enabled:
        return NullTelemetry()
    from agentic_rag.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig

    cfg = OtelConfig(
        service_name="agentic-rag",
        otlp_endpoint=settings.otlp_endpoint or None,
        environment=settings.telemetry_environment,
        enable_console=False,
    )
    return OpenTelemetryAdapter(cfg)


def build_reranking_engine(
    settings: AppSettings,
    llm: LLMPort | None = None,
    telemetry: TelemetryPort | None = None,
) -> RerankingEngine:
    return RerankingEngine(
        cross_encoder=build_reranker(settings),
        llm=llm if llm is not None else build_llm(settings),
        rng=random.Random(settings.reranker_seed),
        telemetry=telemetry,
    )


def build_hybrid_retrieval(
    settings: AppSettings,
    llm: LLMPort | None = None,
    telemetry: TelemetryPort | None = None,
) -> HybridRetrieval:
    vector_store = build_vector_store(settings)
    return HybridRetrieval(
        vector_search=VectorSearch(
            embedding=build_embedding(settings),
            vector_store=vector_store,
            overfetch_factor=settings.overfetch_factor,
        ),
        vector_store=vector_store,
        keyword_engine=KeywordSearchEngine(),
        fusion=RankFusionEngine(rrf_k=settings.retrieval_rrf_k),
        reranking=build_reranking_engine(settings, llm=llm, telemetry=telemetry),
        telemetry=telemetry,
        keyword_pool=settings.keyword_pool,
    )


def build_retrieval_options(settings: AppSettings) -> RetrievalOptions:
    return RetrievalOptions(
        top_k=settings.retrieval_top_k,
        min_score=settings.retrieval_min_score,
        rrf_k=settings.retrieval_rrf_k,
    )


def build_agent_orchestrator(
    settings: AppSettings | None = None,
    sessions: SessionStateStore | None = None,
) -> AgentOrchestrator:
    """Composition root for the agentic pipeline; also configures logging."""
    settings = settings or AppSettings()
    configure_logging(settings.log_level, json=settings.log_json)
    telemetry = build_telemetry(settings)
    llm = build_llm(settings)
    return AgentOrchestrator(
        llm=llm,
        retrieval=build_hybrid_retrieval(settings, llm=llm, telemetry=telemetry),
        guardrail=build_guardrail(settings),
        sessions=sessions or SessionStateStore(),
        clock=build_clock(),
        telemetry=telemetry,
        temperature=settings.llm_temperature,
    )


def build_agent_run_options(settings: AppSettings, session_id: str | None = None) -> AgentRunOptions:
    language = settings.agent_response_language
    if language not in ("id", "en"):
        raise ValidationError(f"unsupported response language '{language}'")
    return AgentRunOptions(
        session_id=session_id,
        enable_guardrails=settings.agent_enable_guardrails,
        max_steps=settings.agent_max_steps,
        response_language=language,
    )
