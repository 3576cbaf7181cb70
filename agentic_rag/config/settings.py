"""Application settings with environment-driven configuration.

Why: Einzige Stelle mit Env; everything else receives settings by injection.
"""

import os
from dataclasses import dataclass, field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    This is the ONLY place where environment variables are read.
    All other layers receive settings via dependency injection.
    """

    # ===== Vector Store Configuration =====
    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_prefer_grpc: bool = field(default_factory=lambda: _flag("QDRANT_PREFER_GRPC", "false"))
    qdrant_timeout_s: int = field(default_factory=lambda: int(os.getenv("QDRANT_TIMEOUT_S", "30")))
    collection: str = field(
        default_factory=lambda: os.getenv("VECTOR_COLLECTION", "document_chunks")
    )
    overfetch_factor: int = field(
        default_factory=lambda: int(os.getenv("VECTOR_OVERFETCH_FACTOR", "3"))
    )

    # ===== Embedding Configuration =====
    embedding_backend: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_BACKEND", "openai").lower()
    )
    # Supported: "openai" | "sentence_transformers"
    embedding_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))

    # ===== LLM Configuration =====
    llm_base_url: str = field(default_factory=lambda: os.getenv("LLM_BASE_URL", ""))
    # Empty = api.openai.com; set to e.g. http://localhost:8000/v1 for vLLM
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3"))
    )

    # ===== Reranker Configuration =====
    reranker_model: str = field(
        default_factory=lambda: os.getenv(
            "RERANKER_MODEL", "cross-encoder/ms-marco-TinyBERT-L-2-v2"
        )
    )
    reranker_device: str = field(default_factory=lambda: os.getenv("RERANKER_DEVICE", "cpu"))
    reranker_apply_sigmoid: bool = field(
        default_factory=lambda: _flag("RERANKER_APPLY_SIGMOID", "true")
    )
    reranker_seed: int | None = field(
        default_factory=lambda: int(os.environ["RERANKER_SEED"])
        if os.getenv("RERANKER_SEED")
        else None
    )
    # Fixed seed makes the pairwise tournament reproducible

    # ===== Retrieval Configuration =====
    retrieval_top_k: int = field(default_factory=lambda: int(os.getenv("RETRIEVAL_TOP_K", "10")))
    retrieval_min_score: float | None = field(
        default_factory=lambda: float(os.environ["RETRIEVAL_MIN_SCORE"])
        if os.getenv("RETRIEVAL_MIN_SCORE")
        else None
    )
    # Unset = strategy dependent (0.0 for hybrid, 0.3 otherwise)
    retrieval_rrf_k: int = field(default_factory=lambda: int(os.getenv("RETRIEVAL_RRF_K", "60")))
    keyword_pool: str = field(
        default_factory=lambda: os.getenv("RETRIEVAL_KEYWORD_POOL", "vector").lower()
    )
    # Supported: "vector" (local IDF over vector candidates) | "corpus" (all ready chunks)

    # ===== Agent Configuration =====
    agent_max_steps: int = field(default_factory=lambda: int(os.getenv("AGENT_MAX_STEPS", "5")))
    agent_response_language: str = field(
        default_factory=lambda: os.getenv("AGENT_RESPONSE_LANGUAGE", "id").lower()
    )
    agent_enable_guardrails: bool = field(
        default_factory=lambda: _flag("AGENT_ENABLE_GUARDRAILS", "true")
    )

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(default_factory=lambda: _flag("TELEMETRY_ENABLED", "false"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )

    # ===== Logging Configuration =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    log_json: bool = field(default_factory=lambda: _flag("LOG_JSON", "false"))
