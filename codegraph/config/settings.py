from typing import Literal, Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
import logging
import os

logger = logging.getLogger(__name__)

# Project root for default data paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DATA_PATH = os.getenv("CODEGRAPH_DATA_DIR", str(PROJECT_ROOT / "data"))


class AppSettings(BaseSettings):
    app_name: str = "CodeGraph Retrieval Engine"
    log_level: str = "INFO"
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_APP_',
        extra='ignore',
        case_sensitive=False
    )


class TruthSettings(BaseSettings):
    """Truth-value bounds and the fixed feedback evidence."""
    min_confidence: float = Field(0.01, description="Lower clamp applied after every confidence update")
    max_confidence: float = Field(0.99, description="Upper clamp; evidence is finite so 1.0 is never reached")
    evidence_confidence: float = Field(0.8, description="Confidence carried by a single thumbs up/down")
    positive_delta: float = Field(0.1, description="Additive confidence nudge for positive feedback")
    negative_delta: float = Field(-0.15, description="Additive confidence nudge for negative feedback")
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_TRUTH_',
        extra='ignore',
        case_sensitive=False
    )

    @field_validator('min_confidence', 'max_confidence', 'evidence_confidence', mode='after')
    @classmethod
    def validate_ranges(cls, v):
        if not 0 <= v <= 1:
            raise ValueError("Must be between 0 and 1")
        return v


class PropagationSettings(BaseSettings):
    max_hops: int = Field(2, ge=0, description="Maximum BFS depth for confidence propagation")
    decay_factor: float = Field(0.5, gt=0, lt=1, description="Per-hop attenuation of the propagated delta")
    hop0_mode: Literal["revision", "delta"] = Field(
        "revision", description="How the feedback target itself is updated"
    )
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_PROPAGATION_',
        extra='ignore',
        case_sensitive=False
    )


class RankingSettings(BaseSettings):
    """Score fusion weights. final = similarity*a + confidence*b + connectivity*c"""
    similarity_weight: float = Field(0.3, description="Weight of vector similarity")
    confidence_weight: float = Field(0.5, description="Weight of NARS confidence")
    connectivity_weight: float = Field(0.2, description="Weight of normalized graph degree")
    neutral_similarity: float = Field(0.5, description="Similarity used when the vector signal is missing")
    neutral_confidence: float = Field(0.5, description="Confidence used when the reasoning signal is missing")
    neutral_connectivity: float = Field(0.5, description="Connectivity used when the graph signal is missing")
    connectivity_k: float = Field(5.0, gt=0, description="Half-saturation degree for connectivity normalization")
    default_limit: int = Field(10, ge=1)
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_RANKING_',
        extra='ignore',
        case_sensitive=False
    )

    @field_validator('*', mode='after')
    @classmethod
    def validate_ranges(cls, v):
        if isinstance(v, float) and v < 0:
            raise ValueError("Must not be negative")
        return v


class RewardSettings(BaseSettings):
    base_confidence_weight: float = Field(0.40)
    similarity_weight: float = Field(0.30)
    connectivity_weight: float = Field(0.20)
    negative_penalty_weight: float = Field(0.10)
    connectivity_k: float = Field(5.0, gt=0)
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_REWARD_',
        extra='ignore',
        case_sensitive=False
    )

    @field_validator(
        'base_confidence_weight', 'similarity_weight', 'connectivity_weight', 'negative_penalty_weight',
        mode='after'
    )
    @classmethod
    def validate_ranges(cls, v):
        if not 0 <= v <= 1:
            raise ValueError("Must be between 0 and 1")
        return v


class ResilienceSettings(BaseSettings):
    """Retry, circuit breaker and degradation configuration."""
    retry_max_llm: int = Field(
        3, ge=0, validation_alias=AliasChoices('CODEGRAPH_RESILIENCE_RETRY_MAX_LLM', 'RETRY_MAX_OPENAI'),
        description="Retries after the first attempt for LLM/embedding calls"
    )
    retry_max_db: int = Field(
        2, ge=0, validation_alias=AliasChoices('CODEGRAPH_RESILIENCE_RETRY_MAX_DB', 'RETRY_MAX_DB'),
        description="Retries after the first attempt for graph/vector calls"
    )
    retry_max_reasoner: int = Field(2, ge=0)
    retry_base_delay_ms: int = Field(
        100, ge=0, validation_alias=AliasChoices('CODEGRAPH_RESILIENCE_RETRY_BASE_DELAY_MS', 'RETRY_BASE_DELAY_MS')
    )
    retry_max_delay_ms: int = Field(30000, ge=0)
    circuit_breaker_threshold: int = Field(
        5, ge=1,
        validation_alias=AliasChoices('CODEGRAPH_RESILIENCE_CIRCUIT_BREAKER_THRESHOLD', 'CIRCUIT_BREAKER_THRESHOLD'),
        description="Consecutive failures before a circuit opens"
    )
    circuit_breaker_timeout_secs: float = Field(
        30.0, ge=0,
        validation_alias=AliasChoices('CODEGRAPH_RESILIENCE_CIRCUIT_BREAKER_TIMEOUT_SECS', 'CIRCUIT_BREAKER_TIMEOUT_SECS'),
        description="Cooldown before an open circuit admits a trial call"
    )
    llm_timeout_secs: float = Field(60.0, gt=0)
    db_timeout_secs: float = Field(10.0, gt=0)
    default_timeout_secs: float = Field(30.0, gt=0)
    degradation_enabled: bool = Field(True, description="When disabled the operating mode is always Full")
    degraded_threshold: int = Field(3, ge=1, description="Consecutive failures before a service is Degraded")
    offline_threshold: int = Field(5, ge=1, description="Consecutive failures before a service is Down")
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_RESILIENCE_',
        extra='ignore',
        case_sensitive=False,
        populate_by_name=True
    )


class CacheSettings(BaseSettings):
    max_entries: int = Field(1000, ge=1, description="Maximum cached query responses")
    ttl_seconds: float = Field(300.0, gt=0, description="Age after which a cached response is stale")
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_CACHE_',
        extra='ignore',
        case_sensitive=False
    )


class BackendSettings(BaseSettings):
    graph_path: str = Field(str(Path(DATA_PATH) / "graph.json"), description="JSON file backing the graph store")
    vector_backend: Literal["memory", "chromadb"] = Field("memory")
    chromadb_use_server: bool = Field(False, description="Use ChromaDB server mode instead of embedded mode")
    chromadb_host: str = Field("localhost")
    chromadb_port: int = Field(8003)
    chromadb_path: str = Field(str(Path(DATA_PATH) / "chromadb"))
    chromadb_collection: str = Field("ui_components")
    embedding_url: Optional[str] = Field(None, description="OpenAI-compatible base URL; offline hash embeddings when unset")
    embedding_model: str = Field("text-embedding-3-small")
    embedding_api_key: Optional[str] = Field(None)
    embedding_dimension: int = Field(1536, ge=1)
    ona_url: Optional[str] = Field(None, description="ONA HTTP shim; the offline reasoner is used when unset")
    ona_cycles: int = Field(100, ge=0)
    feedback_db_path: str = Field(str(Path(DATA_PATH) / "feedback.db"))
    model_config = SettingsConfigDict(
        env_prefix='CODEGRAPH_BACKEND_',
        extra='ignore',
        case_sensitive=False
    )


class Settings(BaseSettings):
    app: AppSettings = Field(default_factory=AppSettings)
    truth: TruthSettings = Field(default_factory=TruthSettings)
    propagation: PropagationSettings = Field(default_factory=PropagationSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    reward: RewardSettings = Field(default_factory=RewardSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    backends: BackendSettings = Field(default_factory=BackendSettings)
    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / '.env'),
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
        env_nested_delimiter='__',
        env_prefix="CODEGRAPH_"
    )


settings = Settings()
