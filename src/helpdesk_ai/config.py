"""Configuration models for the support agent engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from helpdesk_ai.errors import ConfigurationError


class ChunkingConfig(BaseModel):
    """Configures paragraph-packing chunking with overlap."""

    max_tokens: int = Field(default=500, ge=20)
    min_tokens: int = Field(default=100, ge=0)
    overlap_tokens: int = Field(default=50, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.max_tokens:
            raise ConfigurationError("overlap_tokens must be less than max_tokens")
        if self.min_tokens > self.max_tokens:
            raise ConfigurationError("min_tokens must not exceed max_tokens")
        return self


class EmbeddingConfig(BaseModel):
    """Configures batching and pacing of bulk embedding calls."""

    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, ge=1)
    batch_size: int = Field(default=100, ge=1, le=100)
    batch_delay_seconds: float = Field(default=0.1, ge=0.0)
    max_input_tokens: int = Field(default=8191, ge=1)


class RetrievalConfig(BaseModel):
    """Configures top-K retrieval and context assembly."""

    top_k: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.7, ge=0.0, le=1.0)
    relevance_probe_min_score: float = Field(default=0.75, ge=0.0, le=1.0)
    context_max_tokens: int = Field(default=2000, ge=1)
    min_truncated_chars: int = Field(default=100, ge=0)


class AgentConfig(BaseModel):
    """Configures one agent tier: retrieval depth and completion settings."""

    tier: str = Field(default="L1", pattern=r"^L[12]$")
    rag_top_k: int = Field(default=5, ge=1)
    rag_context_tokens: int = Field(default=2000, ge=1)
    source_preview_chars: int = Field(default=200, ge=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=1000, ge=1)

    @classmethod
    def tier1(cls) -> "AgentConfig":
        return cls(tier="L1")

    @classmethod
    def tier2(cls) -> "AgentConfig":
        return cls(
            tier="L2",
            rag_top_k=8,
            rag_context_tokens=3000,
            source_preview_chars=300,
            temperature=0.5,
            max_output_tokens=1500,
        )


class GuardrailConfig(BaseModel):
    """Configures guardrail thresholds."""

    max_response_chars: int = Field(default=4000, ge=1)
    failed_attempts_threshold: int = Field(default=3, ge=1)


class ConcurrencyConfig(BaseModel):
    """Bounds concurrent upstream calls per tenant."""

    max_concurrent_per_tenant: int = Field(default=4, ge=1)


class Settings(BaseSettings):
    """Process settings loaded from environment variables or `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    HELPDESK_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    LOG_LEVEL: str = Field(default="INFO")

    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    OPENAI_MODEL: str = Field(default="gpt-4o", description="Chat model for both tiers")
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-small")
    EMBEDDING_DIMENSIONS: int = Field(default=1536)

    PINECONE_API_KEY: str | None = Field(default=None)
    PINECONE_INDEX: str = Field(default="techsupport-kb")

    PLAYBOOK_DIR: str | None = Field(default=None, description="Directory of playbook JSON files")
    VISUAL_SESSION_BASE_URL: str = Field(default="https://support.example.com/visionscreen")

    def embedding_config(self) -> EmbeddingConfig:
        return EmbeddingConfig(model=self.EMBEDDING_MODEL, dimensions=self.EMBEDDING_DIMENSIONS)


@lru_cache
def get_settings() -> Settings:
    return Settings()
