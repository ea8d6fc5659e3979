"""Configuration settings for the agent congress."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from .personality import Trait

TraitValue = Annotated[float, Field(ge=0, le=100)]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Persistence
    database_url: str = "sqlite+aiosqlite:///congress.db"

    # Redis
    redis_url: str = "redis://localhost:16379/0"
    redis_rate_limit_enabled: bool = False
    redis_events_enabled: bool = False
    redis_rate_limit_wait_seconds: int = 60
    rate_limit_per_minute: int = 60

    # Text generation
    llm_base_url: str = "http://localhost:11434/v1"
    llm_api_key: str | None = None
    moderator_model: str = "Claude"
    model_aliases: dict[str, str] = Field(default_factory=dict)

    # Timeouts (seconds)
    turn_timeout: float = 60.0
    review_timeout: float = 30.0
    research_timeout: float = 90.0
    max_parallel_requests: int = 4

    # Vote-driven learning
    upvote_influence: float = 5.0
    downvote_influence: float = 8.0
    upvote_trait_delta: float = 2.0
    downvote_trait_delta: float = 8.0
    compensating_trait_delta: float = 4.0
    significance_threshold: float = 10.0

    # Outcome-driven learning
    win_influence: float = 10.0
    loss_pragmatism_delta: float = 5.0

    # Relationship deltas
    shared_fate_delta: float = 2.0
    coalition_bond_delta: float = 10.0
    peer_review_delta: float = 5.0

    class Config:
        env_prefix = "CONGRESS_"
        env_file = ".env"


class DebateOptions(BaseModel):
    """Every recognised debate option, validated when a debate starts."""

    model_config = ConfigDict(extra="forbid")

    controversy_level: int = Field(100, ge=0, le=100)
    enable_peer_review: bool = False
    enable_research: bool = False
    max_reviewers: int = Field(2, ge=0, le=2)
    turn_timeout: float | None = Field(None, gt=0)


class AgentConfig(BaseModel):
    """Registration request for a new (or previously persisted) agent."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None
    model: str = "Claude"
    party: str = "Independent"
    flavor: str | None = None
    personality: dict[Trait, TraitValue] = Field(default_factory=dict)
    generation: int = Field(1, ge=1)


# Global settings instance
settings = Settings()
