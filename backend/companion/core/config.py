"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/companion/core/config.py
# Project root is: backend/companion/core/../../../
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Companion"
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")

    # Logging
    log_sqlalchemy: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"companion.orchestrator": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/companion.log",
        description="Path to log file (relative to project root)"
    )
    log_file_retention: int = Field(default=14, ge=1, description="Number of days to keep log files")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (passwords, tokens) - NOT RECOMMENDED"
    )
    log_llm_verbose: bool = Field(default=False, description="Log full LLM request payloads")

    # Database
    database_url: str = Field(
        default="sqlite:///data/companion.db",
        description="SQLAlchemy database URL"
    )
    database_pool_size: int = Field(default=5, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")

    # LLM
    llm_base_url: str = Field(default="http://localhost:11434", description="Ollama-compatible API URL")
    llm_model: str = Field(default="llama3.1", description="Default generation model")
    llm_classifier_model: Optional[str] = Field(
        default=None,
        description="Optional smaller model for classification tasks"
    )
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Default temperature")
    llm_max_tokens: int = Field(default=1024, ge=16, description="Default token budget")
    llm_timeout_seconds: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Maximum time to wait for an LLM response (seconds)"
    )
    llm_max_retries: int = Field(default=3, ge=1, le=10, description="Retries for transport failures")

    # Context
    context_message_limit: int = Field(default=10, ge=1, description="Recent messages loaded per turn")

    # Memory decay (half-lives in hours)
    decay_crisis_half_life: float = Field(default=72.0, gt=0)
    decay_emotional_half_life: float = Field(default=48.0, gt=0)
    decay_topic_half_life: float = Field(default=24.0, gt=0)
    decay_preference_half_life: float = Field(default=168.0, gt=0)
    decay_general_half_life: float = Field(default=24.0, gt=0)
    decay_weight_floor: float = Field(default=0.1, ge=0.0, lt=1.0, description="Prune at or below this weight")
    decay_reinforcement_factor: float = Field(default=1.2, ge=1.0, description="Weight boost on re-observation")
    goal_expiry_days: float = Field(default=7.0, gt=0, description="Active goal expiry (days)")
    stale_threshold_minutes: int = Field(default=30, ge=1, description="Minutes before context is stale")

    # Classification
    use_unified_classifier: bool = Field(
        default=False,
        description="Use one combined safety+intent call instead of two sequential calls"
    )

    # Domains
    domains_enabled: bool = Field(default=True, description="Enable domain enrichment")
    disabled_domains: str = Field(default="", description="Domain ids to disable (comma-separated)")
    domain_default_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    steering_max_suggestions: int = Field(default=3, ge=1, description="Max merged steering suggestions")
    domain_history_enabled: bool = Field(default=True, description="Load stored extractions into state")
    domain_history_limit: int = Field(default=5, ge=1, description="Stored extractions loaded per domain")

    # Orchestrator
    orchestrator_enabled: bool = Field(default=True, description="Enable multi-intent orchestration")
    orchestrator_secondary_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    orchestrator_max_secondary: int = Field(default=2, ge=0)
    orchestrator_long_response_chars: int = Field(default=300, ge=0)
    orchestrator_handler_timeout_seconds: float = Field(default=15.0, gt=0)
    composer_min_response_chars: int = Field(default=100, ge=0)
    composer_significant_word_length: int = Field(
        default=4,
        ge=1,
        description="Words longer than this count as significant for conflict detection"
    )
    composer_conflict_word_count: int = Field(
        default=5,
        ge=0,
        description="Conflict when two responses share more than this many significant words"
    )

    # Agent clarification state
    agent_state_default_ttl_seconds: int = Field(default=300, ge=1)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and text formats are supported"""
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()

    @property
    def half_lives(self) -> Dict[str, float]:
        """Half-life per context type (hours)"""
        return {
            "crisis": self.decay_crisis_half_life,
            "emotional": self.decay_emotional_half_life,
            "topic": self.decay_topic_half_life,
            "preference": self.decay_preference_half_life,
            "general": self.decay_general_half_life,
        }

    @property
    def disabled_domains_list(self) -> list:
        """Parse disabled domain ids from comma-separated string"""
        return [d.strip() for d in self.disabled_domains.split(",") if d.strip()]

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
