import logging
import os

from pathlib import Path
from typing import Any, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


BASE_DIR = Path(__file__).resolve().parents[1]

INSECURE_SESSION_SECRET = "defi-copilot-insecure-session-secret"

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up legacy environment variable names."""

        super().model_post_init(__context)

        if not self.session_secret:
            fallback = os.getenv("REPL_ID")
            if fallback:
                object.__setattr__(self, "session_secret", fallback)

    # Server Settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=5000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(default="development", description="Deployment environment name")

    # Persistence & sessions
    database_url: str = Field(
        default="",
        description="SQLAlchemy async database URL (postgresql+asyncpg://... or sqlite+aiosqlite://...)",
    )
    session_secret: str = Field(default="", description="Secret used to sign session cookies")
    session_max_age_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        description="Session cookie lifetime (default: 1 week)",
    )

    # External API Keys
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    brian_api_key: str = Field(default="", description="Brian transaction-intent API key")
    coingecko_api_key: str = Field(default="", description="Coingecko demo API key (optional)")
    platform_private_key: str = Field(
        default="",
        description="Signing key of the platform's own funded account",
        validation_alias=AliasChoices("platform_private_key", "PLATFORM_PRIVATE_KEY", "PRIVATE_KEY"),
    )

    # LLM Provider Settings
    llm_provider: str = Field(default="openai", description="Default LLM provider")
    llm_model: str = Field(default="gpt-4o", description="Default LLM model")
    max_tokens: int = Field(default=1500, description="Maximum tokens for LLM response")
    llm_timeout_seconds: float = Field(default=60.0, description="Deadline for a single LLM call")
    intent_temperature: float = Field(default=0.3, description="Temperature for intent classification")
    response_temperature: float = Field(default=0.7, description="Temperature for response formatting")

    # Transaction execution (Brian)
    brian_base_url: str = Field(
        default="https://api.brianknows.org/api/v0",
        description="Brian API base URL",
    )
    brian_timeout_seconds: float = Field(default=30.0, description="Deadline for a single Brian API call")
    chain_id: int = Field(default=43113, description="Chain id used for transaction intents (Avalanche Fuji)")

    # Market data (Coingecko)
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="Coingecko API base URL",
    )
    market_timeout_seconds: float = Field(default=10.0, description="Market data request timeout")
    market_rate_limit: int = Field(default=10, description="Max market data requests per window")
    market_rate_window_seconds: int = Field(default=60, description="Market data rate limit window")
    price_cache_ttl_seconds: int = Field(default=30, description="TTL for spot price responses")
    chart_cache_ttl_seconds: int = Field(default=300, description="TTL for chart and trending responses")
    max_cache_size: int = Field(default=1000, description="Maximum cache size")
    default_asset_id: str = Field(default="avalanche-2", description="Asset used when none is given")

    # Real-time price feed
    price_feed_url: str = Field(
        default="wss://ws.coincap.io/prices?assets=",
        description="Streaming price source; the asset id is appended",
    )
    price_feed_max_reconnect_attempts: int = Field(default=5, description="Reconnect attempts per asset")
    price_feed_reconnect_delay_seconds: float = Field(default=1.0, description="Base reconnect delay")

    # Duplex connections
    heartbeat_interval_seconds: float = Field(default=30.0, description="Liveness probe interval")

    # Provider health
    enable_llm_health_check: bool = Field(default=False, description="Include the LLM provider in /healthz")

    @property
    def has_openai_key(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_brian_key(self) -> bool:
        return bool(self.brian_api_key)

    @property
    def has_coingecko_key(self) -> bool:
        return bool(self.coingecko_api_key)

    @property
    def has_llm_key(self) -> bool:
        """Check if we have an API key for the configured LLM provider"""
        if self.llm_provider.lower() in ["openai", "gpt"]:
            return self.has_openai_key
        elif self.llm_provider.lower() in ["anthropic", "claude"]:
            return self.has_anthropic_key
        return False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def effective_session_secret(self) -> str:
        return self.session_secret or INSECURE_SESSION_SECRET

    def missing_runtime_settings(self) -> List[str]:
        missing: List[str] = []
        if not self.has_llm_key:
            missing.append(f"{self.llm_provider.upper()}_API_KEY")
        if not self.has_brian_key:
            missing.append("BRIAN_API_KEY")
        if not self.platform_private_key:
            missing.append("PLATFORM_PRIVATE_KEY")
        if not self.database_url:
            missing.append("DATABASE_URL")
        return missing

    def require_runtime_secrets(self) -> None:
        """Fail fast when the options the server cannot run without are absent."""

        missing = self.missing_runtime_settings()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )
        if not self.session_secret:
            logger.warning(
                "SESSION_SECRET is not set; falling back to an insecure default. "
                "Set SESSION_SECRET before deploying."
            )


# Global settings instance
settings = Settings()
