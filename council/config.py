"""Configuration settings for the council interview engine."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "registry"
    db_user: str = "council"
    db_password: str = "council"

    # Redis (event fan-out for live feeds)
    redis_url: str = "redis://localhost:6379/0"
    redis_events_enabled: bool = True

    # Text generation providers
    anthropic_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    generation_timeout: float = 60.0  # seconds
    generation_max_retries: int = 0  # the tick retries on its own schedule

    # Interview pacing
    hard_turn_cap: int = 25
    soft_turn_cap: int = 15
    soft_close_chance: float = 0.2
    min_closure_turn: int = 5
    question_trigger_chance: float = 0.25

    # Verdict
    base_acceptance_rate: float = 0.03
    provisional_band_multiplier: int = 3
    max_penalty_for_acceptance: int = -2

    # Output limits
    question_max_tokens: int = 500
    deliberation_max_tokens: int = 300
    max_response_chars: int = 5000

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def async_database_url(self) -> str:
        """Async SQLAlchemy database URL."""
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_prefix = "COUNCIL_"
        env_file = ".env"


# Global settings instance
settings = Settings()
