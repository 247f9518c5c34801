"""Configuration settings for the agent council."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    db_host: str = "localhost"
    db_port: int = 15432
    db_name: str = "council"
    db_user: str = "council"
    db_password: str = "council"
    database_url: str | None = None

    # Model backend (OpenAI-compatible chat completions)
    llm_api_url: str = "https://api.openai.com/v1"
    llm_api_key: str | None = None
    llm_model: str = "gpt-4o"
    agent_temperature: float = 0.7
    agent_max_tokens: int = 2000
    synthesis_temperature: float = 0.7
    synthesis_max_tokens: int = 3000

    # Data sources
    notion_api_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    context_item_limit: int = 20
    context_title_listing_limit: int = 5

    # Timeouts (seconds)
    llm_timeout: int = 120
    source_fetch_timeout: int = 30

    # Synthesis
    rejection_history_limit: int = 10
    synthesis_min_actions: int = 2
    synthesis_max_actions: int = 3

    # Redis
    redis_url: str = "redis://localhost:16379/0"
    redis_rate_limit_enabled: bool = True
    redis_rate_limit_wait_seconds: int = 60
    redis_events_enabled: bool = True
    llm_rate_limit: int = 60
    llm_rate_window: int = 60

    log_level: str = "INFO"

    @property
    def async_database_url(self) -> str:
        """Async SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_prefix = "COUNCIL_"
        env_file = ".env"


# Global settings instance
settings = Settings()
