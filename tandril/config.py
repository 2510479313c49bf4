# tandril/config.py
"""Application configuration using pydantic-settings.

Provides a centralized Settings class for all environment variables.
Supports both GOOGLE_API_KEY and GEMINI_API_KEY for the interpreter model.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are loaded from .env file and environment variables.
    Environment variables take precedence over .env file values.
    """

    # Interpreter model (supports both GOOGLE_API_KEY and GEMINI_API_KEY)
    google_api_key: str = ""
    gemini_api_key: str = ""
    interpreter_model: str = "gemini/gemini-2.0-flash"

    # Persistence
    store_backend: str = "sqlite"  # "sqlite" or "memory"
    database_path: str = "data/tandril.db"

    # Command lifecycle
    poll_interval_seconds: float = 2.0
    free_plan_command_limit: int = 50
    pro_plan_command_limit: int = 1000

    # Automations
    scheduler_tick_seconds: int = 60
    default_timezone: str = "UTC"
    dry_run_actions: bool = True  # No platform executors are wired by default

    # Observability
    log_level: str = "INFO"
    logfire_token: str = ""

    # API Security
    api_auth_key: str = ""  # Required for API access (X-API-Key header)
    api_rate_limit: int = 60  # Requests per minute

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def api_key(self) -> str:
        """Get the interpreter API key with fallback support.

        Returns:
            GOOGLE_API_KEY if set, otherwise GEMINI_API_KEY, or empty string.
        """
        return self.google_api_key or self.gemini_api_key

    def command_limit_for(self, plan: str | None) -> int:
        """Get the monthly command limit for a subscription plan.

        Args:
            plan: Plan name ("pro" gets the higher limit, anything else is free).

        Returns:
            Number of commands allowed per calendar month.
        """
        if plan == "pro":
            return self.pro_plan_command_limit
        return self.free_plan_command_limit


# Singleton instance - import this in your code
settings = Settings()
