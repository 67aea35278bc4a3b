from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENCRYPTION_SEED = "CHANGE-ME-use-a-long-random-string-here"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Keep responses concise and relevant. "
    "Responses should be clear and not overly detailed. At the end of the response, "
    "don't ask the user for more questions or information, just respond accurately, in short."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_env: str = "development"

    # Key mode: "user" = every identity stores its own keys,
    # "shared" = one server-wide key set used by everybody
    key_mode: Literal["user", "shared"] = "user"

    # Encryption of stored API keys
    encryption_seed: str = DEFAULT_ENCRYPTION_SEED
    data_dir: str = "./data"

    # Settings storage (empty = SQLite file inside data_dir)
    database_url: str = ""
    database_echo: bool = False

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{Path(self.data_dir) / 'askai.db'}"

    @property
    def shared_key_mode(self) -> bool:
        return self.key_mode == "shared"

    # Abuse prevention
    rate_limit_requests: int = 10
    rate_limit_window_seconds: float = 60.0
    max_message_length: int = 2000

    # Request shaping
    max_response_tokens: int = 1024
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    allowed_providers: str = ""  # comma-separated provider ids, empty = all
    provider_timeout_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    @property
    def allowed_provider_ids(self) -> list[str]:
        """Parse allowed providers from the comma-separated string."""
        return [p.strip().lower() for p in self.allowed_providers.split(",") if p.strip()]


settings = Settings()


def validate_settings(config: Settings | None = None) -> list[str]:
    """Validate critical settings. Called on startup.

    Aborts in production, returns the list of problems otherwise so the
    caller can log them.
    """
    config = config or settings
    errors: list[str] = []

    if config.encryption_seed == DEFAULT_ENCRYPTION_SEED:
        errors.append("ENCRYPTION_SEED must be changed from the placeholder value")
    elif len(config.encryption_seed) < 16:
        errors.append("ENCRYPTION_SEED must be at least 16 characters")

    if config.rate_limit_requests < 1:
        errors.append("RATE_LIMIT_REQUESTS must be at least 1")
    if config.rate_limit_window_seconds <= 0:
        errors.append("RATE_LIMIT_WINDOW_SECONDS must be positive")
    if not 0.0 <= config.temperature <= 2.0:
        errors.append("TEMPERATURE must be between 0 and 2")

    if errors and config.app_env == "production":
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
    return errors
