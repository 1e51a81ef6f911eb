"""Settings for the review service, read from the environment and env files."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ENVIRONMENTS = ("development", "production", "test")

# Env file per environment; tests run on defaults and explicit variables only.
ENV_FILES: dict[str, str | None] = {
    "development": ".env.dev",
    "production": ".env.prod",
    "test": None,
}


def parse_origins(raw: object) -> list[str]:
    """CORS origins from a list, a JSON array string or a comma separated string."""
    if isinstance(raw, list | tuple):
        return [str(origin).strip() for origin in raw]
    if not isinstance(raw, str):
        raise ValueError("CORS_ORIGINS must be a string or a list of strings")
    text = raw.strip()
    if not text.startswith("["):
        return [part.strip() for part in text.split(",") if part.strip()]
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError("CORS_ORIGINS is not a valid JSON array") from exc
    if not isinstance(decoded, list):
        raise ValueError("CORS_ORIGINS JSON must be an array")
    return [str(origin).strip() for origin in decoded]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "ReviewFlow"
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "sqlite+aiosqlite:///./review_flow.db"

    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Transcript parser (pydantic-ai); without a key the model string is
    # handed to pydantic-ai as is.
    GEMINI_API_KEY: str | None = None
    PARSER_MODEL: str = "google-gla:gemini-2.5-flash-lite"

    # Delivery endpoint used by send_email actions
    DISPATCH_URL: str = "http://localhost:8080/api/documents/send"
    DISPATCH_API_KEY: str | None = None
    DISPATCH_TIMEOUT_SECONDS: float = 10.0

    AUTOSAVE_DEBOUNCE_SECONDS: float = 2.0
    CLIENT_SUGGEST_DEBOUNCE_SECONDS: float = 0.3
    CLIENT_SUGGEST_LIMIT: int = 5
    CLONE_SEARCH_LIMIT: int = 10
    SEND_SEARCH_LIMIT: int = 5

    SCHEDULER_ENABLED: bool = True
    SESSION_RETENTION_DAYS: int = 30

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, v: object) -> list[str]:
        return parse_origins(v)

    @field_validator("AUTOSAVE_DEBOUNCE_SECONDS", "CLIENT_SUGGEST_DEBOUNCE_SECONDS")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Debounce delays must be >= 0 seconds")
        return v

    @model_validator(mode="after")
    def _no_wildcard_with_credentials(self) -> "Settings":
        origins = parse_origins(self.CORS_ORIGINS)
        self.CORS_ORIGINS = origins
        if self.ALLOW_CREDENTIALS and "*" in origins:
            raise ValueError(
                "CORS_ORIGINS may not contain '*' while ALLOW_CREDENTIALS is true; "
                "list the allowed origins explicitly"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development").lower()
    if environment not in ENVIRONMENTS:
        raise ValueError(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}")
    if environment == "production" and not os.getenv("DATABASE_URL"):
        raise RuntimeError("DATABASE_URL must be set in production")
    # `_env_file` is a runtime-only pydantic-settings argument.
    return Settings(_env_file=ENV_FILES[environment])  # type: ignore[call-arg]
