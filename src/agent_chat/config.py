"""Environment-driven application settings."""

import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field


class LLMSettings(BaseModel):
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 120.0


class Settings(BaseModel):
    database_url: str = "sqlite+aiosqlite:///./agent_chat.db"
    history_window: int = 20
    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    llm: LLMSettings = Field(default_factory=LLMSettings)


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    defaults = Settings()

    return Settings(
        database_url=env.get("DATABASE_URL") or defaults.database_url,
        history_window=int(env.get("CHAT_HISTORY_WINDOW", defaults.history_window)),
        log_level=env.get("LOG_LEVEL", defaults.log_level),
        log_json=env.get("LOG_JSON", "").lower() in ("1", "true", "yes"),
        cors_origins=_split_origins(env.get("CORS_ORIGINS", "")) or defaults.cors_origins,
        llm=LLMSettings(
            api_url=env.get("BUILT_IN_FORGE_API_URL") or None,
            api_key=env.get("BUILT_IN_FORGE_API_KEY") or None,
            timeout=float(env.get("LLM_TIMEOUT_SECONDS", defaults.llm.timeout)),
        ),
    )
