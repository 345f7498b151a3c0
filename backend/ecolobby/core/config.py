from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Eco Lobby"
    debug: bool = False
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    api_prefix: str = "/api"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    max_players: int = Field(default=6, ge=1)
    session_id_length: int = Field(default=6, ge=4, le=16)
    empty_session_grace_seconds: int = 30 * 60
    reaper_interval_seconds: float = 5 * 60
    reaper_measure_from: Literal["emptied_at", "created_at"] = "emptied_at"
    delete_empty_sessions_immediately: bool = False
    chat_max_length: int = 500

    static_dir: str = "public"
    spa_fallback: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
