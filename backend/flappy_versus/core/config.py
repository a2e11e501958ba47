from functools import lru_cache
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    api_prefix: str = Field(default="/api")
    project_name: str = Field(default="Flappy Versus Match Service")
    database_url: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/flappy_versus",
        validation_alias="DATABASE_URL",
    )
    create_schema_on_startup: bool = Field(default=True)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    websocket_path: str = Field(default="/ws")
    max_players_per_room: int = Field(default=4, ge=1, le=4)
    nickname_max_length: int = Field(default=18)
    default_nickname: str = Field(default="Player")
    character_max_length: int = Field(default=32)
    default_character: str = Field(default="bird")
    countdown_ms: int = Field(default=3000)
    spawn_y: float = Field(default=320)
    room_code_length: int = Field(default=6)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings: Annotated[Settings, "Application settings"] = get_settings()
