from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="InnerLight API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        description="List of allowed CORS origins",
    )

    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the individual DB_* parts when set",
    )
    db_user: str = Field(default="innerlight")
    db_password: str = Field(default="innerlight")
    db_host: str = Field(default="db")
    db_port: int = Field(default=3306)
    db_name: str = Field(default="innerlight")

    jwt_secret_key: str = Field(default="change-me-to-a-long-random-secret-value")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)

    chat_message_max_length: int = Field(
        default=1000, description="Maximum number of characters in a chat message"
    )
    chat_history_max_limit: int = Field(
        default=500, description="Upper bound of messages returned for a conversation"
    )
    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        description="Seconds to wait for a client frame before considering a keepalive ping",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        description="Minimum seconds between keepalive pings on an idle connection",
    )

    realtime_redis_url: str | None = Field(
        default=None,
        description="Redis URL used to fan out realtime events across instances",
    )
    realtime_namespace: str = Field(
        default="innerlight.realtime", description="Prefix for broker channel names"
    )
    realtime_node_id: str | None = Field(
        default=None, description="Stable identifier of this instance; random when unset"
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("realtime_redis_url", "realtime_node_id", "database_url", mode="before")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
