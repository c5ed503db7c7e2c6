"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="AIOCatalogs", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    addon_version: str = Field(default="1.0.0", alias="ADDON_VERSION")
    addon_description: str = Field(
        default="Combine catalogs from multiple Stremio addons into one.",
        alias="ADDON_DESCRIPTION",
    )
    addon_logo: HttpUrl | None = Field(
        default="https://i.imgur.com/fRPYeIV.png", alias="ADDON_LOGO"
    )
    addon_background: HttpUrl | None = Field(
        default="https://i.imgur.com/QPPXf5T.jpeg", alias="ADDON_BACKGROUND"
    )

    upstream_timeout_seconds: float = Field(
        default=5.0, alias="UPSTREAM_TIMEOUT", ge=1.0, le=60.0
    )

    mdblist_api_url: HttpUrl = Field(
        default="https://api.mdblist.com", alias="MDBLIST_API_URL"
    )
    rpdb_api_url: HttpUrl = Field(
        default="https://api.ratingposterdb.com", alias="RPDB_API_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./aiocatalogs.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("addon_version", mode="before")
    @classmethod
    def _strip_version(cls, value: object) -> object:
        """Fall back to the default version when the variable is blank."""

        if isinstance(value, str):
            value = value.strip().lstrip("v")
            if not value:
                return "1.0.0"
        return value

    @property
    def connect_timeout_seconds(self) -> float:
        """Connect timeout used for upstream addon requests."""

        return min(3.0, self.upstream_timeout_seconds)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
