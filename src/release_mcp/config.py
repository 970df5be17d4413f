"""Runtime settings loaded from the environment."""

from __future__ import annotations

import logging
import sys
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

DEFAULT_INSTRUCTIONS = (
    "Release management server. Typical flow: release.plan to analyze commits, "
    "release.bump to set the version, release.notes to generate the changelog, "
    "release.evaluate to assess risk, release.approve, then release.publish. "
    "Read release://state at any time to see where the active release stands."
)


class Settings(BaseSettings):
    """Server and client settings; every field reads `RELEASE_MCP_<NAME>`."""

    model_config = SettingsConfigDict(env_prefix="RELEASE_MCP_", extra="ignore")

    server_name: str = Field(default="release-mcp")
    server_version: str = Field(default="0.1.0")
    instructions: str = Field(default=DEFAULT_INSTRUCTIONS)

    repository_path: Path = Field(default_factory=Path.cwd)
    tag_prefix: str = Field(default="v")
    git_remote: str = Field(default="origin")
    versioning_strategy: str = Field(default="semver")
    plugins: list[str] = Field(default_factory=list)

    store_backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    store_path: Path | None = Field(default=None)

    http_host: str = Field(default="127.0.0.1")
    http_port: int = Field(default=8000, ge=1, le=65535)

    cache_enabled: bool = Field(default=True)
    cache_default_ttl_seconds: float = Field(default=10.0, gt=0)

    client_timeout_seconds: float = Field(default=30.0, gt=0)
    log_level: str = Field(default="INFO")

    @property
    def cache_default_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_default_ttl_seconds)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | int = logging.INFO) -> None:
    """Send log records to stderr; stdout carries protocol frames."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def resolve_store_path(settings: Settings) -> Path:
    if settings.store_path is not None:
        return settings.store_path
    return settings.repository_path / ".release-mcp" / "releases.db"
