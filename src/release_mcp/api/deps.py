"""Shared API dependency providers."""

from __future__ import annotations

from functools import lru_cache

from release_mcp.config import Settings, get_settings
from release_mcp.mcp.catalog import build_server
from release_mcp.mcp.server import MCPServer


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def get_mcp_server() -> MCPServer:
    return build_server(get_settings())
