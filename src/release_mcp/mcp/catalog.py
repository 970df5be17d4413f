"""Wire release tools, resources and prompts into a server."""

from __future__ import annotations

import asyncio
import logging

from release_mcp.config import Settings, configure_logging, get_settings, resolve_store_path
from release_mcp.core.git_reader import GitReader
from release_mcp.core.release_manager import ReleaseManager
from release_mcp.core.release_store import InMemoryReleaseStore, ReleaseStore
from release_mcp.db.store import SQLiteReleaseStore
from release_mcp.mcp.cache import ResourceCache
from release_mcp.mcp.client import MCPClient
from release_mcp.mcp.progress import ProgressSink
from release_mcp.mcp.registry import HandlerRegistry
from release_mcp.mcp.server import MCPServer, run_stdio
from release_mcp.mcp.tools.prompts import register_prompts
from release_mcp.mcp.tools.release_tools import ReleaseTools
from release_mcp.mcp.tools.resources import ReleaseResources
from release_mcp.mcp.transport import HTTPTransport

logger = logging.getLogger(__name__)


def build_registry(manager: ReleaseManager, settings: Settings) -> HandlerRegistry:
    registry = HandlerRegistry()
    ReleaseTools(manager).register(registry)
    ReleaseResources(manager, settings).register(registry)
    register_prompts(registry)
    return registry


def build_store(settings: Settings) -> ReleaseStore:
    if settings.store_backend == "memory":
        return InMemoryReleaseStore()
    path = resolve_store_path(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteReleaseStore(db_path=path)


def build_manager(settings: Settings, *, store: ReleaseStore | None = None) -> ReleaseManager:
    return ReleaseManager(
        store if store is not None else build_store(settings),
        GitReader(),
        repository_path=settings.repository_path,
        tag_prefix=settings.tag_prefix,
        remote=settings.git_remote,
    )


def build_server(
    settings: Settings | None = None,
    *,
    manager: ReleaseManager | None = None,
    cache: ResourceCache | None = None,
    progress_sink: ProgressSink | None = None,
) -> MCPServer:
    """Assemble a fully wired release server from settings."""
    settings = settings or get_settings()
    manager = manager or build_manager(settings)
    if cache is None:
        cache = ResourceCache(default_ttl=settings.cache_default_ttl)
        cache.set_enabled(settings.cache_enabled)
    return MCPServer(
        build_registry(manager, settings),
        name=settings.server_name,
        version=settings.server_version,
        instructions=settings.instructions,
        cache=cache,
        progress_sink=progress_sink,
    )


def connect_http(endpoint: str, settings: Settings | None = None) -> MCPClient:
    """Client for a server reachable at an HTTP `/mcp` endpoint."""
    settings = settings or get_settings()
    return MCPClient(HTTPTransport(endpoint, timeout=settings.client_timeout_seconds))


def main() -> None:
    """Serve MCP over stdin/stdout."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("serving %s over stdio for %s", settings.server_name, settings.repository_path)
    asyncio.run(run_stdio(build_server(settings)))
