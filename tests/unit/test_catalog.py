from pathlib import Path

import pytest

from release_mcp.config import Settings, resolve_store_path
from release_mcp.core.release_store import InMemoryReleaseStore
from release_mcp.db.store import SQLiteReleaseStore
from release_mcp.mcp.catalog import build_server, build_store, connect_http
from release_mcp.mcp.transport import HTTPTransport


def test_build_store_follows_backend_setting(tmp_path: Path) -> None:
    memory = build_store(Settings(repository_path=tmp_path, store_backend="memory"))
    sqlite_settings = Settings(repository_path=tmp_path)
    sqlite = build_store(sqlite_settings)

    assert isinstance(memory, InMemoryReleaseStore)
    assert isinstance(sqlite, SQLiteReleaseStore)
    assert resolve_store_path(sqlite_settings) == tmp_path / ".release-mcp" / "releases.db"
    assert resolve_store_path(sqlite_settings).parent.is_dir()


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RELEASE_MCP_SERVER_NAME", "env-server")
    monkeypatch.setenv("RELEASE_MCP_CACHE_ENABLED", "false")
    monkeypatch.setenv("RELEASE_MCP_STORE_BACKEND", "memory")
    monkeypatch.setenv("RELEASE_MCP_REPOSITORY_PATH", str(tmp_path))

    settings = Settings()
    server = build_server(settings)

    assert server.server_info.name == "env-server"
    assert not server.cache.enabled


@pytest.mark.asyncio
async def test_connect_http_uses_client_timeout(tmp_path: Path) -> None:
    settings = Settings(repository_path=tmp_path, client_timeout_seconds=2.5)

    client = connect_http("http://localhost:9/mcp", settings)

    transport = client._transport
    assert isinstance(transport, HTTPTransport)
    assert transport.endpoint == "http://localhost:9/mcp"
    await client.close()
    assert transport.closed
