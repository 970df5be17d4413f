"""FastAPI app entrypoint."""

from __future__ import annotations

import uvicorn
from fastapi import Depends, FastAPI

from release_mcp.api.deps import get_app_settings
from release_mcp.api.routes.mcp_transport import router as mcp_transport_router
from release_mcp.config import Settings, configure_logging, get_settings


def create_app() -> FastAPI:
    app = FastAPI(title="release-mcp", version=get_settings().server_version)
    app.include_router(mcp_transport_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/v1/mcp/.well-known", tags=["system"])
    async def mcp_discovery(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
        return {
            "name": settings.server_name,
            "transport": "http",
            "endpoint": "/mcp",
        }

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "release_mcp.api.app:app",
        host=settings.http_host,
        port=settings.http_port,
        reload=False,
    )
