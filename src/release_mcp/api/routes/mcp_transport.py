"""MCP JSON-RPC transport endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from release_mcp.api.deps import get_mcp_server
from release_mcp.mcp.server import MCPServer

router = APIRouter(tags=["mcp-transport"])


@router.post("/mcp")
async def mcp_transport(
    request: Request,
    server: MCPServer = Depends(get_mcp_server),
) -> Response:
    body = await request.body()
    reply = await server.handle_message(body)
    if reply is None:
        return Response(status_code=status.HTTP_202_ACCEPTED)
    return JSONResponse(reply.to_wire())
