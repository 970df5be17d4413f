"""Error types raised by MCP transports and clients."""

from __future__ import annotations

from typing import Any, Literal

type ErrorCategory = Literal[
    "closed",
    "network_timeout",
    "http_status",
    "invalid_payload",
    "transport_error",
]


class MCPTransportError(RuntimeError):
    """Transport failure with explicit category."""

    def __init__(self, message: str, *, category: ErrorCategory) -> None:
        super().__init__(message)
        self.category = category


class MCPRPCError(RuntimeError):
    """Error object returned by the remote side of a call."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        if data is not None:
            text = f"RPC error {code}: {message} (data: {data})"
        else:
            text = f"RPC error {code}: {message}"
        super().__init__(text)
        self.code = code
        self.message = message
        self.data = data


class MCPToolError(RuntimeError):
    """Tool result flagged as an error, or unusable for typed decoding."""

    def __init__(self, message: str, *, tool: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.tool = tool


class MCPClientError(RuntimeError):
    """Client misuse or an undecodable reply."""
