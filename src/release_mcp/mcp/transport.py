"""Client transports: newline-framed streams and HTTP POST."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, cast

import httpx
from pydantic import ValidationError

from release_mcp.mcp.errors import MCPTransportError
from release_mcp.mcp.protocol import JSONObject, Request, Response

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

type NotificationHandler = Callable[[Request], Awaitable[None]]


class ClientTransport(Protocol):
    """Moves one request envelope to a server and returns its reply.

    Notifications return `None` without waiting for anything.
    """

    async def send(self, request: Request) -> Response | None: ...

    async def close(self) -> None: ...


class LineWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class LineReader(Protocol):
    async def readline(self) -> bytes: ...


def decode_response(payload: Any) -> Response:
    if not isinstance(payload, dict):
        msg = "Invalid JSON-RPC response payload"
        raise MCPTransportError(msg, category="invalid_payload")
    try:
        return Response.model_validate(payload)
    except ValidationError as exc:
        msg = f"Invalid JSON-RPC response payload: {exc.error_count()} validation errors"
        raise MCPTransportError(msg, category="invalid_payload") from exc


def _is_server_notification(payload: JSONObject) -> bool:
    return "method" in payload and "result" not in payload and "error" not in payload


class LineTransport:
    """One JSON document per line over a reader/writer pair.

    Each request with an id writes one line and reads lines until the reply
    arrives. Notifications pushed by the server in the meantime (progress)
    are handed to `on_notification` when one is set. One exchange runs at a
    time per transport.
    """

    def __init__(
        self,
        reader: LineReader,
        writer: LineWriter,
        *,
        process: asyncio.subprocess.Process | None = None,
        on_notification: NotificationHandler | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._process = process
        self._on_notification = on_notification
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def spawn(
        cls,
        *command: str,
        on_notification: NotificationHandler | None = None,
    ) -> LineTransport:
        """Start a server subprocess and talk to it over stdin/stdout."""
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
        )
        if process.stdin is None or process.stdout is None:
            msg = f"failed to open pipes for {' '.join(command)}"
            raise MCPTransportError(msg, category="transport_error")
        logger.debug("spawned MCP server pid=%s: %s", process.pid, " ".join(command))
        return cls(
            process.stdout,
            cast(LineWriter, process.stdin),
            process=process,
            on_notification=on_notification,
        )

    @property
    def on_notification(self) -> NotificationHandler | None:
        return self._on_notification

    @on_notification.setter
    def on_notification(self, handler: NotificationHandler | None) -> None:
        self._on_notification = handler

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, request: Request) -> Response | None:
        if self._closed:
            msg = "transport is closed"
            raise MCPTransportError(msg, category="closed")
        async with self._lock:
            await self._write(request)
            if request.is_notification:
                return None
            return await self._read_response()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (OSError, RuntimeError):
            logger.debug("writer close failed", exc_info=True)
        if self._process is not None:
            await self._process.wait()

    async def _write(self, request: Request) -> None:
        data = (request.encode() + "\n").encode("utf-8")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, RuntimeError) as exc:
            msg = f"failed to write request: {exc}"
            raise MCPTransportError(msg, category="transport_error") from exc

    async def _read_response(self) -> Response:
        while True:
            try:
                line = await self._reader.readline()
            except (OSError, ValueError, asyncio.IncompleteReadError) as exc:
                msg = f"failed to read response: {exc}"
                raise MCPTransportError(msg, category="transport_error") from exc
            if not line:
                msg = "connection closed before response"
                raise MCPTransportError(msg, category="transport_error")
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except ValueError as exc:
                msg = f"failed to parse response: {exc}"
                raise MCPTransportError(msg, category="invalid_payload") from exc
            if isinstance(payload, dict) and _is_server_notification(payload):
                await self._deliver_notification(payload)
                continue
            return decode_response(payload)

    async def _deliver_notification(self, payload: JSONObject) -> None:
        if self._on_notification is None:
            logger.debug("dropping server notification %s", payload.get("method"))
            return
        try:
            notification = Request.model_validate(payload)
        except ValidationError:
            logger.warning("ignoring malformed server notification", exc_info=True)
            return
        await self._on_notification(notification)


class HTTPTransport:
    """One HTTP POST per envelope against a JSON-RPC endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._closed = False

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, request: Request) -> Response | None:
        if self._closed:
            msg = "transport is closed"
            raise MCPTransportError(msg, category="closed")
        try:
            response = await self._client.post(
                self._endpoint,
                content=request.encode(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise MCPTransportError(str(exc), category="network_timeout") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            message = f"http status {status_code}"
            raise MCPTransportError(message, category="http_status") from exc
        except httpx.HTTPError as exc:
            raise MCPTransportError(str(exc), category="transport_error") from exc

        if request.is_notification:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "Invalid JSON-RPC response payload"
            raise MCPTransportError(msg, category="invalid_payload") from exc
        return decode_response(payload)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
