"""MCP request dispatch and the newline-framed message loop."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import Any, Final

from pydantic import ValidationError

from release_mcp.mcp.cache import ResourceCache
from release_mcp.mcp.progress import PROGRESS_METHOD, CallScope, ProgressSink
from release_mcp.mcp.protocol import (
    PROTOCOL_VERSION,
    CallToolResult,
    ErrorCode,
    GetPromptResult,
    Implementation,
    InitializeResult,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    ProgressNotification,
    PromptsCapability,
    ReadResourceResult,
    Request,
    ResourcesCapability,
    Response,
    ServerCapabilities,
    ToolsCapability,
)
from release_mcp.mcp.registry import FrozenRegistry, HandlerRegistry
from release_mcp.mcp.transport import LineReader, LineWriter

logger = logging.getLogger(__name__)

INITIALIZED_METHODS: Final = frozenset({"notifications/initialized", "initialized"})

type MethodHandler = Callable[[Any, ProgressSink | None], Awaitable[Any]]


class DispatchError(Exception):
    """Raised inside a method handler to produce an error response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def _params_object(params: Any) -> dict[str, Any]:
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise DispatchError(ErrorCode.INVALID_PARAMS, "params must be an object")
    return params


def _progress_token(params: dict[str, Any]) -> str | int | None:
    meta = params.get("_meta")
    if not isinstance(meta, dict):
        return None
    token = meta.get("progressToken")
    if isinstance(token, bool) or not isinstance(token, str | int):
        return None
    return token


class MCPServer:
    """Route JSON-RPC requests to registered tool, resource and prompt handlers.

    The method table and the handler tables are built once in `__init__` and
    only read afterwards, so one server can be shared by concurrent
    connections. Resource reads go through `cache`; every state-mutating tool
    that succeeds invalidates the state-dependent cache entries.
    """

    def __init__(
        self,
        registry: HandlerRegistry | FrozenRegistry,
        *,
        name: str = "release-mcp",
        version: str = "0.1.0",
        instructions: str = "",
        cache: ResourceCache | None = None,
        progress_sink: ProgressSink | None = None,
    ) -> None:
        self._tables = registry.freeze() if isinstance(registry, HandlerRegistry) else registry
        self._server_info = Implementation(name=name, version=version)
        self._instructions = instructions
        self._cache = cache if cache is not None else ResourceCache()
        self._progress_sink = progress_sink
        self._methods: Mapping[str, MethodHandler] = MappingProxyType(
            {
                "initialize": self._initialize,
                "notifications/initialized": self._initialized,
                "initialized": self._initialized,
                "ping": self._ping,
                "tools/list": self._list_tools,
                "tools/call": self._call_tool,
                "resources/list": self._list_resources,
                "resources/read": self._read_resource,
                "prompts/list": self._list_prompts,
                "prompts/get": self._get_prompt,
            }
        )

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    @property
    def server_info(self) -> Implementation:
        return self._server_info

    @property
    def methods(self) -> Mapping[str, MethodHandler]:
        return self._methods

    def capabilities(self) -> ServerCapabilities:
        return ServerCapabilities(
            tools=ToolsCapability(list_changed=False),
            resources=ResourcesCapability(subscribe=False, list_changed=False),
            prompts=PromptsCapability(list_changed=False),
            logging={},
        )

    async def handle_message(
        self,
        raw: str | bytes,
        *,
        progress_sink: ProgressSink | None = None,
    ) -> Response | None:
        """Decode one envelope and dispatch it."""
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("rejecting undecodable message: %s", exc)
            return Response.failure(None, ErrorCode.INVALID_PARAMS, "invalid message", str(exc))

        request_id = payload.get("id") if isinstance(payload, dict) else None
        if isinstance(request_id, bool) or not isinstance(request_id, str | int):
            request_id = None
        try:
            request = Request.model_validate(payload)
        except ValidationError as exc:
            logger.warning("rejecting malformed envelope: %s", exc)
            return Response.failure(
                request_id,
                ErrorCode.INVALID_PARAMS,
                "invalid message",
                str(exc),
            )
        return await self.handle_request(request, progress_sink=progress_sink)

    async def handle_request(
        self,
        request: Request,
        *,
        progress_sink: ProgressSink | None = None,
    ) -> Response | None:
        """Dispatch one decoded request.

        Returns `None` for notifications and for the `initialized` handshake
        step; every other request gets exactly one response carrying its id.
        """
        sink = progress_sink if progress_sink is not None else self._progress_sink
        silent = request.is_notification or request.method in INITIALIZED_METHODS
        handler = self._methods.get(request.method)
        if handler is None:
            if silent:
                logger.debug("ignoring unknown notification %s", request.method)
                return None
            return Response.failure(
                request.id,
                ErrorCode.METHOD_NOT_FOUND,
                "method not found",
                request.method,
            )

        try:
            result = await handler(request.params, sink)
        except DispatchError as exc:
            if silent:
                logger.warning("notification %s failed: %s", request.method, exc.message)
                return None
            return Response.failure(request.id, exc.code, exc.message, exc.data)
        except Exception as exc:
            logger.exception("handler for %s failed", request.method)
            if silent:
                return None
            return Response.failure(
                request.id,
                ErrorCode.INTERNAL_ERROR,
                "internal error",
                str(exc),
            )

        if silent:
            return None
        return Response.success(request.id, result)

    async def _initialize(self, params: Any, sink: ProgressSink | None) -> Any:
        # Shared by every HTTP caller; client identity is only logged.
        params = _params_object(params)
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            try:
                client = Implementation.model_validate(client_info)
            except ValidationError:
                logger.debug("ignoring malformed clientInfo", exc_info=True)
            else:
                logger.info("client connected: %s %s", client.name, client.version)
        result = InitializeResult(
            protocol_version=PROTOCOL_VERSION,
            capabilities=self.capabilities(),
            server_info=self._server_info,
            instructions=self._instructions or None,
        )
        return result.to_wire()

    async def _initialized(self, params: Any, sink: ProgressSink | None) -> None:
        logger.debug("client finished initialization")

    async def _ping(self, params: Any, sink: ProgressSink | None) -> Any:
        return {}

    async def _list_tools(self, params: Any, sink: ProgressSink | None) -> Any:
        tools = [entry.descriptor for entry in self._tables.tools.values()]
        return ListToolsResult(tools=tools).to_wire()

    async def _call_tool(self, params: Any, sink: ProgressSink | None) -> Any:
        params = _params_object(params)
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise DispatchError(ErrorCode.INVALID_PARAMS, "missing tool name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise DispatchError(ErrorCode.INVALID_PARAMS, "tool arguments must be an object")

        entry = self._tables.tools.get(name)
        if entry is None:
            raise DispatchError(ErrorCode.METHOD_NOT_FOUND, "tool not found", name)

        token = _progress_token(params)
        if token is not None and sink is not None:
            scope = CallScope(progress_token=token, sink=sink)
        else:
            scope = CallScope()

        try:
            result = await entry.handler(scope, arguments)
        except Exception as exc:
            logger.exception("tool %s failed", name)
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "tool execution failed",
                str(exc),
            ) from exc
        if not isinstance(result, CallToolResult):
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "tool execution failed",
                f"tool {name} returned {type(result).__name__}",
            )

        if entry.mutates_state and not result.is_error:
            self._cache.invalidate_state_dependent()
        return result.to_wire()

    async def _list_resources(self, params: Any, sink: ProgressSink | None) -> Any:
        resources = [entry.descriptor for entry in self._tables.resources.values()]
        return ListResourcesResult(resources=resources).to_wire()

    async def _read_resource(self, params: Any, sink: ProgressSink | None) -> Any:
        params = _params_object(params)
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise DispatchError(ErrorCode.INVALID_PARAMS, "missing resource uri")

        cached = self._cache.get(uri)
        if isinstance(cached, ReadResourceResult):
            return cached.to_wire()

        entry = self._tables.resources.get(uri)
        if entry is None:
            raise DispatchError(ErrorCode.METHOD_NOT_FOUND, "resource not found", uri)

        try:
            result = await entry.handler(CallScope(), uri)
        except Exception as exc:
            logger.exception("resource %s failed", uri)
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "resource read failed",
                str(exc),
            ) from exc
        if result is None or not result.contents:
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "resource read failed",
                f"resource {uri} returned no contents",
            )

        self._cache.set(uri, result)
        return result.to_wire()

    async def _list_prompts(self, params: Any, sink: ProgressSink | None) -> Any:
        prompts = [entry.descriptor for entry in self._tables.prompts.values()]
        return ListPromptsResult(prompts=prompts).to_wire()

    async def _get_prompt(self, params: Any, sink: ProgressSink | None) -> Any:
        params = _params_object(params)
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise DispatchError(ErrorCode.INVALID_PARAMS, "missing prompt name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict) or not all(
            isinstance(value, str) for value in arguments.values()
        ):
            raise DispatchError(
                ErrorCode.INVALID_PARAMS,
                "prompt arguments must be an object of strings",
            )

        entry = self._tables.prompts.get(name)
        if entry is None:
            raise DispatchError(ErrorCode.METHOD_NOT_FOUND, "prompt not found", name)

        try:
            result = await entry.handler(CallScope(), arguments)
        except Exception as exc:
            logger.exception("prompt %s failed", name)
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "prompt generation failed",
                str(exc),
            ) from exc
        if not isinstance(result, GetPromptResult):
            raise DispatchError(
                ErrorCode.INTERNAL_ERROR,
                "prompt generation failed",
                f"prompt {name} returned {type(result).__name__}",
            )
        return result.to_wire()


class LineProgressSink:
    """Write progress notifications as lines on a response stream."""

    def __init__(self, writer: LineWriter, lock: asyncio.Lock) -> None:
        self._writer = writer
        self._lock = lock

    async def __call__(self, notification: ProgressNotification) -> None:
        message = Request(method=PROGRESS_METHOD, params=notification.to_wire())
        await _write_line(self._writer, self._lock, message.encode())


async def _write_line(writer: LineWriter, lock: asyncio.Lock, line: str) -> None:
    async with lock:
        writer.write((line + "\n").encode("utf-8"))
        await writer.drain()


async def serve_lines(server: MCPServer, reader: LineReader, writer: LineWriter) -> None:
    """Serve one newline-framed connection until EOF.

    Requests are handled one at a time in arrival order. Notifications
    produce no output line.
    """
    lock = asyncio.Lock()
    sink = LineProgressSink(writer, lock)
    while True:
        line = await reader.readline()
        if not line:
            logger.debug("input closed, stopping message loop")
            return
        if not line.strip():
            continue
        response = await server.handle_message(line, progress_sink=sink)
        if response is None:
            continue
        await _write_line(writer, lock, response.encode())


async def _stdio_streams() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin,
        sys.stdout,
    )
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


async def run_stdio(server: MCPServer) -> None:
    """Serve requests from stdin, writing responses to stdout."""
    reader, writer = await _stdio_streams()
    try:
        await serve_lines(server, reader, writer)
    finally:
        writer.close()
