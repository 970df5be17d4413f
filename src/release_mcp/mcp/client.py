"""MCP client: request correlation and typed convenience calls."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import TracebackType
from typing import Any, Self, overload
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from release_mcp.mcp.cache import CONFIG_URI, STATE_URI
from release_mcp.mcp.errors import MCPClientError, MCPRPCError, MCPToolError
from release_mcp.mcp.progress import PROGRESS_METHOD
from release_mcp.mcp.protocol import (
    PROTOCOL_VERSION,
    CallToolResult,
    ClientCapabilities,
    GetPromptResult,
    Implementation,
    InitializeParams,
    InitializeResult,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    ProgressNotification,
    Prompt,
    ReadResourceResult,
    Request,
    RequestId,
    Resource,
    RootsCapability,
    ServerCapabilities,
    Tool,
)
from release_mcp.mcp.transport import ClientTransport
from release_mcp.models.results import (
    ApproveResult,
    BumpResult,
    CancelResult,
    ConfigResource,
    EvaluateResult,
    InferVersionResult,
    NotesResult,
    PlanResult,
    PublishResult,
    ResetResult,
    StateResource,
    StatusResult,
    SummarizeDiffResult,
    ValidateResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_INFO = Implementation(name="release-mcp-client", version="0.1.0")

type ProgressCallback = Callable[[ProgressNotification], None]


def _decode[T](value: Any, result_type: type[T], *, what: str) -> T:
    try:
        return TypeAdapter(result_type).validate_python(value)
    except ValidationError as exc:
        msg = f"failed to decode {what}: {exc}"
        raise MCPClientError(msg) from exc


class MCPClient:
    """Drive an MCP server through one `ClientTransport`.

    Calls are numbered from 1. `initialize()` must succeed once before the
    recorded server metadata is available; other calls are not gated on it.
    After `close()` every call fails before touching the transport.

    Progress notifications reach the callback registered for their token
    once `handle_notification` is installed as the transport's
    notification hook.
    """

    def __init__(
        self,
        transport: ClientTransport,
        *,
        client_info: Implementation = DEFAULT_CLIENT_INFO,
    ) -> None:
        self._transport = transport
        self._client_info = client_info
        self._ids = itertools.count(1)
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._closed = False
        self._progress_callbacks: dict[RequestId, ProgressCallback] = {}
        self.server_capabilities: ServerCapabilities | None = None
        self.server_info: Implementation | None = None
        self.protocol_version: str | None = None
        self.instructions: str | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "client is closed"
            raise MCPClientError(msg)

    @overload
    async def call(self, method: str, params: Any = None, result_type: None = None) -> Any: ...

    @overload
    async def call[T](self, method: str, params: Any, result_type: type[T]) -> T: ...

    async def call(self, method: str, params: Any = None, result_type: Any = None) -> Any:
        """Send one request and wait for its result."""
        self._ensure_open()
        request = Request(id=next(self._ids), method=method, params=params)
        response = await self._transport.send(request)
        if response is None:
            msg = f"no response to {method} (id={request.id})"
            raise MCPClientError(msg)
        if response.error is not None:
            raise MCPRPCError(response.error.code, response.error.message, response.error.data)
        if result_type is None:
            return response.result
        return _decode(response.result, result_type, what=f"{method} result")

    async def notify(self, method: str, params: Any = None) -> None:
        self._ensure_open()
        await self._transport.send(Request(method=method, params=params))

    async def initialize(self) -> InitializeResult:
        """Run the handshake and record what the server declared."""
        async with self._init_lock:
            self._ensure_open()
            if self._initialized:
                msg = "client is already initialized"
                raise MCPClientError(msg)
            params = InitializeParams(
                protocol_version=PROTOCOL_VERSION,
                capabilities=ClientCapabilities(
                    roots=RootsCapability(list_changed=True),
                    sampling={},
                ),
                client_info=self._client_info,
            )
            try:
                result = await self.call("initialize", params.to_wire(), InitializeResult)
                await self.notify("notifications/initialized")
            except Exception as exc:
                msg = f"initialize failed: {exc}"
                raise MCPClientError(msg) from exc

            self.server_capabilities = result.capabilities
            self.server_info = result.server_info
            self.protocol_version = result.protocol_version
            self.instructions = result.instructions
            self._initialized = True
            logger.info(
                "initialized MCP session with %s %s (protocol %s)",
                result.server_info.name,
                result.server_info.version,
                result.protocol_version,
            )
            return result

    def on_progress(self, token: RequestId, callback: ProgressCallback) -> None:
        self._progress_callbacks[token] = callback

    def remove_progress_callback(self, token: RequestId) -> None:
        self._progress_callbacks.pop(token, None)

    @contextmanager
    def track_progress(self, callback: ProgressCallback) -> Iterator[str]:
        """Register `callback` under a fresh token for the duration of the block."""
        token = f"progress-{uuid4().hex}"
        self.on_progress(token, callback)
        try:
            yield token
        finally:
            self.remove_progress_callback(token)

    async def handle_notification(self, notification: Request) -> None:
        """Route one server notification; usable as a transport notification hook."""
        if notification.method != PROGRESS_METHOD:
            logger.debug("ignoring server notification %s", notification.method)
            return
        try:
            progress = ProgressNotification.model_validate(notification.params)
        except ValidationError:
            logger.warning("ignoring malformed progress notification", exc_info=True)
            return
        callback = self._progress_callbacks.get(progress.progress_token)
        if callback is None:
            logger.debug("no progress callback for token %r", progress.progress_token)
            return
        callback(progress)

    async def ping(self) -> None:
        await self.call("ping")

    async def list_tools(self) -> list[Tool]:
        result = await self.call("tools/list", None, ListToolsResult)
        return result.tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        progress_token: RequestId | None = None,
    ) -> CallToolResult:
        params: dict[str, Any] = {"name": name, "arguments": arguments or {}}
        if progress_token is not None:
            params["_meta"] = {"progressToken": progress_token}
        return await self.call("tools/call", params, CallToolResult)

    async def call_tool_typed[T](
        self,
        name: str,
        arguments: dict[str, Any] | None,
        result_type: type[T],
        *,
        progress_token: RequestId | None = None,
    ) -> T:
        """Call a tool and decode the JSON text of its first content item."""
        result = await self.call_tool(name, arguments, progress_token=progress_token)
        if result.is_error:
            message = result.content[0].text if result.content else None
            raise MCPToolError(message or "tool returned error with no message", tool=name)
        if not result.content:
            raise MCPToolError("tool returned no content", tool=name)
        text = result.content[0].text or ""
        try:
            payload = json.loads(text)
        except ValueError as exc:
            msg = f"failed to decode {name} result: {exc}"
            raise MCPToolError(msg, tool=name) from exc
        return _decode(payload, result_type, what=f"{name} result")

    async def list_resources(self) -> list[Resource]:
        result = await self.call("resources/list", None, ListResourcesResult)
        return result.resources

    async def read_resource(self, uri: str) -> ReadResourceResult:
        return await self.call("resources/read", {"uri": uri}, ReadResourceResult)

    async def read_resource_text(self, uri: str) -> str:
        result = await self.read_resource(uri)
        if not result.contents:
            msg = f"resource {uri} returned no content"
            raise MCPClientError(msg)
        return result.contents[0].text or ""

    async def read_resource_typed[T](self, uri: str, result_type: type[T]) -> T:
        text = await self.read_resource_text(uri)
        try:
            payload = json.loads(text)
        except ValueError as exc:
            msg = f"failed to decode resource {uri}: {exc}"
            raise MCPClientError(msg) from exc
        return _decode(payload, result_type, what=f"resource {uri}")

    async def list_prompts(self) -> list[Prompt]:
        result = await self.call("prompts/list", None, ListPromptsResult)
        return result.prompts

    async def get_prompt(
        self,
        name: str,
        arguments: dict[str, str] | None = None,
    ) -> GetPromptResult:
        params = {"name": name, "arguments": arguments or {}}
        return await self.call("prompts/get", params, GetPromptResult)

    # Release tools

    async def status(self) -> StatusResult:
        return await self.call_tool_typed("release.status", None, StatusResult)

    async def plan(
        self,
        *,
        analyze: bool = False,
        from_ref: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PlanResult:
        arguments: dict[str, Any] = {}
        if analyze:
            arguments["analyze"] = True
        if from_ref:
            arguments["from"] = from_ref
        return await self._tracked("release.plan", arguments, PlanResult, on_progress)

    async def bump(
        self,
        *,
        release_id: str | None = None,
        bump_type: str | None = None,
        apply: bool = False,
    ) -> BumpResult:
        arguments: dict[str, Any] = {}
        if release_id:
            arguments["release_id"] = release_id
        if bump_type:
            arguments["type"] = bump_type
        if apply:
            arguments["apply"] = True
        return await self.call_tool_typed("release.bump", arguments, BumpResult)

    async def notes(
        self,
        *,
        release_id: str | None = None,
        format: str | None = None,
    ) -> NotesResult:
        arguments: dict[str, Any] = {}
        if release_id:
            arguments["release_id"] = release_id
        if format:
            arguments["format"] = format
        return await self.call_tool_typed("release.notes", arguments, NotesResult)

    async def evaluate(self, *, release_id: str | None = None) -> EvaluateResult:
        arguments: dict[str, Any] = {}
        if release_id:
            arguments["release_id"] = release_id
        return await self.call_tool_typed("release.evaluate", arguments, EvaluateResult)

    async def approve(
        self,
        *,
        release_id: str | None = None,
        yes: bool = False,
        message: str | None = None,
    ) -> ApproveResult:
        arguments: dict[str, Any] = {}
        if release_id:
            arguments["release_id"] = release_id
        if yes:
            arguments["yes"] = True
        if message:
            arguments["message"] = message
        return await self.call_tool_typed("release.approve", arguments, ApproveResult)

    async def publish(
        self,
        *,
        release_id: str | None = None,
        skip_push: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> PublishResult:
        arguments: dict[str, Any] = {}
        if release_id:
            arguments["release_id"] = release_id
        if skip_push:
            arguments["skip_push"] = True
        return await self._tracked("release.publish", arguments, PublishResult, on_progress)

    async def cancel(self, *, reason: str | None = None) -> CancelResult:
        arguments: dict[str, Any] = {}
        if reason:
            arguments["reason"] = reason
        return await self.call_tool_typed("release.cancel", arguments, CancelResult)

    async def reset(self, *, force: bool = False) -> ResetResult:
        arguments: dict[str, Any] = {"force": True} if force else {}
        return await self.call_tool_typed("release.reset", arguments, ResetResult)

    async def infer_version(
        self,
        *,
        from_ref: str | None = None,
        to_ref: str | None = None,
        include_risk: bool = False,
    ) -> InferVersionResult:
        arguments: dict[str, Any] = {}
        if from_ref:
            arguments["from"] = from_ref
        if to_ref:
            arguments["to"] = to_ref
        if include_risk:
            arguments["include_risk"] = True
        return await self.call_tool_typed("release.infer_version", arguments, InferVersionResult)

    async def summarize_diff(
        self,
        *,
        from_ref: str | None = None,
        to_ref: str | None = None,
        audience: str | None = None,
        max_length: int | None = None,
    ) -> SummarizeDiffResult:
        arguments: dict[str, Any] = {}
        if from_ref:
            arguments["from"] = from_ref
        if to_ref:
            arguments["to"] = to_ref
        if audience:
            arguments["audience"] = audience
        if max_length is not None:
            arguments["max_length"] = max_length
        return await self.call_tool_typed("release.summarize_diff", arguments, SummarizeDiffResult)

    async def validate(
        self,
        *,
        release_id: str | None = None,
        check_git: bool = True,
    ) -> ValidateResult:
        arguments: dict[str, Any] = {"check_git": check_git}
        if release_id:
            arguments["release_id"] = release_id
        return await self.call_tool_typed("release.validate", arguments, ValidateResult)

    async def release_state(self) -> StateResource:
        return await self.read_resource_typed(STATE_URI, StateResource)

    async def release_config(self) -> ConfigResource:
        return await self.read_resource_typed(CONFIG_URI, ConfigResource)

    async def _tracked[T](
        self,
        name: str,
        arguments: dict[str, Any],
        result_type: type[T],
        on_progress: ProgressCallback | None,
    ) -> T:
        if on_progress is None:
            return await self.call_tool_typed(name, arguments, result_type)
        with self.track_progress(on_progress) as token:
            return await self.call_tool_typed(
                name, arguments, result_type, progress_token=token
            )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._transport.close()
