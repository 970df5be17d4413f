"""JSON-RPC envelope and MCP payload models."""

from __future__ import annotations

import json
from enum import IntEnum
from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

JSONRPC_VERSION: Final = "2.0"
PROTOCOL_VERSION: Final = "2024-11-05"

type JSONValue = None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]
type JSONObject = dict[str, JSONValue]
type RequestId = str | int


class ErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class _WireModel(BaseModel):
    """Base for payloads that use camelCase keys on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> JSONObject:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Request(BaseModel):
    """JSON-RPC request; a missing id marks a notification."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: StrictStr | StrictInt | None = None
    method: str
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_wire(self) -> JSONObject:
        payload: JSONObject = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            payload["id"] = self.id
        payload["method"] = self.method
        if self.params is not None:
            payload["params"] = self.params
        return payload

    def encode(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"))


class RPCErrorObject(BaseModel):
    """Structured error carried by a failed response."""

    code: int
    message: str
    data: Any = None


class Response(BaseModel):
    """JSON-RPC response carrying exactly one of result or error."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: StrictStr | StrictInt | None = None
    result: Any = None
    error: RPCErrorObject | None = None

    @classmethod
    def success(cls, request_id: RequestId | None, result: Any) -> Response:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: RequestId | None,
        code: int,
        message: str,
        data: Any = None,
    ) -> Response:
        return cls(id=request_id, error=RPCErrorObject(code=code, message=message, data=data))

    def to_wire(self) -> JSONObject:
        payload: JSONObject = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(mode="json", exclude_none=True)
        else:
            payload["result"] = self.result if self.result is not None else {}
        return payload

    def encode(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"))


# Handshake


class Implementation(_WireModel):
    """Name and version of a client or server implementation."""

    name: str
    version: str


class ToolsCapability(_WireModel):
    list_changed: bool = Field(default=False, alias="listChanged")


class ResourcesCapability(_WireModel):
    subscribe: bool = False
    list_changed: bool = Field(default=False, alias="listChanged")


class PromptsCapability(_WireModel):
    list_changed: bool = Field(default=False, alias="listChanged")


class ServerCapabilities(_WireModel):
    """Feature surface a server declares during initialize."""

    tools: ToolsCapability | None = None
    resources: ResourcesCapability | None = None
    prompts: PromptsCapability | None = None
    logging: dict[str, Any] | None = None


class RootsCapability(_WireModel):
    list_changed: bool = Field(default=False, alias="listChanged")


class ClientCapabilities(_WireModel):
    """Feature surface a client declares during initialize."""

    roots: RootsCapability | None = None
    sampling: dict[str, Any] | None = None


class InitializeParams(_WireModel):
    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    client_info: Implementation = Field(alias="clientInfo")


class InitializeResult(_WireModel):
    protocol_version: str = Field(alias="protocolVersion")
    capabilities: ServerCapabilities
    server_info: Implementation = Field(alias="serverInfo")
    instructions: str | None = None


# Tools


class Tool(_WireModel):
    """Tool descriptor listed by `tools/list`."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object"},
        alias="inputSchema",
    )


class Content(_WireModel):
    """One content item inside a tool result."""

    type: str = "text"
    text: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    data: str | None = None


class CallToolResult(_WireModel):
    content: list[Content] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")


class ListToolsResult(_WireModel):
    tools: list[Tool] = Field(default_factory=list)


# Resources


class Resource(_WireModel):
    """Resource descriptor listed by `resources/list`."""

    uri: str
    name: str
    description: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")


class ResourceContent(_WireModel):
    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str | None = None
    blob: str | None = None


class ReadResourceResult(_WireModel):
    contents: list[ResourceContent] = Field(default_factory=list)


class ListResourcesResult(_WireModel):
    resources: list[Resource] = Field(default_factory=list)


# Prompts


class PromptArgument(_WireModel):
    name: str
    description: str = ""
    required: bool = False


class Prompt(_WireModel):
    """Prompt descriptor listed by `prompts/list`."""

    name: str
    description: str = ""
    arguments: list[PromptArgument] = Field(default_factory=list)


class PromptContent(_WireModel):
    type: str = "text"
    text: str


class PromptMessage(_WireModel):
    role: Literal["user", "assistant"] = "user"
    content: PromptContent


class GetPromptResult(_WireModel):
    description: str = ""
    messages: list[PromptMessage] = Field(default_factory=list)


class ListPromptsResult(_WireModel):
    prompts: list[Prompt] = Field(default_factory=list)


# Progress


class ProgressNotification(_WireModel):
    """Params of one `notifications/progress` message."""

    progress_token: StrictStr | StrictInt = Field(alias="progressToken")
    progress: float
    total: float | None = None
    message: str | None = None


# Builders


def text_content(text: str) -> Content:
    return Content(type="text", text=text)


def tool_result_text(text: str) -> CallToolResult:
    return CallToolResult(content=[text_content(text)])


def tool_result_json(value: Any) -> CallToolResult:
    """Build a tool result whose single text item is indented JSON."""
    return tool_result_text(json.dumps(value, indent=2, default=str))


def tool_result_error(message: str) -> CallToolResult:
    return CallToolResult(content=[text_content(message)], is_error=True)


def text_resource(uri: str, text: str, *, mime_type: str = "text/plain") -> ReadResourceResult:
    return ReadResourceResult(contents=[ResourceContent(uri=uri, mime_type=mime_type, text=text)])


def json_resource(uri: str, value: Any) -> ReadResourceResult:
    return text_resource(
        uri,
        json.dumps(value, indent=2, default=str),
        mime_type="application/json",
    )


def user_prompt(description: str, text: str) -> GetPromptResult:
    return GetPromptResult(
        description=description,
        messages=[PromptMessage(role="user", content=PromptContent(text=text))],
    )
