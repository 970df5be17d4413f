"""Tool, resource and prompt registration."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from release_mcp.mcp.progress import CallScope
from release_mcp.mcp.protocol import (
    CallToolResult,
    GetPromptResult,
    Prompt,
    ReadResourceResult,
    Resource,
    Tool,
)

type ToolHandler = Callable[[CallScope, dict[str, Any]], Awaitable[CallToolResult]]
type ResourceHandler = Callable[[CallScope, str], Awaitable[ReadResourceResult | None]]
type PromptHandler = Callable[[CallScope, dict[str, str]], Awaitable[GetPromptResult]]


@dataclass(slots=True, frozen=True)
class RegisteredTool:
    """Tool descriptor bound to its handler."""

    descriptor: Tool
    handler: ToolHandler
    mutates_state: bool = False


@dataclass(slots=True, frozen=True)
class RegisteredResource:
    descriptor: Resource
    handler: ResourceHandler


@dataclass(slots=True, frozen=True)
class RegisteredPrompt:
    descriptor: Prompt
    handler: PromptHandler


@dataclass(slots=True, frozen=True)
class FrozenRegistry:
    """Read-only lookup tables handed to the dispatcher."""

    tools: Mapping[str, RegisteredTool]
    resources: Mapping[str, RegisteredResource]
    prompts: Mapping[str, RegisteredPrompt]


class HandlerRegistry:
    """Collect handlers before the server is built."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        self._resources: dict[str, RegisteredResource] = {}
        self._prompts: dict[str, RegisteredPrompt] = {}

    def add_tool(
        self,
        descriptor: Tool,
        handler: ToolHandler,
        *,
        mutates_state: bool = False,
    ) -> None:
        if descriptor.name in self._tools:
            msg = f"tool already registered: {descriptor.name}"
            raise ValueError(msg)
        self._tools[descriptor.name] = RegisteredTool(descriptor, handler, mutates_state)

    def add_resource(self, descriptor: Resource, handler: ResourceHandler) -> None:
        if descriptor.uri in self._resources:
            msg = f"resource already registered: {descriptor.uri}"
            raise ValueError(msg)
        self._resources[descriptor.uri] = RegisteredResource(descriptor, handler)

    def add_prompt(self, descriptor: Prompt, handler: PromptHandler) -> None:
        if descriptor.name in self._prompts:
            msg = f"prompt already registered: {descriptor.name}"
            raise ValueError(msg)
        self._prompts[descriptor.name] = RegisteredPrompt(descriptor, handler)

    def freeze(self) -> FrozenRegistry:
        """Snapshot the current tables as read-only mappings."""
        return FrozenRegistry(
            tools=MappingProxyType(dict(self._tools)),
            resources=MappingProxyType(dict(self._resources)),
            prompts=MappingProxyType(dict(self._prompts)),
        )
