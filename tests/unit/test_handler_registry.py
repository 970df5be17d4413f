from typing import Any

import pytest

from release_mcp.mcp.progress import CallScope
from release_mcp.mcp.protocol import (
    CallToolResult,
    Prompt,
    ReadResourceResult,
    Resource,
    Tool,
    text_resource,
    tool_result_text,
)
from release_mcp.mcp.registry import HandlerRegistry


async def _tool(scope: CallScope, arguments: dict[str, Any]) -> CallToolResult:
    return tool_result_text("ok")


async def _resource(scope: CallScope, uri: str) -> ReadResourceResult:
    return text_resource(uri, "body")


def test_duplicate_names_are_rejected() -> None:
    registry = HandlerRegistry()
    registry.add_tool(Tool(name="demo"), _tool)
    registry.add_resource(Resource(uri="demo://a", name="a"), _resource)

    with pytest.raises(ValueError):
        registry.add_tool(Tool(name="demo"), _tool)
    with pytest.raises(ValueError):
        registry.add_resource(Resource(uri="demo://a", name="again"), _resource)


def test_freeze_returns_read_only_snapshot() -> None:
    registry = HandlerRegistry()
    registry.add_tool(Tool(name="reader"), _tool)
    registry.add_tool(Tool(name="writer"), _tool, mutates_state=True)

    frozen = registry.freeze()
    registry.add_prompt(Prompt(name="late"), _prompt_unused)

    assert set(frozen.tools) == {"reader", "writer"}
    assert frozen.tools["writer"].mutates_state
    assert not frozen.tools["reader"].mutates_state
    assert "late" not in frozen.prompts
    with pytest.raises(TypeError):
        frozen.tools["new"] = frozen.tools["reader"]  # type: ignore[index]


async def _prompt_unused(scope: CallScope, arguments: dict[str, str]) -> Any:
    raise AssertionError("not called")
