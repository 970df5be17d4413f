import json
from pathlib import Path
from typing import Any

import pytest

from release_mcp.config import Settings
from release_mcp.mcp.cache import (
    CHANGELOG_URI,
    COMMITS_URI,
    CONFIG_URI,
    RISK_REPORT_URI,
    STATE_URI,
)
from release_mcp.mcp.catalog import build_server
from release_mcp.mcp.protocol import Request
from release_mcp.mcp.server import MCPServer
from release_mcp.mcp.tools.prompts import PROMPTS
from release_mcp.mcp.tools.release_tools import RELEASE_TOOLS
from tests.support.mcp_helpers import FakeGitReader, RecordingSink, make_manager


def _server(
    tmp_path: Path,
    sink: RecordingSink | None = None,
    git: FakeGitReader | None = None,
) -> MCPServer:
    settings = Settings(repository_path=tmp_path, store_backend="memory")
    return build_server(
        settings,
        manager=make_manager(tmp_path, git or FakeGitReader()),
        progress_sink=sink,
    )


async def _tool(
    server: MCPServer,
    name: str,
    arguments: dict[str, Any] | None = None,
    **params: Any,
) -> dict[str, Any]:
    request = Request(
        id=1,
        method="tools/call",
        params={"name": name, "arguments": arguments or {}, **params},
    )
    response = await server.handle_request(request)
    assert response is not None
    assert response.error is None
    return response.result


def _payload(result: dict[str, Any]) -> Any:
    return json.loads(result["content"][0]["text"])


async def _resource(server: MCPServer, uri: str) -> dict[str, Any]:
    response = await server.handle_request(
        Request(id=1, method="resources/read", params={"uri": uri})
    )
    assert response is not None
    assert response.error is None
    return response.result["contents"][0]


def test_read_only_tools() -> None:
    read_only = [tool.name for tool in RELEASE_TOOLS if not tool.mutates_state]

    assert read_only == [
        "release.status",
        "release.infer_version",
        "release.summarize_diff",
        "release.validate",
    ]
    assert len(RELEASE_TOOLS) == 12


@pytest.mark.asyncio
async def test_status_suggests_next_action(tmp_path: Path) -> None:
    server = _server(tmp_path)

    idle = _payload(await _tool(server, "release.status"))
    await _tool(server, "release.plan")
    planned = _payload(await _tool(server, "release.status"))

    assert idle == {"has_active_release": False, "next_action": "release.plan"}
    assert planned["state"] == "planned"
    assert planned["version"] == "1.3.0"
    assert planned["next_action"] == "release.bump"


@pytest.mark.asyncio
async def test_plan_reports_progress_and_commit_details(tmp_path: Path) -> None:
    sink = RecordingSink()
    server = _server(tmp_path, sink)

    result = await _tool(
        server,
        "release.plan",
        {"analyze": "true"},
        _meta={"progressToken": "plan-1"},
    )

    plan = _payload(result)
    assert plan["suggested_bump"] == "minor"
    assert plan["next_version"] == "1.3.0"
    assert [commit["subject"] for commit in plan["commits"]] == [
        "add export",
        "handle empty input",
        "update readme",
    ]
    assert [n.progress for n in sink.notifications] == [1.0, 2.0, 3.0]
    assert {n.total for n in sink.notifications} == {3.0}


@pytest.mark.asyncio
async def test_business_errors_become_error_results(tmp_path: Path) -> None:
    server = _server(tmp_path)

    missing = await _tool(server, "release.bump")
    bad_argument = await _tool(server, "release.cancel", {"reason": 5})

    assert missing["isError"] is True
    assert "no active release" in missing["content"][0]["text"]
    assert bad_argument["isError"] is True
    assert bad_argument["content"][0]["text"] == "reason must be a string"


@pytest.mark.asyncio
async def test_state_resource_is_invalidated_by_mutating_tools(tmp_path: Path) -> None:
    server = _server(tmp_path)

    before = json.loads((await _resource(server, STATE_URI))["text"])
    await _tool(server, "release.plan")
    after = json.loads((await _resource(server, STATE_URI))["text"])

    assert before == {"has_active_release": False}
    assert after["has_active_release"]
    assert after["state"] == "planned"


@pytest.mark.asyncio
async def test_resources_describe_active_release(tmp_path: Path) -> None:
    server = _server(tmp_path)

    empty_changelog = await _resource(server, CHANGELOG_URI)
    await _tool(server, "release.plan")
    await _tool(server, "release.bump", {"apply": True})
    pending_changelog = await _resource(server, CHANGELOG_URI)
    no_risk = json.loads((await _resource(server, RISK_REPORT_URI))["text"])
    await _tool(server, "release.notes", {"format": "markdown"})
    await _tool(server, "release.evaluate")

    changelog = await _resource(server, CHANGELOG_URI)
    commits = json.loads((await _resource(server, COMMITS_URI))["text"])
    risk = json.loads((await _resource(server, RISK_REPORT_URI))["text"])
    config = json.loads((await _resource(server, CONFIG_URI))["text"])

    assert "No active release found" in empty_changelog["text"]
    assert "No changelog generated yet for version 1.3.0" in pending_changelog["text"]
    assert no_risk["status"] == "no risk assessment available"
    assert changelog["mimeType"] == "text/markdown"
    assert changelog["text"].startswith("# 1.3.0")
    assert commits["commit_count"] == 3
    assert commits["commits"][0]["sha"] == "aaaaaaa"
    assert commits["commits"][0]["full_sha"] == "a" * 40
    assert risk["status"] == "ok"
    assert risk["risk_level"] == "low"
    assert config == {"versioning": {"strategy": "semver", "prefix": "v"}, "plugins": []}


@pytest.mark.asyncio
async def test_prompts_pick_variant_and_fall_back_to_default(tmp_path: Path) -> None:
    server = _server(tmp_path)

    listed = await server.handle_request(Request(id=1, method="prompts/list"))
    technical = await server.handle_request(
        Request(
            id=2,
            method="prompts/get",
            params={"name": "release-summary", "arguments": {"style": "technical"}},
        )
    )
    unknown = await server.handle_request(
        Request(
            id=3,
            method="prompts/get",
            params={"name": "release-summary", "arguments": {"style": "poetic"}},
        )
    )

    assert listed is not None and technical is not None and unknown is not None
    names = [prompt["name"] for prompt in listed.result["prompts"]]
    assert names == [template.name for template in PROMPTS]
    assert len(names) == 7
    assert "technical summary" in technical.result["messages"][0]["content"]["text"]
    assert "brief summary" in unknown.result["messages"][0]["content"]["text"]


@pytest.mark.asyncio
async def test_infer_version_reads_a_range_without_planning(tmp_path: Path) -> None:
    git = FakeGitReader()
    sink = RecordingSink()
    server = _server(tmp_path, sink, git)

    ranged = _payload(
        await _tool(
            server,
            "release.infer_version",
            {"from": "v1.0.0", "to": "main", "include_risk": True},
            _meta={"progressToken": "infer-1"},
        )
    )
    default = _payload(await _tool(server, "release.infer_version"))
    status = _payload(await _tool(server, "release.status"))

    assert ranged["current_version"] == "1.2.3"
    assert ranged["next_version"] == "1.3.0"
    assert ranged["bump_type"] == "minor"
    assert ranged["has_features"] and ranged["has_fixes"]
    assert not ranged["has_breaking"]
    assert ranged["commit_count"] == 3
    assert ranged["confidence"] == 0.67
    assert ranged["rationale"] == [
        "1 new feature(s)",
        "1 bug fix(es)",
        "1 commit(s) do not follow conventional format",
        "suggested bump: minor",
    ]
    assert ranged["risk_severity"] == "low"
    assert ranged["risk_score"] == 0.15
    assert "risk_score" not in default
    assert git.since_refs == ["v1.0.0", "v1.2.3"]
    assert git.to_refs == ["main", "HEAD"]
    assert [n.progress for n in sink.notifications] == [1.0, 2.0]
    assert status == {"has_active_release": False, "next_action": "release.plan"}


@pytest.mark.asyncio
async def test_infer_version_with_empty_range_keeps_version(tmp_path: Path) -> None:
    server = _server(tmp_path, git=FakeGitReader(commits=[]))

    result = _payload(await _tool(server, "release.infer_version"))

    assert result["bump_type"] == "none"
    assert result["next_version"] == result["current_version"] == "1.2.3"
    assert result["confidence"] == 1.0
    assert result["commit_count"] == 0


@pytest.mark.asyncio
async def test_summarize_diff_tailors_to_audience(tmp_path: Path) -> None:
    server = _server(tmp_path)

    developer = _payload(await _tool(server, "release.summarize_diff"))
    end_user = _payload(await _tool(server, "release.summarize_diff", {"audience": "end-user"}))
    operator = _payload(await _tool(server, "release.summarize_diff", {"audience": "operator"}))
    short = _payload(await _tool(server, "release.summarize_diff", {"max_length": 20}))

    assert developer["audience"] == "developer"
    assert developer["summary"] == "3 commit(s): 1 feature(s), 1 fix(es), 0 breaking."
    assert developer["highlights"] == [
        "feat(api): add export (aaaaaaa)",
        "fix: handle empty input (bbbbbbb)",
    ]
    assert developer["ai_generated"] is False
    assert developer["character_count"] == len(developer["summary"])
    assert end_user["summary"] == "This release brings 1 new feature(s) and 1 fix(es)."
    assert end_user["highlights"] == ["New: add export", "Fixed: handle empty input"]
    assert operator["summary"] == "3 change(s) to roll out: 0 breaking, 0 in sensitive areas."
    assert operator["highlights"] == []
    assert short["summary"] == "3 commit(s): 1 fe..."
    assert short["character_count"] == 20


@pytest.mark.asyncio
async def test_summarize_diff_rejects_bad_arguments(tmp_path: Path) -> None:
    server = _server(tmp_path)

    audience = await _tool(server, "release.summarize_diff", {"audience": "pirates"})
    length = await _tool(server, "release.summarize_diff", {"max_length": "ten"})
    tiny = await _tool(server, "release.summarize_diff", {"max_length": 2})

    assert audience["isError"] is True
    assert audience["content"][0]["text"] == "unsupported audience: pirates"
    assert length["content"][0]["text"] == "max_length must be an integer"
    assert tiny["content"][0]["text"] == "max_length must be at least 4"


@pytest.mark.asyncio
async def test_validate_passes_on_clean_branch_without_release(tmp_path: Path) -> None:
    server = _server(tmp_path)

    report = _payload(await _tool(server, "release.validate"))
    skipped = _payload(await _tool(server, "release.validate", {"check_git": False}))

    assert report["valid"] is True
    assert report["can_proceed"] is True
    assert [(check["name"], check["status"]) for check in report["checks"]] == [
        ("release", "warning"),
        ("git_clean", "passed"),
        ("git_branch", "passed"),
    ]
    assert report["warnings"] == ["no active release; run release.plan first"]
    assert report["blocking_issues"] == []
    assert skipped["checks"][-1] == {
        "name": "git",
        "status": "skipped",
        "message": "git checks disabled",
    }


@pytest.mark.asyncio
async def test_validate_reports_blocking_git_state(tmp_path: Path) -> None:
    git = FakeGitReader(clean=False, branch="HEAD", existing_tags={"v1.3.0"})
    server = _server(tmp_path, git=git)
    plan = _payload(await _tool(server, "release.plan"))

    report = _payload(await _tool(server, "release.validate"))
    other = _payload(await _tool(server, "release.validate", {"release_id": "other"}))
    status = _payload(await _tool(server, "release.status"))

    assert report["valid"] is False
    assert report["can_proceed"] is False
    assert report["blocking_issues"] == [
        "working tree has uncommitted changes",
        "HEAD is detached; check out a branch",
        "tag v1.3.0 already exists",
    ]
    assert report["warnings"] == [
        f"release {plan['release_id']} is planned; approve it before publishing"
    ]
    assert report["recommendation"] == "Resolve the blocking issues before publishing."
    assert "release other is not the active release" in other["blocking_issues"]
    assert status["state"] == "planned"


@pytest.mark.asyncio
async def test_read_only_tools_keep_cached_state(tmp_path: Path) -> None:
    server = _server(tmp_path)
    await _tool(server, "release.plan")
    await _resource(server, STATE_URI)

    await _tool(server, "release.infer_version")
    await _tool(server, "release.summarize_diff")
    await _tool(server, "release.validate")

    assert server.cache.get(STATE_URI) is not None
