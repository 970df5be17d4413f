"""Release workflow tools exposed over MCP."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Final

from release_mcp.core.release_manager import ReleaseError, ReleaseManager
from release_mcp.mcp.progress import CallScope
from release_mcp.mcp.protocol import CallToolResult, Tool, tool_result_error, tool_result_json
from release_mcp.mcp.registry import HandlerRegistry
from release_mcp.models.release import Release, ReleaseState
from release_mcp.models.results import (
    ApproveResult,
    BumpResult,
    CancelResult,
    EvaluateResult,
    InferVersionResult,
    NotesResult,
    PlanResult,
    PublishResult,
    ResetResult,
    StatusResult,
    SummarizeDiffResult,
    ValidateResult,
    ValidationCheckResult,
)

logger = logging.getLogger(__name__)

type ToolBody = Callable[[CallScope, dict[str, Any]], Awaitable[Any]]

_NEXT_ACTIONS: Final[dict[ReleaseState, str]] = {
    ReleaseState.PLANNED: "release.bump",
    ReleaseState.VERSIONED: "release.notes",
    ReleaseState.NOTES_READY: "release.approve",
    ReleaseState.APPROVED: "release.publish",
    ReleaseState.CANCELED: "release.reset",
    ReleaseState.FAILED: "release.reset",
}


def _object_schema(properties: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties or {}}


_RELEASE_ID: Final = {"type": "string", "description": "Active release id (optional)"}
_FROM_REF: Final = {
    "type": "string",
    "description": "Starting tag or commit; defaults to the latest tag",
}
_TO_REF: Final = {"type": "string", "description": "Ending ref; defaults to HEAD"}


@dataclass(slots=True, frozen=True)
class ReleaseToolSpec:
    """Static description of one release tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    mutates_state: bool


RELEASE_TOOLS: Final[tuple[ReleaseToolSpec, ...]] = (
    ReleaseToolSpec(
        name="release.status",
        description="Get the current release state and pending actions",
        input_schema=_object_schema(),
        mutates_state=False,
    ),
    ReleaseToolSpec(
        name="release.plan",
        description="Analyze commits since the last release and suggest a version bump",
        input_schema=_object_schema(
            {
                "from": {"type": "string", "description": "Start ref, or 'auto'"},
                "analyze": {"type": "boolean", "description": "Include commit details"},
            }
        ),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.bump",
        description="Calculate and set the next version based on commits",
        input_schema=_object_schema(
            {
                "release_id": _RELEASE_ID,
                "type": {
                    "type": "string",
                    "enum": ["auto", "major", "minor", "patch", "none"],
                },
                "version": {"type": "string", "description": "Explicit version override"},
                "apply": {"type": "boolean", "description": "Persist the new version"},
            }
        ),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.notes",
        description="Generate changelog and release notes for the current release",
        input_schema=_object_schema(
            {
                "release_id": _RELEASE_ID,
                "format": {"type": "string", "enum": ["markdown", "text"]},
            }
        ),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.evaluate",
        description="Evaluate release risk and record the assessment",
        input_schema=_object_schema({"release_id": _RELEASE_ID}),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.approve",
        description="Approve the release for publishing",
        input_schema=_object_schema(
            {
                "release_id": _RELEASE_ID,
                "yes": {"type": "boolean", "description": "Confirm a risky release"},
                "message": {"type": "string"},
            }
        ),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.publish",
        description="Execute the release by creating and pushing its tag",
        input_schema=_object_schema(
            {
                "release_id": _RELEASE_ID,
                "skip_push": {"type": "boolean"},
                "dry_run": {"type": "boolean"},
            }
        ),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.cancel",
        description="Cancel the current in-progress release",
        input_schema=_object_schema({"reason": {"type": "string"}}),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.reset",
        description="Reset a failed or canceled release to allow starting fresh",
        input_schema=_object_schema({"force": {"type": "boolean"}}),
        mutates_state=True,
    ),
    ReleaseToolSpec(
        name="release.infer_version",
        description="Suggest the next version for a commit range without planning a release",
        input_schema=_object_schema(
            {
                "from": _FROM_REF,
                "to": _TO_REF,
                "include_risk": {"type": "boolean", "description": "Include a risk score"},
            }
        ),
        mutates_state=False,
    ),
    ReleaseToolSpec(
        name="release.summarize_diff",
        description="Summarize the changes in a commit range for a target audience",
        input_schema=_object_schema(
            {
                "from": _FROM_REF,
                "to": _TO_REF,
                "audience": {
                    "type": "string",
                    "enum": ["developer", "operator", "end-user"],
                    "default": "developer",
                },
                "max_length": {
                    "type": "integer",
                    "description": "Target summary length in characters",
                },
            }
        ),
        mutates_state=False,
    ),
    ReleaseToolSpec(
        name="release.validate",
        description="Run pre-flight checks on the active release and the git working tree",
        input_schema=_object_schema(
            {
                "release_id": _RELEASE_ID,
                "check_git": {
                    "type": "boolean",
                    "description": "Check that the tree is clean, on a branch, and the tag is free",
                    "default": True,
                },
            }
        ),
        mutates_state=False,
    ),
)


class ReleaseTools:
    """Tool handlers bound to one release manager."""

    def __init__(self, manager: ReleaseManager) -> None:
        self._manager = manager

    def register(self, registry: HandlerRegistry) -> None:
        bodies: dict[str, ToolBody] = {
            "release.status": self.status,
            "release.plan": self.plan,
            "release.bump": self.bump,
            "release.notes": self.notes,
            "release.evaluate": self.evaluate,
            "release.approve": self.approve,
            "release.publish": self.publish,
            "release.cancel": self.cancel,
            "release.reset": self.reset,
            "release.infer_version": self.infer_version,
            "release.summarize_diff": self.summarize_diff,
            "release.validate": self.validate,
        }
        for tool in RELEASE_TOOLS:
            registry.add_tool(
                Tool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                ),
                _as_tool_handler(tool.name, bodies[tool.name]),
                mutates_state=tool.mutates_state,
            )

    async def status(self, scope: CallScope, arguments: dict[str, Any]) -> StatusResult:
        release = await self._manager.status()
        if release is None:
            return StatusResult(has_active_release=False, next_action="release.plan")
        return StatusResult(
            has_active_release=True,
            state=release.state.value,
            version=release.next_version,
            release_id=release.id,
            next_action=_NEXT_ACTIONS.get(release.state),
        )

    async def plan(self, scope: CallScope, arguments: dict[str, Any]) -> dict[str, Any]:
        from_ref = _optional_string(arguments, "from")
        analyze = _parse_bool(arguments.get("analyze"), default=False)
        await scope.report("collecting commits", total=3)
        release = await self._manager.plan(from_ref=from_ref)
        await scope.report("analyzing commits", total=3)
        result = _plan_result(release).model_dump(exclude_none=True)
        result["next_version"] = release.next_version
        if analyze:
            result["commits"] = [
                commit.model_dump(exclude_none=True) for commit in release.commits
            ]
        await scope.report("plan ready", total=3)
        return result

    async def bump(self, scope: CallScope, arguments: dict[str, Any]) -> BumpResult:
        outcome = await self._manager.bump(
            release_id=_optional_string(arguments, "release_id"),
            bump_type=_optional_string(arguments, "type"),
            version=_optional_string(arguments, "version"),
            apply=_parse_bool(arguments.get("apply"), default=False),
        )
        return BumpResult(
            current_version=outcome.current_version,
            new_version=outcome.new_version,
            bump_type=outcome.bump_type.value,
            applied=outcome.applied,
        )

    async def notes(self, scope: CallScope, arguments: dict[str, Any]) -> NotesResult:
        output_format = _optional_string(arguments, "format") or "markdown"
        await scope.report("grouping commits", total=2)
        release, sections = await self._manager.notes(
            release_id=_optional_string(arguments, "release_id"),
            output_format=output_format,
        )
        notes = release.notes or ""
        await scope.report("notes generated", total=2)
        return NotesResult(
            notes=notes,
            format=output_format,
            word_count=len(notes.split()),
            section_list=", ".join(sections) or None,
        )

    async def evaluate(self, scope: CallScope, arguments: dict[str, Any]) -> EvaluateResult:
        assessment = await self._manager.evaluate(
            release_id=_optional_string(arguments, "release_id"),
        )
        return EvaluateResult.model_validate(assessment.model_dump())

    async def approve(self, scope: CallScope, arguments: dict[str, Any]) -> ApproveResult:
        release = await self._manager.approve(
            release_id=_optional_string(arguments, "release_id"),
            confirm=_parse_bool(arguments.get("yes"), default=False),
            message=_optional_string(arguments, "message"),
        )
        return ApproveResult(
            approved=True,
            version=release.next_version or release.current_version,
            message=release.approval_message,
        )

    async def publish(self, scope: CallScope, arguments: dict[str, Any]) -> PublishResult:
        dry_run = _parse_bool(arguments.get("dry_run"), default=False)
        await scope.report("creating tag", total=3)
        release = await self._manager.publish(
            release_id=_optional_string(arguments, "release_id"),
            skip_push=_parse_bool(arguments.get("skip_push"), default=False),
            dry_run=dry_run,
        )
        await scope.report("tag created", total=3)
        message = "dry run - nothing was tagged" if dry_run else f"published {release.tag}"
        await scope.report("release published", total=3)
        return PublishResult(
            published=not dry_run,
            version=release.next_version or release.current_version,
            tag=release.tag or "",
            message=message,
        )

    async def cancel(self, scope: CallScope, arguments: dict[str, Any]) -> CancelResult:
        outcome = await self._manager.cancel(reason=_optional_string(arguments, "reason"))
        if not outcome.changed:
            message = "release is already in a terminal state - use release.reset to start fresh"
        else:
            message = "release canceled"
        return CancelResult(
            release_id=outcome.release.id,
            previous_state=outcome.previous_state.value,
            state=outcome.release.state.value,
            reason=outcome.release.cancel_reason,
            message=message,
        )

    async def reset(self, scope: CallScope, arguments: dict[str, Any]) -> ResetResult:
        outcome = await self._manager.reset(
            force=_parse_bool(arguments.get("force"), default=False),
        )
        return ResetResult(
            release_id=outcome.release_id,
            previous_state=outcome.previous_state.value if outcome.previous_state else None,
            deleted=outcome.deleted,
            message=outcome.message,
        )

    async def infer_version(
        self, scope: CallScope, arguments: dict[str, Any]
    ) -> InferVersionResult:
        include_risk = _parse_bool(arguments.get("include_risk"), default=False)
        await scope.report("reading commits", total=2)
        inference = await self._manager.infer_version(
            from_ref=_optional_string(arguments, "from"),
            to_ref=_optional_string(arguments, "to"),
        )
        await scope.report("version inferred", total=2)
        commits = inference.commits
        result = InferVersionResult(
            current_version=inference.current_version,
            next_version=inference.next_version,
            bump_type=inference.bump_type.value,
            has_breaking=any(commit.breaking for commit in commits),
            has_features=any(commit.type == "feat" for commit in commits),
            has_fixes=any(commit.type == "fix" for commit in commits),
            commit_count=len(commits),
            confidence=inference.confidence,
            rationale=inference.rationale,
        )
        if include_risk:
            result.risk_score = inference.risk.risk_score
            result.risk_severity = inference.risk.risk_level
        return result

    async def summarize_diff(
        self, scope: CallScope, arguments: dict[str, Any]
    ) -> SummarizeDiffResult:
        summary = await self._manager.summarize_diff(
            from_ref=_optional_string(arguments, "from"),
            to_ref=_optional_string(arguments, "to"),
            audience=_optional_string(arguments, "audience") or "developer",
            max_length=_optional_int(arguments, "max_length"),
        )
        return SummarizeDiffResult(
            summary=summary.summary,
            audience=summary.audience,
            character_count=len(summary.summary),
            highlights=summary.highlights,
        )

    async def validate(self, scope: CallScope, arguments: dict[str, Any]) -> ValidateResult:
        report = await self._manager.validate(
            release_id=_optional_string(arguments, "release_id"),
            check_git=_parse_bool(arguments.get("check_git"), default=True),
        )
        if report.valid:
            recommendation = "All blocking checks passed; the release can proceed."
        else:
            recommendation = "Resolve the blocking issues before publishing."
        return ValidateResult(
            valid=report.valid,
            can_proceed=report.valid,
            recommendation=recommendation,
            checks=[
                ValidationCheckResult(
                    name=check.name,
                    status=check.status,
                    message=check.message or None,
                )
                for check in report.checks
            ],
            blocking_issues=report.blocking_issues,
            warnings=report.warnings,
        )


def _as_tool_handler(
    name: str,
    body: ToolBody,
) -> Callable[[CallScope, dict[str, Any]], Awaitable[CallToolResult]]:
    """Wrap a tool body so business errors come back as error results."""

    async def handler(scope: CallScope, arguments: dict[str, Any]) -> CallToolResult:
        try:
            value = await body(scope, arguments)
        except (ReleaseError, ValueError) as exc:
            logger.info("tool %s rejected: %s", name, exc)
            return tool_result_error(str(exc))
        if hasattr(value, "model_dump"):
            value = value.model_dump(exclude_none=True)
        return tool_result_json(value)

    return handler


def _plan_result(release: Release) -> PlanResult:
    commits = release.commits
    conventional = sum(1 for commit in commits if commit.conventional)
    return PlanResult(
        release_id=release.id,
        current_version=release.current_version,
        suggested_bump=release.release_type.value,
        commit_count=len(commits),
        breaking_changes=sum(1 for commit in commits if commit.breaking),
        features=sum(1 for commit in commits if commit.type == "feat"),
        fixes=sum(1 for commit in commits if commit.type == "fix"),
        conventional_ratio=f"{conventional}/{len(commits)}",
    )


def _optional_string(arguments: dict[str, Any], key: str) -> str | None:
    value = arguments.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    msg = f"{key} must be a string"
    raise ValueError(msg)


def _parse_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return default


def _optional_int(arguments: dict[str, Any], key: str) -> int | None:
    value = arguments.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{key} must be an integer"
        raise ValueError(msg)
    return value
