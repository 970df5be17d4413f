"""Read-only release resources."""

from __future__ import annotations

from typing import Any

from release_mcp.config import Settings
from release_mcp.core.release_manager import ReleaseManager
from release_mcp.mcp.cache import (
    CHANGELOG_URI,
    COMMITS_URI,
    CONFIG_URI,
    RISK_REPORT_URI,
    STATE_URI,
)
from release_mcp.mcp.progress import CallScope
from release_mcp.mcp.protocol import ReadResourceResult, Resource, json_resource, text_resource
from release_mcp.mcp.registry import HandlerRegistry
from release_mcp.models.results import (
    ConfigResource,
    PluginConfig,
    StateResource,
    VersioningConfig,
)


class ReleaseResources:
    """Resource handlers reading the active release and settings."""

    def __init__(self, manager: ReleaseManager, settings: Settings) -> None:
        self._manager = manager
        self._settings = settings

    def register(self, registry: HandlerRegistry) -> None:
        registry.add_resource(
            Resource(
                uri=STATE_URI,
                name="Release State",
                description="Current release state machine status",
                mime_type="application/json",
            ),
            self.state,
        )
        registry.add_resource(
            Resource(
                uri=CONFIG_URI,
                name="Configuration",
                description="Current release configuration",
                mime_type="application/json",
            ),
            self.config,
        )
        registry.add_resource(
            Resource(
                uri=COMMITS_URI,
                name="Commits",
                description="Commits included in the active release",
                mime_type="application/json",
            ),
            self.commits,
        )
        registry.add_resource(
            Resource(
                uri=CHANGELOG_URI,
                name="Changelog",
                description="Generated changelog for the active release",
                mime_type="text/markdown",
            ),
            self.changelog,
        )
        registry.add_resource(
            Resource(
                uri=RISK_REPORT_URI,
                name="Risk Report",
                description="Risk assessment for the active release",
                mime_type="application/json",
            ),
            self.risk_report,
        )

    async def state(self, scope: CallScope, uri: str) -> ReadResourceResult:
        release = await self._manager.active()
        if release is None:
            payload = StateResource(has_active_release=False)
        else:
            payload = StateResource(
                has_active_release=True,
                state=release.state.value,
                version=release.next_version,
                release_id=release.id,
                created_at=release.created_at.isoformat(),
                updated_at=release.updated_at.isoformat(),
            )
        return json_resource(uri, payload.model_dump(exclude_none=True))

    async def config(self, scope: CallScope, uri: str) -> ReadResourceResult:
        payload = ConfigResource(
            versioning=VersioningConfig(
                strategy=self._settings.versioning_strategy,
                prefix=self._settings.tag_prefix or None,
            ),
            plugins=[PluginConfig(name=name) for name in self._settings.plugins],
        )
        return json_resource(uri, payload.model_dump(exclude_none=True))

    async def commits(self, scope: CallScope, uri: str) -> ReadResourceResult:
        release = await self._manager.active()
        if release is None:
            payload: dict[str, Any] = {"status": "no active release", "commits": []}
        else:
            payload = {
                "status": "ok",
                "release_id": release.id,
                "release_type": release.release_type.value,
                "current_version": release.current_version,
                "next_version": release.next_version,
                "commit_count": len(release.commits),
                "commits": [
                    {
                        "sha": commit.short_sha,
                        "full_sha": commit.sha,
                        **commit.model_dump(exclude={"sha"}, exclude_none=True),
                    }
                    for commit in release.commits
                ],
            }
        return json_resource(uri, payload)

    async def changelog(self, scope: CallScope, uri: str) -> ReadResourceResult:
        release = await self._manager.active()
        if release is None:
            text = "# Changelog\n\nNo active release found. Run `release.plan` to start one.\n"
        elif not release.notes:
            version = release.next_version or release.current_version
            text = (
                f"# Changelog\n\nNo changelog generated yet for version {version}.\n\n"
                "Run `release.notes` to generate release notes.\n"
            )
        else:
            text = release.notes
        return text_resource(uri, text, mime_type="text/markdown")

    async def risk_report(self, scope: CallScope, uri: str) -> ReadResourceResult:
        release = await self._manager.active()
        if release is None:
            payload: dict[str, Any] = {"status": "no active release"}
        elif release.risk is None:
            payload = {
                "status": "no risk assessment available",
                "hint": "Run release.evaluate to perform a risk assessment",
            }
        else:
            payload = {"status": "ok", **release.risk.model_dump(mode="json")}
        return json_resource(uri, payload)
