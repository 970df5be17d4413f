"""Release workflow: plan, bump, notes, evaluate, approve, publish."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from release_mcp.core.git_reader import GitReader
from release_mcp.core.release_store import ReleaseStore
from release_mcp.models.release import (
    BumpType,
    CommitInfo,
    Release,
    ReleaseState,
    RiskAssessment,
)

logger = logging.getLogger(__name__)

_SEMVER = re.compile(r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)(?:[-+].*)?$")

NOTE_SECTIONS: tuple[tuple[str, str], ...] = (
    ("breaking", "Breaking Changes"),
    ("feat", "Features"),
    ("fix", "Bug Fixes"),
    ("perf", "Performance"),
    ("other", "Other Changes"),
)
NOTES_FORMATS = frozenset({"markdown", "text"})
SUMMARY_AUDIENCES = frozenset({"developer", "operator", "end-user"})
HIGH_RISK_SCOPES = frozenset({"security", "auth", "deps", "db", "migration"})


class ReleaseError(RuntimeError):
    """Invalid release operation for the current state."""


@dataclass(slots=True)
class BumpOutcome:
    release: Release
    current_version: str
    new_version: str
    bump_type: BumpType
    applied: bool


@dataclass(slots=True)
class CancelOutcome:
    release: Release
    previous_state: ReleaseState
    changed: bool


@dataclass(slots=True)
class ResetOutcome:
    release_id: str | None
    previous_state: ReleaseState | None
    deleted: bool
    message: str


@dataclass(slots=True)
class VersionInference:
    current_version: str
    next_version: str
    bump_type: BumpType
    commits: list[CommitInfo]
    rationale: list[str]
    confidence: float
    risk: RiskAssessment


@dataclass(slots=True)
class DiffSummary:
    summary: str
    audience: str
    highlights: list[str]


@dataclass(slots=True)
class ValidationCheck:
    name: str
    # passed, warning, failed or skipped
    status: str
    message: str = ""


@dataclass(slots=True)
class ValidationReport:
    checks: list[ValidationCheck]

    @property
    def blocking_issues(self) -> list[str]:
        return [check.message for check in self.checks if check.status == "failed"]

    @property
    def warnings(self) -> list[str]:
        return [check.message for check in self.checks if check.status == "warning"]

    @property
    def valid(self) -> bool:
        return not self.blocking_issues


def parse_version(version: str, prefix: str = "v") -> tuple[int, int, int]:
    text = version.strip()
    if prefix and text.startswith(prefix):
        text = text[len(prefix) :]
    match = _SEMVER.match(text)
    if match is None:
        msg = f"not a semantic version: {version}"
        raise ValueError(msg)
    return int(match.group("major")), int(match.group("minor")), int(match.group("patch"))


def bump_version(version: str, bump: BumpType, prefix: str = "v") -> str:
    major, minor, patch = parse_version(version, prefix)
    if bump is BumpType.MAJOR:
        return f"{major + 1}.0.0"
    if bump is BumpType.MINOR:
        return f"{major}.{minor + 1}.0"
    if bump is BumpType.PATCH:
        return f"{major}.{minor}.{patch + 1}"
    return f"{major}.{minor}.{patch}"


def suggest_bump(commits: list[CommitInfo]) -> BumpType:
    if any(commit.breaking for commit in commits):
        return BumpType.MAJOR
    if any(commit.type == "feat" for commit in commits):
        return BumpType.MINOR
    if commits:
        return BumpType.PATCH
    return BumpType.NONE


def _section_key(commit: CommitInfo) -> str:
    if commit.breaking:
        return "breaking"
    if commit.type in {"feat", "fix", "perf"}:
        return commit.type
    return "other"


def render_notes(release: Release, output_format: str = "markdown") -> tuple[str, list[str]]:
    """Group commits into titled sections; returns the text and section titles."""
    grouped: dict[str, list[CommitInfo]] = {}
    for commit in release.commits:
        grouped.setdefault(_section_key(commit), []).append(commit)

    version = release.next_version or release.current_version
    markdown = output_format == "markdown"
    lines = [f"# {version}" if markdown else f"Release {version}", ""]
    titles: list[str] = []
    for key, title in NOTE_SECTIONS:
        commits = grouped.get(key)
        if not commits:
            continue
        titles.append(title)
        lines.append(f"## {title}" if markdown else title)
        lines.append("")
        for commit in commits:
            scope = f"**{commit.scope}:** " if markdown and commit.scope else ""
            if not markdown and commit.scope:
                scope = f"{commit.scope}: "
            bullet = "-" if markdown else "*"
            lines.append(f"{bullet} {scope}{commit.subject} ({commit.short_sha})")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n", titles


def assess_risk(commits: list[CommitInfo]) -> RiskAssessment:
    """Fixed heuristic over commit metadata."""
    factors: list[str] = []
    score = 0.1
    categories = 0

    breaking = sum(1 for commit in commits if commit.breaking)
    if breaking:
        score += 0.4
        categories += 1
        factors.append(f"{breaking} breaking change(s)")

    sensitive = [commit for commit in commits if commit.scope in HIGH_RISK_SCOPES]
    if sensitive:
        score += 0.2
        categories += 1
        factors.append(f"{len(sensitive)} change(s) in sensitive scopes")

    features = sum(1 for commit in commits if commit.type == "feat")
    if features:
        score += min(0.05 * features, 0.2)
        factors.append(f"{features} new feature(s)")

    if len(commits) > 20:
        score += 0.1
        factors.append(f"large change set ({len(commits)} commits)")

    conventional = sum(1 for commit in commits if commit.conventional)
    if commits and conventional / len(commits) < 0.5:
        score += 0.1
        factors.append("less than half of the commits follow conventional format")

    score = round(min(score, 1.0), 2)
    if score < 0.3:
        level, recommendation = "low", "approve"
    elif score < 0.6:
        level, recommendation = "medium", "review"
    elif score < 0.8:
        level, recommendation = "high", "review"
    else:
        level, recommendation = "critical", "block"

    return RiskAssessment(
        risk_level=level,
        risk_score=score,
        factors=factors,
        recommendation=recommendation,
        requires_approval=level != "low",
        high_risk_categories=categories,
    )


def bump_rationale(commits: list[CommitInfo], bump: BumpType) -> list[str]:
    if not commits:
        return ["no commits in range; version stays the same"]
    reasons: list[str] = []
    breaking = sum(1 for commit in commits if commit.breaking)
    features = sum(1 for commit in commits if commit.type == "feat")
    fixes = sum(1 for commit in commits if commit.type == "fix")
    if breaking:
        reasons.append(f"{breaking} breaking change(s) require a major bump")
    if features:
        reasons.append(f"{features} new feature(s)")
    if fixes:
        reasons.append(f"{fixes} bug fix(es)")
    unconventional = sum(1 for commit in commits if not commit.conventional)
    if unconventional:
        reasons.append(f"{unconventional} commit(s) do not follow conventional format")
    reasons.append(f"suggested bump: {bump.value}")
    return reasons


def summarize_commits(commits: list[CommitInfo], audience: str) -> tuple[str, list[str]]:
    """Plain-language summary of a commit range for one audience.

    `developer` lists every conventional change with its scope and sha,
    `operator` only breaking changes and sensitive scopes, and `end-user`
    only features and fixes without any commit metadata.
    """
    if not commits:
        return "No changes in this range.", []

    breaking = [commit for commit in commits if commit.breaking]
    features = [commit for commit in commits if commit.type == "feat"]
    fixes = [commit for commit in commits if commit.type == "fix"]

    if audience == "operator":
        sensitive = [commit for commit in commits if commit.scope in HIGH_RISK_SCOPES]
        summary = (
            f"{len(commits)} change(s) to roll out: {len(breaking)} breaking, "
            f"{len(sensitive)} in sensitive areas."
        )
        highlights = [f"BREAKING: {commit.subject}" for commit in breaking]
        highlights += [
            f"{commit.scope}: {commit.subject}" for commit in sensitive if not commit.breaking
        ]
        return summary, highlights

    if audience == "end-user":
        summary = (
            f"This release brings {len(features)} new feature(s) "
            f"and {len(fixes)} fix(es)."
        )
        if breaking:
            summary += " Some existing behavior has changed."
        highlights = [f"New: {commit.subject}" for commit in features]
        highlights += [f"Fixed: {commit.subject}" for commit in fixes]
        return summary, highlights

    summary = (
        f"{len(commits)} commit(s): {len(features)} feature(s), "
        f"{len(fixes)} fix(es), {len(breaking)} breaking."
    )
    highlights = []
    for commit in commits:
        if not commit.conventional:
            continue
        scope = f"({commit.scope})" if commit.scope else ""
        bang = "!" if commit.breaking else ""
        highlights.append(f"{commit.type}{scope}{bang}: {commit.subject} ({commit.short_sha})")
    return summary, highlights


class ReleaseManager:
    """Drive the active release of one repository through its lifecycle."""

    def __init__(
        self,
        store: ReleaseStore,
        git: GitReader | None = None,
        *,
        repository_path: Path,
        tag_prefix: str = "v",
        remote: str = "origin",
    ) -> None:
        self._store = store
        self._git = git or GitReader()
        self._repository_path = repository_path
        self._tag_prefix = tag_prefix
        self._remote = remote

    @property
    def repository_path(self) -> Path:
        return self._repository_path

    @property
    def tag_prefix(self) -> str:
        return self._tag_prefix

    async def active(self) -> Release | None:
        return await self._store.find_active()

    async def status(self) -> Release | None:
        return await self._store.find_active()

    async def plan(self, *, from_ref: str | None = None) -> Release:
        existing = await self._store.find_active()
        if existing is not None and existing.state.in_progress:
            msg = (
                f"release {existing.id} is already {existing.state.value}; "
                "cancel or publish it first"
            )
            raise ReleaseError(msg)

        base_ref, current_version, commits = await self._collect(from_ref)
        if not commits:
            since = f" since {base_ref}" if base_ref else ""
            msg = f"no commits to release{since}"
            raise ReleaseError(msg)

        release_type = suggest_bump(commits)
        release = Release(
            repository_path=self._repository_path,
            current_version=current_version,
            next_version=bump_version(current_version, release_type, self._tag_prefix),
            release_type=release_type,
            from_ref=base_ref,
            commits=commits,
        )
        await self._store.save(release)
        logger.info(
            "planned release %s: %s -> %s (%d commits)",
            release.id,
            release.current_version,
            release.next_version,
            len(commits),
        )
        return release

    async def bump(
        self,
        *,
        release_id: str | None = None,
        bump_type: str | None = None,
        version: str | None = None,
        apply: bool = False,
    ) -> BumpOutcome:
        release = await self._require_active(
            release_id,
            allowed={ReleaseState.PLANNED, ReleaseState.VERSIONED},
            action="bump",
        )

        if bump_type in (None, "", "auto"):
            kind = release.release_type
        else:
            try:
                kind = BumpType(bump_type)
            except ValueError as exc:
                msg = f"unknown bump type: {bump_type}"
                raise ReleaseError(msg) from exc

        if version:
            try:
                parse_version(version, self._tag_prefix)
            except ValueError as exc:
                raise ReleaseError(str(exc)) from exc
            new_version = version.removeprefix(self._tag_prefix)
        else:
            new_version = bump_version(release.current_version, kind, self._tag_prefix)

        if apply:
            release.release_type = kind
            release.next_version = new_version
            release.transition(ReleaseState.VERSIONED)
            await self._store.save(release)
            logger.info("release %s versioned as %s", release.id, new_version)

        return BumpOutcome(
            release=release,
            current_version=release.current_version,
            new_version=new_version,
            bump_type=kind,
            applied=apply,
        )

    async def notes(
        self,
        *,
        release_id: str | None = None,
        output_format: str = "markdown",
    ) -> tuple[Release, list[str]]:
        if output_format not in NOTES_FORMATS:
            msg = f"unsupported notes format: {output_format}"
            raise ReleaseError(msg)
        release = await self._require_active(
            release_id,
            allowed={ReleaseState.VERSIONED, ReleaseState.NOTES_READY},
            action="generate notes for",
        )
        text, sections = render_notes(release, output_format)
        release.notes = text
        release.notes_format = output_format
        release.transition(ReleaseState.NOTES_READY)
        await self._store.save(release)
        return release, sections

    async def evaluate(self, *, release_id: str | None = None) -> RiskAssessment:
        release = await self._require_active(
            release_id,
            allowed=set(ReleaseState) - {ReleaseState.PUBLISHED},
            action="evaluate",
        )
        assessment = assess_risk(release.commits)
        release.risk = assessment
        release.touch()
        await self._store.save(release)
        logger.info(
            "release %s assessed %s (%.2f)",
            release.id,
            assessment.risk_level,
            assessment.risk_score,
        )
        return assessment

    async def approve(
        self,
        *,
        release_id: str | None = None,
        confirm: bool = False,
        message: str | None = None,
        approved_by: str = "mcp-agent",
    ) -> Release:
        release = await self._require_active(
            release_id,
            allowed={ReleaseState.NOTES_READY},
            action="approve",
        )
        if release.risk is not None and release.risk.requires_approval and not confirm:
            msg = (
                f"release risk is {release.risk.risk_level}; "
                "explicit confirmation (yes=true) is required"
            )
            raise ReleaseError(msg)
        release.approved_by = approved_by
        release.approval_message = message
        release.transition(ReleaseState.APPROVED)
        await self._store.save(release)
        return release

    async def publish(
        self,
        *,
        release_id: str | None = None,
        skip_push: bool = False,
        dry_run: bool = False,
    ) -> Release:
        release = await self._require_active(
            release_id,
            allowed={ReleaseState.APPROVED},
            action="publish",
        )
        version = release.next_version or release.current_version
        tag = f"{self._tag_prefix}{version}"
        if dry_run:
            release.tag = tag
            return release

        try:
            await asyncio.to_thread(
                self._git.create_tag,
                self._repository_path,
                tag,
                f"Release {version}",
            )
            if not skip_push:
                await asyncio.to_thread(
                    self._git.push_tag,
                    self._repository_path,
                    tag,
                    self._remote,
                )
        except RuntimeError as exc:
            release.transition(ReleaseState.FAILED)
            await self._store.save(release)
            msg = f"publish failed: {exc}"
            raise ReleaseError(msg) from exc

        release.tag = tag
        release.transition(ReleaseState.PUBLISHED)
        await self._store.save(release)
        logger.info("published release %s as %s", release.id, tag)
        return release

    async def cancel(self, *, reason: str | None = None) -> CancelOutcome:
        release = await self._store.find_active()
        if release is None:
            msg = "no active release to cancel"
            raise ReleaseError(msg)
        if release.state.terminal:
            return CancelOutcome(release=release, previous_state=release.state, changed=False)
        release.cancel_reason = reason or "canceled via MCP"
        previous = release.transition(ReleaseState.CANCELED)
        await self._store.save(release)
        return CancelOutcome(release=release, previous_state=previous, changed=True)

    async def reset(self, *, force: bool = False) -> ResetOutcome:
        release = await self._store.find_active()
        if release is None:
            return ResetOutcome(
                release_id=None,
                previous_state=None,
                deleted=False,
                message="no active release found - nothing to reset",
            )
        if release.state.in_progress and not force:
            return ResetOutcome(
                release_id=release.id,
                previous_state=release.state,
                deleted=False,
                message="release is in progress - cancel it first, or pass force=true",
            )
        deleted = await self._store.delete(release.id)
        return ResetOutcome(
            release_id=release.id,
            previous_state=release.state,
            deleted=deleted,
            message="release reset - run release.plan to start fresh",
        )

    async def infer_version(
        self,
        *,
        from_ref: str | None = None,
        to_ref: str | None = None,
    ) -> VersionInference:
        """Suggest the next version for a commit range without planning a release."""
        _, current_version, commits = await self._collect(from_ref, to_ref)
        bump = suggest_bump(commits)
        conventional = sum(1 for commit in commits if commit.conventional)
        return VersionInference(
            current_version=current_version,
            next_version=bump_version(current_version, bump, self._tag_prefix),
            bump_type=bump,
            commits=commits,
            rationale=bump_rationale(commits, bump),
            confidence=round(conventional / len(commits), 2) if commits else 1.0,
            risk=assess_risk(commits),
        )

    async def summarize_diff(
        self,
        *,
        from_ref: str | None = None,
        to_ref: str | None = None,
        audience: str = "developer",
        max_length: int | None = None,
    ) -> DiffSummary:
        if audience not in SUMMARY_AUDIENCES:
            msg = f"unsupported audience: {audience}"
            raise ReleaseError(msg)
        if max_length is not None and max_length < 4:
            msg = "max_length must be at least 4"
            raise ReleaseError(msg)
        _, _, commits = await self._collect(from_ref, to_ref)
        summary, highlights = summarize_commits(commits, audience)
        if max_length is not None and len(summary) > max_length:
            summary = summary[: max_length - 3].rstrip() + "..."
        return DiffSummary(summary=summary, audience=audience, highlights=highlights)

    async def validate(
        self,
        *,
        release_id: str | None = None,
        check_git: bool = True,
    ) -> ValidationReport:
        """Pre-flight checks before publishing; nothing is persisted."""
        release = await self._store.find_active()
        checks = [_release_check(release, release_id)]
        if not check_git:
            checks.append(ValidationCheck("git", "skipped", "git checks disabled"))
            return ValidationReport(checks)

        path = self._repository_path
        try:
            clean = await asyncio.to_thread(self._git.is_clean, path)
            branch = await asyncio.to_thread(self._git.current_branch, path)
            tag, tag_taken = None, False
            if release is not None and release.state.in_progress and release.next_version:
                tag = f"{self._tag_prefix}{release.next_version}"
                tag_taken = await asyncio.to_thread(self._git.tag_exists, path, tag)
        except RuntimeError as exc:
            checks.append(ValidationCheck("git", "failed", f"git state unavailable: {exc}"))
            return ValidationReport(checks)

        if clean:
            checks.append(ValidationCheck("git_clean", "passed", "working tree is clean"))
        else:
            checks.append(
                ValidationCheck("git_clean", "failed", "working tree has uncommitted changes")
            )
        if branch == "HEAD":
            checks.append(
                ValidationCheck("git_branch", "failed", "HEAD is detached; check out a branch")
            )
        else:
            checks.append(ValidationCheck("git_branch", "passed", f"on branch {branch}"))
        if tag is not None:
            if tag_taken:
                checks.append(ValidationCheck("tag", "failed", f"tag {tag} already exists"))
            else:
                checks.append(ValidationCheck("tag", "passed", f"tag {tag} is available"))

        report = ValidationReport(checks)
        logger.info(
            "validated release %s: %d blocking issue(s)",
            release.id if release else "-",
            len(report.blocking_issues),
        )
        return report

    async def _collect(
        self,
        from_ref: str | None,
        to_ref: str | None = None,
    ) -> tuple[str | None, str, list[CommitInfo]]:
        """Resolve the base ref and current version, then read commits up to `to_ref`."""
        latest_tag = await asyncio.to_thread(self._git.latest_tag, self._repository_path)
        base_ref = from_ref if from_ref and from_ref != "auto" else latest_tag
        commits = await asyncio.to_thread(
            self._git.commits_since,
            self._repository_path,
            base_ref,
            to_ref or "HEAD",
        )

        current_version = "0.0.0"
        if latest_tag:
            try:
                parse_version(latest_tag, self._tag_prefix)
                current_version = latest_tag.removeprefix(self._tag_prefix)
            except ValueError:
                logger.warning("ignoring non-semver tag %s", latest_tag)
        return base_ref, current_version, commits

    async def _require_active(
        self,
        release_id: str | None,
        *,
        allowed: set[ReleaseState] | frozenset[ReleaseState],
        action: str,
    ) -> Release:
        release = await self._store.find_active()
        if release is None:
            msg = "no active release; run release.plan first"
            raise ReleaseError(msg)
        if release_id and release.id != release_id:
            msg = f"release {release_id} is not the active release"
            raise ReleaseError(msg)
        if release.state not in allowed:
            msg = f"cannot {action} a release in state {release.state.value}"
            raise ReleaseError(msg)
        return release


def _release_check(release: Release | None, release_id: str | None) -> ValidationCheck:
    if release is None:
        if release_id:
            return ValidationCheck("release", "failed", f"release {release_id} not found")
        return ValidationCheck("release", "warning", "no active release; run release.plan first")
    if release_id and release.id != release_id:
        return ValidationCheck(
            "release", "failed", f"release {release_id} is not the active release"
        )
    if release.state.terminal:
        return ValidationCheck(
            "release",
            "failed",
            f"release {release.id} is {release.state.value}; run release.reset",
        )
    if release.state is not ReleaseState.APPROVED:
        return ValidationCheck(
            "release",
            "warning",
            f"release {release.id} is {release.state.value}; approve it before publishing",
        )
    return ValidationCheck("release", "passed", f"release {release.id} is approved")
