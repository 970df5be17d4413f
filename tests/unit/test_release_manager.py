from pathlib import Path

import pytest

from release_mcp.core.release_manager import (
    ReleaseError,
    ReleaseManager,
    assess_risk,
    bump_version,
    parse_version,
    render_notes,
    suggest_bump,
)
from release_mcp.core.release_store import InMemoryReleaseStore
from release_mcp.models.release import BumpType, CommitInfo, Release, ReleaseState
from tests.support.mcp_helpers import FakeGitReader, make_manager, sample_commits


def test_version_helpers() -> None:
    assert parse_version("v1.2.3") == (1, 2, 3)
    assert parse_version("2.0.0-rc.1") == (2, 0, 0)
    assert bump_version("1.2.3", BumpType.MAJOR) == "2.0.0"
    assert bump_version("1.2.3", BumpType.MINOR) == "1.3.0"
    assert bump_version("1.2.3", BumpType.PATCH) == "1.2.4"
    assert bump_version("1.2.3", BumpType.NONE) == "1.2.3"
    with pytest.raises(ValueError):
        parse_version("release-7")


def test_suggest_bump_follows_most_significant_commit() -> None:
    fix = CommitInfo(sha="1", type="fix", subject="x")
    feat = CommitInfo(sha="2", type="feat", subject="y")
    breaking = CommitInfo(sha="3", type="fix", subject="z", breaking=True)

    assert suggest_bump([]) is BumpType.NONE
    assert suggest_bump([fix]) is BumpType.PATCH
    assert suggest_bump([fix, feat]) is BumpType.MINOR
    assert suggest_bump([fix, feat, breaking]) is BumpType.MAJOR


def test_render_notes_groups_sections(tmp_path: Path) -> None:
    commits = [
        *sample_commits(),
        CommitInfo(sha="d" * 40, type="feat", subject="new api", breaking=True),
    ]
    release = Release(repository_path=tmp_path, next_version="2.0.0", commits=commits)

    markdown, sections = render_notes(release)
    text, _ = render_notes(release, "text")

    assert sections == ["Breaking Changes", "Features", "Bug Fixes", "Other Changes"]
    assert markdown.startswith("# 2.0.0\n")
    assert "- **api:** add export (aaaaaaa)" in markdown
    assert text.startswith("Release 2.0.0\n")
    assert "* api: add export (aaaaaaa)" in text


def test_assess_risk_levels() -> None:
    low = assess_risk(sample_commits())
    risky = assess_risk(
        [
            CommitInfo(sha="1", type="feat", scope="auth", subject="a", breaking=True),
            CommitInfo(sha="2", subject="b"),
            CommitInfo(sha="3", subject="c"),
        ]
    )

    assert low.risk_level == "low"
    assert not low.requires_approval
    assert risky.risk_level == "critical"
    assert risky.recommendation == "block"
    assert risky.requires_approval
    assert risky.high_risk_categories == 2


@pytest.mark.asyncio
async def test_plan_uses_latest_tag_and_refuses_second_release(tmp_path: Path) -> None:
    git = FakeGitReader()
    manager = make_manager(tmp_path, git)

    release = await manager.plan()

    assert git.since_refs == ["v1.2.3"]
    assert release.current_version == "1.2.3"
    assert release.next_version == "1.3.0"
    assert release.release_type is BumpType.MINOR
    with pytest.raises(ReleaseError, match="already planned"):
        await manager.plan()


@pytest.mark.asyncio
async def test_plan_from_explicit_ref_and_without_tags(tmp_path: Path) -> None:
    git = FakeGitReader(latest=None)
    manager = make_manager(tmp_path, git)

    release = await manager.plan(from_ref="abc123")

    assert git.since_refs == ["abc123"]
    assert release.current_version == "0.0.0"
    assert release.from_ref == "abc123"


@pytest.mark.asyncio
async def test_plan_without_commits_fails(tmp_path: Path) -> None:
    manager = make_manager(tmp_path, FakeGitReader(commits=[]))

    with pytest.raises(ReleaseError, match="no commits to release since v1.2.3"):
        await manager.plan()


@pytest.mark.asyncio
async def test_bump_validates_input_and_applies(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    release = await manager.plan()

    with pytest.raises(ReleaseError, match="unknown bump type"):
        await manager.bump(bump_type="huge")
    with pytest.raises(ReleaseError, match="not a semantic version"):
        await manager.bump(version="next")
    with pytest.raises(ReleaseError, match="is not the active release"):
        await manager.bump(release_id="other")

    explicit = await manager.bump(release_id=release.id, version="v4.0.0", apply=True)

    assert explicit.new_version == "4.0.0"
    active = await manager.active()
    assert active is not None
    assert active.state is ReleaseState.VERSIONED
    assert active.next_version == "4.0.0"


@pytest.mark.asyncio
async def test_approve_requires_confirmation_for_risky_release(tmp_path: Path) -> None:
    commits = [CommitInfo(sha="1", type="feat", scope="db", subject="x", breaking=True)]
    manager = make_manager(tmp_path, FakeGitReader(commits))
    await manager.plan()
    await manager.bump(apply=True)
    await manager.notes()
    assessment = await manager.evaluate()
    assert assessment.requires_approval

    with pytest.raises(ReleaseError, match="explicit confirmation"):
        await manager.approve()
    approved = await manager.approve(confirm=True, message="reviewed")

    assert approved.state is ReleaseState.APPROVED
    assert approved.approval_message == "reviewed"
    assert approved.approved_by == "mcp-agent"


@pytest.mark.asyncio
async def test_notes_rejects_unknown_format_and_wrong_state(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    await manager.plan()

    with pytest.raises(ReleaseError, match="unsupported notes format"):
        await manager.notes(output_format="html")
    with pytest.raises(ReleaseError, match="cannot generate notes for a release in state planned"):
        await manager.notes()


async def _approved(tmp_path: Path, git: FakeGitReader) -> tuple[ReleaseManager, Release]:
    manager = make_manager(tmp_path, git)
    await manager.plan()
    await manager.bump(apply=True)
    await manager.notes()
    release = await manager.approve()
    return manager, release


@pytest.mark.asyncio
async def test_publish_tags_and_pushes(tmp_path: Path) -> None:
    git = FakeGitReader()
    manager, _ = await _approved(tmp_path, git)

    dry = await manager.publish(dry_run=True)
    assert dry.tag == "v1.3.0"
    assert git.tags == []

    published = await manager.publish(skip_push=True)

    assert published.state is ReleaseState.PUBLISHED
    assert git.tags == ["v1.3.0"]
    assert git.pushed == []
    assert await manager.active() is None


@pytest.mark.asyncio
async def test_publish_failure_marks_release_failed(tmp_path: Path) -> None:
    git = FakeGitReader(fail_tag=True)
    manager, release = await _approved(tmp_path, git)

    with pytest.raises(ReleaseError, match="publish failed"):
        await manager.publish()

    active = await manager.active()
    assert active is not None
    assert active.id == release.id
    assert active.state is ReleaseState.FAILED


@pytest.mark.asyncio
async def test_cancel_and_reset(tmp_path: Path) -> None:
    store = InMemoryReleaseStore()
    manager = make_manager(tmp_path, store=store)

    with pytest.raises(ReleaseError, match="no active release to cancel"):
        await manager.cancel()
    nothing = await manager.reset()
    assert not nothing.deleted

    release = await manager.plan()
    refused = await manager.reset()
    assert not refused.deleted
    assert refused.previous_state is ReleaseState.PLANNED

    outcome = await manager.cancel()
    assert outcome.changed
    assert outcome.previous_state is ReleaseState.PLANNED
    assert outcome.release.cancel_reason == "canceled via MCP"

    replanned = await manager.plan()
    assert replanned.id != release.id

    forced = await manager.reset(force=True)
    assert forced.deleted
    assert forced.release_id == replanned.id
    assert [item.id for item in await store.list_releases()] == [release.id]
