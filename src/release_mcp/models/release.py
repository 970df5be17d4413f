"""Release domain models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from uuid import uuid4

from pydantic import BaseModel, Field


class ReleaseState(str, Enum):
    """Lifecycle state of a release."""

    PLANNED = "planned"
    VERSIONED = "versioned"
    NOTES_READY = "notes_ready"
    APPROVED = "approved"
    PUBLISHED = "published"
    CANCELED = "canceled"
    FAILED = "failed"

    @property
    def in_progress(self) -> bool:
        return self in IN_PROGRESS_STATES

    @property
    def terminal(self) -> bool:
        return not self.in_progress


IN_PROGRESS_STATES = frozenset(
    {
        ReleaseState.PLANNED,
        ReleaseState.VERSIONED,
        ReleaseState.NOTES_READY,
        ReleaseState.APPROVED,
    }
)


class BumpType(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    NONE = "none"


class CommitInfo(BaseModel):
    """One commit parsed from git history."""

    sha: str
    type: str = "other"
    scope: str | None = None
    subject: str
    author: str = ""
    breaking: bool = False

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def conventional(self) -> bool:
        return self.type != "other"


class RiskAssessment(BaseModel):
    """Heuristic risk score persisted on a release."""

    risk_level: str
    risk_score: float
    factors: list[str] = Field(default_factory=list)
    recommendation: str
    requires_approval: bool
    high_risk_categories: int = 0
    assessed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Release(BaseModel):
    """A release moving through plan, bump, notes, approve and publish."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    repository_path: Path
    state: ReleaseState = ReleaseState.PLANNED
    current_version: str = "0.0.0"
    next_version: str | None = None
    release_type: BumpType = BumpType.PATCH
    from_ref: str | None = None
    commits: list[CommitInfo] = Field(default_factory=list)
    notes: str | None = None
    notes_format: str | None = None
    approved_by: str | None = None
    approval_message: str | None = None
    risk: RiskAssessment | None = None
    tag: str | None = None
    cancel_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        """Update mutation timestamp."""
        self.updated_at = datetime.now(UTC)

    def transition(self, state: ReleaseState) -> ReleaseState:
        previous = self.state
        self.state = state
        self.touch()
        return previous
