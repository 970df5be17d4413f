"""Payload shapes returned by the release tools and resources."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StatusResult(BaseModel):
    has_active_release: bool
    state: str | None = None
    version: str | None = None
    release_id: str | None = None
    next_action: str | None = None


class PlanResult(BaseModel):
    """Commit analysis for a newly planned release."""

    release_id: str
    current_version: str
    suggested_bump: str
    commit_count: int
    breaking_changes: int = 0
    features: int = 0
    fixes: int = 0
    conventional_ratio: str | None = None
    high_risk_categories: int = 0


class BumpResult(BaseModel):
    current_version: str
    new_version: str
    bump_type: str
    applied: bool


class NotesResult(BaseModel):
    notes: str
    format: str
    word_count: int
    section_list: str | None = None


class EvaluateResult(BaseModel):
    """Risk assessment of the active release."""

    risk_level: str
    risk_score: float
    factors: list[str] = Field(default_factory=list)
    recommendation: str | None = None
    requires_approval: bool
    high_risk_categories: int = 0


class ApproveResult(BaseModel):
    approved: bool
    version: str
    message: str | None = None


class PublishResult(BaseModel):
    published: bool
    version: str
    tag: str
    message: str | None = None


class StateResource(BaseModel):
    """Contents of the `release://state` resource."""

    has_active_release: bool
    state: str | None = None
    version: str | None = None
    release_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class VersioningConfig(BaseModel):
    strategy: str = "semver"
    prefix: str | None = None


class PluginConfig(BaseModel):
    name: str
    enabled: bool = True


class ConfigResource(BaseModel):
    """Contents of the `release://config` resource."""

    versioning: VersioningConfig = Field(default_factory=VersioningConfig)
    plugins: list[PluginConfig] = Field(default_factory=list)


class CancelResult(BaseModel):
    release_id: str
    previous_state: str
    state: str
    reason: str | None = None
    message: str


class ResetResult(BaseModel):
    release_id: str | None = None
    previous_state: str | None = None
    deleted: bool
    message: str


class InferVersionResult(BaseModel):
    """Version suggestion for a commit range; nothing is planned."""

    current_version: str
    next_version: str
    bump_type: str
    has_breaking: bool
    has_features: bool
    has_fixes: bool
    commit_count: int
    confidence: float
    rationale: list[str] = Field(default_factory=list)
    risk_score: float | None = None
    risk_severity: str | None = None


class SummarizeDiffResult(BaseModel):
    summary: str
    audience: str
    ai_generated: bool = False
    character_count: int
    highlights: list[str] = Field(default_factory=list)


class ValidationCheckResult(BaseModel):
    name: str
    status: str
    message: str | None = None


class ValidateResult(BaseModel):
    """Outcome of the pre-flight checks."""

    valid: bool
    can_proceed: bool
    recommendation: str
    checks: list[ValidationCheckResult] = Field(default_factory=list)
    blocking_issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
