"""Prompt templates for release work."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from release_mcp.mcp.progress import CallScope
from release_mcp.mcp.protocol import GetPromptResult, Prompt, PromptArgument, user_prompt
from release_mcp.mcp.registry import HandlerRegistry, PromptHandler

_RELEASE_SUMMARY: Final = {
    "brief": """You are a release manager. Provide a brief summary of the upcoming release including:
- Key highlights (1-3 bullet points)
- Version number
- Release readiness status""",
    "detailed": """You are a release manager. Provide a detailed summary of the upcoming release including:
- All changes categorized by type (features, fixes, breaking changes)
- Impact analysis
- Risk assessment
- Recommended actions before release""",
    "technical": """You are a technical writer. Provide a technical summary of the release including:
- API changes and their signatures
- Configuration changes
- Migration requirements
- Performance implications""",
}

_RISK_ANALYSIS: Final = """You are a release risk analyst.

Read release://risk-report and release://commits, then provide:
1. Overall risk score (0.0 - 1.0) with justification
2. Individual risk factors:
   - API changes impact
   - Dependency changes
   - Scope of changes
   - Security implications
3. Recommendations:
   - Approval recommendation (approve, review, block)
   - Required actions before release
   - Suggested reviewers"""

_COMMIT_REVIEW: Final = {
    "compliance": """You are a release compliance officer reviewing commits for conventional commit standards.

Analyze each commit in release://commits for compliance:
1. Format: <type>(<scope>): <subject>
2. Valid types: feat, fix, docs, style, refactor, perf, test, build, ci, chore
3. Breaking changes marked with ! or a BREAKING CHANGE footer
4. Scope relevance and consistency
5. Subject line length and imperative mood

List non-compliant commits with the corrections needed.""",
    "quality": """You are a code review expert analyzing commit messages and changes.

Review the commits in this release for quality:
1. Commit message clarity and completeness
2. Logical grouping of changes (atomic commits)
3. Documentation updates for significant changes
4. Test coverage implications

For each issue found, suggest a specific improvement.""",
    "security": """You are a security analyst reviewing commits for security implications.

Analyze commits for:
1. Sensitive data handling changes
2. Authentication and authorization modifications
3. Input validation changes
4. Dependency updates with known vulnerabilities
5. Cryptographic code changes

Flag any commits that require security review before release.""",
}

_BREAKING_CHANGES: Final = """You are a technical writer documenting breaking changes for users.

For each breaking change in this release, provide:
1. **Change Summary**: one-line description of what changed
2. **Reason**: why the change was necessary
3. **Impact**: who is affected and how
4. **Migration Path**: step-by-step instructions to adapt
5. **Code Examples**: before/after snippets where applicable

If there are no breaking changes, confirm this explicitly."""

_MIGRATION_GUIDE: Final = {
    "developer": """You are a senior developer writing migration instructions for other developers.

Cover:
1. **Dependency Updates**: version requirements and install commands
2. **API Changes**: changed methods, parameters and response formats
3. **Code Migration**: find/replace patterns and refactoring steps
4. **Testing Updates**: test changes needed

Include code examples for all significant changes.""",
    "operator": """You are a DevOps engineer writing migration instructions for system operators.

Cover:
1. **Pre-migration Checklist**: backups, downtime, rollback plan
2. **Infrastructure Changes**: configuration, environment variables, schema migrations
3. **Deployment Steps**: ordering and health checks
4. **Post-migration Verification**: smoke tests and metrics to watch

Use clear, actionable language suitable for runbooks.""",
    "end-user": """You are a product manager writing upgrade notes for end users.

Cover:
1. **What's New**: key benefits of upgrading
2. **What's Changed**: user-facing changes to expect
3. **Action Required**: steps users need to take
4. **Getting Help**: support resources

Keep technical jargon to a minimum.""",
}

_RELEASE_ANNOUNCEMENT: Final = {
    "github": """You are writing release notes for a GitHub release.

Structure:
1. **Title**: version number
2. **Summary**: 2-3 sentence overview
3. **Highlights**: top 3-5 changes
4. **What's Changed**: features, bug fixes, documentation, breaking changes
5. **Upgrade Notes**: critical upgrade information
6. **Contributors**: mention contributors

Use GitHub-flavored markdown.""",
    "blog": """You are a technical writer crafting a blog post for a software release.

Include a headline, an introduction, the key features, notable fixes, one feature
explained in depth, upgrade instructions and acknowledgments.

Tone: professional but engaging, 800-1200 words.""",
    "social": """You are a developer advocate writing social media announcements.

Write a short post (280 characters: hook, key feature, link) and a longer post
(summary, three highlights, call to action).""",
    "email": """You are writing a release announcement email for subscribers.

Include a subject line, preview text, a 2-3 sentence summary, highlighted
changes, brief upgrade steps and a link to the full changelog.

Keep it scannable.""",
}

_APPROVAL_DECISION: Final = """You are a release governance advisor helping make an approval decision.

Based on release://risk-report and release://changelog, provide:
1. **Decision Recommendation**: APPROVE, REQUEST_CHANGES or BLOCK, with rationale
   and a confidence level
2. **Risk Summary**: overall level, top risk factors, mitigating factors
3. **Approval Conditions**: reviewers, pre-release checks, post-release monitoring
4. **Blocking Issues**: issues to resolve and criteria for re-evaluation

Provide actionable guidance that enables a confident decision."""


@dataclass(slots=True, frozen=True)
class PromptTemplate:
    """Prompt with an optional selector argument choosing among variants."""

    name: str
    description: str
    variants: Mapping[str, str]
    argument: str | None = None
    argument_description: str = ""
    default: str = "default"
    result_description: str = ""

    def descriptor(self) -> Prompt:
        arguments = []
        if self.argument is not None:
            arguments.append(
                PromptArgument(
                    name=self.argument,
                    description=self.argument_description,
                    required=False,
                )
            )
        return Prompt(name=self.name, description=self.description, arguments=arguments)

    def render(self, arguments: dict[str, str]) -> GetPromptResult:
        choice = self.default
        if self.argument is not None:
            choice = arguments.get(self.argument) or self.default
        text = self.variants.get(choice, self.variants[self.default])
        return user_prompt(self.result_description, text)


PROMPTS: Final[tuple[PromptTemplate, ...]] = (
    PromptTemplate(
        name="release-summary",
        description="Generate a summary of the upcoming release",
        variants=_RELEASE_SUMMARY,
        argument="style",
        argument_description="Summary style: brief, detailed, or technical",
        default="brief",
        result_description="Release summary prompt",
    ),
    PromptTemplate(
        name="risk-analysis",
        description="Analyze and explain the risk factors for the current release",
        variants={"default": _RISK_ANALYSIS},
        result_description="Risk analysis prompt",
    ),
    PromptTemplate(
        name="commit-review",
        description="Review commits for conventional commit compliance and quality",
        variants=_COMMIT_REVIEW,
        argument="focus",
        argument_description="Review focus: compliance, quality, or security",
        default="compliance",
        result_description="Commit review prompt",
    ),
    PromptTemplate(
        name="breaking-changes",
        description="Document breaking changes and their impact on users",
        variants={"default": _BREAKING_CHANGES},
        result_description="Breaking changes documentation prompt",
    ),
    PromptTemplate(
        name="migration-guide",
        description="Generate migration instructions for upgrading to this release",
        variants=_MIGRATION_GUIDE,
        argument="audience",
        argument_description="Target audience: developer, operator, or end-user",
        default="developer",
        result_description="Migration guide prompt",
    ),
    PromptTemplate(
        name="release-announcement",
        description="Generate a release announcement for publishing",
        variants=_RELEASE_ANNOUNCEMENT,
        argument="channel",
        argument_description="Target channel: github, blog, social, or email",
        default="github",
        result_description="Release announcement prompt",
    ),
    PromptTemplate(
        name="approval-decision",
        description="Help make an informed approval decision based on the risk report",
        variants={"default": _APPROVAL_DECISION},
        result_description="Approval decision prompt",
    ),
)


def register_prompts(registry: HandlerRegistry) -> None:
    for template in PROMPTS:
        registry.add_prompt(template.descriptor(), _handler_for(template))


def _handler_for(template: PromptTemplate) -> PromptHandler:
    async def handler(scope: CallScope, arguments: dict[str, str]) -> GetPromptResult:
        return template.render(arguments)

    return handler
