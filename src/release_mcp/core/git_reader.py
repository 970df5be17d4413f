"""Git history access for release planning."""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from release_mcp.models.release import CommitInfo

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = f"%H{_FIELD_SEP}%an{_FIELD_SEP}%s{_FIELD_SEP}%b{_RECORD_SEP}"

_CONVENTIONAL = re.compile(
    r"^(?P<type>[a-zA-Z]+)(?:\((?P<scope>[^)]+)\))?(?P<bang>!)?:\s*(?P<subject>.+)$"
)
_BREAKING_FOOTER = re.compile(r"^BREAKING[ -]CHANGE:", re.MULTILINE)


@dataclass(slots=True)
class GitResult:
    """Result from running a git command."""

    command: str
    output: str


def parse_commit(sha: str, author: str, subject: str, body: str = "") -> CommitInfo:
    """Parse one commit header using the conventional commits format.

    Non-conventional subjects are kept verbatim with type `other`.
    """
    match = _CONVENTIONAL.match(subject.strip())
    breaking_footer = _BREAKING_FOOTER.search(body) is not None
    if match is None:
        return CommitInfo(
            sha=sha,
            subject=subject.strip(),
            author=author,
            breaking=breaking_footer,
        )
    return CommitInfo(
        sha=sha,
        type=match.group("type").lower(),
        scope=match.group("scope"),
        subject=match.group("subject").strip(),
        author=author,
        breaking=match.group("bang") is not None or breaking_footer,
    )


def parse_log(output: str) -> list[CommitInfo]:
    commits: list[CommitInfo] = []
    for record in output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        parts = record.split(_FIELD_SEP)
        if len(parts) < 3:
            continue
        sha, author, subject = parts[0].strip(), parts[1], parts[2]
        body = parts[3] if len(parts) > 3 else ""
        commits.append(parse_commit(sha, author, subject, body))
    return commits


class GitReader:
    """Thin wrapper around the git CLI."""

    def latest_tag(self, repository_path: Path) -> str | None:
        try:
            result = self._run_git(repository_path, "describe", "--tags", "--abbrev=0")
        except RuntimeError:
            return None
        return result.output or None

    def commits_since(
        self,
        repository_path: Path,
        ref: str | None = None,
        to_ref: str = "HEAD",
    ) -> list[CommitInfo]:
        revision = f"{ref}..{to_ref}" if ref else to_ref
        result = self._run_git(repository_path, "log", f"--format={_LOG_FORMAT}", revision)
        return parse_log(result.output)

    def current_branch(self, repository_path: Path) -> str:
        """Branch name, or `HEAD` when detached."""
        return self._run_git(repository_path, "rev-parse", "--abbrev-ref", "HEAD").output

    def is_clean(self, repository_path: Path) -> bool:
        result = self._run_git(repository_path, "status", "--porcelain")
        return not result.output

    def tag_exists(self, repository_path: Path, tag: str) -> bool:
        try:
            self._run_git(repository_path, "rev-parse", "-q", "--verify", f"refs/tags/{tag}")
        except RuntimeError:
            return False
        return True

    def create_tag(self, repository_path: Path, tag: str, message: str) -> GitResult:
        return self._run_git(repository_path, "tag", "-a", tag, "-m", message)

    def push_tag(self, repository_path: Path, tag: str, remote: str = "origin") -> GitResult:
        return self._run_git(repository_path, "push", remote, tag)

    @staticmethod
    def _run_git(repository_path: Path, *args: str) -> GitResult:
        command = ["git", *args]
        completed = subprocess.run(
            command,
            cwd=repository_path,
            check=False,
            capture_output=True,
            text=True,
        )
        if completed.returncode != 0:
            output = (completed.stdout or "") + (completed.stderr or "")
            msg = f"{' '.join(command)} failed: {output.strip()}"
            raise RuntimeError(msg)
        return GitResult(command=" ".join(command), output=(completed.stdout or "").strip())
