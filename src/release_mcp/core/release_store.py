"""Release persistence contract and in-memory implementation."""

from __future__ import annotations

import asyncio
from typing import Protocol

from release_mcp.models.release import Release, ReleaseState


class ReleaseStore(Protocol):
    """Narrow find/save contract consumed by the release manager."""

    async def find_active(self) -> Release | None: ...

    async def get(self, release_id: str) -> Release | None: ...

    async def save(self, release: Release) -> None: ...

    async def delete(self, release_id: str) -> bool: ...


def latest_unpublished(releases: list[Release]) -> Release | None:
    """Most recently created release that has not been published."""
    candidates = [release for release in releases if release.state != ReleaseState.PUBLISHED]
    if not candidates:
        return None
    # Ties go to the release stored last.
    return max(reversed(candidates), key=lambda release: release.created_at)


class InMemoryReleaseStore:
    """Process-local release store."""

    def __init__(self) -> None:
        self._releases: dict[str, Release] = {}
        self._lock = asyncio.Lock()

    async def find_active(self) -> Release | None:
        async with self._lock:
            active = latest_unpublished(list(self._releases.values()))
            return active.model_copy(deep=True) if active is not None else None

    async def get(self, release_id: str) -> Release | None:
        async with self._lock:
            release = self._releases.get(release_id)
            return release.model_copy(deep=True) if release is not None else None

    async def save(self, release: Release) -> None:
        async with self._lock:
            self._releases[release.id] = release.model_copy(deep=True)

    async def delete(self, release_id: str) -> bool:
        async with self._lock:
            return self._releases.pop(release_id, None) is not None

    async def list_releases(self) -> list[Release]:
        async with self._lock:
            return [release.model_copy(deep=True) for release in self._releases.values()]
