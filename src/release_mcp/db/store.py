"""Async SQLite persistence for releases."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from release_mcp.db.migrations import apply_migrations
from release_mcp.models.release import Release, ReleaseState


class SQLiteReleaseStore:
    """Release store backed by one SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    async def save(self, release: Release) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO releases(
                    id,
                    repository_path,
                    state,
                    payload,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    repository_path=excluded.repository_path,
                    state=excluded.state,
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                (
                    release.id,
                    str(release.repository_path),
                    release.state.value,
                    release.model_dump_json(),
                    release.created_at.isoformat(),
                    release.updated_at.isoformat(),
                ),
            )
            await conn.commit()

    async def get(self, release_id: str) -> Release | None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT payload FROM releases WHERE id = ?", (release_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._release_from_row(row)

    async def find_active(self) -> Release | None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT payload FROM releases
                WHERE state != ?
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (ReleaseState.PUBLISHED.value,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._release_from_row(row)

    async def list_releases(self) -> list[Release]:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT payload FROM releases ORDER BY created_at ASC")
            rows = await cursor.fetchall()
        return [self._release_from_row(row) for row in rows]

    async def delete(self, release_id: str) -> bool:
        async with self.connection() as conn:
            cursor = await conn.execute("DELETE FROM releases WHERE id = ?", (release_id,))
            await conn.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _release_from_row(row: aiosqlite.Row) -> Release:
        return Release.model_validate_json(str(row["payload"]))
