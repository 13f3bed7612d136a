"""SQLite-based session store using aiosqlite.

Stores session metadata, the append-only event log and the latest task
snapshots so a later run can resume with the same memory.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiosqlite

from taskcli.session import Session
from taskcli.types.events import Event, EventType

SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    goal TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    updated_at REAL NOT NULL,
    cwd TEXT DEFAULT '',
    metadata TEXT DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    time TEXT NOT NULL,
    type TEXT NOT NULL,
    summary TEXT DEFAULT '',
    payload TEXT DEFAULT '{}',
    UNIQUE (session_id, seq),
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE TABLE IF NOT EXISTS tasks (
    session_id TEXT NOT NULL,
    task_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (session_id, task_id),
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE INDEX IF NOT EXISTS idx_events_session ON events(session_id);
CREATE INDEX IF NOT EXISTS idx_sessions_updated ON sessions(updated_at);
"""


@dataclass(slots=True)
class SessionRecord:
    """A stored session row."""

    id: str
    goal: str = ""
    status: str = "active"
    created_at: str = ""
    updated_at: float = 0.0
    cwd: str = ""
    event_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """Async SQLite session store."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(CREATE_TABLES_SQL)
        await self._db.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,),
        )
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> SessionStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SessionStore not initialized. Call initialize() first.")
        return self._db

    async def save_session(self, session: Session, *, status: str = "active") -> int:
        """Upsert the session row, append unsaved events and task snapshots.

        Returns the number of events written. Saving twice is a no-op for
        events that are already stored.
        """
        db = self._ensure_db()
        goals = session.events_of(EventType.USER_GOAL)
        goal = goals[-1].summary if goals else ""
        meta = {k: v for k, v in session.meta.items() if k != "cwd"}
        await db.execute(
            """INSERT INTO sessions (id, goal, status, created_at, updated_at, cwd, metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   goal = excluded.goal,
                   status = excluded.status,
                   updated_at = excluded.updated_at,
                   cwd = excluded.cwd,
                   metadata = excluded.metadata""",
            (session.id, goal, status, session.created_at, time.time(), session.cwd, json.dumps(meta)),
        )

        async with db.execute(
            "SELECT COUNT(*) FROM events WHERE session_id = ?", (session.id,)
        ) as cursor:
            row = await cursor.fetchone()
            stored = row[0] if row else 0

        new_events = session.history[stored:]
        await db.executemany(
            "INSERT INTO events (session_id, seq, time, type, summary, payload) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (session.id, stored + i, e.time, str(e.type), e.summary, json.dumps(e.payload, default=str))
                for i, e in enumerate(new_events)
            ],
        )
        await db.executemany(
            """INSERT INTO tasks (session_id, task_id, position, data) VALUES (?, ?, ?, ?)
               ON CONFLICT(session_id, task_id) DO UPDATE SET
                   position = excluded.position, data = excluded.data""",
            [
                (session.id, task_id, position, json.dumps(data, default=str))
                for position, (task_id, data) in enumerate(session.tasks.items())
            ],
        )
        await db.commit()
        return len(new_events)

    async def load_session(self, session_id: str) -> Session | None:
        """Rebuild a session with its full history, or None if unknown."""
        db = self._ensure_db()
        async with db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None

        meta = json.loads(row["metadata"] or "{}")
        meta["cwd"] = row["cwd"]
        session = Session(id=row["id"], created_at=row["created_at"], meta=meta)

        async with db.execute(
            "SELECT * FROM events WHERE session_id = ? ORDER BY seq", (session_id,)
        ) as cursor:
            async for event_row in cursor:
                session.add(Event(
                    type=EventType(event_row["type"]),
                    summary=event_row["summary"] or "",
                    time=event_row["time"],
                    payload=json.loads(event_row["payload"] or "{}"),
                ))

        async with db.execute(
            "SELECT task_id, data FROM tasks WHERE session_id = ? ORDER BY position", (session_id,)
        ) as cursor:
            async for task_row in cursor:
                session.tasks[task_row["task_id"]] = json.loads(task_row["data"])
        return session

    async def list_sessions(self, *, limit: int = 20) -> list[SessionRecord]:
        """Most recently updated sessions first."""
        db = self._ensure_db()
        query = """
            SELECT s.*, (SELECT COUNT(*) FROM events e WHERE e.session_id = s.id) AS event_count
            FROM sessions s ORDER BY s.updated_at DESC LIMIT ?
        """
        async with db.execute(query, (limit,)) as cursor:
            rows = await cursor.fetchall()
        return [
            SessionRecord(
                id=row["id"],
                goal=row["goal"],
                status=row["status"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                cwd=row["cwd"] or "",
                event_count=row["event_count"],
                metadata=json.loads(row["metadata"] or "{}"),
            )
            for row in rows
        ]

    async def delete_session(self, session_id: str) -> None:
        db = self._ensure_db()
        await db.execute("DELETE FROM events WHERE session_id = ?", (session_id,))
        await db.execute("DELETE FROM tasks WHERE session_id = ?", (session_id,))
        await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()
