"""Conversation store for turns, personas and memories."""

from __future__ import annotations

import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Literal

PersonaRole = Literal["bot", "master"]
MemoryKind = Literal["short", "long"]


@dataclass(frozen=True)
class StoredTurn:
    """One recorded conversation turn."""

    sender: str
    name: str
    text: str
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class Persona:
    role: PersonaRole
    name: str
    profile: str


@dataclass(frozen=True)
class Memory:
    kind: MemoryKind
    text: str
    timestamp: float


class ConversationStore:
    """SQLite-based conversation store with thread-local connections."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._local = threading.local()

    @property
    def _conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            self._init_db(conn)
            self._local.conn = conn
            return conn
        return self._local.conn  # type: ignore[no-any-return]

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS turns (
                id TEXT PRIMARY KEY,
                sender TEXT NOT NULL,
                name TEXT NOT NULL,
                text TEXT NOT NULL,
                timestamp REAL NOT NULL
            );
            CREATE TABLE IF NOT EXISTS personas (
                role TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                profile TEXT NOT NULL,
                updated_at REAL NOT NULL
            );
            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                timestamp REAL NOT NULL
            );
        """)
        conn.commit()

    def add_turn(self, turn: StoredTurn) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO turns (id, sender, name, text, timestamp) VALUES (?, ?, ?, ?, ?)",
            (turn.id, turn.sender, turn.name, turn.text, turn.timestamp),
        )
        self._conn.commit()

    def recent_turns(self, limit: int = 10) -> list[StoredTurn]:
        """Most recent turns, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM turns ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            StoredTurn(
                id=row["id"],
                sender=row["sender"],
                name=row["name"],
                text=row["text"],
                timestamp=row["timestamp"],
            )
            for row in reversed(rows)
        ]

    def add_memory(self, kind: MemoryKind, text: str) -> None:
        self._conn.execute(
            "INSERT INTO memories (kind, text, timestamp) VALUES (?, ?, ?)",
            (kind, text, time.time()),
        )
        self._conn.commit()

    def memories(self, kind: MemoryKind, limit: int = 1) -> list[Memory]:
        """Newest memories of one kind, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM memories WHERE kind = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
            (kind, limit),
        ).fetchall()
        return [Memory(kind=row["kind"], text=row["text"], timestamp=row["timestamp"]) for row in rows]

    def get_persona(self, role: PersonaRole) -> Persona | None:
        row = self._conn.execute("SELECT * FROM personas WHERE role = ?", (role,)).fetchone()
        if row is None:
            return None
        return Persona(role=row["role"], name=row["name"], profile=row["profile"])

    def update_persona(self, role: PersonaRole, *, name: str, profile: str) -> Persona:
        self._conn.execute(
            "INSERT OR REPLACE INTO personas (role, name, profile, updated_at) VALUES (?, ?, ?, ?)",
            (role, name, profile, time.time()),
        )
        self._conn.commit()
        return Persona(role=role, name=name, profile=profile)

    def close(self) -> None:
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None
