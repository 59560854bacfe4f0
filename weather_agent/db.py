# weather_agent/db.py
"""Persist chat history and per-session preferences in SQLite.

The database lives at ``CHAT_DB_PATH`` (default ``chat_history.db`` in the
repository root).  ``chat_log`` stores every user, assistant and tool
message together with a session identifier; ``preferences`` holds small
per-session values such as the remembered ZIP code.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Optional

DB_PATH = Path(os.getenv("CHAT_DB_PATH") or Path(__file__).resolve().parent.parent / "chat_history.db")

# ---------------------------------------------------------------------------
#  Public helpers
# ---------------------------------------------------------------------------

def init_db() -> None:
    """Create the database file and its tables if they do not exist.

    Idempotent; invoked once during server startup.
    """
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_log (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id  TEXT NOT NULL,
                role        TEXT NOT NULL,
                content     TEXT,
                tool_id     TEXT,
                tool_name   TEXT,
                tool_args   TEXT,
                ts          TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_session ON chat_log(session_id);")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS preferences (
                session_id  TEXT NOT NULL,
                key         TEXT NOT NULL,
                value       TEXT,
                updated     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (session_id, key)
            );
            """
        )
        conn.commit()


def log_message(session_id: str, role: str, content: str) -> None:
    """Persist a single chat line.

    Parameters
    ----------
    session_id
        Identifier of the chat session, e.g. a UUID.
    role
        ``"user"`` or ``"assistant"``.
    content
        The raw text sent or received.
    """
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            "INSERT INTO chat_log (session_id, role, content) VALUES (?, ?, ?)",
            (session_id, role, content),
        )
        conn.commit()


def log_tool_msg(session_id: str, tool_id: str, tool_name: str, tool_args: str, content: str) -> None:
    """Persist a tool call and its result as two consecutive rows."""
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            "INSERT INTO chat_log (session_id, role, tool_id, tool_name, tool_args) VALUES (?, ?, ?, ?, ?)",
            (session_id, "assistant", tool_id, tool_name, tool_args),
        )
        conn.execute(
            "INSERT INTO chat_log (session_id, role, content, tool_id) VALUES (?, ?, ?, ?)",
            (session_id, "tool", content, tool_id),
        )
        conn.commit()


def load_history(session_id: str, limit: int | None = None) -> list[tuple[str, str, str, str, str]]:
    """Return ``(role, content, tool_id, tool_name, tool_args)`` rows for a session.

    If *limit* is ``None`` the entire conversation is returned, otherwise
    the most recent *limit* rows in chronological order.
    """
    with sqlite3.connect(DB_PATH) as conn:
        if limit is None:
            cur = conn.execute(
                "SELECT role, content, tool_id, tool_name, tool_args FROM chat_log "
                "WHERE session_id = ? ORDER BY id ASC",
                (session_id,),
            )
            return cur.fetchall()
        cur = conn.execute(
            "SELECT role, content, tool_id, tool_name, tool_args FROM chat_log "
            "WHERE session_id = ? ORDER BY id DESC LIMIT ?",
            (session_id, limit),
        )
        return list(reversed(cur.fetchall()))


def get_session_ids() -> list[str]:
    """Return a list of all distinct session identifiers stored in the DB."""
    with sqlite3.connect(DB_PATH) as conn:
        cur = conn.execute("SELECT DISTINCT session_id FROM chat_log ORDER BY session_id ASC")
        return [row[0] for row in cur.fetchall()]


def set_preference(session_id: str, key: str, value: str) -> None:
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute(
            "INSERT INTO preferences (session_id, key, value) VALUES (?, ?, ?) "
            "ON CONFLICT(session_id, key) DO UPDATE SET value = excluded.value, "
            "updated = CURRENT_TIMESTAMP",
            (session_id, key, value),
        )
        conn.commit()


def get_preference(session_id: str, key: str) -> Optional[str]:
    with sqlite3.connect(DB_PATH) as conn:
        row = conn.execute(
            "SELECT value FROM preferences WHERE session_id = ? AND key = ?",
            (session_id, key),
        ).fetchone()
    return row[0] if row else None
