from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .settings import settings


log = logging.getLogger("pgd")

_LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARN": logging.WARNING, "WARNING": logging.WARNING, "ERROR": logging.ERROR}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is an existing directory (Docker creates one when a
    bind-mounted file is missing), the database file goes inside it.
    """
    p = os.path.abspath(os.path.expanduser(settings.db_path))
    if os.path.isdir(p):
        p = os.path.join(p, "pgd.db")
    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)
    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              service_name TEXT,
              stage TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS runs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              service_name TEXT NOT NULL,
              image TEXT NOT NULL,
              state TEXT NOT NULL, -- running|succeeded|degraded|failed
              stage TEXT,
              exit_code INTEGER,
              message TEXT,
              started_at TEXT NOT NULL,
              finished_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, service_name: str | None = None, stage: str | None = None) -> None:
    """Persist an event and mirror it to the 'pgd' logger."""
    level = level.upper()
    prefix = f"[{stage}] " if stage else ""
    log.log(_LEVELS.get(level, logging.INFO), "%s%s", prefix, message)
    init_db()
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, service_name, stage, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level, service_name, stage, message),
        )


@dataclass(frozen=True)
class RunRow:
    id: int
    service_name: str
    image: str
    state: str
    stage: str | None
    exit_code: int | None
    message: str | None
    started_at: str
    finished_at: str | None


def start_run(service_name: str, image: str) -> int:
    init_db()
    with connect() as conn:
        cur = conn.execute(
            "INSERT INTO runs (service_name, image, state, started_at) VALUES (?, ?, 'running', ?)",
            (service_name, image, utc_now()),
        )
        return int(cur.lastrowid)


def finish_run(run_id: int, state: str, exit_code: int, message: str = "", stage: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            """
            UPDATE runs
            SET state=?, exit_code=?, message=?, stage=?, finished_at=?
            WHERE id=?
            """,
            (state, exit_code, message, stage, utc_now(), run_id),
        )


def get_run(run_id: int) -> RunRow | None:
    init_db()
    with connect() as conn:
        row = conn.execute("SELECT * FROM runs WHERE id=?", (run_id,)).fetchone()
        return RunRow(**dict(row)) if row else None


def latest_runs(limit: int = 20) -> list[RunRow]:
    init_db()
    with connect() as conn:
        rows = conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [RunRow(**dict(r)) for r in rows]


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    init_db()
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
