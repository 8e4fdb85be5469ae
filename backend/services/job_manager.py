"""Job manager – SQLite-backed ledger for jobs, payment orders and artifacts."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models import ArtifactKind, OrderStatus, TaskStatus

logger = logging.getLogger("i2v.job_manager")

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    task_id     TEXT PRIMARY KEY,
    status      TEXT NOT NULL DEFAULT 'PROCESSING',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    prompt      TEXT NOT NULL,
    order_id    TEXT,
    request_id  TEXT,
    model       TEXT,
    attempts    INTEGER NOT NULL DEFAULT 0,
    claimed     INTEGER NOT NULL DEFAULT 0,
    video_url   TEXT,
    cover_url   TEXT,
    video_path  TEXT,
    cover_path  TEXT,
    error       TEXT
);
CREATE TABLE IF NOT EXISTS orders (
    order_id     TEXT PRIMARY KEY,
    status       TEXT NOT NULL DEFAULT 'CREATED',
    approval_url TEXT,
    consumed     INTEGER NOT NULL DEFAULT 0,
    task_id      TEXT,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS artifacts (
    public_path TEXT PRIMARY KEY,
    source_url  TEXT,
    kind        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
"""


class JobManager:
    """Thread-safe ledger CRUD backed by SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = str(db_path)

    # ------------------------------------------------------------------
    # DB helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.info("Database initialised at %s", self.db_path)

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def create_job(
        self,
        task_id: str,
        prompt: str,
        *,
        status: TaskStatus = TaskStatus.PROCESSING,
        order_id: str | None = None,
        request_id: str | None = None,
        model: str | None = None,
    ) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO jobs (task_id, status, created_at, updated_at, prompt, order_id, request_id, model)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (task_id, status.value, now, now, prompt, order_id, request_id, model),
            )
        logger.info("Job recorded: %s (order=%s)", task_id, order_id)

    def get_job(self, task_id: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE task_id = ?", (task_id,)).fetchone()
        return dict(row) if row else None

    def list_jobs(self, limit: int = 50) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(r) for r in rows]

    def update_job(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        video_url: str | None = None,
        cover_url: str | None = None,
        video_path: str | None = None,
        cover_path: str | None = None,
        error: str | None = None,
    ) -> None:
        sets = ["status = ?", "updated_at = ?"]
        params: list = [status.value, self._now()]
        for column, value in (
            ("video_url", video_url),
            ("cover_url", cover_url),
            ("video_path", video_path),
            ("cover_path", cover_path),
            ("error", error),
        ):
            if value is not None:
                sets.append(f"{column} = ?")
                params.append(value)
        params.append(task_id)
        with self._connect() as conn:
            conn.execute(f"UPDATE jobs SET {', '.join(sets)} WHERE task_id = ?", params)

    def increment_attempts(self, task_id: str) -> int:
        with self._connect() as conn:
            conn.execute(
                "UPDATE jobs SET attempts = attempts + 1, updated_at = ? WHERE task_id = ?",
                (self._now(), task_id),
            )
            row = conn.execute("SELECT attempts FROM jobs WHERE task_id = ?", (task_id,)).fetchone()
        return row["attempts"] if row else 0

    def next_unclaimed_job(self) -> Optional[dict]:
        """Atomically grab the oldest in-flight job nobody is polling yet."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE status = ? AND claimed = 0 ORDER BY created_at ASC LIMIT 1",
                (TaskStatus.PROCESSING.value,),
            ).fetchone()
            if row:
                conn.execute(
                    "UPDATE jobs SET claimed = 1, updated_at = ? WHERE task_id = ?",
                    (self._now(), row["task_id"]),
                )
                return dict(row)
        return None

    def release_job(self, task_id: str) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE jobs SET claimed = 0 WHERE task_id = ?", (task_id,))

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(self, order_id: str, approval_url: str) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO orders (order_id, status, approval_url, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (order_id, OrderStatus.CREATED.value, approval_url, now, now),
            )

    def get_order(self, order_id: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM orders WHERE order_id = ?", (order_id,)).fetchone()
        return dict(row) if row else None

    def set_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        only_from: tuple[OrderStatus, ...] | None = None,
    ) -> bool:
        """
        Move an order to ``status``. With ``only_from`` the move happens only
        while the order is in one of those states. Returns True if it moved.
        """
        now = self._now()
        sql = "UPDATE orders SET status = ?, updated_at = ? WHERE order_id = ?"
        params: list = [status.value, now, order_id]
        if only_from:
            sql += f" AND status IN ({', '.join('?' for _ in only_from)})"
            params.extend(s.value for s in only_from)
        with self._connect() as conn:
            cur = conn.execute(sql, params)
            if cur.rowcount:
                return True
            # Orders created elsewhere (e.g. before a restart) are still tracked
            cur = conn.execute(
                "INSERT OR IGNORE INTO orders (order_id, status, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (order_id, status.value, now, now),
            )
            return cur.rowcount == 1

    def reserve_order(self, order_id: str) -> bool:
        """Mark a captured order as used. Returns False if it is not available."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE orders SET consumed = 1, updated_at = ?"
                " WHERE order_id = ? AND status = ? AND consumed = 0",
                (self._now(), order_id, OrderStatus.CAPTURED.value),
            )
        return cur.rowcount == 1

    def release_order(self, order_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE orders SET consumed = 0, updated_at = ? WHERE order_id = ? AND task_id IS NULL",
                (self._now(), order_id),
            )

    def bind_order(self, order_id: str, task_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE orders SET task_id = ?, updated_at = ? WHERE order_id = ?",
                (task_id, self._now(), order_id),
            )

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------
    def record_artifact(self, public_path: str, source_url: str | None, kind: ArtifactKind) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO artifacts (public_path, source_url, kind, created_at)"
                " VALUES (?, ?, ?, ?)",
                (public_path, source_url, kind.value, self._now()),
            )

    def get_artifact(self, public_path: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM artifacts WHERE public_path = ?", (public_path,)
            ).fetchone()
        return dict(row) if row else None
