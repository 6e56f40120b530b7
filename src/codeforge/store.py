from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from codeforge.errors import DuplicateResultError
from codeforge.models import PipelineResult


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS results (
    generation_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    success INTEGER NOT NULL,
    scope_type TEXT,
    quality_score REAL NOT NULL,
    component_count INTEGER NOT NULL,
    provenance TEXT,
    error_kind TEXT,
    payload TEXT NOT NULL
);
"""


class ResultStore:
    """SQLite cache of finished results, written at most once per generation id."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def save(self, result: PipelineResult) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO results(
                        generation_id, created_at, success, scope_type, quality_score,
                        component_count, provenance, error_kind, payload
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        result.generation_id,
                        datetime.now(timezone.utc).isoformat(),
                        int(result.success),
                        result.scope.type.value if result.scope else None,
                        result.quality_score,
                        len(result.components),
                        result.provenance,
                        result.error_kind,
                        result.model_dump_json(),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateResultError(f"Result already stored: {result.generation_id}") from exc

    def get(self, generation_id: str) -> PipelineResult | None:
        with self._connect() as conn:
            row = conn.execute("SELECT payload FROM results WHERE generation_id = ?", (generation_id,)).fetchone()
            return PipelineResult.model_validate_json(row["payload"]) if row else None

    def list_recent(self, limit: int = 10) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT generation_id, created_at, success, scope_type, quality_score,
                       component_count, provenance, error_kind
                FROM results
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [dict(r) for r in rows]
