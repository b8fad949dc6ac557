"""Durable job table with atomic claiming."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from ..services.storage import SQLiteRepository, new_identifier, utcnow
from .models import Job, JobMetrics, JobStatus


LOGGER = logging.getLogger(__name__)


_JOB_COLUMNS = """
    id, type, status, progress, progress_message_text, payload, metadata, result, error,
    input_tokens, output_tokens, estimated_cost, created_at, started_at, completed_at
"""


def _load_json(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Ignoring malformed JSON column value: %s", raw[:80])
        return None


def _row_to_job(row: sqlite3.Row) -> Job:
    payload = _load_json(row["payload"])
    metadata = _load_json(row["metadata"])
    result = _load_json(row["result"])
    return Job(
        id=row["id"],
        type=row["type"],
        status=row["status"],
        progress=int(row["progress"] or 0),
        progress_message=row["progress_message_text"] or "",
        payload=payload if isinstance(payload, dict) else {},
        metadata=metadata if isinstance(metadata, dict) else {},
        result=result if isinstance(result, dict) else None,
        error=row["error"],
        input_tokens=int(row["input_tokens"] or 0),
        output_tokens=int(row["output_tokens"] or 0),
        estimated_cost=float(row["estimated_cost"] or 0.0),
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )


class JobStore(SQLiteRepository):
    """Persistent job records. Every mutation commits before returning."""

    def create(self, job_type: str, payload: Optional[Dict[str, Any]] = None) -> str:
        job_id = new_identifier()
        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT INTO jobs(id, type, status, progress, payload, created_at)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (job_id, job_type, JobStatus.PENDING, json.dumps(payload or {}), utcnow()),
                action="jobs.insert",
                table="jobs",
            )
        LOGGER.debug("Stored pending job %s of type %s", job_id, job_type)
        return job_id

    def claim_next(self) -> Optional[Job]:
        """Atomically move the oldest pending job to running and return it.

        ``BEGIN IMMEDIATE`` takes the database write lock before the select, so
        concurrent claimers serialize and each pending job is claimed once.
        """

        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE")
            try:
                row = self._execute(
                    connection,
                    """
                    SELECT id FROM jobs WHERE status = ?
                    ORDER BY created_at, rowid LIMIT 1
                    """,
                    (JobStatus.PENDING,),
                    action="jobs.select_pending",
                    table="jobs",
                ).fetchone()
                if row is None:
                    connection.rollback()
                    return None
                cursor = self._execute(
                    connection,
                    """
                    UPDATE jobs SET status = ?, started_at = ?, progress = 0
                    WHERE id = ? AND status = ?
                    """,
                    (JobStatus.RUNNING, utcnow(), row["id"], JobStatus.PENDING),
                    action="jobs.claim",
                    table="jobs",
                )
                if cursor.rowcount != 1:
                    connection.rollback()
                    return None
                claimed = self._execute(
                    connection,
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?",
                    (row["id"],),
                    action="jobs.get",
                    table="jobs",
                ).fetchone()
                connection.commit()
            except Exception:
                connection.rollback()
                raise
        finally:
            connection.close()
        return _row_to_job(claimed)

    def get(self, job_id: str) -> Optional[Job]:
        with self.transaction() as connection:
            row = self._execute(
                connection,
                f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?",
                (job_id,),
                action="jobs.get",
                table="jobs",
            ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, *, status: Optional[str] = None, limit: int = 50) -> List[Job]:
        query = f"SELECT {_JOB_COLUMNS} FROM jobs"
        params: List[object] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(max(1, int(limit)))
        with self.transaction() as connection:
            rows = self._execute(connection, query, params, action="jobs.list", table="jobs").fetchall()
        return [_row_to_job(row) for row in rows]

    def update_progress(
        self,
        job_id: str,
        progress: int,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        metrics: Optional[JobMetrics] = None,
    ) -> None:
        assignments = ["progress = ?", "progress_message_text = ?"]
        params: List[object] = [max(0, min(100, int(progress))), message]
        if metadata is not None:
            assignments.append("metadata = ?")
            params.append(json.dumps(metadata))
        if metrics is not None and not metrics.is_empty():
            assignments.extend(
                [
                    "input_tokens = input_tokens + ?",
                    "output_tokens = output_tokens + ?",
                    "estimated_cost = estimated_cost + ?",
                ]
            )
            params.extend([metrics.input_tokens, metrics.output_tokens, metrics.estimated_cost])
        params.append(job_id)
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE jobs SET " + ", ".join(assignments) + " WHERE id = ?",
                params,
                action="jobs.update_progress",
                table="jobs",
            )

    def complete(self, job_id: str, result: Optional[Dict[str, Any]]) -> bool:
        """Mark a running job completed. Returns ``False`` if it was no longer running."""

        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                """
                UPDATE jobs SET status = ?, progress = 100, result = ?, completed_at = ?
                WHERE id = ? AND status = ?
                """,
                (JobStatus.COMPLETED, json.dumps(result or {}), utcnow(), job_id, JobStatus.RUNNING),
                action="jobs.complete",
                table="jobs",
            )
            return cursor.rowcount == 1

    def fail(self, job_id: str, error: str) -> bool:
        """Mark a running job failed. Returns ``False`` if it was no longer running."""

        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                """
                UPDATE jobs SET status = ?, error = ?, completed_at = ?
                WHERE id = ? AND status = ?
                """,
                (JobStatus.FAILED, error, utcnow(), job_id, JobStatus.RUNNING),
                action="jobs.fail",
                table="jobs",
            )
            return cursor.rowcount == 1

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending or running job. Returns ``True`` when a row changed."""

        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                """
                UPDATE jobs SET status = ?, completed_at = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (JobStatus.CANCELLED, utcnow(), job_id, JobStatus.PENDING, JobStatus.RUNNING),
                action="jobs.cancel",
                table="jobs",
            )
            return cursor.rowcount == 1


__all__ = ["JobStore"]
