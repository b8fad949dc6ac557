"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig


LOGGER = logging.getLogger(__name__)


def utcnow() -> str:
    """Return the current UTC time in a lexicographically sortable form."""

    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def new_identifier() -> str:
    return str(uuid.uuid4())


@dataclass
class ExamRecord:
    id: str
    title: str
    description: str
    created_at: str


@dataclass
class LectureRecord:
    id: str
    exam_id: str
    title: str
    description: str
    status: str
    specified_date: Optional[str]
    created_at: str


@dataclass
class MediaRecord:
    id: str
    lecture_id: str
    media_type: str
    sequence_order: int
    duration_milliseconds: int
    file_path: str
    original_filename: Optional[str]


@dataclass
class TranscriptSegmentRecord:
    media_id: Optional[str]
    start_millisecond: int
    end_millisecond: int
    original_start_milliseconds: int
    original_end_milliseconds: int
    text: str
    confidence: Optional[float] = None
    speaker: Optional[str] = None


@dataclass
class DocumentRecord:
    id: str
    lecture_id: str
    document_type: str
    title: str
    file_path: str
    original_filename: Optional[str]
    page_count: int
    extraction_status: str


@dataclass
class PageRecord:
    document_id: str
    page_number: int
    image_path: Optional[str]
    extracted_text: Optional[str]


@dataclass
class ToolRecord:
    id: str
    exam_id: str
    type: str
    title: str
    language_code: Optional[str]
    content: str
    created_at: str


@dataclass
class SourceReferenceRecord:
    tool_id: str
    source_type: str
    source_id: str
    metadata: Dict[str, Any]


class SQLiteRepository:
    """Shared connection and instrumentation helpers for SQLite backed stores."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any):
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        error: BaseException | None = None
        try:
            yield event_payload
        except Exception as exc:
            error = exc
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if error is None:
                event_payload.setdefault("status", "ok")
            filtered = {
                key: value for key, value in event_payload.items() if value is not None
            }
            self._event_emitter(action, payload=filtered, duration_ms=duration_ms)

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:180] + ("…" if len(collapsed) > 180 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | Tuple[Any, ...] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...]
        if parameters is None:
            params = ()
        elif isinstance(parameters, tuple):
            params = parameters
        else:
            params = tuple(parameters)
        sql_summary = self._summarize_sql(statement)
        with self._track_db_event(
            action,
            table=table,
            sql=sql_summary,
            parameter_count=len(params),
        ) as event:
            cursor = connection.execute(statement, params)
            rowcount = cursor.rowcount if cursor.rowcount >= 0 else None
            if rowcount is not None:
                event.setdefault("rowcount", int(rowcount))
            return cursor

    def _connect(self) -> sqlite3.Connection:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path, timeout=30.0)
        connection.row_factory = sqlite3.Row
        self._execute(
            connection,
            "PRAGMA foreign_keys = ON",
            action="pragma_foreign_keys",
        )
        return connection

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit together or roll back together."""

        connection = self._connect()
        try:
            with connection:
                yield connection
        finally:
            connection.close()


class LectureRepository(SQLiteRepository):
    """Repository exposing the lecture, material and tool tables."""

    # ---------------------------------------------------------------------
    # Exams and lectures
    # ---------------------------------------------------------------------
    def create_exam(self, title: str, description: str = "") -> str:
        exam_id = new_identifier()
        LOGGER.debug("Creating exam '%s' as %s", title, exam_id)
        with self.transaction() as connection:
            self._execute(
                connection,
                "INSERT INTO exams(id, title, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (exam_id, title, description, utcnow(), utcnow()),
                action="exams.insert",
                table="exams",
            )
        return exam_id

    def get_exam(self, exam_id: str) -> Optional[ExamRecord]:
        with self.transaction() as connection:
            row = self._execute(
                connection,
                "SELECT id, title, description, created_at FROM exams WHERE id = ?",
                (exam_id,),
                action="exams.get",
                table="exams",
            ).fetchone()
        return ExamRecord(**row) if row else None

    def create_lecture(
        self,
        exam_id: str,
        title: str,
        *,
        description: str = "",
        status: str = "processing",
        specified_date: Optional[str] = None,
    ) -> str:
        lecture_id = new_identifier()
        LOGGER.debug("Creating lecture '%s' in exam %s as %s", title, exam_id, lecture_id)
        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT INTO lectures(id, exam_id, title, description, status, specified_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (lecture_id, exam_id, title, description, status, specified_date, utcnow(), utcnow()),
                action="lectures.insert",
                table="lectures",
            )
        return lecture_id

    _LECTURE_COLUMNS = "id, exam_id, title, description, status, specified_date, created_at"

    def get_lecture(self, lecture_id: str) -> Optional[LectureRecord]:
        LOGGER.debug("Fetching lecture id=%s", lecture_id)
        with self._track_db_event("get_lecture", table="lectures", lecture_id=lecture_id) as event:
            with self.transaction() as connection:
                row = self._execute(
                    connection,
                    f"SELECT {self._LECTURE_COLUMNS} FROM lectures WHERE id = ?",
                    (lecture_id,),
                    action="lectures.get",
                    table="lectures",
                ).fetchone()
            event["found"] = bool(row)
        return LectureRecord(**row) if row else None

    def list_lectures(self, exam_id: str, *, status: Optional[str] = None) -> List[LectureRecord]:
        query = f"SELECT {self._LECTURE_COLUMNS} FROM lectures WHERE exam_id = ?"
        params: List[object] = [exam_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY created_at, id"
        with self.transaction() as connection:
            rows = self._execute(
                connection, query, params, action="lectures.list", table="lectures"
            ).fetchall()
        return [LectureRecord(**row) for row in rows]

    def update_lecture_status(self, lecture_id: str, status: str) -> None:
        LOGGER.debug("Setting lecture %s status to %s", lecture_id, status)
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE lectures SET status = ?, updated_at = ? WHERE id = ?",
                (status, utcnow(), lecture_id),
                action="lectures.update_status",
                table="lectures",
            )

    def refresh_lecture_readiness(self, lecture_id: str) -> bool:
        """Mark the lecture ``ready`` once its transcript and documents are complete.

        A lecture without a transcript counts as transcribed. Returns ``True``
        when the status was changed.
        """

        with self.transaction() as connection:
            transcript = self._execute(
                connection,
                "SELECT status FROM transcripts WHERE lecture_id = ?",
                (lecture_id,),
                action="transcripts.status",
                table="transcripts",
            ).fetchone()
            pending = self._execute(
                connection,
                """
                SELECT COUNT(*) AS pending FROM reference_documents
                WHERE lecture_id = ? AND extraction_status != 'completed'
                """,
                (lecture_id,),
                action="reference_documents.pending",
                table="reference_documents",
            ).fetchone()
            transcript_ready = transcript is None or transcript["status"] == "completed"
            if not transcript_ready or int(pending["pending"]) > 0:
                return False
            self._execute(
                connection,
                "UPDATE lectures SET status = 'ready', updated_at = ? WHERE id = ?",
                (utcnow(), lecture_id),
                action="lectures.ready",
                table="lectures",
            )
        LOGGER.info("Lecture %s is ready", lecture_id)
        return True

    # ---------------------------------------------------------------------
    # Media and transcripts
    # ---------------------------------------------------------------------
    def add_media(
        self,
        lecture_id: str,
        file_path: str,
        *,
        original_filename: Optional[str] = None,
        media_type: str = "audio",
        sequence_order: int = 0,
        duration_milliseconds: int = 0,
    ) -> str:
        media_id = new_identifier()
        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT INTO lecture_media(
                    id, lecture_id, media_type, sequence_order, duration_milliseconds,
                    file_path, original_filename, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    media_id,
                    lecture_id,
                    media_type,
                    sequence_order,
                    duration_milliseconds,
                    file_path,
                    original_filename,
                    utcnow(),
                ),
                action="lecture_media.insert",
                table="lecture_media",
            )
        return media_id

    def list_media(self, lecture_id: str) -> List[MediaRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT id, lecture_id, media_type, sequence_order, duration_milliseconds,
                       file_path, original_filename
                FROM lecture_media WHERE lecture_id = ?
                ORDER BY sequence_order, created_at
                """,
                (lecture_id,),
                action="lecture_media.list",
                table="lecture_media",
            ).fetchall()
        return [MediaRecord(**row) for row in rows]

    def list_media_for_exam(self, exam_id: str) -> List[MediaRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT m.id, m.lecture_id, m.media_type, m.sequence_order, m.duration_milliseconds,
                       m.file_path, m.original_filename
                FROM lecture_media m JOIN lectures l ON l.id = m.lecture_id
                WHERE l.exam_id = ?
                ORDER BY l.created_at, m.sequence_order
                """,
                (exam_id,),
                action="lecture_media.list_for_exam",
                table="lecture_media",
            ).fetchall()
        return [MediaRecord(**row) for row in rows]

    def prepare_transcript(self, lecture_id: str, language: Optional[str] = None) -> str:
        """Return the transcript id for *lecture_id*, creating it and marking it processing."""

        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT OR IGNORE INTO transcripts(id, lecture_id, language, status, created_at, updated_at)
                VALUES (?, ?, ?, 'processing', ?, ?)
                """,
                (new_identifier(), lecture_id, language, utcnow(), utcnow()),
                action="transcripts.insert",
                table="transcripts",
            )
            row = self._execute(
                connection,
                "SELECT id FROM transcripts WHERE lecture_id = ?",
                (lecture_id,),
                action="transcripts.lookup",
                table="transcripts",
            ).fetchone()
            transcript_id = str(row["id"])
            self._execute(
                connection,
                "UPDATE transcripts SET status = 'processing', updated_at = ? WHERE id = ?",
                (utcnow(), transcript_id),
                action="transcripts.update_status",
                table="transcripts",
            )
        return transcript_id

    def update_transcript_status(self, transcript_id: str, status: str) -> None:
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE transcripts SET status = ?, updated_at = ? WHERE id = ?",
                (status, utcnow(), transcript_id),
                action="transcripts.update_status",
                table="transcripts",
            )

    def replace_transcript_segments(
        self,
        transcript_id: str,
        segments: Sequence[TranscriptSegmentRecord],
    ) -> None:
        """Replace all segments, refresh media durations and complete the transcript atomically."""

        with self.transaction() as connection:
            self._execute(
                connection,
                "DELETE FROM transcript_segments WHERE transcript_id = ?",
                (transcript_id,),
                action="transcript_segments.delete",
                table="transcript_segments",
            )
            for segment in segments:
                self._execute(
                    connection,
                    """
                    INSERT INTO transcript_segments(
                        transcript_id, media_id, start_millisecond, end_millisecond,
                        original_start_milliseconds, original_end_milliseconds,
                        text, confidence, speaker
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        transcript_id,
                        segment.media_id,
                        segment.start_millisecond,
                        segment.end_millisecond,
                        segment.original_start_milliseconds,
                        segment.original_end_milliseconds,
                        segment.text,
                        segment.confidence,
                        segment.speaker,
                    ),
                    action="transcript_segments.insert",
                    table="transcript_segments",
                )
            durations = self._execute(
                connection,
                """
                SELECT media_id, MAX(original_end_milliseconds) AS duration
                FROM transcript_segments
                WHERE transcript_id = ? AND media_id IS NOT NULL
                GROUP BY media_id
                """,
                (transcript_id,),
                action="transcript_segments.durations",
                table="transcript_segments",
            ).fetchall()
            for row in durations:
                if row["duration"] and int(row["duration"]) > 0:
                    self._execute(
                        connection,
                        "UPDATE lecture_media SET duration_milliseconds = ? WHERE id = ?",
                        (int(row["duration"]), row["media_id"]),
                        action="lecture_media.update_duration",
                        table="lecture_media",
                    )
            self._execute(
                connection,
                "UPDATE transcripts SET status = 'completed', updated_at = ? WHERE id = ?",
                (utcnow(), transcript_id),
                action="transcripts.complete",
                table="transcripts",
            )
        LOGGER.debug("Stored %d segments for transcript %s", len(segments), transcript_id)

    def list_transcript_segments(self, lecture_id: str) -> List[TranscriptSegmentRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT s.media_id, s.start_millisecond, s.end_millisecond,
                       s.original_start_milliseconds, s.original_end_milliseconds,
                       s.text, s.confidence, s.speaker
                FROM transcript_segments s JOIN transcripts t ON t.id = s.transcript_id
                WHERE t.lecture_id = ?
                ORDER BY s.start_millisecond, s.id
                """,
                (lecture_id,),
                action="transcript_segments.list",
                table="transcript_segments",
            ).fetchall()
        return [TranscriptSegmentRecord(**row) for row in rows]

    def get_transcript_text(self, lecture_id: str) -> str:
        """Return the lecture transcript as a single space separated string."""

        segments = self.list_transcript_segments(lecture_id)
        return " ".join(segment.text.strip() for segment in segments if segment.text.strip())

    # ---------------------------------------------------------------------
    # Reference documents
    # ---------------------------------------------------------------------
    _DOCUMENT_COLUMNS = (
        "id, lecture_id, document_type, title, file_path, original_filename, page_count, extraction_status"
    )

    def add_document(
        self,
        lecture_id: str,
        title: str,
        file_path: str,
        *,
        original_filename: Optional[str] = None,
        document_type: str = "pdf",
    ) -> str:
        document_id = new_identifier()
        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT INTO reference_documents(
                    id, lecture_id, document_type, title, file_path, original_filename,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    lecture_id,
                    document_type,
                    title,
                    file_path,
                    original_filename,
                    utcnow(),
                    utcnow(),
                ),
                action="reference_documents.insert",
                table="reference_documents",
            )
        return document_id

    def list_documents(self, lecture_id: str) -> List[DocumentRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                f"SELECT {self._DOCUMENT_COLUMNS} FROM reference_documents WHERE lecture_id = ? "
                "ORDER BY created_at, id",
                (lecture_id,),
                action="reference_documents.list",
                table="reference_documents",
            ).fetchall()
        return [DocumentRecord(**row) for row in rows]

    def list_documents_for_exam(self, exam_id: str) -> List[DocumentRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT d.id, d.lecture_id, d.document_type, d.title, d.file_path,
                       d.original_filename, d.page_count, d.extraction_status
                FROM reference_documents d JOIN lectures l ON l.id = d.lecture_id
                WHERE l.exam_id = ?
                ORDER BY l.created_at, d.created_at
                """,
                (exam_id,),
                action="reference_documents.list_for_exam",
                table="reference_documents",
            ).fetchall()
        return [DocumentRecord(**row) for row in rows]

    def update_document_status(self, document_id: str, status: str) -> None:
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE reference_documents SET extraction_status = ?, updated_at = ? WHERE id = ?",
                (status, utcnow(), document_id),
                action="reference_documents.update_status",
                table="reference_documents",
            )

    def replace_document_pages(self, document_id: str, pages: Sequence[PageRecord]) -> None:
        """Store extracted pages and mark the document completed in one transaction."""

        with self.transaction() as connection:
            self._execute(
                connection,
                "DELETE FROM reference_pages WHERE document_id = ?",
                (document_id,),
                action="reference_pages.delete",
                table="reference_pages",
            )
            for page in pages:
                self._execute(
                    connection,
                    """
                    INSERT INTO reference_pages(document_id, page_number, image_path, extracted_text)
                    VALUES (?, ?, ?, ?)
                    """,
                    (document_id, page.page_number, page.image_path, page.extracted_text),
                    action="reference_pages.insert",
                    table="reference_pages",
                )
            self._execute(
                connection,
                """
                UPDATE reference_documents
                SET extraction_status = 'completed', page_count = ?, updated_at = ?
                WHERE id = ?
                """,
                (len(pages), utcnow(), document_id),
                action="reference_documents.complete",
                table="reference_documents",
            )

    def list_pages(self, document_id: str) -> List[PageRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT document_id, page_number, image_path, extracted_text
                FROM reference_pages WHERE document_id = ? ORDER BY page_number
                """,
                (document_id,),
                action="reference_pages.list",
                table="reference_pages",
            ).fetchall()
        return [PageRecord(**row) for row in rows]

    def build_page_image_map(self, exam_id: str) -> Dict[str, str]:
        """Return ``{"<filename>:<page>": image_path}`` for every page of the exam.

        Both the original file name and the document title are used as keys so
        citations referring to either can be resolved.
        """

        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT d.title, d.original_filename, p.page_number, p.image_path
                FROM reference_pages p
                JOIN reference_documents d ON d.id = p.document_id
                JOIN lectures l ON l.id = d.lecture_id
                WHERE l.exam_id = ? AND p.image_path IS NOT NULL AND p.image_path != ''
                """,
                (exam_id,),
                action="reference_pages.image_map",
                table="reference_pages",
            ).fetchall()
        mapping: Dict[str, str] = {}
        for row in rows:
            page_number = int(row["page_number"])
            for name in (row["original_filename"], row["title"]):
                if name:
                    mapping.setdefault(f"{name}:{page_number}", str(row["image_path"]))
        LOGGER.debug("Prefetched %d page image keys for exam %s", len(mapping), exam_id)
        return mapping

    # ---------------------------------------------------------------------
    # Tools
    # ---------------------------------------------------------------------
    def save_tool(
        self,
        exam_id: str,
        tool_type: str,
        title: str,
        content: str,
        *,
        language_code: Optional[str] = None,
        references: Sequence[SourceReferenceRecord] = (),
    ) -> str:
        """Insert a tool and its source references atomically and return its id."""

        tool_id = new_identifier()
        with self.transaction() as connection:
            self._execute(
                connection,
                """
                INSERT INTO tools(id, exam_id, type, title, language_code, content, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (tool_id, exam_id, tool_type, title, language_code, content, utcnow(), utcnow()),
                action="tools.insert",
                table="tools",
            )
            for reference in references:
                self._execute(
                    connection,
                    """
                    INSERT INTO tool_source_references(tool_id, source_type, source_id, metadata)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        tool_id,
                        reference.source_type,
                        reference.source_id,
                        json.dumps(reference.metadata),
                    ),
                    action="tool_source_references.insert",
                    table="tool_source_references",
                )
        LOGGER.debug("Stored tool %s with %d references", tool_id, len(references))
        return tool_id

    def get_tool(self, tool_id: str) -> Optional[ToolRecord]:
        with self.transaction() as connection:
            row = self._execute(
                connection,
                """
                SELECT id, exam_id, type, title, language_code, content, created_at
                FROM tools WHERE id = ?
                """,
                (tool_id,),
                action="tools.get",
                table="tools",
            ).fetchone()
        return ToolRecord(**row) if row else None

    def list_source_references(self, tool_id: str) -> List[SourceReferenceRecord]:
        with self.transaction() as connection:
            rows = self._execute(
                connection,
                """
                SELECT tool_id, source_type, source_id, metadata
                FROM tool_source_references WHERE tool_id = ? ORDER BY id
                """,
                (tool_id,),
                action="tool_source_references.list",
                table="tool_source_references",
            ).fetchall()
        references: List[SourceReferenceRecord] = []
        for row in rows:
            try:
                metadata = json.loads(row["metadata"] or "{}")
            except json.JSONDecodeError:
                LOGGER.warning("Ignoring malformed source reference metadata for tool %s", tool_id)
                metadata = {}
            references.append(
                SourceReferenceRecord(
                    tool_id=row["tool_id"],
                    source_type=row["source_type"],
                    source_id=row["source_id"],
                    metadata=metadata if isinstance(metadata, dict) else {},
                )
            )
        return references


__all__ = [
    "DocumentRecord",
    "ExamRecord",
    "LectureRecord",
    "LectureRepository",
    "MediaRecord",
    "PageRecord",
    "SQLiteRepository",
    "SourceReferenceRecord",
    "ToolRecord",
    "TranscriptSegmentRecord",
    "new_identifier",
    "utcnow",
]
