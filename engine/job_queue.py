import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import requests
from yt_dlp.utils import DownloadError, ExtractorError

from config.settings import INGEST_MAX_ATTEMPTS
from engine.json_utils import safe_json_dumps
from engine.models import Hit, IngestJob, InvalidPayloadError, normalize_transcode
from engine.resolver import ResolverTransportError

logger = logging.getLogger(__name__)

JOB_STATE_QUEUED = "queued"
JOB_STATE_ACTIVE = "active"
JOB_STATE_COMPLETED = "completed"
JOB_STATE_FAILED = "failed"


class UnresolvableError(RuntimeError):
    """Raised when a job's hit cannot be resolved to a direct URL. Never retried."""


def utc_now():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logging.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logging.log(level, f"log_event_serialization_failed: {exc} message={message}")


def ensure_ingest_jobs_table(conn):
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS ingest_jobs (
            id TEXT PRIMARY KEY,
            hit_json TEXT NOT NULL,
            source TEXT NOT NULL,
            transcode TEXT NOT NULL,
            state TEXT NOT NULL,
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL,
            queued TEXT,
            claimed TEXT,
            completed TEXT,
            failed TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_error TEXT,
            file_path TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_ingest_jobs_state_queued ON ingest_jobs (state, queued)")
    conn.commit()


class IngestJobStore:
    def __init__(self, db_path):
        self.db_path = db_path

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self):
        conn = self._connect()
        try:
            ensure_ingest_jobs_table(conn)
        finally:
            conn.close()

    def _row_to_job(self, row):
        if not row:
            return None
        row = dict(row)
        return IngestJob(
            id=row["id"],
            hit=Hit.from_dict(json.loads(row["hit_json"])),
            transcode=row["transcode"],
            state=row["state"],
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            last_error=row["last_error"],
            file_path=row["file_path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def enqueue_job(self, hit, *, transcode, max_attempts=INGEST_MAX_ATTEMPTS):
        job_id = uuid4().hex
        now = utc_now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO ingest_jobs (
                    id, hit_json, source, transcode, state, attempts, max_attempts,
                    queued, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    safe_json_dumps(hit.to_dict(), sort_keys=True),
                    hit.source,
                    transcode,
                    JOB_STATE_QUEUED,
                    int(max_attempts),
                    now,
                    now,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return job_id

    def get_job(self, job_id):
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM ingest_jobs WHERE id=?", (job_id,)).fetchone()
            return self._row_to_job(row)
        finally:
            conn.close()

    def get_job_state(self, job_id):
        conn = self._connect()
        try:
            row = conn.execute("SELECT state FROM ingest_jobs WHERE id=?", (job_id,)).fetchone()
            return row["state"] if row else None
        finally:
            conn.close()

    def list_jobs(self, *, state=None, limit=None):
        sql = "SELECT * FROM ingest_jobs"
        params = []
        if state:
            sql += " WHERE state=?"
            params.append(state)
        sql += " ORDER BY created_at DESC, id"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        conn = self._connect()
        try:
            return [self._row_to_job(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def claim_next_job(self, *, now=None):
        """Atomically move the oldest ready job to ``active`` and count the attempt."""
        now = now or utc_now()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                """
                SELECT * FROM ingest_jobs
                WHERE state=? AND (queued IS NULL OR queued<=?)
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (JOB_STATE_QUEUED, now),
            )
            row = cur.fetchone()
            if not row:
                conn.commit()
                return None
            job_id = row["id"]
            cur.execute(
                """
                UPDATE ingest_jobs
                SET state=?, claimed=?, updated_at=?, attempts=attempts+1
                WHERE id=? AND state=?
                """,
                (JOB_STATE_ACTIVE, now, now, job_id, JOB_STATE_QUEUED),
            )
            if cur.rowcount != 1:
                conn.commit()
                return None
            conn.commit()
            updated_row = dict(row)
            updated_row["state"] = JOB_STATE_ACTIVE
            updated_row["attempts"] = row["attempts"] + 1
            updated_row["updated_at"] = now
            return self._row_to_job(updated_row)
        finally:
            conn.close()

    def mark_completed(self, job_id, *, file_path):
        now = utc_now()
        conn = self._connect()
        try:
            conn.execute(
                """
                UPDATE ingest_jobs
                SET state=?, completed=?, updated_at=?, file_path=?, last_error=NULL
                WHERE id=? AND state=?
                """,
                (JOB_STATE_COMPLETED, now, now, str(file_path), job_id, JOB_STATE_ACTIVE),
            )
            conn.commit()
        finally:
            conn.close()

    def record_failure(self, job, *, error_message, retryable, retry_delay_seconds):
        now = utc_now()
        conn = self._connect()
        try:
            cur = conn.cursor()
            if retryable and job.attempts < job.max_attempts:
                next_ready = datetime.now(timezone.utc) + timedelta(seconds=retry_delay_seconds)
                queued_at = next_ready.replace(microsecond=0).isoformat()
                cur.execute(
                    """
                    UPDATE ingest_jobs
                    SET state=?, queued=?, updated_at=?, last_error=?
                    WHERE id=?
                    """,
                    (JOB_STATE_QUEUED, queued_at, now, error_message, job.id),
                )
                conn.commit()
                return JOB_STATE_QUEUED

            cur.execute(
                """
                UPDATE ingest_jobs
                SET state=?, failed=?, updated_at=?, last_error=?
                WHERE id=?
                """,
                (JOB_STATE_FAILED, now, now, error_message, job.id),
            )
            conn.commit()
            return JOB_STATE_FAILED
        finally:
            conn.close()

    def requeue_interrupted_jobs(self):
        """Return jobs left ``active`` by a previous process to the queue (or fail them when out of budget)."""
        now = utc_now()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                """
                UPDATE ingest_jobs
                SET state=?, queued=?, updated_at=?, last_error='interrupted'
                WHERE state=? AND attempts<max_attempts
                """,
                (JOB_STATE_QUEUED, now, now, JOB_STATE_ACTIVE),
            )
            requeued = cur.rowcount
            cur.execute(
                """
                UPDATE ingest_jobs
                SET state=?, failed=?, updated_at=?, last_error='interrupted'
                WHERE state=?
                """,
                (JOB_STATE_FAILED, now, now, JOB_STATE_ACTIVE),
            )
            conn.commit()
            return requeued
        finally:
            conn.close()


def submit_ingest(store, hit, transcode=None, *, max_attempts=INGEST_MAX_ATTEMPTS):
    """Validate and enqueue an ingest request, returning the new job id.

    ``hit`` may be a ``Hit`` or its wire dict. Invalid payloads raise
    ``InvalidPayloadError`` and are never enqueued.
    """
    if not isinstance(hit, Hit):
        hit = Hit.from_dict(hit)
    transcode = normalize_transcode(transcode)
    job_id = store.enqueue_job(hit, transcode=transcode, max_attempts=max_attempts)
    _log_event(
        logging.INFO,
        "job_enqueued",
        job_id=job_id,
        source=hit.source,
        title=hit.title,
        transcode=transcode,
        max_attempts=max_attempts,
    )
    return job_id


def is_retryable_error(error):
    if isinstance(error, (TypeError, InvalidPayloadError, UnresolvableError)):
        return False
    if isinstance(error, (ResolverTransportError, requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(error, requests.HTTPError) and error.response is not None:
        status = error.response.status_code
        return status >= 500 or status in (408, 429)
    message = str(error).lower()
    if isinstance(error, (DownloadError, ExtractorError)) and "unsupported url" in message:
        return False
    if "drm" in message:
        return False
    if "http error 403" in message or "http error 404" in message:
        return False
    if "not available" in message or "private" in message:
        return False
    if "timed out" in message or "timeout" in message:
        return True
    if "temporary failure" in message or "connection reset" in message:
        return True
    return True
