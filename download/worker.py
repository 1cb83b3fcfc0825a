"""Ingest worker: resolve a queued hit, stage the download, file it into the library."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import requests

from config.settings import (
    DOWNLOAD_CHUNK_BYTES,
    HTTP_TIMEOUT_SECONDS,
    INGEST_POLL_SECONDS,
    INGEST_RETRY_DELAY_SECONDS,
    INGEST_WORKERS,
)
from engine.job_queue import (
    JOB_STATE_ACTIVE,
    JOB_STATE_COMPLETED,
    IngestJobStore,
    UnresolvableError,
    _log_event,
    is_retryable_error,
)
from engine.models import IngestJob
from engine.paths import PipelinePaths
from engine.resolver import resolve
from media.path_builder import (
    build_library_path,
    build_staging_path,
    ensure_parent_dir,
    extension_from_filename,
    relocate_file,
)

logger = logging.getLogger(__name__)


class IngestWorker:
    """Runs claimed ingest jobs to a terminal or re-queued state.

    Every failure is recorded on the job; nothing raised while processing a
    job escapes ``process_job``.
    """

    def __init__(
        self,
        store: IngestJobStore,
        paths: PipelinePaths,
        *,
        resolver: Callable = resolve,
        session: Any = None,
        retry_delay_seconds: float = INGEST_RETRY_DELAY_SECONDS,
    ) -> None:
        self.store = store
        self.paths = paths
        self._resolver = resolver
        self._session = session
        self._local = threading.local()
        self.retry_delay_seconds = retry_delay_seconds

    def http_session(self):
        """Return the injected session, or one ``requests.Session`` per calling thread."""
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def run_once(self) -> Optional[str]:
        """Claim and execute one ready job. Returns its id, or ``None`` when the queue is idle."""
        job = self.store.claim_next_job()
        if job is None:
            return None
        _log_event(
            logging.INFO,
            "job_claimed",
            job_id=job.id,
            source=job.hit.source,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
        )
        self.process_job(job)
        return job.id

    def process_job(self, job: IngestJob) -> dict[str, str | None]:
        """Process one claimed job and return ``{"state": ..., "file_path": ...}``."""
        if job.state != JOB_STATE_ACTIVE:
            _log_event(logging.ERROR, "job_not_active", job_id=job.id, state=job.state)
            return {"state": job.state, "file_path": None}

        hit = job.hit
        staging_path: Path | None = None
        _log_event(
            logging.INFO,
            "job_started",
            job_id=job.id,
            source=hit.source,
            transcode=job.transcode,
            attempt=job.attempts,
        )
        try:
            resolved = self._resolver(hit)
            if resolved is None:
                raise UnresolvableError(f"unresolvable: no direct url for source={hit.source}")

            ext = extension_from_filename(resolved.filename)
            staging_path = build_staging_path(self.paths.staging_root, title=hit.title, ext=ext)
            final_path = build_library_path(
                self.paths.library_root,
                artist=hit.artist,
                album=hit.album,
                title=hit.title,
                ext=ext,
            )
            self.download_to_file(resolved.direct_url, staging_path)
            # The transcode hint is carried on the job only; files are stored as downloaded.
            relocate_file(staging_path, final_path)
            self.store.mark_completed(job.id, file_path=str(final_path))
        except Exception as exc:
            self._discard_staging(staging_path)
            error_message = f"{type(exc).__name__}: {exc}"
            retryable = is_retryable_error(exc)
            try:
                new_state = self.store.record_failure(
                    job,
                    error_message=error_message,
                    retryable=retryable,
                    retry_delay_seconds=self.retry_delay_seconds,
                )
            except Exception as persist_exc:
                logging.error(
                    "[WORKER] persistence_failed job_id=%s err=%s",
                    job.id,
                    persist_exc,
                )
                return {"state": JOB_STATE_ACTIVE, "file_path": None}
            _log_event(
                logging.ERROR,
                "job_failed",
                job_id=job.id,
                source=hit.source,
                retryable=retryable,
                status=new_state,
                attempts=job.attempts,
                error=error_message,
            )
            return {"state": new_state, "file_path": None}

        _log_event(
            logging.INFO,
            "job_completed",
            job_id=job.id,
            source=hit.source,
            attempts=job.attempts,
            path=str(final_path),
        )
        return {"state": JOB_STATE_COMPLETED, "file_path": str(final_path)}

    def download_to_file(self, url: str, dest: Path) -> Path:
        """Stream ``url`` into ``dest``; raises on HTTP or I/O failure."""
        ensure_parent_dir(dest)
        with self.http_session().get(url, stream=True, timeout=HTTP_TIMEOUT_SECONDS) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as handle:
                for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        handle.write(chunk)
        return dest

    @staticmethod
    def _discard_staging(staging_path: Path | None) -> None:
        if staging_path is None:
            return
        try:
            staging_path.unlink(missing_ok=True)
        except OSError:
            logger.exception("failed to remove staging file path=%s", staging_path)


class IngestWorkerPool:
    """Fixed pool of polling threads sharing one job store."""

    def __init__(
        self,
        worker: IngestWorker,
        *,
        workers: int = INGEST_WORKERS,
        poll_seconds: float = INGEST_POLL_SECONDS,
    ) -> None:
        self.worker = worker
        self.workers = max(1, int(workers))
        self.poll_seconds = poll_seconds
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._threads = []
        for idx in range(self.workers):
            thread = threading.Thread(
                target=self._run_loop,
                name=f"ingest-worker-{idx + 1}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Ingest worker pool started workers=%d", self.workers)

    def stop(self, *, timeout: float = 10.0) -> None:
        self._stop_event.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=timeout)
        self._threads = []
        logger.info("Ingest worker pool stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job_id = self.worker.run_once()
            except Exception:
                logger.exception("ingest worker loop error")
                job_id = None
            if job_id is None:
                self._stop_event.wait(self.poll_seconds)
