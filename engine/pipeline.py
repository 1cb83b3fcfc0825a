"""Explicitly constructed pipeline context: adapters, job store, workers, filesystem roots."""

import logging

from config.settings import (
    DURATION_BUCKET_SECONDS,
    INGEST_MAX_ATTEMPTS,
    INGEST_RETRY_DELAY_SECONDS,
    INGEST_WORKERS,
)
from download.worker import IngestWorker, IngestWorkerPool
from engine.aggregator import aggregate
from engine.core import validate_config
from engine.job_queue import IngestJobStore, submit_ingest
from engine.models import Hit, MusicQuery
from engine.resolver import resolve
from engine.search_adapters import select_adapters
from engine.search_scoring import rank_hits, resolve_weights


class PipelineContext:
    """Owns every collaborator the search/resolve/ingest stages need.

    Nothing here is global: build one context per process (or per test),
    call ``start()`` to launch the ingest workers and ``shutdown()`` to stop them.
    """

    def __init__(self, paths, *, config=None, adapters=None, resolver=resolve, session=None, start_workers=True):
        config = config or {}
        errors = validate_config(config)
        if errors:
            raise ValueError("invalid config: " + "; ".join(errors))

        self.paths = paths
        self.config = config
        self.adapters = adapters if adapters is not None else select_adapters(config.get("adapters"))
        self.weights = resolve_weights(config.get("scoring_weights"))
        self.bucket_width = int(config.get("duration_bucket_sec") or DURATION_BUCKET_SECONDS)
        self.adapter_timeout = config.get("adapter_timeout_seconds")
        self.max_attempts = int(config.get("ingest_max_attempts") or INGEST_MAX_ATTEMPTS)
        self.resolver = resolver
        self.start_workers = start_workers

        self.store = IngestJobStore(paths.db_path)
        self.store.ensure_schema()
        retry_delay = config.get("retry_delay_seconds")
        self.worker = IngestWorker(
            self.store,
            paths,
            resolver=resolver,
            session=session,
            retry_delay_seconds=INGEST_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay,
        )
        self.pool = IngestWorkerPool(self.worker, workers=int(config.get("ingest_workers") or INGEST_WORKERS))

    def start(self):
        requeued = self.store.requeue_interrupted_jobs()
        if requeued:
            logging.info("Requeued %d interrupted ingest jobs", requeued)
        if self.start_workers:
            self.pool.start()

    def shutdown(self):
        self.pool.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def search(self, query):
        """Aggregate, deduplicate and rank hits for ``query``; returns ``list[ScoredHit]``."""
        if not isinstance(query, MusicQuery):
            query = MusicQuery.from_dict(query)
        hits = aggregate(query, self.adapters, timeout=self.adapter_timeout)
        return rank_hits(hits, query, weights=self.weights, bucket_width=self.bucket_width)

    def resolve(self, hit):
        if not isinstance(hit, Hit):
            hit = Hit.from_dict(hit)
        return self.resolver(hit)

    def ingest(self, hit, transcode=None):
        return submit_ingest(self.store, hit, transcode, max_attempts=self.max_attempts)

    def get_job(self, job_id):
        return self.store.get_job(job_id)
