"""Concurrent fan-out of one query to every registered source adapter."""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed

from engine.json_utils import safe_json_dumps


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logging.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logging.log(level, f"log_event_serialization_failed: {exc} message={message}")


def _adapter_name(adapter):
    return getattr(adapter, "source", None) or repr(adapter)


def _run_adapter_search(adapter, query):
    """
    Execute a single adapter search safely.
    - Adapter exceptions are contained
    - Non-list results are treated as empty
    - Never raises
    """
    try:
        hits = adapter.search(query)
    except Exception as exc:
        _log_event(
            logging.ERROR,
            "adapter_search_failed",
            source=_adapter_name(adapter),
            error=f"{type(exc).__name__}: {exc}",
        )
        return []
    if not isinstance(hits, (list, tuple)):
        return []
    return list(hits)


def aggregate(query, adapters, *, timeout=None):
    """Run ``adapter.search(query)`` on every adapter concurrently and union the hits.

    ``adapters`` may be a list or a ``{source: adapter}`` mapping. A failing
    adapter contributes nothing; when ``timeout`` (seconds) is given, adapters
    still running at the deadline contribute nothing either. Output order is
    not significant.
    """
    if isinstance(adapters, dict):
        adapters = list(adapters.values())
    adapters = list(adapters or [])
    if not adapters:
        return []

    results = []
    pool = ThreadPoolExecutor(max_workers=len(adapters), thread_name_prefix="adapter-search")
    futures = {}
    try:
        for adapter in adapters:
            _log_event(logging.INFO, "adapter_search_started", source=_adapter_name(adapter))
            futures[pool.submit(_run_adapter_search, adapter, query)] = adapter
        collected = set()
        try:
            for fut in as_completed(futures, timeout=timeout):
                collected.add(fut)
                results.extend(fut.result())
        except FuturesTimeoutError:
            pending = []
            for fut, adapter in futures.items():
                if fut in collected:
                    continue
                if fut.done():
                    results.extend(fut.result())
                else:
                    pending.append(_adapter_name(adapter))
            _log_event(logging.WARNING, "adapter_search_timeout", sources=pending, timeout=timeout)
    finally:
        # Stragglers are abandoned, not awaited.
        pool.shutdown(wait=False, cancel_futures=True)

    _log_event(logging.INFO, "aggregate_completed", adapters=len(adapters), hits=len(results))
    return results
