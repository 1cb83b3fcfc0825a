from __future__ import annotations

import threading
import time
from types import SimpleNamespace

from engine.aggregator import _run_adapter_search, aggregate
from engine.models import Hit, MusicQuery


def _hit(source: str, title: str) -> Hit:
    return Hit(source=source, kind="track", title=title, artist="Miles Davis")


class _StaticAdapter:
    def __init__(self, source, hits):
        self.source = source
        self._hits = hits
        self.calls = 0

    def search(self, query):
        self.calls += 1
        return list(self._hits)


class _FailingAdapter:
    source = "broken"

    def search(self, query):
        raise RuntimeError("origin exploded")


class _BlockingAdapter:
    source = "slow"

    def __init__(self):
        self.release = threading.Event()

    def search(self, query):
        self.release.wait(5)
        return [_hit(self.source, "Too Late")]


def test_aggregate_unions_hits_from_all_adapters() -> None:
    query = MusicQuery(artist="Miles Davis", track="So What")
    archive = _StaticAdapter("archive", [_hit("archive", "So What")])
    youtube = _StaticAdapter("youtube", [_hit("youtube", "So What"), _hit("youtube", "So What (Live)")])

    hits = aggregate(query, {"archive": archive, "youtube": youtube})

    assert sorted((hit.source, hit.title) for hit in hits) == [
        ("archive", "So What"),
        ("youtube", "So What"),
        ("youtube", "So What (Live)"),
    ]
    assert archive.calls == 1
    assert youtube.calls == 1


def test_failing_adapter_contributes_nothing() -> None:
    query = MusicQuery(track="So What")
    archive = _StaticAdapter("archive", [_hit("archive", "So What")])

    hits = aggregate(query, [_FailingAdapter(), archive])

    assert [hit.source for hit in hits] == ["archive"]


def test_slow_adapter_is_dropped_after_timeout() -> None:
    query = MusicQuery(track="So What")
    slow = _BlockingAdapter()
    fast = _StaticAdapter("archive", [_hit("archive", "So What")])

    started = time.monotonic()
    try:
        hits = aggregate(query, [slow, fast], timeout=0.2)
    finally:
        slow.release.set()

    assert time.monotonic() - started < 4
    assert [hit.source for hit in hits] == ["archive"]


def test_no_adapters_returns_empty() -> None:
    assert aggregate(MusicQuery(track="So What"), []) == []
    assert aggregate(MusicQuery(track="So What"), {}) == []


def test_run_adapter_search_treats_non_list_as_empty() -> None:
    adapter = SimpleNamespace(source="odd", search=lambda query: {"not": "a list"})
    assert _run_adapter_search(adapter, MusicQuery(track="x")) == []
