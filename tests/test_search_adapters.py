from __future__ import annotations

from types import SimpleNamespace

import requests

from engine.models import MusicQuery
from engine.search_adapters import ArchiveAdapter, YouTubeAdapter, select_adapters


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class _FakeYDL:
    def __init__(self, info, opts):
        self._info = info
        self.opts = opts
        self.urls = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def extract_info(self, url, download=False):
        self.urls.append(url)
        return self._info


def _archive_response(docs, *, ok=True, status_code=200):
    return SimpleNamespace(ok=ok, status_code=status_code, json=lambda: {"response": {"docs": docs}})


def test_archive_query_builds_field_terms() -> None:
    adapter = ArchiveAdapter(session=_FakeSession())
    query = MusicQuery(artist="Miles Davis", album="Kind of Blue", track="So What")
    assert adapter.build_query(query) == (
        'mediatype:(audio) AND creator:(Miles Davis) AND title:(Kind of Blue) AND title:(So What)'
    )


def test_archive_search_maps_docs_to_track_hits() -> None:
    session = _FakeSession(
        _archive_response(
            [
                {"identifier": "so-what-1959", "title": "So What", "creator": ["Miles Davis"], "year": "1959-08-17"},
                {"title": "no identifier, skipped"},
                {"identifier": "bare-item"},
            ]
        )
    )
    adapter = ArchiveAdapter(session=session, timeout=3)

    hits = adapter.search(MusicQuery(artist="Miles Davis", track="So What", limit=5))

    assert [hit.title for hit in hits] == ["So What", "bare-item"]
    first = hits[0]
    assert first.source == "archive"
    assert first.kind == "track"
    assert first.artist == "Miles Davis"
    assert first.year == 1959
    assert first.extra == {"identifier": "so-what-1959"}
    assert first.url_of("page") == "https://archive.org/details/so-what-1959"
    call = session.calls[0]
    assert ("rows", "5") in call["params"]
    assert call["timeout"] == 3


def test_archive_search_fails_closed() -> None:
    query = MusicQuery(track="So What")
    assert ArchiveAdapter(session=_FakeSession(error=requests.ConnectionError("down"))).search(query) == []
    assert ArchiveAdapter(session=_FakeSession(_archive_response([], ok=False, status_code=503))).search(query) == []


def test_youtube_search_builds_hits_from_flat_entries() -> None:
    created = []

    def factory(opts):
        ydl = _FakeYDL(
            {
                "entries": [
                    {"id": "zqNTltOGh5c", "title": "Miles Davis - So What", "duration": 545},
                    {"id": "abc", "title": "", "duration": 10},
                    None,
                    {"id": "def", "title": "So What (Live)", "url": "https://www.youtube.com/watch?v=def"},
                ]
            },
            opts,
        )
        created.append(ydl)
        return ydl

    hits = YouTubeAdapter(ydl_factory=factory).search(MusicQuery(artist="Miles Davis", track="So What", limit=3))

    assert created[0].urls == ["ytsearch3:Miles Davis So What"]
    assert created[0].opts["extract_flat"] is True
    assert [hit.title for hit in hits] == ["Miles Davis - So What", "So What (Live)"]
    assert hits[0].url_of("page") == "https://www.youtube.com/watch?v=zqNTltOGh5c"
    assert hits[0].duration_sec == 545.0
    assert hits[0].artist == "Miles Davis"
    assert hits[0].extra == {"videoId": "zqNTltOGh5c"}
    assert hits[1].duration_sec is None


def test_youtube_search_returns_empty_on_extractor_error() -> None:
    def factory(opts):
        raise RuntimeError("extractor broke")

    assert YouTubeAdapter(ydl_factory=factory).search(MusicQuery(track="So What")) == []


def test_youtube_search_skips_empty_query() -> None:
    def factory(opts):
        raise AssertionError("should not be called")

    assert YouTubeAdapter(ydl_factory=factory).search(MusicQuery()) == []


def test_select_adapters_filters_registry() -> None:
    assert list(select_adapters()) == ["archive", "youtube"]
    assert list(select_adapters(["YouTube", "missing"])) == ["youtube"]
