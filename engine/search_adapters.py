import logging
from typing import Protocol
from urllib.parse import urlparse

import requests
from yt_dlp import YoutubeDL

from config.settings import ARCHIVE_SEARCH_MAX_ROWS, HTTP_TIMEOUT_SECONDS, YTDLP_SOCKET_TIMEOUT_SECONDS
from engine.models import Hit, HitUrls, MusicQuery

ARCHIVE_SEARCH_URL = "https://archive.org/advancedsearch.php"
ARCHIVE_DETAILS_URL = "https://archive.org/details/{identifier}"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

logger = logging.getLogger(__name__)


def _is_http_url(value):
    if not value or not isinstance(value, str):
        return False
    try:
        return urlparse(value).scheme in ("http", "https")
    except Exception:
        return False


class SearchAdapter(Protocol):
    """Capability every source adapter provides.

    ``search`` must not block indefinitely and should return ``[]`` rather
    than raise when the origin misbehaves.
    """

    source: str

    def search(self, query: MusicQuery) -> list[Hit]:
        raise NotImplementedError


def _first_value(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _parse_year(value):
    value = _first_value(value)
    if value is None:
        return None
    text = str(value).strip()[:4]
    return int(text) if text.isdigit() else None


class ArchiveAdapter:
    """Internet Archive advanced-search adapter for openly licensed audio."""

    source = "archive"

    def __init__(self, session=None, *, timeout=HTTP_TIMEOUT_SECONDS):
        self._session = session or requests
        self._timeout = timeout

    @staticmethod
    def _escape(value):
        return value.replace('"', " ").replace("\\", " ").strip()

    def build_query(self, query):
        terms = ["mediatype:(audio)"]
        if query.artist:
            terms.append(f"creator:({self._escape(query.artist)})")
        if query.album:
            terms.append(f"title:({self._escape(query.album)})")
        if query.track:
            terms.append(f"title:({self._escape(query.track)})")
        return " AND ".join(terms)

    def search(self, query):
        params = [
            ("q", self.build_query(query)),
            ("fl[]", "identifier"),
            ("fl[]", "title"),
            ("fl[]", "creator"),
            ("fl[]", "year"),
            ("sort[]", "downloads desc"),
            ("rows", str(min(query.limit, ARCHIVE_SEARCH_MAX_ROWS))),
            ("output", "json"),
        ]
        try:
            resp = self._session.get(ARCHIVE_SEARCH_URL, params=params, timeout=self._timeout)
            if not resp.ok:
                logger.warning("archive search http_status=%s", resp.status_code)
                return []
            data = resp.json()
        except Exception:
            logger.exception("Search failed for source=%s query=%s", self.source, query)
            return []

        docs = ((data or {}).get("response") or {}).get("docs") or []
        hits = []
        for doc in docs:
            if not isinstance(doc, dict):
                continue
            identifier = doc.get("identifier")
            if not identifier:
                continue
            title = _first_value(doc.get("title")) or identifier
            creator = _first_value(doc.get("creator"))
            hits.append(
                Hit(
                    source=self.source,
                    kind="track",
                    title=str(title),
                    artist=str(creator) if creator else None,
                    year=_parse_year(doc.get("year")),
                    urls=(HitUrls(page=ARCHIVE_DETAILS_URL.format(identifier=identifier)),),
                    extra={"identifier": identifier},
                )
            )
        return hits


class YouTubeAdapter:
    """Video-platform search through yt-dlp's flat ``ytsearch`` extractor."""

    source = "youtube"
    search_prefix = "ytsearch"

    def __init__(self, ydl_factory=YoutubeDL):
        self._ydl_factory = ydl_factory

    def search(self, query):
        text = " ".join(query.terms()).strip()
        if not text:
            return []
        opts = {
            "skip_download": True,
            "quiet": True,
            "no_warnings": True,
            "ignoreerrors": True,
            "extract_flat": True,
            "cachedir": False,
            "socket_timeout": YTDLP_SOCKET_TIMEOUT_SECONDS,
        }
        try:
            with self._ydl_factory(opts) as ydl:
                info = ydl.extract_info(f"{self.search_prefix}{query.limit}:{text}", download=False)
        except Exception:
            logger.exception("Search failed for source=%s query=%s", self.source, text)
            return []

        entries = info.get("entries") if isinstance(info, dict) else None
        hits = []
        for entry in entries or []:
            if not isinstance(entry, dict) or not entry.get("title"):
                continue
            video_id = entry.get("id")
            page_url = entry.get("webpage_url") or entry.get("url")
            if not _is_http_url(page_url):
                page_url = YOUTUBE_WATCH_URL.format(video_id=video_id) if video_id else None
            if not page_url:
                continue
            duration = entry.get("duration")
            hits.append(
                Hit(
                    source=self.source,
                    kind="track",
                    title=str(entry["title"]),
                    artist=query.artist,
                    album=query.album,
                    urls=(HitUrls(page=page_url),),
                    duration_sec=float(duration) if isinstance(duration, (int, float)) and duration > 0 else None,
                    extra={"videoId": video_id or page_url},
                )
            )
        return hits


def default_adapters():
    adapters = [ArchiveAdapter(), YouTubeAdapter()]
    return {adapter.source: adapter for adapter in adapters}


def select_adapters(names=None):
    """Return the registered adapters, optionally restricted to ``names`` (order kept)."""
    registry = default_adapters()
    if not names:
        return registry
    selected = {}
    for name in names:
        adapter = registry.get(str(name).strip().lower())
        if adapter is None:
            logger.warning("adapter_missing source=%s", name)
            continue
        selected[adapter.source] = adapter
    return selected
