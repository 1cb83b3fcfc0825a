"""Direct-URL resolution for hits, one strategy per source.

``resolve`` returns ``None`` when a hit cannot be turned into a fetchable
URL; that is a normal outcome. Transport failures (connection errors,
timeouts, 5xx) propagate so that callers able to retry can do so.
Nothing is cached: returned URLs may be signed or short-lived.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional
from urllib.parse import quote

import requests
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from config.settings import HTTP_TIMEOUT_SECONDS, YTDLP_SOCKET_TIMEOUT_SECONDS
from engine.models import Hit, ResolvedMedia
from engine.search_adapters import YOUTUBE_WATCH_URL

ARCHIVE_METADATA_URL = "https://archive.org/metadata/{identifier}"
ARCHIVE_DOWNLOAD_URL = "https://archive.org/download/{identifier}/{filename}"

logger = logging.getLogger(__name__)

# Manifest preference, best first. The final fallback is the first listed file.
_ARCHIVE_FILE_PREFERENCE = (
    re.compile(r"flac$", re.IGNORECASE),
    re.compile(r"wav$", re.IGNORECASE),
    re.compile(r"320\.mp3$", re.IGNORECASE),
    re.compile(r"\.mp3$", re.IGNORECASE),
)


class ResolverTransportError(RuntimeError):
    """The origin could not be reached; resolution may succeed on a later attempt."""


def pick_archive_file(files: list[dict]) -> Optional[dict]:
    named = [entry for entry in files if isinstance(entry, dict) and entry.get("name")]
    for pattern in _ARCHIVE_FILE_PREFERENCE:
        for entry in named:
            if pattern.search(str(entry["name"])):
                return entry
    return named[0] if named else None


def resolve_archive(hit: Hit, *, session=None, timeout: float = HTTP_TIMEOUT_SECONDS) -> Optional[ResolvedMedia]:
    identifier = str(hit.extra.get("identifier") or "").strip()
    if not identifier:
        return None

    http = session or requests
    resp = http.get(ARCHIVE_METADATA_URL.format(identifier=quote(identifier, safe="")), timeout=timeout)
    if resp.status_code >= 500:
        raise ResolverTransportError(f"archive metadata http {resp.status_code} for {identifier}")
    if not resp.ok:
        logger.info("archive metadata unavailable identifier=%s status=%s", identifier, resp.status_code)
        return None
    manifest = resp.json() or {}
    files = manifest.get("files") if isinstance(manifest, dict) else None
    chosen = pick_archive_file(files or [])
    if chosen is None:
        return None

    filename = str(chosen["name"])
    direct_url = ARCHIVE_DOWNLOAD_URL.format(
        identifier=quote(identifier, safe=""),
        filename=quote(filename, safe=""),
    )
    return ResolvedMedia(direct_url=direct_url, filename=filename)


def _is_audio_only(fmt: dict) -> bool:
    acodec = fmt.get("acodec")
    vcodec = fmt.get("vcodec")
    return bool(acodec) and acodec != "none" and (not vcodec or vcodec == "none")


def _youtube_page_url(hit: Hit) -> Optional[str]:
    page = hit.url_of("page")
    if page:
        return page
    video_id = hit.extra.get("videoId")
    if video_id:
        return YOUTUBE_WATCH_URL.format(video_id=video_id)
    return None


def resolve_youtube(hit: Hit, *, ydl_factory: Callable = YoutubeDL) -> Optional[ResolvedMedia]:
    page_url = _youtube_page_url(hit)
    if not page_url:
        return None

    base_opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "cachedir": False,
        "socket_timeout": YTDLP_SOCKET_TIMEOUT_SECONDS,
    }
    with ydl_factory(dict(base_opts)) as ydl:
        info = ydl.extract_info(page_url, download=False) or {}

    formats = info.get("formats") if isinstance(info.get("formats"), list) else []
    audio_only = [fmt for fmt in formats if isinstance(fmt, dict) and _is_audio_only(fmt) and fmt.get("url")]
    audio_only.sort(key=lambda fmt: fmt.get("abr") or 0, reverse=True)

    direct_url = None
    ext = None
    if audio_only:
        direct_url = audio_only[0]["url"]
        ext = audio_only[0].get("ext")
    else:
        # Second extraction asking yt-dlp itself for the best audio stream.
        with ydl_factory({**base_opts, "format": "bestaudio"}) as ydl:
            best = ydl.extract_info(page_url, download=False) or {}
        requested = best.get("requested_formats") or []
        direct_url = best.get("url") or (requested[0].get("url") if requested else None)
        ext = best.get("ext")
    if not direct_url:
        return None

    uploader = info.get("uploader") or hit.artist or "YouTube"
    title = info.get("title") or hit.title
    filename = f"{uploader} - {title}.{ext or 'm4a'}"
    return ResolvedMedia(direct_url=direct_url, filename=filename)


_UNAVAILABLE_MARKERS = (
    "private",
    "not available",
    "unavailable",
    "removed",
    "copyright",
    "http error 404",
    "http error 403",
)


def _extraction_failure_is_permanent(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _UNAVAILABLE_MARKERS)


_STRATEGIES = {
    "archive": lambda hit, session, ydl_factory: resolve_archive(hit, session=session),
    "youtube": lambda hit, session, ydl_factory: resolve_youtube(hit, ydl_factory=ydl_factory),
}


def resolve(hit: Hit, *, session=None, ydl_factory: Callable = YoutubeDL) -> Optional[ResolvedMedia]:
    """Resolve ``hit`` to a direct media URL, or ``None`` when it is not resolvable.

    Raises ``ResolverTransportError`` when the origin could not be reached.
    """
    if not isinstance(hit, Hit):
        return None
    strategy = _STRATEGIES.get(hit.source)
    if strategy is None:
        logger.info("resolve_unresolvable source=%s reason=unsupported_source", hit.source)
        return None
    try:
        resolved = strategy(hit, session, ydl_factory)
    except requests.RequestException as exc:
        raise ResolverTransportError(f"{type(exc).__name__}: {exc}") from exc
    except (DownloadError, ExtractorError) as exc:
        if _extraction_failure_is_permanent(str(exc)):
            logger.info("resolve_unresolvable source=%s reason=%s", hit.source, exc)
            return None
        raise ResolverTransportError(f"{type(exc).__name__}: {exc}") from exc
    if resolved is None:
        logger.info("resolve_unresolvable source=%s title=%s", hit.source, hit.title)
    return resolved
