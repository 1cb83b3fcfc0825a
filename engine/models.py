"""Value types shared by the search, resolve and ingest stages."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from config.settings import DEFAULT_QUERY_LIMIT, DEFAULT_TRANSCODE, TRANSCODE_MODES

HIT_KINDS = ("track", "album")
AUDIO_FORMATS = ("FLAC", "MP3", "AAC", "WAV")
URL_KINDS = ("stream", "download", "page")


class InvalidPayloadError(ValueError):
    """Raised when a query or hit payload is structurally invalid."""


def _first_present(payload: dict, *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _optional_str(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPayloadError(f"{name} must be a string")
    cleaned = value.strip()
    return cleaned or None


def _optional_number(name: str, value: Any, *, integer: bool = False) -> int | float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidPayloadError(f"{name} must be a number")
    if not math.isfinite(value):
        raise InvalidPayloadError(f"{name} must be finite")
    if value < 0:
        raise InvalidPayloadError(f"{name} must be >= 0")
    if integer:
        return int(value)
    return value


@dataclass(frozen=True)
class HitUrls:
    stream: str | None = None
    download: str | None = None
    page: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {kind: getattr(self, kind) for kind in URL_KINDS if getattr(self, kind)}


@dataclass(frozen=True)
class Hit:
    """One raw search result produced by a single source adapter."""

    source: str
    kind: str
    title: str
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    urls: tuple[HitUrls, ...] = ()
    format: str | None = None
    bitrate_kbps: float | None = None
    duration_sec: float | None = None
    size_bytes: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def url_of(self, kind: str) -> str | None:
        for entry in self.urls:
            value = getattr(entry, kind, None)
            if value:
                return value
        return None

    @classmethod
    def from_dict(cls, payload: Any) -> "Hit":
        """Build a hit from a wire payload, raising ``InvalidPayloadError`` when malformed.

        Both the camelCase wire names (``bitrateKbps``) and snake_case names
        are accepted.
        """
        if not isinstance(payload, dict):
            raise InvalidPayloadError("hit must be an object")

        source = _optional_str("source", payload.get("source"))
        if not source:
            raise InvalidPayloadError("hit.source is required")
        kind = _optional_str("kind", payload.get("kind")) or "track"
        if kind not in HIT_KINDS:
            raise InvalidPayloadError(f"hit.kind must be one of {', '.join(HIT_KINDS)}")
        title = _optional_str("title", payload.get("title"))
        if not title:
            raise InvalidPayloadError("hit.title is required")

        raw_urls = payload.get("urls") or []
        if not isinstance(raw_urls, list):
            raise InvalidPayloadError("hit.urls must be a list")
        urls = []
        for idx, entry in enumerate(raw_urls):
            if not isinstance(entry, dict):
                raise InvalidPayloadError(f"hit.urls[{idx}] must be an object")
            urls.append(
                HitUrls(**{kind_: _optional_str(f"hit.urls[{idx}].{kind_}", entry.get(kind_)) for kind_ in URL_KINDS})
            )

        extra = payload.get("extra") or {}
        if not isinstance(extra, dict):
            raise InvalidPayloadError("hit.extra must be an object")

        return cls(
            source=source.lower(),
            kind=kind,
            title=title,
            artist=_optional_str("artist", payload.get("artist")),
            album=_optional_str("album", payload.get("album")),
            year=_optional_number("year", payload.get("year"), integer=True),
            urls=tuple(urls),
            format=_optional_str("format", payload.get("format")),
            bitrate_kbps=_optional_number("bitrateKbps", _first_present(payload, "bitrateKbps", "bitrate_kbps")),
            duration_sec=_optional_number("durationSec", _first_present(payload, "durationSec", "duration_sec")),
            size_bytes=_optional_number("sizeBytes", _first_present(payload, "sizeBytes", "size_bytes"), integer=True),
            extra=dict(extra),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "source": self.source,
            "kind": self.kind,
            "title": self.title,
            "urls": [entry.to_dict() for entry in self.urls],
            "extra": dict(self.extra),
        }
        optional = {
            "artist": self.artist,
            "album": self.album,
            "year": self.year,
            "format": self.format,
            "bitrateKbps": self.bitrate_kbps,
            "durationSec": self.duration_sec,
            "sizeBytes": self.size_bytes,
        }
        out.update({key: value for key, value in optional.items() if value is not None})
        return out


@dataclass(frozen=True)
class MusicQuery:
    artist: str | None = None
    album: str | None = None
    track: str | None = None
    year: int | None = None
    strict: bool = False
    preferred_formats: tuple[str, ...] = ()
    min_bitrate_kbps: float | None = None
    limit: int = DEFAULT_QUERY_LIMIT

    @classmethod
    def from_dict(cls, payload: Any) -> "MusicQuery":
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise InvalidPayloadError("query must be an object")

        formats_raw = _first_present(payload, "preferredFormats", "preferred_formats") or []
        if not isinstance(formats_raw, (list, tuple)):
            raise InvalidPayloadError("preferredFormats must be a list")
        formats: list[str] = []
        for value in formats_raw:
            fmt = str(value or "").strip().upper()
            if fmt not in AUDIO_FORMATS:
                raise InvalidPayloadError(f"unsupported preferred format: {value!r}")
            if fmt not in formats:
                formats.append(fmt)

        limit = payload.get("limit")
        if limit is None:
            limit = DEFAULT_QUERY_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidPayloadError("limit must be a positive integer")

        return cls(
            artist=_optional_str("artist", payload.get("artist")),
            album=_optional_str("album", payload.get("album")),
            track=_optional_str("track", payload.get("track")),
            year=_optional_number("year", payload.get("year"), integer=True),
            strict=bool(payload.get("strict")),
            preferred_formats=tuple(formats),
            min_bitrate_kbps=_optional_number(
                "minBitrateKbps", _first_present(payload, "minBitrateKbps", "min_bitrate_kbps")
            ),
            limit=limit,
        )

    def terms(self) -> list[str]:
        return [value for value in (self.artist, self.album, self.track) if value]


@dataclass(frozen=True)
class ScoredHit:
    hit: Hit
    score: float


@dataclass(frozen=True)
class ResolvedMedia:
    """A directly fetchable media location. Not stable over time; re-resolve when stale."""

    direct_url: str
    filename: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"directUrl": self.direct_url, "filename": self.filename}


@dataclass
class IngestJob:
    id: str
    hit: Hit
    transcode: str
    state: str
    attempts: int
    max_attempts: int
    last_error: str | None = None
    file_path: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hit": self.hit.to_dict(),
            "transcode": self.transcode,
            "state": self.state,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "lastError": self.last_error,
            "filePath": self.file_path,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def normalize_transcode(value: Any) -> str:
    if value is None:
        return DEFAULT_TRANSCODE
    if value not in TRANSCODE_MODES:
        raise InvalidPayloadError(f"transcode must be one of {', '.join(TRANSCODE_MODES)}")
    return value
