"""Application settings constants."""

from __future__ import annotations

# Weighted-sum factors for hit scoring. Hand-tuned; overridable through the
# ``scoring_weights`` config key.
SCORING_WEIGHTS = {
    "relevance": 0.45,
    "format": 0.25,
    "source": 0.15,
    "completeness": 0.10,
    "bitrate": 0.05,
}

# Per-field weights used by the relevance factor (query field -> hit field).
RELEVANCE_FIELD_WEIGHTS = {
    "track": 0.5,
    "artist": 0.4,
    "album": 0.3,
}

SOURCE_TRUST = {
    "local": 0.95,
    "archive": 0.9,
}
DEFAULT_SOURCE_TRUST = 0.6

# Width of the duration bucket used by canonical keys, in seconds.
DURATION_BUCKET_SECONDS = 2

DEFAULT_QUERY_LIMIT = 25
ARCHIVE_SEARCH_MAX_ROWS = 50

# Total executions allowed per ingest job (first run included).
INGEST_MAX_ATTEMPTS = 2
INGEST_RETRY_DELAY_SECONDS = 5
INGEST_WORKERS = 2
INGEST_POLL_SECONDS = 2.0

HTTP_TIMEOUT_SECONDS = 20
DOWNLOAD_CHUNK_BYTES = 1024 * 256
YTDLP_SOCKET_TIMEOUT_SECONDS = 10

TRANSCODE_MODES = ("copy", "aac320", "mp3V0")
DEFAULT_TRANSCODE = "copy"

# Browser UI access. Any origin is allowed unless SONGSIFT_CORS_ORIGINS lists them.
CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type"]
