"""Canonical keys used to collapse near-identical hits into one recording."""

import math
import re
import unicodedata

from config.settings import DURATION_BUCKET_SECONDS

KEY_DELIMITER = "|"

_BRACKETED_RE = re.compile(r"[\(\[][^\)\]]*[\)\]]")
_PUNCT_RE = re.compile(r"[^\w\s\-&']")
_WS_RE = re.compile(r"\s+")


def normalize_text(value):
    """Lower-case, drop bracketed qualifiers and punctuation, collapse whitespace.

    Hyphens, apostrophes and ampersands survive so that "AC-DC", "Don't" and
    "Simon & Garfunkel" keep their shape.
    """
    if not value:
        return ""
    text = unicodedata.normalize("NFKC", str(value)).lower()
    text = _WS_RE.sub(" ", text)
    text = _BRACKETED_RE.sub(" ", text)
    text = _PUNCT_RE.sub("", text)
    text = text.replace("_", " ")
    return _WS_RE.sub(" ", text).strip()


def duration_bucket(duration_sec, width=DURATION_BUCKET_SECONDS):
    if not duration_sec or not math.isfinite(duration_sec) or duration_sec <= 0:
        return 0
    width = max(1, int(width))
    # Half-up rounding: 180.6 and 182.4 both land in the 182 bucket.
    rounded = math.floor(float(duration_sec) + 0.5)
    return int(math.floor(rounded / width + 0.5)) * width


def canonical_key(hit, *, bucket_width=DURATION_BUCKET_SECONDS):
    parts = [
        normalize_text(hit.artist),
        normalize_text(hit.album),
        normalize_text(hit.title),
    ]
    bucket = duration_bucket(hit.duration_sec, bucket_width)
    if bucket:
        parts.append(str(bucket))
    return KEY_DELIMITER.join(part for part in parts if part)


def cluster(hits, *, bucket_width=DURATION_BUCKET_SECONDS):
    """Group hits by canonical key, keeping first-seen order within and across clusters."""
    clusters = {}
    for hit in hits:
        key = canonical_key(hit, bucket_width=bucket_width)
        clusters.setdefault(key, []).append(hit)
    return clusters
