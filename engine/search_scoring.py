"""Relevance + quality scoring and cluster-aware ranking of search hits.

``score_hit`` is a pure function of ``(hit, query)``: a fixed weighted sum of
five independent factors, each in ``[0, 1]``. ``rank_hits`` clusters hits by
canonical key, keeps the best-scoring member of each cluster, then ranks the
representatives globally.
"""

import math

from config.settings import (
    DEFAULT_SOURCE_TRUST,
    DURATION_BUCKET_SECONDS,
    RELEVANCE_FIELD_WEIGHTS,
    SCORING_WEIGHTS,
    SOURCE_TRUST,
)
from engine.canonical import cluster, normalize_text
from engine.models import ScoredHit

# query attribute -> hit attribute
_RELEVANCE_FIELDS = (
    ("track", "title"),
    ("artist", "artist"),
    ("album", "album"),
)


def clamp01(value):
    # NaN compares false both ways; treat it as no evidence.
    if value != value or value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return float(value)


def tokenize(value):
    normalized = normalize_text(value)
    if not normalized:
        return []
    return normalized.split()


def token_set_similarity(left, right):
    """Jaccard similarity of the normalized token sets of two strings."""
    a = set(tokenize(left))
    b = set(tokenize(right))
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def relevance_score(hit, query):
    total = 0.0
    for query_field, hit_field in _RELEVANCE_FIELDS:
        wanted = getattr(query, query_field)
        have = getattr(hit, hit_field)
        if not wanted or not have:
            continue
        total += token_set_similarity(wanted, have) * RELEVANCE_FIELD_WEIGHTS[query_field]
    return min(1.0, total)


def format_quality_score(fmt):
    if not fmt:
        return 0.4
    value = str(fmt).upper()
    if "FLAC" in value or "WAV" in value:
        return 1.0
    if "320" in value:
        return 0.8
    if "MP3" in value:
        return 0.6
    return 0.4


def source_trust_score(source):
    return SOURCE_TRUST.get(str(source or "").lower(), DEFAULT_SOURCE_TRUST)


def completeness_score(kind):
    return 0.9 if kind == "album" else 0.6


def bitrate_score(bitrate_kbps):
    if not bitrate_kbps or not math.isfinite(bitrate_kbps):
        return 0.5
    return min(float(bitrate_kbps) / 320.0, 1.0)


def resolve_weights(overrides=None):
    weights = dict(SCORING_WEIGHTS)
    if overrides:
        for key, value in overrides.items():
            if key in weights:
                weights[key] = float(value)
    return weights


def score_breakdown(hit, query):
    return {
        "relevance": relevance_score(hit, query),
        "format": format_quality_score(hit.format),
        "source": source_trust_score(hit.source),
        "completeness": completeness_score(hit.kind),
        "bitrate": bitrate_score(hit.bitrate_kbps),
    }


def score_hit(hit, query, *, weights=None):
    weights = weights or SCORING_WEIGHTS
    factors = score_breakdown(hit, query)
    return clamp01(sum(weights[name] * value for name, value in factors.items()))


def passes_query_filters(hit, query):
    """Apply the optional hard filters a query carries (bitrate floor, strict matching)."""
    if query.min_bitrate_kbps and hit.bitrate_kbps is not None:
        if hit.bitrate_kbps < query.min_bitrate_kbps:
            return False
    if not query.strict:
        return True
    for query_field, hit_field in _RELEVANCE_FIELDS:
        wanted = getattr(query, query_field)
        if wanted and token_set_similarity(wanted, getattr(hit, hit_field)) == 0.0:
            return False
    if query.year and hit.year and query.year != hit.year:
        return False
    return True


def _format_preference_rank(hit, preferred_formats):
    fmt = str(hit.format or "").upper()
    if fmt:
        for idx, wanted in enumerate(preferred_formats):
            if wanted in fmt:
                return idx
    return len(preferred_formats)


def select_representative(members, query, *, weights=None):
    best = None
    for hit in members:
        value = score_hit(hit, query, weights=weights)
        # Strictly greater: the first-seen member wins ties.
        if best is None or value > best.score:
            best = ScoredHit(hit=hit, score=value)
    return best


def rank_hits(hits, query, *, weights=None, bucket_width=DURATION_BUCKET_SECONDS):
    """Deduplicate, score and rank hits for a query, returning at most ``query.limit`` results."""
    weights = weights or SCORING_WEIGHTS
    eligible = [hit for hit in hits if passes_query_filters(hit, query)]
    clusters = cluster(eligible, bucket_width=bucket_width)

    representatives = [select_representative(members, query, weights=weights).hit for members in clusters.values()]
    scored = [ScoredHit(hit=hit, score=score_hit(hit, query, weights=weights)) for hit in representatives]

    preferred = tuple(query.preferred_formats)
    ranked = sorted(
        scored,
        key=lambda item: (-item.score, _format_preference_rank(item.hit, preferred)),
    )
    return ranked[: query.limit]
