"""Approximate title matching used when exact search finds nothing."""

import logging

from rapidfuzz import fuzz, process, utils

from autofilter.config import FUZZY_THRESHOLD
from autofilter.models import ContentRecord

logger = logging.getLogger(__name__)


def distance_from_score(score: float) -> float:
    """Convert a 0-100 similarity score to a 0-1 distance (0 = identical)."""
    return round(1.0 - score / 100.0, 4)


def rank_candidates(
    query: str,
    candidates: list[ContentRecord],
    threshold: float = FUZZY_THRESHOLD,
) -> list[tuple[ContentRecord, float]]:
    """Rank candidates by fuzzy distance between the query and their names.

    Only candidates with distance <= threshold are kept. Results are sorted by
    ascending distance; equal distances keep the candidates' original order,
    which is most-recent first.
    """
    query = query.strip()
    if not query or not candidates:
        return []

    matches = process.extract(
        query,
        [record.name for record in candidates],
        scorer=fuzz.WRatio,
        processor=utils.default_process,
        score_cutoff=(1.0 - threshold) * 100.0,
        limit=None,
    )

    ordered = sorted(matches, key=lambda match: (distance_from_score(match[1]), match[2]))
    ranked = [(candidates[index], distance_from_score(score)) for _, score, index in ordered]
    logger.debug("Fuzzy match for %r kept %d of %d candidates", query, len(ranked), len(candidates))
    return ranked


def paginate(ranked: list[ContentRecord], page: int, page_size: int) -> tuple[list[ContentRecord], bool]:
    """Slice a ranked list; returns (page records, has_next)."""
    start = page * page_size
    end = start + page_size
    return ranked[start:end], len(ranked) > end
