"""Heuristic ranking of eligible candidates before visual comparison.

Each candidate earns bonuses from ScoringConfig for attributes it shares with
the source report: color, special marks, collar, distance, and date proximity.
The ranked list is then cut down to a small batch of candidates that carry a
usable photo, because every image sent to the vision model costs money.
"""

import logging
from urllib.parse import urlparse

from petmatch.core.config import ScoringConfig
from petmatch.core.schemas import Report, ScoredCandidate
from petmatch.pipeline.geo import distance_km

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH = 8
DEFAULT_MIN_PHOTO_LENGTH = 100


def has_usable_photo(report: Report, min_length: int = DEFAULT_MIN_PHOTO_LENGTH) -> bool:
    """Return True if the report's first photo looks like a real image reference.

    Remote URLs need a host; inline images (data URLs or raw base64) must be
    longer than ``min_length`` characters to rule out placeholders.
    """
    photo = report.primary_photo.strip()
    if not photo:
        return False
    if photo.startswith(("http://", "https://")):
        return bool(urlparse(photo).netloc)
    return len(photo) > min_length


def _color_matches(a: str, b: str) -> bool:
    a, b = a.strip().lower(), b.strip().lower()
    return bool(a and b) and (a in b or b in a)


def _mark_words(text: str, min_length: int) -> set[str]:
    return {w for w in text.lower().split() if len(w) >= min_length}


def _distance_bonus(source: Report, candidate: Report, config: ScoringConfig) -> float:
    if not (source.has_coordinates and candidate.has_coordinates):
        return 0.0
    d = distance_km(source, candidate)
    if d < config.near_km:
        return config.distance_bonus_near
    if d < config.mid_km:
        return config.distance_bonus_mid
    if d < config.far_km:
        return config.distance_bonus_far
    return 0.0


def score_candidate(
    source: Report,
    candidate: Report,
    config: ScoringConfig | None = None,
) -> ScoredCandidate:
    """Score how similar ``candidate`` looks to ``source`` on paper.

    Args:
        source: The report that started the search.
        candidate: An eligible report of the opposite kind.
        config: Bonus weights. Defaults to ScoringConfig().

    Returns:
        ScoredCandidate wrapping the candidate with a non-negative score.
    """
    config = config or ScoringConfig()
    score = 0.0

    if _color_matches(candidate.color, source.color):
        score += config.color_match_bonus

    source_marks = _mark_words(source.special_marks, config.min_mark_word_length)
    candidate_marks = _mark_words(candidate.special_marks, config.min_mark_word_length)
    if source_marks & candidate_marks:
        score += config.marks_match_bonus

    if candidate.has_collar == source.has_collar:
        score += config.collar_match_bonus

    score += _distance_bonus(source, candidate, config)

    gap = abs(candidate.posted_at - source.reference_date)
    if gap.total_seconds() < config.date_proximity_days * 86400:
        score += config.date_proximity_bonus

    return ScoredCandidate(report=candidate, score=max(0.0, score))


def score_candidates(
    source: Report,
    candidates: list[Report],
    config: ScoringConfig | None = None,
) -> list[ScoredCandidate]:
    """Score a batch of candidates, sorted by score desc. Ties keep input order."""
    scored = [score_candidate(source, c, config) for c in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def rank_and_cap(
    source: Report,
    eligible: list[Report],
    config: ScoringConfig | None = None,
    max_batch: int = DEFAULT_MAX_BATCH,
    min_photo_length: int = DEFAULT_MIN_PHOTO_LENGTH,
) -> list[Report]:
    """Return the top ``max_batch`` candidates with a usable photo, best first."""
    scored = score_candidates(source, eligible, config)
    with_photos = [s for s in scored if has_usable_photo(s.report, min_photo_length)]
    batch = [s.report for s in with_photos[:max_batch]]

    skipped = len(scored) - len(with_photos)
    if skipped:
        logger.debug("rank_and_cap: %d candidates skipped for missing photos", skipped)
    if batch:
        logger.debug(
            "rank_and_cap: top scores %s",
            [(s.report.id, s.score) for s in with_photos[:max_batch]],
        )
    return batch
