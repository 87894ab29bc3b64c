"""Filter chain selecting which opposite-kind reports are eligible for comparison.

Filter order:
  1. OppositeKindFilter: drop the source itself and same-kind reports
  2. ActiveStatusFilter: resolved reports are never offered
  3. SpeciesFilter: same species as the source
  4. TemporalWindowFilter: asymmetric window, depends on search direction
  5. RadiusFilter: only when the source has coordinates

Every filter is pure and preserves input order.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from petmatch.core.clock import Clock, utc_now
from petmatch.core.config import FilterConfig
from petmatch.core.schemas import Report, ReportKind, ReportStatus
from petmatch.pipeline.geo import distance_km

logger = logging.getLogger(__name__)

# A filter is a callable that takes reports and returns a subset.
Filter = Callable[[list[Report]], list[Report]]


def _log_removed(name: str, before: int, after: int) -> None:
    if before != after:
        logger.debug("%s: removed %d candidates", name, before - after)


class OppositeKindFilter:
    """Keep only reports of the opposite kind, never the source report itself."""

    def __init__(self, source: Report) -> None:
        self._source_id = source.id
        self._wanted = source.kind.opposite

    def __call__(self, candidates: list[Report]) -> list[Report]:
        result = [c for c in candidates if c.kind is self._wanted and c.id != self._source_id]
        _log_removed("OppositeKindFilter", len(candidates), len(result))
        return result


class ActiveStatusFilter:
    """Remove resolved reports."""

    def __call__(self, candidates: list[Report]) -> list[Report]:
        result = [c for c in candidates if c.status is ReportStatus.ACTIVE]
        _log_removed("ActiveStatusFilter", len(candidates), len(result))
        return result


class SpeciesFilter:
    """Keep only candidates of the same species as the source."""

    def __init__(self, source: Report) -> None:
        self._species = source.species

    def __call__(self, candidates: list[Report]) -> list[Report]:
        result = [c for c in candidates if c.species is self._species]
        _log_removed("SpeciesFilter", len(candidates), len(result))
        return result


class TemporalWindowFilter:
    """Keep candidates posted inside the search window. Bounds are inclusive.

    Found source (searching lost reports): the lost report must be at most
    ``max_age_days`` old and posted no later than the found report.

    Lost source (searching found reports): the found report must be posted no
    earlier than ``lost_buffer_days`` before the loss date (falling back to the
    posting date) and be at most ``max_age_days`` old.
    """

    def __init__(self, source: Report, config: FilterConfig, now: datetime) -> None:
        self._source = source
        self._oldest = now - timedelta(days=config.max_age_days)
        self._lost_buffer = timedelta(days=config.lost_buffer_days)

    def __call__(self, candidates: list[Report]) -> list[Report]:
        result = [c for c in candidates if self._in_window(c.posted_at)]
        _log_removed("TemporalWindowFilter", len(candidates), len(result))
        return result

    def _in_window(self, posted_at: datetime) -> bool:
        if posted_at < self._oldest:
            return False
        if self._source.kind is ReportKind.FOUND:
            return posted_at <= self._source.posted_at
        return posted_at >= self._source.reference_date - self._lost_buffer


class RadiusFilter:
    """Keep candidates within ``radius_km`` of the source.

    No-op when the source has no coordinates. When it does, candidates without
    coordinates are removed.
    """

    def __init__(self, source: Report, radius_km: float) -> None:
        self._origin = source.coordinates
        self._radius_km = radius_km

    def __call__(self, candidates: list[Report]) -> list[Report]:
        if self._origin is None:
            return candidates
        origin = self._origin
        result = [
            c for c in candidates
            if c.has_coordinates and distance_km(origin, c) <= self._radius_km
        ]
        _log_removed("RadiusFilter", len(candidates), len(result))
        return result


def run_filter_chain(
    candidates: list[Report],
    filters: list[Filter],
) -> list[Report]:
    """Apply filters in order, returning the surviving candidates."""
    result = candidates
    for f in filters:
        result = f(result)
    return result


def build_filters(
    source: Report,
    search_radius_km: float,
    config: FilterConfig,
    now: datetime,
) -> list[Filter]:
    """Build the eligibility filter chain for one search."""
    return [
        OppositeKindFilter(source),
        ActiveStatusFilter(),
        SpeciesFilter(source),
        TemporalWindowFilter(source, config, now),
        RadiusFilter(source, search_radius_km),
    ]


def select_eligible(
    source: Report,
    pool: list[Report],
    search_radius_km: float,
    config: FilterConfig | None = None,
    clock: Clock = utc_now,
) -> list[Report]:
    """Narrow ``pool`` to the reports eligible for comparison with ``source``.

    Empty input or an empty result is valid and returns an empty list.
    """
    filters = build_filters(source, search_radius_km, config or FilterConfig(), clock())
    eligible = run_filter_chain(pool, filters)
    logger.debug(
        "select_eligible: %d of %d candidates eligible for '%s'",
        len(eligible), len(pool), source.id,
    )
    return eligible
