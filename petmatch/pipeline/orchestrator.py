"""Orchestrator: wires filter chain, ranker, visual comparator, and notifications.

Data flow:
  1. Photo gate: the source needs a usable photo
  2. Filter chain → eligible candidates
  3. Ranker → capped batch with photos
  4. Comparator (the only slow step) → match results
  5. Sort results by confidence
  6. Notification emitter → saved notifications
"""

import json
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from datetime import datetime

from petmatch.core.clock import Clock, utc_now
from petmatch.core.config import Settings
from petmatch.core.db import SqliteNotificationStore, get_report, get_reports_by_kind, insert_search_run
from petmatch.core.errors import ComparisonFailedError, MissingPhotoError
from petmatch.core.schemas import MatchResult, Notification, Report
from petmatch.pipeline.matcher import select_eligible
from petmatch.pipeline.notifier import NotificationSink, emit
from petmatch.pipeline.scorer import has_usable_photo, rank_and_cap

logger = logging.getLogger(__name__)

Comparator = Callable[[Report, list[Report]], Awaitable[list[MatchResult]]]


class SearchOutcome:
    """Result of one search: every comparator verdict plus the notifications sent.

    ``no_candidates`` is True when nothing was eligible to compare, which is
    different from the comparator finding no match among the candidates.
    """

    def __init__(
        self,
        results: list[MatchResult],
        notified: list[Notification],
        eligible_count: int = 0,
        batch_ids: list[str] | None = None,
        no_candidates: bool = False,
    ) -> None:
        self.results = results
        self.notified = notified
        self.eligible_count = eligible_count
        self.batch_ids = batch_ids or []
        self.no_candidates = no_candidates

    @property
    def best(self) -> MatchResult | None:
        return self.results[0] if self.results else None


async def run_search(
    source: Report,
    pool: list[Report],
    search_radius_km: float,
    compare: Comparator,
    *,
    save: NotificationSink | None = None,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> SearchOutcome:
    """Find likely matches for ``source`` among ``pool`` and notify the lost pet's owner.

    Raises:
        MissingPhotoError: The source has no usable photo.
        ComparisonFailedError: The comparator failed. Nothing is notified.
    """
    settings = settings or Settings()
    matching = settings.matching

    # Step 1: Photo gate
    if not has_usable_photo(source, matching.min_photo_length):
        raise MissingPhotoError(source.id)

    # Step 2: Filter chain
    eligible = select_eligible(source, pool, search_radius_km, settings.filters, clock)
    logger.info(
        "Report '%s' (%s %s): %d of %d candidates eligible within %.0f km",
        source.id, source.kind.value, source.species.value,
        len(eligible), len(pool), search_radius_km,
    )

    # Step 3: Rank and cap
    batch = rank_and_cap(
        source,
        eligible,
        settings.scoring,
        max_batch=matching.max_batch,
        min_photo_length=matching.min_photo_length,
    )

    # Step 4: Nothing to compare
    if not batch:
        logger.info("No eligible candidates for '%s'; comparator not called", source.id)
        return SearchOutcome(results=[], notified=[], eligible_count=len(eligible), no_candidates=True)

    # Step 5: Visual comparison
    logger.info("Comparing '%s' against %d candidate(s)", source.id, len(batch))
    try:
        results = await compare(source, batch)
    except ComparisonFailedError:
        raise
    except Exception as e:
        msg = f"Visual comparison failed: {e}"
        raise ComparisonFailedError(msg) from e

    # Step 6: Sort by confidence
    results = sorted(results, key=lambda r: r.confidence, reverse=True)

    # Step 7: Notify
    notified = await emit(
        source,
        batch,
        results,
        save,
        threshold=matching.notify_threshold,
        clock=clock,
        max_reasoning_chars=matching.max_reasoning_chars,
    )

    logger.info(
        "Search '%s': %d eligible, %d compared, %d results, %d notified",
        source.id, len(eligible), len(batch), len(results), len(notified),
    )

    return SearchOutcome(
        results=results,
        notified=notified,
        eligible_count=len(eligible),
        batch_ids=[c.id for c in batch],
    )


async def run_search_for_report(
    conn: sqlite3.Connection,
    report_id: str,
    search_radius_km: float,
    compare: Comparator,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> SearchOutcome:
    """Run a search for a stored report against a snapshot of the store.

    Notifications go to the notifications table and every attempt is recorded
    in search_runs, including failed ones.

    Raises:
        LookupError: No report with ``report_id`` exists.
    """
    source = get_report(conn, report_id)
    if source is None:
        msg = f"Report not found: {report_id}"
        raise LookupError(msg)

    pool = get_reports_by_kind(conn, source.kind.opposite)
    started_at = datetime.now()
    outcome: SearchOutcome | None = None
    error: str | None = None

    try:
        outcome = await run_search(
            source,
            pool,
            search_radius_km,
            compare,
            save=SqliteNotificationStore(conn),
            settings=settings,
            clock=clock,
        )
        return outcome
    except Exception as e:
        error = str(e)
        raise
    finally:
        insert_search_run(
            conn,
            source_report_id=source.id,
            radius_km=search_radius_km,
            eligible_count=outcome.eligible_count if outcome else 0,
            batch_count=len(outcome.batch_ids) if outcome else 0,
            result_count=len(outcome.results) if outcome else 0,
            notified_count=len(outcome.notified) if outcome else 0,
            started_at=started_at,
            finished_at=datetime.now(),
            error=error,
        )


def export_outcome_json(source: Report, outcome: SearchOutcome, candidates: list[Report]) -> str:
    """Export a search outcome as a JSON string, joining results to candidate details."""
    by_id = {c.id: c for c in candidates}
    data = {
        "source_id": source.id,
        "kind": source.kind.value,
        "eligible_count": outcome.eligible_count,
        "no_candidates": outcome.no_candidates,
        "results": [
            {
                "id": r.id,
                "confidence": r.confidence,
                "reasoning": r.reasoning,
                "location": by_id[r.id].location if r.id in by_id else "",
                "contact": by_id[r.id].contact if r.id in by_id else "",
            }
            for r in outcome.results
        ],
        "notified": [n.model_dump(mode="json") for n in outcome.notified],
    }
    return json.dumps(data, indent=2)
