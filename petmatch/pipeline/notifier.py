"""Turn high-confidence match results into notifications for the lost pet's owner."""

import logging
from typing import Protocol

from petmatch.core.clock import Clock, utc_now
from petmatch.core.schemas import MatchResult, Notification, Report, ReportKind

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_THRESHOLD = 60.0
DEFAULT_MAX_REASONING_CHARS = 500
UNNAMED_PET = "Unnamed"


class NotificationSink(Protocol):
    """Where notifications are persisted. ``save`` may fail per call.

    ``save`` returns the stored notification, which keeps the id and read flag
    of an earlier row for the same pair.
    """

    async def save(self, notification: Notification) -> Notification: ...


def select_notifiable(
    source: Report,
    batch: list[Report],
    results: list[MatchResult],
    threshold: float = DEFAULT_NOTIFY_THRESHOLD,
) -> list[tuple[MatchResult, Report]]:
    """Pick the results that deserve a notification, paired with their candidate.

    Pure: same inputs always give the same selection. Skips results below
    ``threshold``, ids not in ``batch``, candidates owned by the source's owner,
    candidates without an owner, and repeat results for a candidate already
    selected in this call (the first one wins).
    """
    by_id = {r.id: r for r in batch}
    selected: list[tuple[MatchResult, Report]] = []
    seen: set[str] = set()

    for result in results:
        if result.confidence < threshold:
            continue
        candidate = by_id.get(result.id)
        if candidate is None:
            logger.debug("Comparator returned unknown candidate id '%s'; skipping", result.id)
            continue
        if not candidate.user_id or candidate.user_id == source.user_id:
            continue
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        selected.append((result, candidate))

    return selected


def build_notification(
    source: Report,
    candidate: Report,
    result: MatchResult,
    clock: Clock = utc_now,
    max_reasoning_chars: int = DEFAULT_MAX_REASONING_CHARS,
) -> Notification:
    """Build the notification for one matched pair, addressed to the lost side's owner."""
    if source.kind is ReportKind.LOST:
        lost, found = source, candidate
    else:
        lost, found = candidate, source

    return Notification(
        user_id=lost.user_id,
        lost_report_id=lost.id,
        lost_pet_name=lost.pet_name.strip() or UNNAMED_PET,
        lost_pet_photo=lost.primary_photo,
        found_report_id=found.id,
        found_pet_location=found.location,
        found_pet_photo=found.primary_photo,
        confidence=result.confidence,
        reasoning=(result.reasoning or "")[:max_reasoning_chars],
        created_at=clock(),
    )


async def emit(
    source: Report,
    batch: list[Report],
    results: list[MatchResult],
    sink: NotificationSink | None,
    threshold: float = DEFAULT_NOTIFY_THRESHOLD,
    clock: Clock = utc_now,
    max_reasoning_chars: int = DEFAULT_MAX_REASONING_CHARS,
) -> list[Notification]:
    """Build and persist notifications for qualifying results.

    A failed save is logged and skipped; it never stops the others. Returns
    the saved notifications as the sink stored them (all built ones when
    ``sink`` is None).
    """
    notified: list[Notification] = []

    for result, candidate in select_notifiable(source, batch, results, threshold):
        notification = build_notification(
            source, candidate, result, clock=clock, max_reasoning_chars=max_reasoning_chars,
        )
        if sink is not None:
            try:
                notification = await sink.save(notification)
            except Exception:
                logger.warning(
                    "Failed to save notification for pair %s (confidence %.0f)",
                    notification.pair_key,
                    notification.confidence,
                    exc_info=True,
                )
                continue
        notified.append(notification)

    if notified:
        logger.info("Emitted %d notification(s) for report '%s'", len(notified), source.id)
    return notified
