"""Integration test: full search pipeline with a mock comparator (no vision API)."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from petmatch.core.clock import fixed_clock
from petmatch.core.config import MatchingConfig, Settings
from petmatch.core.db import (
    get_report,
    init_db,
    list_notifications,
    mark_notification_read,
    set_report_status,
    upsert_report,
)
from petmatch.core.errors import ComparisonFailedError, MissingPhotoError
from petmatch.core.schemas import MatchResult, Notification, Report, ReportKind, ReportStatus, Species
from petmatch.pipeline.matcher import select_eligible
from petmatch.pipeline.orchestrator import (
    SearchOutcome,
    export_outcome_json,
    run_search,
    run_search_for_report,
)
from petmatch.pipeline.scorer import rank_and_cap, score_candidate

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
CLOCK = fixed_clock(NOW)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _found_source(**kw: object) -> Report:
    defaults: dict[str, object] = {
        "id": "found-1",
        "user_id": "finder",
        "kind": ReportKind.FOUND,
        "species": Species.DOG,
        "color": "golden",
        "lat": 55.75,
        "lng": 37.61,
        "location": "Gorky Park",
        "posted_at": NOW,
        "photos": ["https://example.com/found-1.jpg"],
    }
    defaults.update(kw)
    return Report(**defaults)  # type: ignore[arg-type]


def _lost(id: str = "lost-1", **kw: object) -> Report:
    defaults: dict[str, object] = {
        "id": id,
        "user_id": f"owner-{id}",
        "kind": ReportKind.LOST,
        "species": Species.DOG,
        "pet_name": "Buddy",
        "color": "golden",
        "lat": 55.76,
        "lng": 37.62,
        "posted_at": NOW - timedelta(days=2),
        "photos": [f"https://example.com/{id}.jpg"],
    }
    defaults.update(kw)
    return Report(**defaults)  # type: ignore[arg-type]


def _comparator(*results: MatchResult) -> AsyncMock:
    return AsyncMock(return_value=list(results))


class RecordingSink:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.saved: list[Notification] = []
        self._fail_for = fail_for or set()

    async def save(self, notification: Notification) -> Notification:
        if notification.lost_report_id in self._fail_for:
            raise RuntimeError("write failed")
        self.saved.append(notification)
        return notification


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_a_nearby_matching_color_is_ranked(self) -> None:
        source = _found_source()
        pool = [_lost()]

        eligible = select_eligible(source, pool, 10, clock=CLOCK)
        batch = rank_and_cap(source, eligible)

        assert len(eligible) == 1
        assert len(batch) == 1
        # color (3) plus the 1-5 km distance band (2)
        assert score_candidate(source, batch[0]).score >= 5.0

    async def test_b_other_species_never_reaches_comparator(self) -> None:
        compare = _comparator()
        outcome = await run_search(
            _found_source(), [_lost(species=Species.CAT)], 10, compare, clock=CLOCK,
        )

        assert outcome.results == []
        assert outcome.notified == []
        assert outcome.no_candidates is True
        compare.assert_not_awaited()

    async def test_c_confident_match_notifies_lost_owner(self) -> None:
        compare = _comparator(MatchResult(id="lost-1", confidence=75, reasoning="same ears"))
        sink = RecordingSink()

        outcome = await run_search(_found_source(), [_lost()], 10, compare, save=sink, clock=CLOCK)

        assert len(outcome.notified) == 1
        n = outcome.notified[0]
        assert n.user_id == "owner-lost-1"
        assert n.lost_report_id == "lost-1"
        assert n.found_report_id == "found-1"
        assert n.found_pet_location == "Gorky Park"
        assert n.created_at == NOW
        assert sink.saved == outcome.notified

    async def test_d_low_confidence_shown_but_not_notified(self) -> None:
        compare = _comparator(MatchResult(id="lost-1", confidence=40, reasoning="different tail"))
        sink = RecordingSink()

        outcome = await run_search(_found_source(), [_lost()], 10, compare, save=sink, clock=CLOCK)

        assert [r.id for r in outcome.results] == ["lost-1"]
        assert outcome.notified == []
        assert sink.saved == []


# ---------------------------------------------------------------------------
# Orchestrator behaviour
# ---------------------------------------------------------------------------


class TestRunSearch:
    async def test_missing_source_photo_fails_before_filtering(self) -> None:
        compare = _comparator()
        source = _found_source(photos=["data:image/jpeg;base64,AAAA"])
        with pytest.raises(MissingPhotoError, match="found-1"):
            await run_search(source, [_lost()], 10, compare, clock=CLOCK)
        compare.assert_not_awaited()

    async def test_comparator_failure_raises_and_notifies_nobody(self) -> None:
        compare = AsyncMock(side_effect=RuntimeError("model timeout"))
        sink = RecordingSink()
        with pytest.raises(ComparisonFailedError, match="model timeout"):
            await run_search(_found_source(), [_lost()], 10, compare, save=sink, clock=CLOCK)
        assert sink.saved == []

    async def test_comparison_failed_error_passes_through(self) -> None:
        error = ComparisonFailedError("All vision models failed")
        compare = AsyncMock(side_effect=error)
        with pytest.raises(ComparisonFailedError) as exc_info:
            await run_search(_found_source(), [_lost()], 10, compare, clock=CLOCK)
        assert exc_info.value is error

    async def test_results_sorted_by_confidence(self) -> None:
        pool = [_lost("a"), _lost("b"), _lost("c")]
        compare = _comparator(
            MatchResult(id="a", confidence=20),
            MatchResult(id="b", confidence=90),
            MatchResult(id="c", confidence=65),
        )
        outcome = await run_search(_found_source(), pool, 10, compare, clock=CLOCK)

        assert [r.id for r in outcome.results] == ["b", "c", "a"]
        assert outcome.best is not None and outcome.best.id == "b"
        assert [n.lost_report_id for n in outcome.notified] == ["b", "c"]

    async def test_batch_capped_with_large_pool(self) -> None:
        pool = [_lost(f"lost-{i}") for i in range(1000)]
        compare = _comparator()

        outcome = await run_search(_found_source(), pool, 10, compare, clock=CLOCK)

        batch = compare.await_args.args[1]
        assert len(batch) == 8
        assert outcome.eligible_count == 1000
        assert outcome.batch_ids == [c.id for c in batch]

    async def test_batch_size_from_settings(self) -> None:
        pool = [_lost(f"lost-{i}") for i in range(10)]
        compare = _comparator()
        settings = Settings(matching=MatchingConfig(max_batch=3))

        await run_search(_found_source(), pool, 10, compare, settings=settings, clock=CLOCK)

        assert len(compare.await_args.args[1]) == 3

    async def test_ranking_is_deterministic(self) -> None:
        pool = [
            _lost(f"lost-{i}", color="golden" if i % 3 else "black", lat=55.75 + i * 0.005)
            for i in range(30)
        ]
        first, second = _comparator(), _comparator()
        await run_search(_found_source(), pool, 30, first, clock=CLOCK)
        await run_search(_found_source(), pool, 30, second, clock=CLOCK)
        assert [c.id for c in first.await_args.args[1]] == [c.id for c in second.await_args.args[1]]

    async def test_eligible_without_photos_reports_no_candidates(self) -> None:
        compare = _comparator()
        outcome = await run_search(_found_source(), [_lost(photos=[])], 10, compare, clock=CLOCK)
        assert outcome.no_candidates is True
        assert outcome.eligible_count == 1
        compare.assert_not_awaited()

    async def test_persistence_failure_does_not_stop_others(self) -> None:
        pool = [_lost("a"), _lost("b")]
        compare = _comparator(
            MatchResult(id="a", confidence=90),
            MatchResult(id="b", confidence=85),
        )
        sink = RecordingSink(fail_for={"a"})

        outcome = await run_search(_found_source(), pool, 10, compare, save=sink, clock=CLOCK)

        assert [n.lost_report_id for n in outcome.notified] == ["b"]
        assert [r.id for r in outcome.results] == ["a", "b"]

    async def test_self_match_not_notified(self) -> None:
        pool = [_lost("mine", user_id="finder")]
        compare = _comparator(MatchResult(id="mine", confidence=99))
        outcome = await run_search(_found_source(), pool, 10, compare, clock=CLOCK)
        assert outcome.notified == []

    async def test_lost_source_searches_found_reports(self) -> None:
        source = _lost("lost-1", lost_at=NOW - timedelta(days=3))
        pool = [_found_source(id="found-1", posted_at=NOW - timedelta(days=1))]
        compare = _comparator(MatchResult(id="found-1", confidence=80))

        outcome = await run_search(source, pool, 10, compare, clock=CLOCK)

        assert len(outcome.notified) == 1
        assert outcome.notified[0].user_id == "owner-lost-1"
        assert outcome.notified[0].lost_pet_name == "Buddy"


# ---------------------------------------------------------------------------
# Store-backed search
# ---------------------------------------------------------------------------


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    conn = init_db(tmp_path / "test.db")
    upsert_report(conn, _found_source())
    upsert_report(conn, _lost("lost-1"))
    upsert_report(conn, _lost("lost-cat", species=Species.CAT))
    return conn


class TestRunSearchForReport:
    async def test_persists_notification_and_run(self, db) -> None:  # type: ignore[no-untyped-def]
        compare = _comparator(MatchResult(id="lost-1", confidence=82, reasoning="same blaze"))

        outcome = await run_search_for_report(db, "found-1", 10, compare, clock=CLOCK)

        assert isinstance(outcome, SearchOutcome)
        stored = list_notifications(db, "owner-lost-1")
        assert len(stored) == 1
        assert stored[0].confidence == 82
        run = db.execute("SELECT * FROM search_runs").fetchone()
        assert run["source_report_id"] == "found-1"
        assert run["eligible_count"] == 1
        assert run["notified_count"] == 1
        assert run["error"] is None

    async def test_rerun_updates_instead_of_duplicating(self, db) -> None:  # type: ignore[no-untyped-def]
        first = _comparator(MatchResult(id="lost-1", confidence=70, reasoning="maybe"))
        second = _comparator(MatchResult(id="lost-1", confidence=91, reasoning="surely"))

        first_outcome = await run_search_for_report(db, "found-1", 10, first, clock=CLOCK)
        mark_notification_read(db, first_outcome.notified[0].id, "owner-lost-1")
        second_outcome = await run_search_for_report(db, "found-1", 10, second, clock=CLOCK)

        stored = list_notifications(db, "owner-lost-1")
        assert len(stored) == 1
        assert stored[0].confidence == 91
        assert stored[0].reasoning == "surely"
        assert second_outcome.notified == stored
        assert second_outcome.notified[0].id == first_outcome.notified[0].id
        assert second_outcome.notified[0].read is True

    async def test_resolved_candidates_skipped(self, db) -> None:  # type: ignore[no-untyped-def]
        set_report_status(db, "lost-1", "owner-lost-1", ReportStatus.RESOLVED)
        compare = _comparator()

        outcome = await run_search_for_report(db, "found-1", 10, compare, clock=CLOCK)

        assert outcome.no_candidates is True
        compare.assert_not_awaited()

    async def test_unknown_report(self, db) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(LookupError, match="nope"):
            await run_search_for_report(db, "nope", 10, _comparator(), clock=CLOCK)

    async def test_failed_run_recorded(self, db) -> None:  # type: ignore[no-untyped-def]
        compare = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        with pytest.raises(ComparisonFailedError):
            await run_search_for_report(db, "found-1", 10, compare, clock=CLOCK)
        run = db.execute("SELECT * FROM search_runs").fetchone()
        assert "quota exceeded" in run["error"]
        assert list_notifications(db, "owner-lost-1") == []


class TestExportOutcomeJson:
    async def test_export(self, db) -> None:  # type: ignore[no-untyped-def]
        compare = _comparator(MatchResult(id="lost-1", confidence=82, reasoning="same blaze"))
        outcome = await run_search_for_report(db, "found-1", 10, compare, clock=CLOCK)
        source = get_report(db, "found-1")
        candidate = get_report(db, "lost-1")
        assert source is not None and candidate is not None

        data = json.loads(export_outcome_json(source, outcome, [candidate]))

        assert data["source_id"] == "found-1"
        assert data["kind"] == "found"
        assert data["results"][0]["id"] == "lost-1"
        assert data["results"][0]["confidence"] == 82
        assert data["notified"][0]["user_id"] == "owner-lost-1"
