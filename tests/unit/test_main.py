"""Tests for the CLI: argument parsing and subcommands against a temp store."""

import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from main import main, parse_args
from petmatch.core.db import init_db, list_notifications
from petmatch.core.schemas import MatchResult

POSTED = datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(f"database:\n  path: {tmp_path / 'pets.db'}\n")
    return path


@pytest.fixture()
def reports_file(tmp_path: Path) -> Path:
    path = tmp_path / "reports.json"
    path.write_text(json.dumps([
        {
            "id": "lost-1", "user_id": "alice", "kind": "lost", "species": "dog",
            "pet_name": "Rex", "color": "black", "lat": 55.75, "lng": 37.61,
            "posted_at": POSTED, "photos": ["https://example.com/lost-1.jpg"],
        },
        {
            "id": "found-1", "user_id": "bob", "kind": "found", "species": "dog",
            "color": "black", "lat": 55.751, "lng": 37.612, "location": "Arbat",
            "posted_at": POSTED, "photos": ["https://example.com/found-1.jpg"],
        },
    ]))
    return path


def _db_path(config_path: Path) -> Path:
    return config_path.parent / "pets.db"


class TestParseArgs:
    def test_search_defaults(self) -> None:
        args = parse_args(["search", "--report", "lost-1"])
        assert args.command == "search"
        assert args.radius is None
        assert args.dry_run is False
        assert args.config == "config/settings.yaml"

    def test_radius_must_be_positive(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["search", "--report", "lost-1", "--radius", "-3"])

    def test_status_choices(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["set-status", "--report", "r", "--user", "u", "--status", "gone"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestCommands:
    def test_import_reports(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        assert "Imported 2 reports (2 new, 0 updated)" in capsys.readouterr().out

    def test_dry_run(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        main(["search", "--report", "lost-1", "--dry-run", "--config", str(config_path)])
        out = capsys.readouterr().out
        assert "1 of 1 candidates eligible" in out
        assert "found-1" in out

    def test_search_notifies_and_lists(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        comparator = AsyncMock(return_value=[MatchResult(id="found-1", confidence=88, reasoning="same")])

        with patch("main.VisualComparator.from_config", return_value=comparator):
            main(["search", "--report", "lost-1", "--radius", "3", "--config", str(config_path)])

        conn = init_db(_db_path(config_path))
        notifications = list_notifications(conn, "alice")
        conn.close()
        assert len(notifications) == 1

        main(["notifications", "--user", "alice", "--config", str(config_path)])
        out = capsys.readouterr().out
        assert "1 notified" in out
        assert "(1 unread)" in out

        main([
            "notifications", "--user", "alice",
            "--mark-read", notifications[0].id, "--config", str(config_path),
        ])
        assert "marked read" in capsys.readouterr().out

    def test_radius_outside_options_rejected(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        with pytest.raises(SystemExit):
            main(["search", "--report", "lost-1", "--radius", "7", "--config", str(config_path)])
        assert "Radius must be one of 1, 3, 10, 30 km" in capsys.readouterr().err

    def test_set_status_by_non_owner(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        with pytest.raises(SystemExit):
            main([
                "set-status", "--report", "lost-1", "--user", "bob",
                "--status", "resolved", "--config", str(config_path),
            ])
        assert "Error:" in capsys.readouterr().err

    def test_set_status_by_owner(self, config_path: Path, reports_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        main(["import-reports", "--file", str(reports_file), "--config", str(config_path)])
        main([
            "set-status", "--report", "lost-1", "--user", "alice",
            "--status", "resolved", "--config", str(config_path),
        ])
        assert "now resolved" in capsys.readouterr().out

    def test_unknown_report(self, config_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(SystemExit):
            main(["search", "--report", "nope", "--dry-run", "--config", str(config_path)])
        assert "Report not found: nope" in capsys.readouterr().err

    def test_missing_config(self, tmp_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(SystemExit):
            main(["notifications", "--user", "a", "--config", str(tmp_path / "nope.yaml")])
        assert "Error loading config" in capsys.readouterr().err

    def test_analyze_photo(self, config_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        provider = MagicMock()
        provider.complete.return_value = '{"species": "dog", "breed": "Corgi", "color": "red"}'
        with patch("main.get_provider", return_value=provider):
            main([
                "analyze-photo", "--photo", "https://example.com/dog.jpg",
                "--provider", "openai", "--config", str(config_path),
            ])
        out = capsys.readouterr().out
        assert "Breed: Corgi" in out
