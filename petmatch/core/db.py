"""SQLite database layer for reports, notifications, and search run tracking."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from petmatch.core.errors import NotificationPersistError
from petmatch.core.schemas import Notification, Report, ReportKind, ReportStatus

logger = logging.getLogger(__name__)

_REPORTS_TABLE = """
CREATE TABLE IF NOT EXISTS reports (
    id              TEXT    PRIMARY KEY,
    user_id         TEXT    NOT NULL,
    kind            TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'active',
    species         TEXT    NOT NULL,
    pet_name        TEXT    NOT NULL DEFAULT '',
    breed           TEXT    NOT NULL DEFAULT '',
    color           TEXT    NOT NULL DEFAULT '',
    special_marks   TEXT    NOT NULL DEFAULT '',
    has_collar      INTEGER NOT NULL DEFAULT 0,
    collar_color    TEXT    NOT NULL DEFAULT '',
    is_chipped      INTEGER,
    kept_by_finder  INTEGER,
    description     TEXT    NOT NULL DEFAULT '',
    lat             REAL,
    lng             REAL,
    location        TEXT    NOT NULL DEFAULT '',
    posted_at       TEXT    NOT NULL,
    lost_at         TEXT,
    photos_json     TEXT    NOT NULL DEFAULT '[]',
    contact         TEXT    NOT NULL DEFAULT ''
);
"""

_REPORTS_KIND_INDEX = "CREATE INDEX IF NOT EXISTS idx_reports_kind ON reports (kind, status);"

_NOTIFICATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS notifications (
    id                  TEXT    PRIMARY KEY,
    user_id             TEXT    NOT NULL,
    lost_report_id      TEXT    NOT NULL,
    lost_pet_name       TEXT    NOT NULL,
    lost_pet_photo      TEXT    NOT NULL DEFAULT '',
    found_report_id     TEXT    NOT NULL,
    found_pet_location  TEXT    NOT NULL DEFAULT '',
    found_pet_photo     TEXT    NOT NULL DEFAULT '',
    confidence          REAL    NOT NULL,
    reasoning           TEXT    NOT NULL DEFAULT '',
    created_at          TEXT    NOT NULL,
    read                INTEGER NOT NULL DEFAULT 0,
    UNIQUE(user_id, lost_report_id, found_report_id)
);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    source_report_id    TEXT    NOT NULL,
    radius_km           REAL    NOT NULL,
    eligible_count      INTEGER NOT NULL,
    batch_count         INTEGER NOT NULL,
    result_count        INTEGER NOT NULL,
    notified_count      INTEGER NOT NULL,
    error               TEXT,
    started_at          TEXT    NOT NULL,
    finished_at         TEXT    NOT NULL
);
"""

_REPORT_COLUMNS = (
    "id", "user_id", "kind", "status", "species", "pet_name", "breed", "color",
    "special_marks", "has_collar", "collar_color", "is_chipped", "kept_by_finder",
    "description", "lat", "lng", "location", "posted_at", "lost_at", "photos_json",
    "contact",
)

# Owner, kind and species are checked before the upsert; status belongs to set_report_status.
_FIXED_ON_UPDATE = frozenset({"id", "user_id", "kind", "species", "status"})


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_REPORTS_TABLE)
    conn.execute(_REPORTS_KIND_INDEX)
    conn.execute(_NOTIFICATIONS_TABLE)
    conn.execute(_SEARCH_RUNS_TABLE)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def _optional_bool(value: bool | None) -> int | None:
    return None if value is None else int(value)


def _report_params(report: Report) -> tuple[Any, ...]:
    return (
        report.id,
        report.user_id,
        report.kind.value,
        report.status.value,
        report.species.value,
        report.pet_name,
        report.breed,
        report.color,
        report.special_marks,
        int(report.has_collar),
        report.collar_color,
        _optional_bool(report.is_chipped),
        _optional_bool(report.kept_by_finder),
        report.description,
        report.lat,
        report.lng,
        report.location,
        report.posted_at.isoformat(),
        report.lost_at.isoformat() if report.lost_at else None,
        json.dumps(report.photos),
        report.contact,
    )


def _row_to_report(row: sqlite3.Row) -> Report:
    return Report(
        id=row["id"],
        user_id=row["user_id"],
        kind=row["kind"],
        status=row["status"],
        species=row["species"],
        pet_name=row["pet_name"],
        breed=row["breed"],
        color=row["color"],
        special_marks=row["special_marks"],
        has_collar=bool(row["has_collar"]),
        collar_color=row["collar_color"],
        is_chipped=None if row["is_chipped"] is None else bool(row["is_chipped"]),
        kept_by_finder=None if row["kept_by_finder"] is None else bool(row["kept_by_finder"]),
        description=row["description"],
        lat=row["lat"],
        lng=row["lng"],
        location=row["location"],
        posted_at=datetime.fromisoformat(row["posted_at"]),
        lost_at=datetime.fromisoformat(row["lost_at"]) if row["lost_at"] else None,
        photos=json.loads(row["photos_json"] or "[]"),
        contact=row["contact"],
    )


def upsert_report(conn: sqlite3.Connection, report: Report) -> bool:
    """Insert or update a report.

    Returns True if a new row was inserted, False if an existing one was updated.
    An update keeps the stored status; only the owner changes it, through
    ``set_report_status``.
    Raises ValueError if the update would change the report's owner, kind or species.
    """
    existing = get_report(conn, report.id)
    if existing is not None and (
        existing.user_id != report.user_id
        or existing.kind is not report.kind
        or existing.species is not report.species
    ):
        msg = f"Report '{report.id}': owner, kind and species cannot change after creation"
        raise ValueError(msg)

    placeholders = ", ".join("?" for _ in _REPORT_COLUMNS)
    updates = ", ".join(f"{col} = excluded.{col}" for col in _REPORT_COLUMNS if col not in _FIXED_ON_UPDATE)
    conn.execute(
        f"""
        INSERT INTO reports ({", ".join(_REPORT_COLUMNS)})
        VALUES ({placeholders})
        ON CONFLICT(id) DO UPDATE SET {updates}
        """,
        _report_params(report),
    )
    conn.commit()
    return existing is None


def get_report(conn: sqlite3.Connection, report_id: str) -> Report | None:
    row = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
    return _row_to_report(row) if row is not None else None


def get_reports_by_kind(conn: sqlite3.Connection, kind: ReportKind) -> list[Report]:
    """Snapshot of all reports of one kind, newest first."""
    rows = conn.execute(
        "SELECT * FROM reports WHERE kind = ? ORDER BY posted_at DESC, id",
        (kind.value,),
    ).fetchall()
    return [_row_to_report(row) for row in rows]


def set_report_status(
    conn: sqlite3.Connection,
    report_id: str,
    user_id: str,
    status: ReportStatus,
) -> Report | None:
    """Change a report's status. Only the owner may do this.

    Returns the updated report, or None if no such report exists.
    Raises PermissionError if ``user_id`` does not own the report.
    """
    report = get_report(conn, report_id)
    if report is None:
        return None
    if report.user_id != user_id:
        msg = f"User '{user_id}' cannot change the status of report '{report_id}'"
        raise PermissionError(msg)
    conn.execute("UPDATE reports SET status = ? WHERE id = ?", (status.value, report_id))
    conn.commit()
    logger.info("Report '%s' status %s -> %s", report_id, report.status.value, status.value)
    return report.model_copy(update={"status": status})


def toggle_report_status(conn: sqlite3.Connection, report_id: str, user_id: str) -> Report | None:
    """Flip active <-> resolved for the owner's report."""
    report = get_report(conn, report_id)
    if report is None:
        return None
    new_status = (
        ReportStatus.ACTIVE if report.status is ReportStatus.RESOLVED else ReportStatus.RESOLVED
    )
    return set_report_status(conn, report_id, user_id, new_status)


def load_reports_file(path: str | Path) -> list[Report]:
    """Read a list of reports from a JSON or YAML file."""
    path = Path(path)
    if not path.exists():
        msg = f"Reports file not found: {path}"
        raise FileNotFoundError(msg)
    text = path.read_text()
    raw = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get("reports", [])
    if not isinstance(raw, list):
        msg = f"Expected a list of reports in {path}"
        raise ValueError(msg)
    return [Report.model_validate(item) for item in raw]


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        lost_report_id=row["lost_report_id"],
        lost_pet_name=row["lost_pet_name"],
        lost_pet_photo=row["lost_pet_photo"],
        found_report_id=row["found_report_id"],
        found_pet_location=row["found_pet_location"],
        found_pet_photo=row["found_pet_photo"],
        confidence=row["confidence"],
        reasoning=row["reasoning"],
        created_at=datetime.fromisoformat(row["created_at"]),
        read=bool(row["read"]),
    )


def save_notification(conn: sqlite3.Connection, notification: Notification) -> Notification:
    """Insert a notification, or refresh the one already stored for the same pair.

    A pair is (recipient, lost report, found report). On repeat the payload is
    refreshed; the original id and read flag are kept.
    """
    n = notification
    conn.execute(
        """
        INSERT INTO notifications
            (id, user_id, lost_report_id, lost_pet_name, lost_pet_photo,
             found_report_id, found_pet_location, found_pet_photo,
             confidence, reasoning, created_at, read)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id, lost_report_id, found_report_id)
        DO UPDATE SET
            lost_pet_name = excluded.lost_pet_name,
            found_pet_location = excluded.found_pet_location,
            confidence = excluded.confidence,
            reasoning = excluded.reasoning,
            created_at = excluded.created_at
        """,
        (
            n.id,
            n.user_id,
            n.lost_report_id,
            n.lost_pet_name,
            n.lost_pet_photo,
            n.found_report_id,
            n.found_pet_location,
            n.found_pet_photo,
            n.confidence,
            n.reasoning,
            n.created_at.isoformat(),
            int(n.read),
        ),
    )
    conn.commit()
    row = conn.execute(
        """
        SELECT * FROM notifications
        WHERE user_id = ? AND lost_report_id = ? AND found_report_id = ?
        """,
        n.pair_key,
    ).fetchone()
    return _row_to_notification(row)


def list_notifications(
    conn: sqlite3.Connection,
    user_id: str,
    unread_only: bool = False,
) -> list[Notification]:
    """Return a user's notifications, newest first."""
    query = "SELECT * FROM notifications WHERE user_id = ?"
    if unread_only:
        query += " AND read = 0"
    query += " ORDER BY created_at DESC"
    rows = conn.execute(query, (user_id,)).fetchall()
    return [_row_to_notification(row) for row in rows]


def count_unread(conn: sqlite3.Connection, user_id: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM notifications WHERE user_id = ? AND read = 0",
        (user_id,),
    ).fetchone()
    return int(row["n"])


def mark_notification_read(conn: sqlite3.Connection, notification_id: str, user_id: str) -> bool:
    """Mark a notification read. Only its recipient may do this.

    Returns False if the notification does not exist.
    Raises PermissionError if ``user_id`` is not the recipient.
    """
    row = conn.execute(
        "SELECT user_id FROM notifications WHERE id = ?", (notification_id,)
    ).fetchone()
    if row is None:
        return False
    if row["user_id"] != user_id:
        msg = f"Notification '{notification_id}' is not addressed to user '{user_id}'"
        raise PermissionError(msg)
    conn.execute("UPDATE notifications SET read = 1 WHERE id = ?", (notification_id,))
    conn.commit()
    return True


class SqliteNotificationStore:
    """Notification sink backed by the notifications table.

    Writes run on the calling thread: the connection comes from ``init_db`` and
    is bound to the thread that opened it.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def save(self, notification: Notification) -> Notification:
        try:
            return save_notification(self._conn, notification)
        except sqlite3.Error as e:
            raise NotificationPersistError(notification.id, str(e)) from e


# ---------------------------------------------------------------------------
# Search runs
# ---------------------------------------------------------------------------


def insert_search_run(
    conn: sqlite3.Connection,
    source_report_id: str,
    radius_km: float,
    eligible_count: int,
    batch_count: int,
    result_count: int,
    notified_count: int,
    started_at: datetime,
    finished_at: datetime,
    error: str | None = None,
) -> int:
    """Record a completed (or failed) search run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO search_runs
            (source_report_id, radius_km, eligible_count, batch_count,
             result_count, notified_count, error, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            source_report_id,
            radius_km,
            eligible_count,
            batch_count,
            result_count,
            notified_count,
            error,
            started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0
