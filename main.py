"""CLI entry point for the pet match engine."""

import argparse
import asyncio
import base64
import logging
import mimetypes
import sys
from pathlib import Path

from petmatch.core.config import Settings
from petmatch.core.db import (
    count_unread,
    get_report,
    get_reports_by_kind,
    init_db,
    list_notifications,
    load_reports_file,
    mark_notification_read,
    set_report_status,
    upsert_report,
)
from petmatch.core.errors import MatchError
from petmatch.core.schemas import ReportStatus
from petmatch.pipeline.comparator import VisualComparator
from petmatch.pipeline.matcher import select_eligible
from petmatch.pipeline.orchestrator import export_outcome_json, run_search_for_report
from petmatch.pipeline.scorer import has_usable_photo, score_candidates
from petmatch.vision import available_providers, get_provider
from petmatch.vision.analyzer import analyze_photo


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        msg = f"not a number: {value!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if number <= 0:
        msg = f"must be positive: {value}"
        raise argparse.ArgumentTypeError(msg)
    return number


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Pet match engine - match lost and found pet reports",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- import-reports subcommand ---
    import_parser = subparsers.add_parser(
        "import-reports",
        help="Load lost/found reports from a JSON or YAML file into the store",
    )
    import_parser.add_argument("--file", required=True, help="Path to reports JSON/YAML file")
    _add_common(import_parser)

    # --- search subcommand ---
    search_parser = subparsers.add_parser("search", help="Search matches for one report")
    search_parser.add_argument("--report", required=True, help="ID of the report to search for")
    search_parser.add_argument(
        "--radius",
        type=_positive_float,
        help="Search radius in km (default: matching.default_radius_km)",
    )
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the ranked batch without calling the vision model",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )
    _add_common(search_parser)

    # --- notifications subcommand ---
    notif_parser = subparsers.add_parser("notifications", help="List or mark a user's notifications")
    notif_parser.add_argument("--user", required=True, help="Recipient user ID")
    notif_parser.add_argument("--mark-read", metavar="NOTIF_ID", help="Mark one notification read")
    _add_common(notif_parser)

    # --- set-status subcommand ---
    status_parser = subparsers.add_parser("set-status", help="Mark a report active or resolved")
    status_parser.add_argument("--report", required=True, help="Report ID")
    status_parser.add_argument("--user", required=True, help="ID of the report's owner")
    status_parser.add_argument(
        "--status",
        required=True,
        choices=[s.value for s in ReportStatus],
        help="New status",
    )
    _add_common(status_parser)

    # --- analyze-photo subcommand ---
    analyze_parser = subparsers.add_parser(
        "analyze-photo",
        help="Describe the pet in a photo (species, breed, color)",
    )
    analyze_parser.add_argument("--photo", required=True, help="Image file path or http(s) URL")
    analyze_parser.add_argument(
        "--provider",
        choices=available_providers(),
        help="Vision provider (default: vision.provider from settings)",
    )
    _add_common(analyze_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_photo(photo: str) -> str:
    """Return a URL as-is, or read a local image file into a data URL."""
    if photo.startswith(("http://", "https://")):
        return photo
    path = Path(photo)
    if not path.exists():
        msg = f"Photo not found: {path}"
        raise FileNotFoundError(msg)
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{data}"


def cmd_import_reports(args: argparse.Namespace, settings: Settings) -> None:
    """Handle import-reports subcommand."""
    reports = load_reports_file(args.file)
    conn = init_db(settings.database.path)
    inserted = sum(1 for r in reports if upsert_report(conn, r))
    conn.close()
    print(f"Imported {len(reports)} reports ({inserted} new, {len(reports) - inserted} updated).")


def dry_run(args: argparse.Namespace, settings: Settings, radius_km: float) -> None:
    """Print the eligible pool and ranked batch without calling the vision model."""
    conn = init_db(settings.database.path)
    source = get_report(conn, args.report)
    if source is None:
        conn.close()
        msg = f"Report not found: {args.report}"
        raise LookupError(msg)

    pool = get_reports_by_kind(conn, source.kind.opposite)
    conn.close()

    eligible = select_eligible(source, pool, radius_km, settings.filters)
    scored = score_candidates(source, eligible, settings.scoring)
    batch = [
        s for s in scored if has_usable_photo(s.report, settings.matching.min_photo_length)
    ][: settings.matching.max_batch]

    print(f"[DRY RUN] Report '{source.id}' ({source.kind.value} {source.species.value})")
    print(f"[DRY RUN] {len(eligible)} of {len(pool)} candidates eligible within {radius_km:g} km")
    if not has_usable_photo(source, settings.matching.min_photo_length):
        print("[DRY RUN] Source report has no usable photo; a real search would stop here")
    for s in batch:
        print(f"  {s.score:5.1f}  {s.report.id}  {s.report.breed or '-'} / {s.report.color or '-'}"
              f"  {s.report.location}")
    print(f"[DRY RUN] Would send {len(batch)} candidate photo(s) to '{settings.vision.provider}'")


async def run(args: argparse.Namespace, settings: Settings, radius_km: float) -> None:
    """Run the full search for one report, persisting notifications."""
    conn = init_db(settings.database.path)
    comparator = VisualComparator.from_config(settings.vision)

    try:
        outcome = await run_search_for_report(conn, args.report, radius_km, comparator, settings)
        source = get_report(conn, args.report)
        candidates = [r for r in (get_report(conn, rid) for rid in outcome.batch_ids) if r]
    finally:
        conn.close()

    if outcome.no_candidates:
        print(f"\nNo eligible candidates within {radius_km:g} km "
              f"({outcome.eligible_count} eligible without usable photos).")
        return

    print(f"\nSearch complete: {outcome.eligible_count} eligible, "
          f"{len(outcome.batch_ids)} compared, {len(outcome.notified)} notified.")
    for r in outcome.results:
        print(f"  {r.confidence:5.1f}%  {r.id}  {r.reasoning}")

    if args.export == "json" and source is not None:
        print(f"\n{export_outcome_json(source, outcome, candidates)}")


def cmd_notifications(args: argparse.Namespace, settings: Settings) -> None:
    """Handle notifications subcommand."""
    conn = init_db(settings.database.path)
    try:
        if args.mark_read:
            if not mark_notification_read(conn, args.mark_read, args.user):
                msg = f"Notification not found: {args.mark_read}"
                raise LookupError(msg)
            print(f"Notification {args.mark_read} marked read.")
            return

        notifications = list_notifications(conn, args.user)
        unread = count_unread(conn, args.user)
        print(f"{len(notifications)} notifications for '{args.user}' ({unread} unread)")
        for n in notifications:
            marker = " " if n.read else "*"
            print(f" {marker} {n.id}  {n.confidence:5.1f}%  {n.lost_pet_name}: "
                  f"found report {n.found_report_id} ({n.found_pet_location or 'unknown location'})"
                  f"  {n.created_at:%Y-%m-%d %H:%M}")
    finally:
        conn.close()


def cmd_set_status(args: argparse.Namespace, settings: Settings) -> None:
    """Handle set-status subcommand."""
    conn = init_db(settings.database.path)
    try:
        report = set_report_status(conn, args.report, args.user, ReportStatus(args.status))
    finally:
        conn.close()
    if report is None:
        msg = f"Report not found: {args.report}"
        raise LookupError(msg)
    print(f"Report {report.id} is now {report.status.value}.")


def cmd_analyze_photo(args: argparse.Namespace, settings: Settings) -> None:
    """Handle analyze-photo subcommand."""
    provider_name = args.provider or settings.vision.provider
    provider = get_provider(provider_name)
    model = settings.vision.models[0] if settings.vision.models and not args.provider else None

    print(f"Analyzing {args.photo} with {provider_name} provider...")
    analysis = analyze_photo(_load_photo(args.photo), provider, model)
    print(f"  Species: {analysis.species.value}")
    print(f"  Breed: {analysis.breed or '-'}")
    print(f"  Color: {analysis.color or '-'}")
    print(f"  Summary: {analysis.to_summary()}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "import-reports":
            cmd_import_reports(args, settings)
        elif args.command == "notifications":
            cmd_notifications(args, settings)
        elif args.command == "set-status":
            cmd_set_status(args, settings)
        elif args.command == "analyze-photo":
            cmd_analyze_photo(args, settings)
        else:
            radius_km = args.radius or settings.matching.default_radius_km
            options = settings.filters.radius_options_km
            if radius_km not in options:
                msg = f"Radius must be one of {', '.join(f'{r:g}' for r in options)} km"
                raise ValueError(msg)
            if args.dry_run:
                dry_run(args, settings, radius_km)
            else:
                asyncio.run(run(args, settings, radius_km))
    except (MatchError, FileNotFoundError, ImportError, ValueError, LookupError, PermissionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
