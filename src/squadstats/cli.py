"""Command-line interface for rebuilding player statistics."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import anyio

from squadstats.config import load_settings
from squadstats.dataset_loader import DatasetSnapshot
from squadstats.ingest import load_selection_file
from squadstats.persistence import StatsStore, StorageFailure
from squadstats.rebuild import PlayerAggregationFailure, RebuildReport, StatsRebuilder


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild and inspect player statistics")
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path or file: URI (overrides SQUADSTATS_DB_PATH)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log pipeline progress to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rebuild = subparsers.add_parser("rebuild", help="Re-derive every fact row and player summary")
    rebuild.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Optional path to write the full rebuild report as JSON",
    )

    rebuild_player = subparsers.add_parser("rebuild-player", help="Re-aggregate one player from stored facts")
    rebuild_player.add_argument("player_id", help="Player to rebuild")

    rebuild_event = subparsers.add_parser("rebuild-event", help="Re-derive the facts of one event")
    rebuild_event.add_argument("event_id", help="Event whose selections changed")

    load = subparsers.add_parser("import", help="Load a JSON dataset snapshot into the store")
    load.add_argument("dataset", type=Path, help="Path to the dataset JSON")
    load.add_argument("--rebuild", action="store_true", help="Run a full rebuild after importing")

    validate = subparsers.add_parser("validate", help="Check a JSON array of selection payloads without storing it")
    validate.add_argument("selections", type=Path, help="Path to the selections JSON")

    serve = subparsers.add_parser("serve", help="Run the admin API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def _db_location(raw: Optional[str]) -> Optional[str | Path]:
    if raw is None:
        return None
    if raw.startswith("file:"):
        return raw
    return Path(raw)


def _validate_selections(path: Path) -> int:
    batch = load_selection_file(path)
    print(f"Valid selections: {len(batch.records)} | quarantined: {len(batch.quarantined)}")
    for item in batch.quarantined:
        print(f"  - {item.selection_id or '<unknown>'} (event {item.event_id or '<unknown>'}): {item.reason}")
    return 1 if batch.quarantined else 0


def _print_report(report: RebuildReport) -> None:
    print(
        f"Players updated: {report.players_succeeded} | failed: {report.players_failed} | "
        f"skipped: {report.players_skipped}"
    )
    print(
        f"Fact rows created: {report.fact_rows_created} from {report.selections_processed} selections "
        f"({report.selections_quarantined} quarantined)"
    )
    if report.failed_player_ids:
        print("Failed players: " + ", ".join(report.failed_player_ids))
    if report.warnings:
        print(f"Warnings ({len(report.warnings)}):")
        for warning in report.warnings[:20]:
            print(f"  - {warning}")
        if len(report.warnings) > 20:
            print(f"  ... {len(report.warnings) - 20} more")
    if report.cancelled:
        print("Rebuild was cancelled before every player was processed")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "validate":
        try:
            return _validate_selections(args.selections)
        except (OSError, ValueError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2

    settings = load_settings(db_path=_db_location(args.db))

    if args.command == "serve":
        import uvicorn

        from squadstats.api import create_app

        uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)
        return 0

    store = StatsStore(settings.db_path)
    rebuilder = StatsRebuilder(store, settings=settings)

    try:
        if args.command == "import":
            counts = DatasetSnapshot.load(args.dataset).apply(store)
            print("Imported " + ", ".join(f"{count} {kind}" for kind, count in counts.items()))
            if args.rebuild:
                _print_report(anyio.run(rebuilder.rebuild_all))
        elif args.command == "rebuild":
            report = anyio.run(rebuilder.rebuild_all)
            _print_report(report)
            if args.report:
                args.report.write_text(json.dumps(report.as_dict(), indent=2), encoding="utf-8")
                print(f"Report written to {args.report}")
        elif args.command == "rebuild-event":
            _print_report(anyio.run(rebuilder.rebuild_event, args.event_id))
        elif args.command == "rebuild-player":
            trace = anyio.run(rebuilder.rebuild_player, args.player_id)
            print(
                f"Player {trace.player_id}: {trace.facts_considered} facts, "
                f"{trace.facts_eligible} eligible, {trace.facts_counted} counted"
            )
            if trace.excluded_event_ids:
                print("Excluded (not yet complete): " + ", ".join(trace.excluded_event_ids))
            if trace.unknown_event_ids:
                print("Unknown events: " + ", ".join(trace.unknown_event_ids))
            print(trace.summary.model_dump_json(indent=2))
    except StorageFailure as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except PlayerAggregationFailure as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyError as exc:
        print(f"error: {exc.args[0] if exc.args else exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
