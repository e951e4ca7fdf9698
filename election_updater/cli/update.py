"""Standalone CLI for the election update pipelines.

Usage::

    python -m election_updater.cli run [--party republican] [--dry-run]
    python -m election_updater.cli refresh-counties [--county 48201] [--dry-run]
    python -m election_updater.cli seed-baseline republican
    python -m election_updater.cli errors [--date 2026-10-19]

Every command prints its result as JSON on stdout; logs go to stderr.
Exit status is 0 on success (including a skipped run), 1 on configuration
or data errors and 2 when a run was aborted by an authentication failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime, timezone
from typing import Any

from election_updater.config.loader import load_election_config
from election_updater.config.settings import Settings
from election_updater.utils.errors import ElectionUpdaterError
from election_updater.utils.logging import configure_logging

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ABORTED = 2


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_run(args: argparse.Namespace, app_settings: Settings) -> int:
    from election_updater.main import build_application

    app = await build_application(app_settings)
    result = await app.daily.run_daily_update(
        parties=args.parties,
        dry_run=args.dry_run,
        skip_secondary_refresh=args.skip_secondary_refresh,
    )
    _emit(result.model_dump(mode="json"))
    return EXIT_ABORTED if result.aborted else EXIT_OK


async def _handle_refresh_counties(args: argparse.Namespace, app_settings: Settings) -> int:
    from election_updater.main import build_application

    app = await build_application(app_settings)
    counties = None
    if args.counties:
        by_fips = {c.fips: c for c in app.config.counties}
        unknown = [f for f in args.counties if f not in by_fips]
        if unknown:
            print(f"Error: unknown county FIPS: {', '.join(unknown)}", file=sys.stderr)
            return EXIT_ERROR
        counties = [by_fips[f] for f in args.counties]
    result = await app.county.run_secondary_refresh(counties=counties, dry_run=args.dry_run)
    _emit(result.model_dump(mode="json"))
    return EXIT_ABORTED if result.aborted else EXIT_OK


async def _handle_seed_baseline(args: argparse.Namespace, app_settings: Settings) -> int:
    from election_updater.main import build_store
    from election_updater.services.baseline_guard import BaselineGuard

    config = load_election_config(app_settings.config_path, app_settings)
    store = await build_store(app_settings)
    baseline = await BaselineGuard(store, config).seed_baseline(args.party)
    _emit({
        "party": baseline.party,
        "key": config.baseline_key(args.party),
        "races": len(baseline.races),
        "candidates": sum(len(r.candidates) for r in baseline.races),
        "seededAt": baseline.seeded_at.isoformat(),
    })
    return EXIT_OK


async def _handle_errors(args: argparse.Namespace, app_settings: Settings) -> int:
    from election_updater.main import build_store
    from election_updater.pipeline.run_log import RunLogWriter

    day = args.date or datetime.now(tz=timezone.utc).date()  # noqa: UP017
    store = await build_store(app_settings)
    error_log = await RunLogWriter(store).read_error_log(day)
    if error_log is None:
        _emit({"date": day.isoformat(), "summary": None})
        return EXIT_OK
    _emit({"date": day.isoformat(), "summary": error_log.summary.model_dump(mode="json")})
    return EXIT_OK


_HANDLERS = {
    "run": _handle_run,
    "refresh-counties": _handle_refresh_counties,
    "seed-baseline": _handle_seed_baseline,
    "errors": _handle_errors,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the updater CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m election_updater.cli",
        description="Keep election candidate data fresh.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Updater commands")

    # -- run --
    run_parser = subparsers.add_parser("run", help="Run the daily update")
    run_parser.add_argument(
        "--party", action="append", dest="parties", default=None,
        help="Party to update (repeatable; default: all configured parties)",
    )
    run_parser.add_argument("--dry-run", action="store_true", dest="dry_run",
                            help="Research and validate but write nothing")
    run_parser.add_argument("--skip-secondary-refresh", action="store_true",
                            dest="skip_secondary_refresh",
                            help="Do not refresh county ballots afterwards")

    # -- refresh-counties --
    county_parser = subparsers.add_parser("refresh-counties", help="Refresh county ballots only")
    county_parser.add_argument(
        "--county", action="append", dest="counties", default=None,
        help="County FIPS code (repeatable; default: today's rotation slice)",
    )
    county_parser.add_argument("--dry-run", action="store_true", dest="dry_run",
                               help="List what would be refreshed")

    # -- seed-baseline --
    seed_parser = subparsers.add_parser(
        "seed-baseline", help="Snapshot a party's ballot as its verified baseline"
    )
    seed_parser.add_argument("party", help="Party whose statewide ballot to snapshot")

    # -- errors --
    errors_parser = subparsers.add_parser("errors", help="Show a day's error summary")
    errors_parser.add_argument("--date", type=date.fromisoformat, default=None,
                               help="Day to show, YYYY-MM-DD (default: today, UTC)")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, dispatch, exit with the handler's status."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    try:
        exit_code = asyncio.run(_HANDLERS[args.command](args, app_settings))
    except ElectionUpdaterError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = EXIT_ERROR
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
