"""
Command-line entry point for Kairos.

    kairos extract flyer.jpg --ics events.ics
    kairos parse model_output.txt --store eventkit

Exit codes: 0 success, 1 extraction/configuration error, 2 some or all
calendar writes failed.
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

from kairos.batch_writer import outcome_message, write_all
from kairos.calendar_connector import get_calendar_store
from kairos.event_models import BatchStatus, MaterializedEvent
from kairos.exceptions import KairosError
from kairos.extraction_pipeline import ExtractionResult, ExtractionSession, process_response
from kairos.ics_generator import generate_ics
from kairos.image_llm_client import get_llm_client, load_image
from kairos.logging_helper import Log
from kairos.settings_manager import (
    CALENDAR_STORES,
    get_policy,
    get_reference_timezone,
    load_settings,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_WRITE_FAILED = 2


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--ics",
        type=Path,
        default=None,
        help="Write all extracted events to this .ics file",
    )
    parser.add_argument(
        "--store",
        choices=CALENDAR_STORES,
        default=None,
        help="Calendar store to add events to (default: settings calendar_store)",
    )
    parser.add_argument(
        "--calendar",
        default=None,
        help="Target calendar name (default: the store's default calendar)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kairos", description="Turn event photos into calendar entries")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Extract events from an image with the vision model")
    extract_parser.add_argument("image", type=Path, help="Photo or screenshot of the event")
    _add_output_arguments(extract_parser)

    parse_parser = subparsers.add_parser("parse", help="Extract events from saved model output")
    parse_parser.add_argument("text", help="File with the model's response ('-' for stdin)")
    _add_output_arguments(parse_parser)

    return parser


def _describe(event: MaterializedEvent) -> str:
    if event.all_day:
        last_day = event.end.date() - timedelta(days=1)
        when = event.start.date().isoformat()
        if last_day != event.start.date():
            when += f" - {last_day.isoformat()}"
        when += " (all day)"
    else:
        when = f"{event.start.isoformat()} - {event.end.isoformat()}"
    line = f"{event.title}: {when}"
    if event.location:
        line += f" @ {event.location}"
    return line


def _print_result(result: ExtractionResult) -> None:
    count = len(result.events)
    print(f"Found {count} Event{'' if count == 1 else 's'}")
    for index, event in enumerate(result.events, start=1):
        print(f"  {index}. {_describe(event)}")
    for index, error in result.dropped:
        print(f"  skipped item {index}: {error}")


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    Log.section("Kairos")

    try:
        settings = load_settings()
        policy = get_policy(settings)
        reference_tz = get_reference_timezone(settings)

        if args.command == "extract":
            session = ExtractionSession(
                get_llm_client(settings.get("llm_model")),
                reference_tz=reference_tz,
                policy=policy,
            )
            result = session.run(load_image(args.image))
        else:
            result = process_response(_read_text(args.text), reference_tz, policy)
    except (KairosError, OSError, UnicodeDecodeError) as e:
        Log.kv({"stage": "cli", "result": "failed", "error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    _print_result(result)

    if args.ics is not None:
        try:
            args.ics.write_text(generate_ics(result.events), encoding="utf-8", newline="")
        except OSError as e:
            Log.kv({"stage": "cli", "result": "failed", "error": str(e)})
            print(f"Error: could not write {args.ics}: {e}", file=sys.stderr)
            return EXIT_ERROR
        print(f"ICS written to {args.ics}")

    try:
        store = get_calendar_store(args.store, settings)
    except KairosError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    if store is None:
        return EXIT_OK

    outcome = write_all(result.events, store, args.calendar)
    print(outcome_message(outcome))
    for index, error in outcome.failures:
        print(f"  event {index + 1}: {error}", file=sys.stderr)
    return EXIT_OK if outcome.status is BatchStatus.ALL_SUCCEEDED else EXIT_WRITE_FAILED


if __name__ == "__main__":
    sys.exit(main())
