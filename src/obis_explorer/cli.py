"""
Command-line interface: ``obis-explorer <command>``.

Commands:
    info         Show the app version, API endpoints and data directory.
    query        Run one occurrence query against OBIS or GBIF and print the
                 requested columns as tab-separated rows.
    walkthrough  Run the lesson queries through the Prefect flow, caching
                 results in the data directory.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any

from obis_explorer import __version__
from obis_explorer.analysis import summarize
from obis_explorer.config import get_settings
from obis_explorer.datasources import SOURCES, get_source
from obis_explorer.errors import ObisExplorerError
from obis_explorer.fetch import FetchOptions, fetch_occurrences
from obis_explorer.filters import project
from obis_explorer.flows.walkthrough import LESSON_QUERIES, walkthrough
from obis_explorer.query import build_query
from obis_explorer.services.logging_configurator import configure_logging

DEFAULT_FIELDS = "id,scientificName,eventDate,decimalLatitude,decimalLongitude,depth"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="obis-explorer",
        description="Query, filter and join OBIS / GBIF occurrence records",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("info", help="Show application info")

    query_parser = subparsers.add_parser("query", help="Run an occurrence query")
    target = query_parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--name",
        dest="names",
        action="append",
        help="Scientific name (repeat for a batched query)",
    )
    target.add_argument("--taxon-id", type=int, help="Taxon identifier (AphiaID for OBIS)")
    query_parser.add_argument("--geometry", help="WKT polygon")
    query_parser.add_argument("--start-depth", type=float)
    query_parser.add_argument("--end-depth", type=float)
    query_parser.add_argument("--start-date", help="ISO date (YYYY-MM-DD)")
    query_parser.add_argument("--end-date", help="ISO date (YYYY-MM-DD)")
    query_parser.add_argument("--node-id", help="OBIS node UUID")
    query_parser.add_argument(
        "--limit", type=int, default=100, help="Maximum records (default: 100)"
    )
    query_parser.add_argument(
        "--measurements", action="store_true", help="Fetch and join MeasurementOrFacts"
    )
    query_parser.add_argument(
        "--source",
        choices=SOURCES,
        default=None,
        help="Data source (default: source from settings)",
    )
    query_parser.add_argument(
        "--fields",
        default=DEFAULT_FIELDS,
        help=f"Comma-separated columns to print (default: {DEFAULT_FIELDS})",
    )

    walk_parser = subparsers.add_parser("walkthrough", help="Run the lesson queries")
    walk_parser.add_argument(
        "--source",
        choices=SOURCES,
        default="obis",
        help="Source for steps that do not name their own (default: obis)",
    )
    walk_parser.add_argument(
        "--limit", type=int, default=2000, help="Maximum records per query (default: 2000)"
    )
    walk_parser.add_argument(
        "--step",
        dest="steps",
        action="append",
        choices=sorted(LESSON_QUERIES),
        help="Run only this step (repeatable)",
    )

    return parser


def cmd_info(_args: argparse.Namespace) -> int:
    """Handle the 'info' command."""
    settings = get_settings()
    print(f"Application: {settings.app_name}")
    print(f"Version: {__version__}")
    print(f"Environment: {settings.app_env}")
    print(f"OBIS API: {settings.obis_api_url}")
    print(f"GBIF API: {settings.gbif_api_url}")
    print(f"Missing values: {settings.missing_values}")
    print(f"Data directory: {settings.data_dir}")
    return 0


def _query_options(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {
        "geometry": args.geometry,
        "start_depth": args.start_depth,
        "end_depth": args.end_depth,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "node_id": args.node_id,
        "page_limit": args.limit,
        "include_measurements": args.measurements,
    }
    if args.names:
        options["scientific_name"] = args.names if len(args.names) > 1 else args.names[0]
    if args.taxon_id is not None:
        options["taxon_id"] = args.taxon_id
    return {k: v for k, v in options.items() if v is not None}


def _print_table(rows: list[dict[str, Any]], columns: list[str]) -> None:
    print("\t".join(columns))
    for row in rows:
        print("\t".join("" if row[c] is None else str(row[c]) for c in columns))


def cmd_query(args: argparse.Namespace) -> int:
    """Handle the 'query' command."""
    settings = get_settings()
    columns = [c.strip() for c in args.fields.split(",") if c.strip()]
    try:
        query = build_query(**_query_options(args), missing_values=settings.missing_values)
        source = get_source(args.source or settings.source, settings)
        result = fetch_occurrences(query, source, options=FetchOptions.from_settings(settings))
        rows = project(result, columns)
    except ObisExplorerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_table(rows, columns)
    summary = summarize(result)
    print(
        f"\n{summary['occurrences']} occurrences, {summary['measurements']} measurements, "
        f"{summary['skipped']} skipped",
        file=sys.stderr,
    )
    if result.is_partial:
        print("Warning: result is partial (timed out or cancelled)", file=sys.stderr)
    return 0


def cmd_walkthrough(args: argparse.Namespace) -> int:
    """Handle the 'walkthrough' command: run the lesson flow."""
    try:
        results = walkthrough(source_name=args.source, page_limit=args.limit, steps=args.steps)
    except ObisExplorerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    for step, value in results.items():
        print(f"{step}: {value}")
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    settings = get_settings()
    configure_logging("DEBUG" if args.debug or settings.debug else settings.log_level)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "info": cmd_info,
        "query": cmd_query,
        "walkthrough": cmd_walkthrough,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
