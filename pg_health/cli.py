"""CLI entry point for pg-health."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from pg_health import __version__
from pg_health.models import Severity

_KNOWN_COMMANDS = {"check", "list-checks"}

# Exit code when findings at or above --fail-on severity exist.
EXIT_FINDINGS = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-health",
        description="Audit PostgreSQL indexes, tables, constraints and sequences.",
    )
    parser.add_argument("--version", action="version", version=f"pg-health {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands (default: check)")

    # -- check --
    check_parser = subparsers.add_parser("check", help="Evaluate a database or snapshot file")
    source = check_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--dsn", help="PostgreSQL connection URI (postgres://...)")
    source.add_argument("--snapshot", help="Path to a YAML or JSON snapshot file")
    check_parser.add_argument(
        "--schemas", help="Comma-separated list of schemas to read (default: all)"
    )
    check_parser.add_argument("--config", "-c", help="Path to pg-health.yaml")
    check_parser.add_argument(
        "--categories",
        help="Comma-separated list of check categories to run (default: all)",
    )
    check_parser.add_argument("--exclude", help="Comma-separated check names to skip")
    check_parser.add_argument("--include-only", help="Comma-separated check names to run")
    check_parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="PATTERN[:CHECK]",
        help="Hide objects matching PATTERN, optionally for one check only (repeatable)",
    )
    check_parser.add_argument(
        "--format",
        "-f",
        choices=["json", "markdown"],
        default="markdown",
        help="Report format (default: markdown)",
    )
    check_parser.add_argument("--output", "-o", help="Report file path (default: stdout)")
    check_parser.add_argument("--sql", help="Write corrective statements to this file")
    check_parser.add_argument(
        "--index-foreign-keys",
        action="store_true",
        help="Generate indexes for foreign keys without one",
    )
    check_parser.add_argument(
        "--no-concurrently",
        action="store_true",
        help="Generate locking index statements instead of CONCURRENTLY",
    )
    check_parser.add_argument(
        "--index-bloat",
        action="store_true",
        help="Estimate btree index bloat with pgstatindex() (reads every index)",
    )
    check_parser.add_argument(
        "--workers", type=int, default=1, help="Threads used to run checks (default: 1)"
    )
    check_parser.add_argument(
        "--timeout", type=float, default=None, help="Give up on unfinished checks after N seconds"
    )
    check_parser.add_argument(
        "--fail-on",
        choices=["high", "warning", "info"],
        default=None,
        help=f"Exit with code {EXIT_FINDINGS} when findings of this severity or worse exist",
    )
    check_parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")

    # -- list-checks --
    list_parser = subparsers.add_parser("list-checks", help="List all available checks")
    list_parser.add_argument(
        "--categories",
        help="Comma-separated list of categories to filter",
    )

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()

    # Default to "check" when no subcommand is given but arguments are present
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _KNOWN_COMMANDS and raw_args[0] not in ("--version", "--help", "-h"):
        raw_args = ["check"] + list(raw_args)
    elif not raw_args:
        parser.print_help()
        sys.exit(1)

    args = parser.parse_args(raw_args)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "list-checks":
        _cmd_list_checks(args)
    elif args.command == "check":
        _cmd_check(args)


def _split(value: str | None) -> list[str] | None:
    return [v.strip() for v in value.split(",") if v.strip()] if value else None


def _cmd_list_checks(args):
    from pg_health.registry import default_registry

    checks = default_registry().enabled_checks(_split(args.categories))
    if not checks:
        print("No checks found.")
        return

    current_cat = None
    for check in sorted(checks, key=lambda c: (c.category, c.name)):
        if check.category != current_cat:
            current_cat = check.category
            print(f"\n[{current_cat}]")
        print(f"  {check.name:30s} {check.description}")


def _cmd_check(args):
    from pg_health.config import ConfigError, load_config, merge_cli_with_config
    from pg_health.engine import evaluate
    from pg_health.exclusions import ExclusionRule, ExclusionSet
    from pg_health.migrations import generate
    from pg_health.registry import default_registry

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        config = load_config(args.config)
        exclude = _split(args.exclude)
        include_only = _split(args.include_only)
        config = merge_cli_with_config(
            config,
            cli_exclude=set(exclude) if exclude else None,
            cli_include_only=set(include_only) if include_only is not None else None,
            cli_ignore=[ExclusionRule.parse(text) for text in args.ignore],
            cli_index_foreign_keys=args.index_foreign_keys,
            cli_no_concurrently=args.no_concurrently,
        )
        registry = default_registry(
            exclude=config.checks.exclude, include_only=config.checks.include_only
        )
        config.validate(registry.names())
    except (ConfigError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    snapshot = _load_snapshot(args)

    report = evaluate(
        snapshot,
        registry,
        ExclusionSet(config.exclusions),
        config.thresholds,
        categories=_split(args.categories),
        workers=args.workers,
        timeout=args.timeout,
        verbose=args.verbose,
    )

    statements = generate(report.findings, config.migrations) if args.sql else None

    if args.format == "json":
        from pg_health.reporters.json_reporter import render

        output = render(report, statements)
    else:
        from pg_health.reporters.markdown_reporter import render

        output = render(report)
    _write_output(output, args.output)

    if args.sql:
        from pg_health.reporters.sql_reporter import render as render_sql

        _write_output(render_sql(statements, report.database), args.sql)

    if args.fail_on:
        limit = Severity[args.fail_on.upper()]
        if any(f.severity.rank <= limit.rank for f in report.findings):
            sys.exit(EXIT_FINDINGS)


def _load_snapshot(args):
    if args.snapshot:
        from pg_health.snapshot import load_snapshot

        try:
            return load_snapshot(args.snapshot)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    import psycopg2
    from pg_health.connection import connect, get_pg_version
    from pg_health.provider import MetadataProvider

    try:
        conn = connect(args.dsn)
    except psycopg2.OperationalError as e:
        error_msg = str(e).strip()
        print("Error: Could not connect to database.", file=sys.stderr)
        print(f"       {error_msg}", file=sys.stderr)
        if "no password supplied" in error_msg:
            print("\nHint: Set PGPASSWORD or use ~/.pgpass to provide a password.", file=sys.stderr)
        elif "does not exist" in error_msg:
            print("\nHint: Check that the database name is correct.", file=sys.stderr)
        sys.exit(1)

    try:
        if args.verbose:
            print(f"Connected to {get_pg_version(conn)}", file=sys.stderr)
        provider = MetadataProvider(
            conn, schemas=_split(args.schemas), index_bloat=args.index_bloat
        )
        return provider.snapshot(database=conn.info.dbname)
    finally:
        conn.close()


def _write_output(output: str, path: str | None):
    """Write to ``path`` (creating parent directories) or stdout."""
    if not path:
        sys.stdout.write(output)
        return
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(output)
    print(f"Written to {path}", file=sys.stderr)
