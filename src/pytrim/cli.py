#!/usr/bin/env python3
"""
Command-line interface for pytrim
"""

import argparse
import logging
import sys
import threading
from typing import Any

from rich.console import Console

from pytrim import __version__
from pytrim.config import TrimConfig, load_config
from pytrim.errors import ConfigurationError, UnsupportedPlatformError
from pytrim.monitor import ProcessEnumerator
from pytrim.osapi import load_os_api
from pytrim.report import ConsoleSink, CsvSink, JsonLinesSink, MultiSink, ReportSink
from pytrim.trimmer import Trimmer

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_PLATFORM = 3

LOG_FORMAT = "%(asctime)s - %(filename)s:%(lineno)d - %(levelname)s - %(message)s"


def configure_logging(verbose: int, log_file: str | None, console: bool) -> None:
    """Set up the package logger; console output goes to stderr."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG

    root = logging.getLogger("pytrim")
    root.setLevel(level)
    root.handlers = []
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")

    if console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        # The file always gets the full detail
        file_handler.setLevel(logging.DEBUG)
        root.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
    if not root.handlers:
        root.addHandler(logging.NullHandler())


def _split(values: list[str] | None) -> list[str]:
    """Accept both repeated flags and comma separated lists."""
    items: list[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _split_ints(values: list[str] | None, flag: str) -> list[int]:
    try:
        return [int(item) for item in _split(values)]
    except ValueError as exc:
        raise ConfigurationError(f"{flag} takes integers: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pytrim",
        description="Trim or cap the working sets of running processes",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    select = parser.add_argument_group("process selection")
    select.add_argument("-p", "--processes", action="append", metavar="PATTERN",
                        help="Only processes whose name matches (regex or exact, repeatable)")
    select.add_argument("-x", "--exclude", action="append", metavar="PATTERN",
                        help="Skip processes whose name matches")
    select.add_argument("--users", action="append", metavar="PATTERN",
                        help="Only processes owned by matching users")
    select.add_argument("--exclude-users", action="append", metavar="PATTERN",
                        help="Skip processes owned by matching users")
    select.add_argument("--process-ids", action="append", metavar="PID",
                        help="Only these process ids; looping stops once all have exited")
    select.add_argument("--new-only", action="store_true", default=None,
                        help="Only processes started after pytrim")
    select.add_argument("--wait-for", action="append", metavar="NAME",
                        help="Wait until a process with this name is running before the first pass")
    select.add_argument("--above", metavar="SIZE",
                        help="Skip processes whose working set is at or below SIZE (default 10MB)")

    sessions = parser.add_argument_group("sessions")
    sessions.add_argument("--this-session", action="store_true", default=None,
                          help="Only processes in the caller's session")
    sessions.add_argument("--session-ids", action="append", metavar="ID",
                          help="Only processes in these sessions")
    sessions.add_argument("--exclude-session-ids", action="append", metavar="ID",
                          help="Skip processes in these sessions")
    sessions.add_argument("--disconnected", action="store_true", default=None,
                          help="Only processes in disconnected sessions")

    limits = parser.add_argument_group("working set limits")
    limits.add_argument("--min-working-set", metavar="SIZE", help="Minimum working set")
    limits.add_argument("--max-working-set", metavar="SIZE", help="Maximum working set")
    limits.add_argument("--hard-min", action="store_true", default=None,
                        help="Enforce the minimum continuously")
    limits.add_argument("--hard-max", action="store_true", default=None,
                        help="Enforce the maximum continuously")

    idle = parser.add_argument_group("idle and foreground")
    idle.add_argument("--idle", type=float, metavar="SECONDS",
                      help="Only trim once the session has been idle this long")
    idle.add_argument("--exclude-foreground", action="store_true", default=None,
                      help="Never trim the process owning the foreground window unless idle")
    idle.add_argument("--background", action="store_true", default=None,
                      help="Trim background processes only, regardless of idle time")

    run = parser.add_argument_group("running")
    run.add_argument("--loop", action="store_true", default=None, help="Repeat passes until interrupted")
    run.add_argument("--poll", type=float, metavar="SECONDS", help="Seconds between passes (default 60)")
    run.add_argument("--report", action="store_true", default=None,
                     help="Only report current working set bounds")
    run.add_argument("--savings", action="store_true", default=None,
                     help="Measure memory released by each trim")
    run.add_argument("--no-boost", dest="boost_priority", action="store_false", default=None,
                     help="Do not raise pytrim's own priority during a pass")

    output = parser.add_argument_group("output")
    output.add_argument("--csv", dest="csv_path", metavar="FILE", help="Append results to a CSV file")
    output.add_argument("--json", dest="json_lines", action="store_true", default=None,
                        help="Write results to stdout as JSON lines")
    output.add_argument("-i", "--interactive", action="store_true", default=None,
                        help="Show a live table (implies --loop)")
    output.add_argument("--show-skipped", action="store_true", default=None,
                        help="Include skipped processes in the console table")
    output.add_argument("--log-file", metavar="FILE", help="Write a debug log to FILE")
    output.add_argument("-v", "--verbose", action="count", default=None,
                        help="More logging (repeat for debug)")
    return parser


def options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Keep only options given on the command line so PYTRIM_* variables still apply."""
    options: dict[str, Any] = {}
    for key in ("processes", "exclude", "users", "exclude_users", "wait_for"):
        values = getattr(args, key)
        if values:
            options[key] = _split(values)
    for key, flag in (
        ("process_ids", "--process-ids"),
        ("session_ids", "--session-ids"),
        ("exclude_session_ids", "--exclude-session-ids"),
    ):
        values = getattr(args, key)
        if values:
            options[key] = _split_ints(values, flag)
    for key in (
        "new_only", "above", "this_session", "disconnected", "min_working_set",
        "max_working_set", "hard_min", "hard_max", "idle", "exclude_foreground",
        "background", "loop", "poll", "report", "savings", "boost_priority",
        "csv_path", "json_lines", "interactive", "show_skipped", "log_file", "verbose",
    ):
        value = getattr(args, key)
        if value is not None:
            options[key] = value
    return options


def build_sink(config: TrimConfig) -> ReportSink:
    sinks: list[ReportSink] = []
    if config.json_lines:
        sinks.append(JsonLinesSink(sys.stdout))
    else:
        sinks.append(ConsoleSink(Console(), show_skipped=config.show_skipped))
    if config.csv_path:
        sinks.append(CsvSink(config.csv_path))
    return sinks[0] if len(sinks) == 1 else MultiSink(*sinks)


def main(argv: list[str] | None = None) -> int:
    """Entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(**options_from_args(args))
        policy = config.to_policy()
    except ConfigurationError as exc:
        print(f"pytrim: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(config.verbose, config.log_file, console=not config.interactive)

    try:
        api = load_os_api()
    except UnsupportedPlatformError as exc:
        print(f"pytrim: {exc}", file=sys.stderr)
        return EXIT_PLATFORM

    trimmer = Trimmer(
        policy,
        api,
        ProcessEnumerator(session_of=api.session_of),
        boost_priority=config.boost_priority,
        wait_for=config.wait_for,
    )

    if config.interactive:
        from pytrim.app import TrimApp

        sink = CsvSink(config.csv_path) if config.csv_path else None
        TrimApp(trimmer, poll_seconds=config.poll, sink=sink).run()
        return EXIT_OK

    sink = build_sink(config)
    try:
        trimmer.run(
            threading.Event(),
            sink.emit,
            loop=config.looping,
            poll_seconds=config.poll,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted after %d passes", trimmer.passes)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
