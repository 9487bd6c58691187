"""Reporting sinks that render each pass's TrimSummary."""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, TextIO

from rich.console import Console
from rich.table import Table

from pytrim.formatting import format_bytes, format_duration
from pytrim.models import Outcome, TrimResult, TrimSummary


class ReportSink(Protocol):
    """Receives one summary per completed pass."""

    def emit(self, summary: TrimSummary) -> None: ...


def summary_line(summary: TrimSummary) -> str:
    """One-line totals for a pass."""
    if summary.suppressed:
        return f"Pass {summary.pass_number}: suppressed, session not idle long enough"
    if summary.aborted:
        return f"Pass {summary.pass_number}: aborted, {summary.aborted}"
    line = (
        f"Pass {summary.pass_number}: {summary.considered} considered, "
        f"{summary.skipped} skipped, {summary.trimmed} trimmed, {summary.failed} failed"
    )
    if summary.reported:
        line += f", {summary.reported} reported"
    if any(r.bytes_after is not None for r in summary.results):
        line += f", {format_bytes(summary.bytes_reclaimed)} extra available"
    return line


def result_record(result: TrimResult) -> dict[str, Any]:
    """Flatten a result into a JSON/CSV friendly dict."""
    record = {
        "pid": result.pid,
        "name": result.name,
        "session_id": result.session_id,
        "outcome": result.outcome.value,
        "reason": result.reason.value if result.reason else None,
        "bytes_before": result.bytes_before,
        "bytes_after": result.bytes_after,
        "delta": result.delta,
        "error_code": result.error_code,
        "min_working_set": None,
        "max_working_set": None,
        "hard_min": None,
        "hard_max": None,
    }
    if result.bounds is not None:
        record["min_working_set"] = result.bounds.minimum
        record["max_working_set"] = result.bounds.maximum
        record["hard_min"] = result.bounds.hard_min
        record["hard_max"] = result.bounds.hard_max
    return record


class ConsoleSink:
    """Renders summaries as rich tables on a console."""

    def __init__(self, console: Console | None = None, show_skipped: bool = False) -> None:
        self.console = console or Console()
        self.show_skipped = show_skipped

    def emit(self, summary: TrimSummary) -> None:
        rows = [
            r for r in summary.results
            if self.show_skipped or r.outcome is not Outcome.SKIPPED
        ]
        if rows:
            if any(r.outcome is Outcome.REPORTED for r in rows):
                self.console.print(self._bounds_table(rows))
            else:
                self.console.print(self._results_table(rows))
        self.console.print(summary_line(summary))
        if summary.skip_reasons and summary.finished is not None:
            reasons = ", ".join(
                f"{reason.value}: {count}" for reason, count in summary.skip_reasons.most_common()
            )
            self.console.print(
                f"[dim]Skipped ({reasons}) in {format_duration(summary.finished - summary.started)}[/dim]"
            )

    def _results_table(self, rows: list[TrimResult]) -> Table:
        table = Table(title="Trim results")
        table.add_column("PID", justify="right")
        table.add_column("Name")
        table.add_column("Session", justify="right")
        table.add_column("Outcome")
        table.add_column("Before", justify="right")
        table.add_column("After", justify="right")
        table.add_column("Saved", justify="right")
        table.add_column("Detail")
        for r in rows:
            detail = ""
            if r.reason is not None:
                detail = r.reason.value
            elif r.error_code is not None:
                detail = f"error {r.error_code}"
            table.add_row(
                str(r.pid),
                r.name,
                "" if r.session_id is None else str(r.session_id),
                r.outcome.value,
                format_bytes(r.bytes_before),
                "" if r.bytes_after is None else format_bytes(r.bytes_after),
                "" if r.delta is None else format_bytes(r.delta),
                detail,
            )
        return table

    def _bounds_table(self, rows: list[TrimResult]) -> Table:
        table = Table(title="Working set bounds")
        table.add_column("PID", justify="right")
        table.add_column("Name")
        table.add_column("Working set", justify="right")
        table.add_column("Min", justify="right")
        table.add_column("Hard min")
        table.add_column("Max", justify="right")
        table.add_column("Hard max")
        for r in rows:
            if r.bounds is None:
                table.add_row(str(r.pid), r.name, format_bytes(r.bytes_before), "", "", "", "")
                continue
            table.add_row(
                str(r.pid),
                r.name,
                format_bytes(r.bytes_before),
                format_bytes(r.bounds.minimum),
                "yes" if r.bounds.hard_min else "no",
                format_bytes(r.bounds.maximum),
                "yes" if r.bounds.hard_max else "no",
            )
        return table


class CsvSink:
    """Appends one row per result to a CSV file, writing the header once."""

    FIELDS = [
        "pass", "timestamp", "pid", "name", "session_id", "outcome", "reason",
        "bytes_before", "bytes_after", "delta", "error_code",
        "min_working_set", "max_working_set", "hard_min", "hard_max",
    ]

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def emit(self, summary: TrimSummary) -> None:
        new_file = not self.path.exists() or self.path.stat().st_size == 0
        timestamp = datetime.fromtimestamp(summary.started).isoformat(timespec="seconds")
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.FIELDS)
            if new_file:
                writer.writeheader()
            for result in summary.results:
                writer.writerow({"pass": summary.pass_number, "timestamp": timestamp, **result_record(result)})


class JsonLinesSink:
    """Writes each result, then the pass totals, as one JSON object per line."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream

    def emit(self, summary: TrimSummary) -> None:
        for result in summary.results:
            self._write({"type": "result", "pass": summary.pass_number, **result_record(result)})
        totals = {
            "suppressed": summary.suppressed,
            "aborted": summary.aborted,
            "considered": summary.considered,
            "skipped": summary.skipped,
            "trimmed": summary.trimmed,
            "failed": summary.failed,
            "reported": summary.reported,
            "bytes_reclaimed": summary.bytes_reclaimed,
            "net_delta": summary.net_delta,
            "started": summary.started,
            "finished": summary.finished,
            "skip_reasons": {
                reason.value: count for reason, count in summary.skip_reasons.items()
            },
        }
        self._write({"type": "summary", "pass": summary.pass_number, **totals})
        self.stream.flush()

    def _write(self, record: dict[str, Any]) -> None:
        self.stream.write(json.dumps(record) + "\n")


class MultiSink:
    """Fans a summary out to several sinks."""

    def __init__(self, *sinks: ReportSink) -> None:
        self.sinks = list(sinks)

    def emit(self, summary: TrimSummary) -> None:
        for sink in self.sinks:
            sink.emit(summary)
