"""pytrim - live Textual view of trim passes."""

from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from pytrim.formatting import format_bytes
from pytrim.models import TrimResult, TrimSummary
from pytrim.monitor import TrimMonitor
from pytrim.report import ReportSink, summary_line
from pytrim.trimmer import Trimmer


class SortKey(Enum):
    """Sort keys for the results table."""

    SAVED = "saved"
    BEFORE = "before"
    PID = "pid"
    NAME = "name"


class SummaryHeader(Static):
    """Header widget showing the totals of the latest pass and of the session."""

    DEFAULT_CSS = """
    SummaryHeader {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize SummaryHeader."""
        super().__init__(*args, **kwargs)
        self._latest: TrimSummary | None = None
        self._passes: int = 0
        self._total_reclaimed: int = 0

    def update_summary(self, summary: TrimSummary) -> None:
        """Record a finished pass and refresh the text."""
        self._latest = summary
        self._passes += 1
        self._total_reclaimed += summary.bytes_reclaimed
        self.update(self._summary_text())

    def _summary_text(self) -> str:
        if self._latest is None:
            return "Waiting for first pass..."
        return (
            f"{summary_line(self._latest)}\n"
            f"Passes: {self._passes}   Reclaimed so far: {format_bytes(self._total_reclaimed)}"
        )

    def on_mount(self) -> None:
        self.update(self._summary_text())


class ResultsTable(Container):
    """Container for the per-process results of the latest pass."""

    DEFAULT_CSS = """
    ResultsTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ResultsTable."""
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.SAVED
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        next_index = (current_index + 1) % len(keys)
        self._sort_key = keys[next_index]
        self._sort_reverse = self._sort_key in (SortKey.SAVED, SortKey.BEFORE)
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the results table."""
        yield DataTable(id="results-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#results-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("NAME", key="name", width=24)
        table.add_column("SES", key="session", width=4)
        table.add_column("OUTCOME", key="outcome", width=9)
        table.add_column("BEFORE", key="before", width=9)
        table.add_column("AFTER", key="after", width=9)
        table.add_column("SAVED", key="saved", width=9)
        table.add_column("DETAIL", key="detail")

    def update_results(self, results: list[TrimResult]) -> None:
        """Replace the table contents with the results of a pass."""
        table = self.query_one("#results-table", DataTable)
        table.clear()
        for result in self._sort_results(results):
            table.add_row(*self._cells(result), key=str(result.pid))

    def _sort_results(self, results: list[TrimResult]) -> list[TrimResult]:
        """Sort results based on the current sort key."""
        key_func = {
            SortKey.SAVED: lambda r: r.delta or 0,
            SortKey.BEFORE: lambda r: r.bytes_before,
            SortKey.PID: lambda r: r.pid,
            SortKey.NAME: lambda r: r.name.lower(),
        }
        return sorted(results, key=key_func[self._sort_key], reverse=self._sort_reverse)

    @staticmethod
    def _cells(result: TrimResult) -> tuple[str, ...]:
        if result.reason is not None:
            detail = result.reason.value
        elif result.error_code is not None:
            detail = f"error {result.error_code}"
        else:
            detail = ""
        return (
            str(result.pid),
            result.name[:24],
            "" if result.session_id is None else str(result.session_id),
            result.outcome.value,
            format_bytes(result.bytes_before),
            "" if result.bytes_after is None else format_bytes(result.bytes_after),
            "" if result.delta is None else format_bytes(result.delta),
            detail,
        )


class TrimApp(App):
    """Interactive pytrim application."""

    TITLE = "pytrim"
    SUB_TITLE = "Working Set Trimmer"

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary-header {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(
        self,
        trimmer: Trimmer,
        poll_seconds: float = 60.0,
        sink: ReportSink | None = None,
    ) -> None:
        """Initialize the TrimApp."""
        super().__init__()
        self._update_queue: Queue[TrimSummary] = Queue()
        self._monitor = TrimMonitor(
            trimmer, self._update_queue, poll_seconds=poll_seconds, sink=sink
        )
        self._latest: TrimSummary | None = None

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield SummaryHeader(id="summary-header")
        yield ResultsTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the trim loop when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show every finished pass in order."""
        while True:
            try:
                summary = self._update_queue.get_nowait()
            except Empty:
                break
            self.show_summary(summary)

    def show_summary(self, summary: TrimSummary) -> None:
        """Update the UI with a finished pass."""
        self.query_one("#summary-header", SummaryHeader).update_summary(summary)
        if not summary.suppressed and summary.aborted is None:
            self._latest = summary
            self.query_one(ResultsTable).update_results(summary.results)

    def action_sort(self) -> None:
        """Cycle through sort keys and re-sort the latest results."""
        table = self.query_one(ResultsTable)
        new_sort_key = table.cycle_sort()
        if self._latest is not None:
            table.update_results(self._latest.results)
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def on_unmount(self) -> None:
        self._monitor.stop()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()
