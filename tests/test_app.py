"""Tests for the interactive pytrim application."""

import pytest
from textual.widgets import DataTable

from fakes import FakeEnumerator, FakeOsApi, snap
from pytrim.app import ResultsTable, SortKey, SummaryHeader, TrimApp
from pytrim.models import Outcome, SkipReason, TrimPolicy, TrimResult, TrimSummary
from pytrim.trimmer import Trimmer


def shown_pids(app: TrimApp) -> set[int]:
    return {int(key.value) for key in app.query_one("#results-table", DataTable).rows}


def make_app(poll_seconds: float = 60.0, sink=None) -> TrimApp:
    trimmer = Trimmer(
        TrimPolicy(above=0),
        FakeOsApi(),
        FakeEnumerator([snap(pid=100), snap(pid=200, name="other.exe")]),
        boost_priority=False,
    )
    return TrimApp(trimmer, poll_seconds=poll_seconds, sink=sink)


def make_summary(pids) -> TrimSummary:
    summary = TrimSummary()
    for pid in pids:
        summary.record(TrimResult(pid=pid, name=f"p{pid}.exe", outcome=Outcome.TRIMMED,
                                  bytes_before=pid * 1024, bytes_after=0))
    return summary.finish()


class TestSortKey:
    """Tests for SortKey enum."""

    def test_sort_key_members(self):
        keys = list(SortKey)
        assert keys == [SortKey.SAVED, SortKey.BEFORE, SortKey.PID, SortKey.NAME]


@pytest.mark.asyncio
async def test_app_creation():
    """Test TrimApp can be instantiated."""
    app = make_app()
    assert app.title == "pytrim"
    assert app.sub_title == "Working Set Trimmer"
    assert app._monitor is not None


@pytest.mark.asyncio
async def test_app_compose():
    app = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#summary-header") is not None
        assert pilot.app.query_one("#results-table") is not None


@pytest.mark.asyncio
async def test_app_quit_binding():
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert not app._monitor.is_running


@pytest.mark.asyncio
async def test_results_table_cycle_sort():
    app = make_app()
    async with app.run_test() as pilot:
        table = pilot.app.query_one(ResultsTable)

        assert table.sort_key == SortKey.SAVED
        table.cycle_sort()
        assert table.sort_key == SortKey.BEFORE
        table.cycle_sort()
        assert table.sort_key == SortKey.PID
        table.cycle_sort()
        assert table.sort_key == SortKey.NAME
        table.cycle_sort()
        assert table.sort_key == SortKey.SAVED


@pytest.mark.asyncio
async def test_app_sort_binding():
    app = make_app()
    async with app.run_test() as pilot:
        table = pilot.app.query_one(ResultsTable)
        initial = table.sort_key

        await pilot.press("f6")

        assert table.sort_key != initial


@pytest.mark.asyncio
async def test_show_summary_replaces_rows():
    app = make_app()
    async with app.run_test() as pilot:
        app.show_summary(make_summary([100, 200]))
        assert shown_pids(app) == {100, 200}

        app.show_summary(make_summary([200]))
        assert shown_pids(app) == {200}


@pytest.mark.asyncio
async def test_suppressed_pass_keeps_previous_rows():
    app = make_app()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#summary-header", SummaryHeader)

        app.show_summary(make_summary([100]))
        app.show_summary(TrimSummary(pass_number=2, suppressed=True).finish())

        assert shown_pids(app) == {100}
        assert header._passes == 2


@pytest.mark.asyncio
async def test_header_accumulates_reclaimed_bytes():
    app = make_app()
    async with app.run_test() as pilot:
        header = pilot.app.query_one("#summary-header", SummaryHeader)

        header.update_summary(make_summary([100]))
        header.update_summary(make_summary([200]))

        assert header._total_reclaimed == 300 * 1024


@pytest.mark.asyncio
async def test_app_receives_passes_from_monitor():
    seen = []

    class Recorder:
        def emit(self, summary):
            seen.append(summary)

    app = make_app(poll_seconds=0.2, sink=Recorder())
    async with app.run_test() as pilot:
        await pilot.pause(1.5)

        assert app._monitor.is_running
        assert shown_pids(app) == {100, 200}
        assert seen


@pytest.mark.asyncio
async def test_skip_reason_shown():
    app = make_app()
    async with app.run_test() as pilot:
        summary = TrimSummary()
        summary.record(TrimResult(pid=5, name="x.exe", outcome=Outcome.SKIPPED,
                                  reason=SkipReason.FOREGROUND))
        app.show_summary(summary.finish())

        cells = ResultsTable._cells(summary.results[0])
        assert cells[-1] == "foreground"
