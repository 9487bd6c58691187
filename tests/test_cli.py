"""Tests for the command-line interface."""

import json

import pytest

from fakes import MB, FakeEnumerator, FakeOsApi, snap
from pytrim import cli
from pytrim.errors import UnsupportedPlatformError


@pytest.fixture
def fake_system(monkeypatch):
    api = FakeOsApi()
    enumerator = FakeEnumerator([
        snap(pid=1, name="chrome.exe", working_set_bytes=80 * MB),
        snap(pid=2, name="tiny.exe", working_set_bytes=1 * MB),
    ])
    monkeypatch.setattr(cli, "load_os_api", lambda: api)
    monkeypatch.setattr(cli, "ProcessEnumerator", lambda session_of: enumerator)
    return api, enumerator


@pytest.mark.parametrize(
    "argv",
    [
        ["--min-working-set", "200MB", "--max-working-set", "100MB"],
        ["--processes", "chrome("],
        ["--loop", "--report"],
        ["--hard-min"],
        ["--session-ids", "one"],
    ],
)
def test_configuration_errors_exit_non_zero(argv, monkeypatch, capsys):
    monkeypatch.setattr(cli, "load_os_api", lambda: pytest.fail("no process may be touched"))

    assert cli.main(argv) == cli.EXIT_CONFIG
    assert "configuration error" in capsys.readouterr().err


def test_unsupported_platform(monkeypatch, capsys):
    def unavailable():
        raise UnsupportedPlatformError("Working-set control needs Windows")

    monkeypatch.setattr(cli, "load_os_api", unavailable)

    assert cli.main([]) == cli.EXIT_PLATFORM
    assert "Windows" in capsys.readouterr().err


def test_one_pass_json(fake_system, capsys):
    api, _ = fake_system

    assert cli.main(["--json", "--no-boost", "--above", "10MB"]) == cli.EXIT_OK

    records = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    summary = records[-1]
    assert summary["considered"] == 2
    assert summary["trimmed"] == 1
    assert summary["skip_reasons"] == {"below threshold": 1}
    assert [pid for pid, _ in api.requests] == [1]


def test_zero_eligible_processes_still_succeeds(fake_system, capsys):
    api, _ = fake_system

    assert cli.main(["--json", "--no-boost", "-p", "nothing-matches"]) == cli.EXIT_OK
    assert api.requests == []


@pytest.mark.parametrize(
    "argv, failure",
    [
        (["--idle", "60"], "input_error"),
        (["--this-session"], "session_error"),
    ],
)
def test_failed_environment_lookup_aborts_pass_without_error_exit(fake_system, capsys, argv, failure):
    api, _ = fake_system
    setattr(api, failure, True)

    assert cli.main(["--json", "--no-boost", *argv]) == cli.EXIT_OK

    summary = json.loads(capsys.readouterr().out.splitlines()[-1])
    assert summary["aborted"]
    assert summary["considered"] == 0
    assert api.requests == []


def test_comma_separated_lists(fake_system, capsys):
    api, enumerator = fake_system

    cli.main(["--json", "--no-boost", "--above", "0", "--process-ids", "1,2", "-x", "tiny,other"])

    assert enumerator.calls[0]["pids"] == frozenset({1, 2})
    assert [pid for pid, _ in api.requests] == [1]


def test_csv_output(fake_system, tmp_path, capsys):
    path = tmp_path / "out.csv"

    cli.main(["--no-boost", "--csv", str(path)])

    assert path.read_text().count("\n") == 3
    assert "Pass 1" in capsys.readouterr().out


def test_options_from_args_keeps_only_given_flags():
    args = cli.build_parser().parse_args(["--above", "5MB", "--idle", "30"])

    assert cli.options_from_args(args) == {"above": "5MB", "idle": 30.0}


def test_log_file(fake_system, tmp_path, capsys):
    log = tmp_path / "trim.log"

    cli.main(["--json", "--no-boost", "--log-file", str(log)])

    assert "Pass 1" in log.read_text()
