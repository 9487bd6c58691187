"""Tests for configuration loading and validation."""

import pytest

from pytrim.config import DEFAULT_ABOVE, TrimConfig, load_config
from pytrim.errors import ConfigurationError
from pytrim.formatting import parse_size
from pytrim.models import Hardness


def test_defaults():
    config = load_config()

    assert config.above == DEFAULT_ABOVE
    assert config.poll == 60.0
    assert not config.loop
    assert config.boost_priority


def test_sizes_accept_units():
    config = load_config(above="50MB", max_working_set="1.5GB")

    assert config.above == 50 * 1024**2
    assert config.max_working_set == int(1.5 * 1024**3)


@pytest.mark.parametrize(
    "options",
    [
        {"min_working_set": "200MB", "max_working_set": "100MB"},
        {"processes": ["chrome("]},
        {"loop": True, "report": True},
        {"interactive": True, "report": True},
        {"hard_min": True},
        {"hard_max": True},
        {"above": "12 parsecs"},
        {"poll": 0},
        {"idle": -1},
        {"session_ids": [1], "exclude_session_ids": [1]},
        {"no_such_option": True},
    ],
)
def test_rejected_combinations(options):
    with pytest.raises(ConfigurationError):
        load_config(**options)


def test_hard_max_without_min_is_allowed():
    policy = load_config(max_working_set="100MB", hard_max=True).to_policy()

    assert policy.minimum is None
    assert policy.maximum.size == 100 * 1024**2
    assert policy.maximum.hardness is Hardness.HARD


def test_to_policy_maps_fields():
    config = load_config(
        processes=["chrome"],
        exclude=["svchost"],
        users=["alice"],
        session_ids=[2, 3],
        this_session=True,
        disconnected=True,
        min_working_set="1MB",
        hard_min=True,
        idle=300,
        background=True,
        new_only=True,
        process_ids=[10, 11],
        savings=True,
    )
    policy = config.to_policy(monitoring_start=123.0)

    assert policy.include_names == ("chrome",)
    assert policy.exclude_names == ("svchost",)
    assert policy.include_users == ("alice",)
    assert policy.session_ids == frozenset({2, 3})
    assert policy.this_session and policy.disconnected_only
    assert policy.minimum.size == 1024**2 and policy.minimum.hard
    assert policy.idle_seconds == 300
    assert policy.background_only
    assert policy.monitoring_start == 123.0
    assert policy.process_ids == frozenset({10, 11})
    assert policy.savings


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PYTRIM_ABOVE", "20MB")
    monkeypatch.setenv("PYTRIM_POLL", "5")

    config = TrimConfig()

    assert config.above == 20 * 1024**2
    assert config.poll == 5.0


def test_explicit_options_beat_environment(monkeypatch):
    monkeypatch.setenv("PYTRIM_POLL", "5")
    assert load_config(poll=30).poll == 30


def test_interactive_implies_looping():
    assert load_config(interactive=True).looping


class TestParseSize:
    def test_plain_bytes(self):
        assert parse_size("4096") == 4096

    def test_units_are_binary_and_case_insensitive(self):
        assert parse_size("2kb") == 2048
        assert parse_size("1 G") == 1024**3

    def test_bad_unit(self):
        with pytest.raises(ValueError):
            parse_size("3XB")
