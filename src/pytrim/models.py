"""Data models for pytrim."""

import re
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from pytrim.errors import ConfigurationError


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process, captured fresh on every pass."""

    pid: int
    name: str
    username: str | None  # None when the owner could not be read
    session_id: int | None
    working_set_bytes: int
    foreground: bool
    start_time: float  # Epoch seconds


class Hardness(Enum):
    """Whether the OS enforces a working-set bound continuously."""

    SOFT = "soft"
    HARD = "hard"


@dataclass(slots=True, frozen=True)
class Bound:
    """A working-set size paired with its enforcement."""

    size: int
    hardness: Hardness = Hardness.SOFT

    @property
    def hard(self) -> bool:
        return self.hardness is Hardness.HARD


@dataclass(slots=True, frozen=True)
class WorkingSetRequest:
    """
    A coherent [minimum, maximum] pair ready for the OS.

    ``hard_min``/``hard_max`` of None leave the current enforcement alone.
    ``empty`` asks the OS to page out as much of the working set as it can.
    """

    minimum: int = 0
    maximum: int = 0
    hard_min: bool | None = None
    hard_max: bool | None = None
    empty: bool = False


@dataclass(slots=True, frozen=True)
class WorkingSetBounds:
    """Current working-set bounds of a process."""

    minimum: int
    maximum: int
    hard_min: bool
    hard_max: bool


def compile_patterns(patterns: tuple[str, ...] | list[str], kind: str) -> tuple[re.Pattern[str], ...]:
    """Compile case-insensitive patterns, raising ConfigurationError on bad regex."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as exc:
            raise ConfigurationError(f"Invalid {kind} pattern {pattern!r}: {exc}") from exc
    return tuple(compiled)


@dataclass(frozen=True)
class TrimPolicy:
    """Configuration for one invocation. Immutable for the duration of a pass."""

    include_names: tuple[str, ...] = ()
    exclude_names: tuple[str, ...] = ()
    include_users: tuple[str, ...] = ()
    exclude_users: tuple[str, ...] = ()
    above: int = 0
    minimum: Bound | None = None
    maximum: Bound | None = None
    this_session: bool = False
    session_ids: frozenset[int] = frozenset()
    exclude_session_ids: frozenset[int] = frozenset()
    disconnected_only: bool = False
    exclude_foreground: bool = False
    background_only: bool = False
    idle_seconds: float = 0.0
    new_only: bool = False
    monitoring_start: float = field(default_factory=time.time)
    process_ids: frozenset[int] = frozenset()
    report_only: bool = False
    savings: bool = False

    def __post_init__(self) -> None:
        if self.minimum is not None and self.minimum.size < 0:
            raise ConfigurationError("Minimum working set cannot be negative")
        if self.maximum is not None and self.maximum.size < 0:
            raise ConfigurationError("Maximum working set cannot be negative")
        if (
            self.minimum is not None
            and self.maximum is not None
            and self.minimum.size > self.maximum.size
        ):
            raise ConfigurationError(
                f"Minimum working set ({self.minimum.size}) exceeds maximum ({self.maximum.size})"
            )
        if self.above < 0:
            raise ConfigurationError("Threshold cannot be negative")
        if self.idle_seconds < 0:
            raise ConfigurationError("Idle threshold cannot be negative")
        # Compiled once here so that a bad pattern never reaches a pass
        object.__setattr__(self, "_name_includes", compile_patterns(self.include_names, "process name"))
        object.__setattr__(self, "_name_excludes", compile_patterns(self.exclude_names, "process name"))
        object.__setattr__(self, "_user_includes", compile_patterns(self.include_users, "user"))
        object.__setattr__(self, "_user_excludes", compile_patterns(self.exclude_users, "user"))

    @property
    def name_includes(self) -> tuple[re.Pattern[str], ...]:
        return self._name_includes

    @property
    def name_excludes(self) -> tuple[re.Pattern[str], ...]:
        return self._name_excludes

    @property
    def user_includes(self) -> tuple[re.Pattern[str], ...]:
        return self._user_includes

    @property
    def user_excludes(self) -> tuple[re.Pattern[str], ...]:
        return self._user_excludes

    @property
    def filters_users(self) -> bool:
        return bool(self.include_users or self.exclude_users)

    @property
    def protects_foreground(self) -> bool:
        return self.exclude_foreground or self.background_only


class SkipReason(Enum):
    """Why a process was not trimmed."""

    NAME_NOT_INCLUDED = "name not included"
    NAME_EXCLUDED = "name excluded"
    USER_NOT_INCLUDED = "user not included"
    USER_EXCLUDED = "user excluded"
    OTHER_SESSION = "not this session"
    SESSION_NOT_LISTED = "session not listed"
    SESSION_EXCLUDED = "session excluded"
    SESSION_CONNECTED = "session not disconnected"
    FOREGROUND = "foreground"
    BELOW_THRESHOLD = "below threshold"
    NOT_NEW = "started before monitoring"
    ACCESS_DENIED = "access denied"
    PROCESS_EXITED = "process exited"


class Outcome(Enum):
    """Outcome of applying a policy to one process."""

    TRIMMED = "trimmed"
    FAILED = "failed"
    SKIPPED = "skipped"
    REPORTED = "reported"


@dataclass(slots=True, frozen=True)
class TrimResult:
    """Outcome of attempting to apply a policy to one process."""

    pid: int
    name: str
    outcome: Outcome
    reason: SkipReason | None = None
    bytes_before: int = 0
    bytes_after: int | None = None  # Only measured when savings are requested
    error_code: int | None = None
    bounds: WorkingSetBounds | None = None
    session_id: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (Outcome.TRIMMED, Outcome.REPORTED)

    @property
    def delta(self) -> int | None:
        """Bytes released by the trim; negative when the working set regrew."""
        if self.bytes_after is None:
            return None
        return self.bytes_before - self.bytes_after


@dataclass(slots=True)
class TrimSummary:
    """Aggregate of one pass. Independent of every other pass."""

    pass_number: int = 1
    considered: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    trimmed: int = 0
    failed: int = 0
    reported: int = 0
    bytes_reclaimed: int = 0  # Sum of positive deltas only
    net_delta: int = 0  # Raw sum, may be negative
    results: list[TrimResult] = field(default_factory=list)
    suppressed: bool = False
    aborted: str | None = None
    started: float = field(default_factory=time.time)
    finished: float | None = None

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())

    def record(self, result: TrimResult) -> None:
        """Fold one result into the totals."""
        self.considered += 1
        self.results.append(result)
        if result.outcome is Outcome.SKIPPED:
            self.skip_reasons[result.reason] += 1
        elif result.outcome is Outcome.FAILED:
            self.failed += 1
        elif result.outcome is Outcome.REPORTED:
            self.reported += 1
        else:
            self.trimmed += 1
            delta = result.delta
            if delta is not None:
                self.net_delta += delta
                self.bytes_reclaimed += max(0, delta)

    def finish(self) -> "TrimSummary":
        self.finished = time.time()
        return self
