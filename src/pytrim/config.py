"""Configuration module for pytrim."""

import re
import time
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pytrim.errors import ConfigurationError
from pytrim.formatting import parse_size
from pytrim.models import Bound, Hardness, TrimPolicy

DEFAULT_ABOVE = 10 * 1024**2
DEFAULT_POLL_SECONDS = 60.0


class TrimConfig(BaseSettings):
    """Invocation options; every field may also come from a PYTRIM_* variable."""

    model_config = SettingsConfigDict(env_prefix="PYTRIM_", extra="forbid")

    # Process and user selection
    processes: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    exclude_users: list[str] = Field(default_factory=list)
    process_ids: list[int] = Field(default_factory=list)
    new_only: bool = Field(default=False)
    wait_for: list[str] = Field(default_factory=list)

    # Session scoping
    this_session: bool = Field(default=False)
    session_ids: list[int] = Field(default_factory=list)
    exclude_session_ids: list[int] = Field(default_factory=list)
    disconnected: bool = Field(default=False)

    # Working set targets
    above: int = Field(default=DEFAULT_ABOVE)
    min_working_set: int | None = Field(default=None)
    max_working_set: int | None = Field(default=None)
    hard_min: bool = Field(default=False)
    hard_max: bool = Field(default=False)

    # Idle and foreground
    idle: float = Field(default=0.0)
    exclude_foreground: bool = Field(default=False)
    background: bool = Field(default=False)

    # Runtime options
    loop: bool = Field(default=False)
    poll: float = Field(default=DEFAULT_POLL_SECONDS)
    report: bool = Field(default=False)
    savings: bool = Field(default=False)
    boost_priority: bool = Field(default=True)

    # Output
    csv_path: str | None = Field(default=None)
    json_lines: bool = Field(default=False)
    interactive: bool = Field(default=False)
    show_skipped: bool = Field(default=False)
    log_file: str | None = Field(default=None)
    verbose: int = Field(default=0)

    @field_validator("above", "min_working_set", "max_working_set", mode="before")
    @classmethod
    def validate_size(cls, v: Any) -> Any:
        """Accept sizes such as '50MB'."""
        if isinstance(v, str):
            return parse_size(v)
        return v

    @field_validator("above", "min_working_set", "max_working_set")
    @classmethod
    def validate_non_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("Sizes cannot be negative")
        return v

    @field_validator("processes", "exclude", "users", "exclude_users")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Reject patterns that are not valid regular expressions."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid regex {pattern!r}: {exc}") from exc
        return v

    @field_validator("idle")
    @classmethod
    def validate_idle(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Idle threshold cannot be negative")
        return v

    @field_validator("poll")
    @classmethod
    def validate_poll(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll interval must be positive")
        return v

    @model_validator(mode="after")
    def validate_combinations(self) -> "TrimConfig":
        """Reject contradictory option combinations."""
        if self.report and (self.loop or self.interactive):
            raise ValueError("--report is a one-shot query and cannot loop")
        if self.report and self.savings:
            raise ValueError("--savings needs a trim, not --report")
        if self.hard_min and self.min_working_set is None:
            raise ValueError("--hard-min needs --min-working-set")
        if self.hard_max and self.max_working_set is None:
            raise ValueError("--hard-max needs --max-working-set")
        if (
            self.min_working_set is not None
            and self.max_working_set is not None
            and self.min_working_set > self.max_working_set
        ):
            raise ValueError(
                f"Minimum working set ({self.min_working_set}) exceeds maximum ({self.max_working_set})"
            )
        overlap = set(self.session_ids) & set(self.exclude_session_ids)
        if overlap:
            raise ValueError(f"Sessions both included and excluded: {sorted(overlap)}")
        return self

    @property
    def looping(self) -> bool:
        return self.loop or self.interactive

    def to_policy(self, monitoring_start: float | None = None) -> TrimPolicy:
        """Build the immutable policy for this invocation."""
        minimum = None
        if self.min_working_set is not None:
            minimum = Bound(self.min_working_set, Hardness.HARD if self.hard_min else Hardness.SOFT)
        maximum = None
        if self.max_working_set is not None:
            maximum = Bound(self.max_working_set, Hardness.HARD if self.hard_max else Hardness.SOFT)
        return TrimPolicy(
            include_names=tuple(self.processes),
            exclude_names=tuple(self.exclude),
            include_users=tuple(self.users),
            exclude_users=tuple(self.exclude_users),
            above=self.above,
            minimum=minimum,
            maximum=maximum,
            this_session=self.this_session,
            session_ids=frozenset(self.session_ids),
            exclude_session_ids=frozenset(self.exclude_session_ids),
            disconnected_only=self.disconnected,
            exclude_foreground=self.exclude_foreground,
            background_only=self.background,
            idle_seconds=self.idle,
            new_only=self.new_only,
            monitoring_start=time.time() if monitoring_start is None else monitoring_start,
            process_ids=frozenset(self.process_ids),
            report_only=self.report,
            savings=self.savings,
        )


def load_config(**options: Any) -> TrimConfig:
    """Build a TrimConfig, turning validation failures into ConfigurationError."""
    try:
        return TrimConfig(**options)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(messages) from exc
