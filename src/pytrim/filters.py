"""Eligibility predicates applied to every process snapshot."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from pytrim.models import ProcessSnapshot, SkipReason, TrimPolicy

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Eligible:
    """The process passed every predicate."""

    snapshot: ProcessSnapshot


@dataclass(slots=True, frozen=True)
class Skipped:
    """The process failed a predicate; ``reason`` names the first one."""

    snapshot: ProcessSnapshot
    reason: SkipReason


Decision = Eligible | Skipped


@dataclass(slots=True, frozen=True)
class FilterContext:
    """Per-pass facts the predicates need beyond the snapshot itself."""

    caller_session_id: int | None = None
    disconnected_sessions: frozenset[int] = field(default_factory=frozenset)
    idle_override: bool = False


def _name_variants(name: str) -> tuple[str, ...]:
    if name.lower().endswith(".exe"):
        return (name, name[:-4])
    return (name,)


def _user_variants(username: str) -> tuple[str, ...]:
    if "\\" in username:
        return (username, username.rsplit("\\", 1)[1])
    return (username,)


def matches_any(patterns: Iterable[re.Pattern[str]], candidates: tuple[str, ...]) -> bool:
    """True if any candidate equals or fully matches any pattern, ignoring case."""
    for pattern in patterns:
        for candidate in candidates:
            if candidate.lower() == pattern.pattern.lower() or pattern.fullmatch(candidate):
                return True
    return False


class PredicateChain:
    """
    Decides whether a process may be trimmed under a policy.

    The predicates form a pure conjunction; their order only decides which
    reason is reported for a skipped process.
    """

    def __init__(self, policy: TrimPolicy) -> None:
        self._policy = policy
        self._warned_unreadable_owner = False

    @property
    def policy(self) -> TrimPolicy:
        return self._policy

    def evaluate(self, snapshot: ProcessSnapshot, context: FilterContext) -> Decision:
        """Evaluate all predicates; never raises for a predicate failure."""
        reason = (
            self._check_name(snapshot)
            or self._check_user(snapshot)
            or self._check_session(snapshot, context)
            or self._check_foreground(snapshot, context)
            or self._check_threshold(snapshot)
            or self._check_freshness(snapshot)
        )
        if reason is not None:
            return Skipped(snapshot, reason)
        return Eligible(snapshot)

    def _check_name(self, snapshot: ProcessSnapshot) -> SkipReason | None:
        names = _name_variants(snapshot.name)
        if self._policy.include_names and not matches_any(self._policy.name_includes, names):
            return SkipReason.NAME_NOT_INCLUDED
        if matches_any(self._policy.name_excludes, names):
            return SkipReason.NAME_EXCLUDED
        return None

    def _check_user(self, snapshot: ProcessSnapshot) -> SkipReason | None:
        if not self._policy.filters_users:
            return None
        if snapshot.username is None:
            if not self._warned_unreadable_owner:
                logger.warning(
                    "Cannot read the owner of some processes; user filters are "
                    "not applied to them (run elevated to apply them)"
                )
                self._warned_unreadable_owner = True
            return None
        users = _user_variants(snapshot.username)
        if self._policy.include_users and not matches_any(self._policy.user_includes, users):
            return SkipReason.USER_NOT_INCLUDED
        if matches_any(self._policy.user_excludes, users):
            return SkipReason.USER_EXCLUDED
        return None

    def _check_session(self, snapshot: ProcessSnapshot, context: FilterContext) -> SkipReason | None:
        session = snapshot.session_id
        if self._policy.this_session and session != context.caller_session_id:
            return SkipReason.OTHER_SESSION
        if self._policy.session_ids and session not in self._policy.session_ids:
            return SkipReason.SESSION_NOT_LISTED
        if session is not None and session in self._policy.exclude_session_ids:
            return SkipReason.SESSION_EXCLUDED
        if self._policy.disconnected_only and session not in context.disconnected_sessions:
            return SkipReason.SESSION_CONNECTED
        return None

    def _check_foreground(self, snapshot: ProcessSnapshot, context: FilterContext) -> SkipReason | None:
        if not snapshot.foreground or not self._policy.protects_foreground:
            return None
        # A background pass never touches the foreground, idle or not
        if context.idle_override and not self._policy.background_only:
            return None
        return SkipReason.FOREGROUND

    def _check_threshold(self, snapshot: ProcessSnapshot) -> SkipReason | None:
        if snapshot.working_set_bytes <= self._policy.above:
            return SkipReason.BELOW_THRESHOLD
        return None

    def _check_freshness(self, snapshot: ProcessSnapshot) -> SkipReason | None:
        if self._policy.new_only and snapshot.start_time < self._policy.monitoring_start:
            return SkipReason.NOT_NEW
        return None
