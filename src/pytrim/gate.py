"""Idle and foreground-window checks that gate a trim pass."""

import logging
import time
from collections.abc import Callable

from pytrim.errors import ForegroundUnavailable
from pytrim.models import TrimPolicy
from pytrim.osapi import NativeCallError, OsApi

logger = logging.getLogger(__name__)


class IdleGate:
    """Decides whether a pass runs and which process owns the foreground."""

    def __init__(self, api: OsApi, clock: Callable[[], float] = time.monotonic) -> None:
        self._api = api
        self._clock = clock

    def idle_seconds(self) -> float:
        """Seconds since the last keyboard or mouse input."""
        return max(0.0, self._clock() - self._api.last_input_time())

    def suppresses(self, policy: TrimPolicy) -> bool:
        """True when the session is not idle long enough for this pass to run."""
        if policy.idle_seconds <= 0 or policy.background_only:
            return False
        idle = self.idle_seconds()
        if idle < policy.idle_seconds:
            logger.debug("Idle for %.0fs, need %.0fs; skipping pass", idle, policy.idle_seconds)
            return True
        return False

    def idle_override(self, policy: TrimPolicy) -> bool:
        """True when the user has been away long enough to trim the foreground too."""
        if policy.idle_seconds <= 0:
            return False
        return self.idle_seconds() >= policy.idle_seconds

    def foreground_pid(self, required: bool) -> int | None:
        """
        Resolve the process owning the foreground window.

        Args:
            required: Raise ForegroundUnavailable instead of returning None
                when the owner cannot be resolved.
        """
        try:
            pid = self._api.foreground_window_pid()
        except NativeCallError as exc:
            if required:
                raise ForegroundUnavailable(f"Cannot resolve foreground window: {exc}") from exc
            return None
        if pid is None and required:
            raise ForegroundUnavailable("No foreground window owner")
        return pid
