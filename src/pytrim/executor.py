"""Applies or queries working-set bounds for eligible processes."""

import logging

from pytrim.models import (
    Outcome,
    ProcessSnapshot,
    SkipReason,
    TrimPolicy,
    TrimResult,
    WorkingSetRequest,
)
from pytrim.osapi import NativeCallError, OsApi, ProcessAccessError, ProcessGoneError

logger = logging.getLogger(__name__)

# Smallest minimum accepted alongside an explicit maximum
MIN_SUBSTITUTE = 1


class TrimExecutor:
    """
    Executes trims (or read-only queries) one process at a time.

    No per-process error escapes: access problems become skipped results,
    failed native calls become failed results carrying the OS error code.
    """

    def __init__(self, api: OsApi, policy: TrimPolicy) -> None:
        self._api = api
        self._policy = policy

    def build_request(self, handle: object) -> WorkingSetRequest:
        """Turn the policy's bounds into a coherent [min, max] pair."""
        minimum = self._policy.minimum
        maximum = self._policy.maximum
        if minimum is None and maximum is None:
            return WorkingSetRequest(empty=True)
        if maximum is not None and minimum is None:
            return WorkingSetRequest(
                minimum=MIN_SUBSTITUTE,
                maximum=maximum.size,
                hard_max=maximum.hard,
            )
        if maximum is None:
            # Keep the current maximum and its enforcement, raised to the new minimum if lower
            current = self._api.get_working_set_bounds(handle)
            return WorkingSetRequest(
                minimum=minimum.size,
                maximum=max(minimum.size, current.maximum),
                hard_min=minimum.hard,
            )
        return WorkingSetRequest(
            minimum=minimum.size,
            maximum=maximum.size,
            hard_min=minimum.hard,
            hard_max=maximum.hard,
        )

    def trim(self, snapshot: ProcessSnapshot) -> TrimResult:
        """Set the working-set bounds of one process."""
        before = snapshot.working_set_bytes
        try:
            with self._api.open_process(snapshot.pid, write=True) as handle:
                try:
                    request = self.build_request(handle)
                    self._api.set_working_set_bounds(handle, request)
                except ProcessGoneError as exc:
                    return self._skipped(snapshot, SkipReason.PROCESS_EXITED, exc.winerror)
                except NativeCallError as exc:
                    logger.warning(
                        "Failed to trim %s (%d): error %d", snapshot.name, snapshot.pid, exc.winerror
                    )
                    return TrimResult(
                        pid=snapshot.pid,
                        name=snapshot.name,
                        outcome=Outcome.FAILED,
                        bytes_before=before,
                        error_code=exc.winerror,
                        session_id=snapshot.session_id,
                    )
                after = self._measure(handle) if self._policy.savings else None
        except ProcessGoneError as exc:
            return self._skipped(snapshot, SkipReason.PROCESS_EXITED, exc.winerror)
        except ProcessAccessError as exc:
            return self._skipped(snapshot, SkipReason.ACCESS_DENIED, exc.winerror)

        logger.debug("Trimmed %s (%d)", snapshot.name, snapshot.pid)
        return TrimResult(
            pid=snapshot.pid,
            name=snapshot.name,
            outcome=Outcome.TRIMMED,
            bytes_before=before,
            bytes_after=after,
            session_id=snapshot.session_id,
        )

    def query(self, snapshot: ProcessSnapshot) -> TrimResult:
        """Read the current working-set bounds without changing anything."""
        try:
            with self._api.open_process(snapshot.pid, write=False) as handle:
                bounds = self._api.get_working_set_bounds(handle)
        except ProcessGoneError as exc:
            return self._skipped(snapshot, SkipReason.PROCESS_EXITED, exc.winerror)
        except NativeCallError as exc:
            return self._skipped(snapshot, SkipReason.ACCESS_DENIED, exc.winerror)
        return TrimResult(
            pid=snapshot.pid,
            name=snapshot.name,
            outcome=Outcome.REPORTED,
            bytes_before=snapshot.working_set_bytes,
            bounds=bounds,
            session_id=snapshot.session_id,
        )

    def _measure(self, handle: object) -> int | None:
        try:
            return self._api.working_set_bytes(handle)
        except NativeCallError as exc:
            logger.debug("Could not re-read working set: error %d", exc.winerror)
            return None

    def _skipped(self, snapshot: ProcessSnapshot, reason: SkipReason, error: int | None) -> TrimResult:
        logger.debug("Skipping %s (%d): %s", snapshot.name, snapshot.pid, reason.value)
        return TrimResult(
            pid=snapshot.pid,
            name=snapshot.name,
            outcome=Outcome.SKIPPED,
            reason=reason,
            bytes_before=snapshot.working_set_bytes,
            error_code=error,
            session_id=snapshot.session_id,
        )
