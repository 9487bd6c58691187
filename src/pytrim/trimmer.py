"""The trim engine: one pass, and the polling loop around it."""

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Protocol

import psutil

from pytrim.errors import ForegroundUnavailable
from pytrim.executor import TrimExecutor
from pytrim.filters import FilterContext, PredicateChain, Skipped
from pytrim.gate import IdleGate
from pytrim.models import (
    Outcome,
    ProcessSnapshot,
    TrimPolicy,
    TrimResult,
    TrimSummary,
)
from pytrim.osapi import NativeCallError, OsApi, SessionState

logger = logging.getLogger(__name__)


class Enumerator(Protocol):
    """Source of live process snapshots."""

    def list_processes(
        self,
        pids: Iterable[int] | None = None,
        foreground_pid: int | None = None,
    ) -> list[ProcessSnapshot]: ...

    def alive(self, pids: Iterable[int]) -> set[int]: ...

    def find(self, names: Iterable[str]) -> list[int]: ...


def _boosted_priority() -> int:
    if psutil.WINDOWS:
        return psutil.ABOVE_NORMAL_PRIORITY_CLASS
    return -5


@contextmanager
def priority_boost(enabled: bool = True) -> Iterator[None]:
    """Raise this process's own priority for the duration of a pass."""
    if not enabled:
        yield
        return
    me = psutil.Process()
    try:
        original = me.nice()
        me.nice(_boosted_priority())
    except (psutil.AccessDenied, OSError) as exc:
        logger.debug("Could not raise own priority: %s", exc)
        yield
        return
    try:
        yield
    finally:
        try:
            me.nice(original)
        except (psutil.AccessDenied, OSError) as exc:
            logger.warning("Could not restore own priority: %s", exc)


class Trimmer:
    """
    Runs trim passes under a fixed policy.

    Each pass builds its own snapshots and summary; nothing is shared
    between passes except the pass counter.
    """

    def __init__(
        self,
        policy: TrimPolicy,
        api: OsApi,
        enumerator: Enumerator,
        *,
        clock: Callable[[], float] = time.monotonic,
        boost_priority: bool = True,
        wait_for: Iterable[str] = (),
    ) -> None:
        self._policy = policy
        self._api = api
        self._enumerator = enumerator
        self._gate = IdleGate(api, clock=clock)
        self._chain = PredicateChain(policy)
        self._executor = TrimExecutor(api, policy)
        self._boost = boost_priority
        self._wait_for = tuple(wait_for)
        self._passes = 0

    @property
    def policy(self) -> TrimPolicy:
        return self._policy

    @property
    def passes(self) -> int:
        return self._passes

    def run_pass(self) -> TrimSummary:
        """Evaluate and trim (or query) every visible process once."""
        self._passes += 1
        summary = TrimSummary(pass_number=self._passes)

        try:
            suppressed = self._gate.suppresses(self._policy)
        except NativeCallError as exc:
            return self._abort(summary, exc)
        if suppressed:
            summary.suppressed = True
            return summary.finish()

        with priority_boost(self._boost):
            try:
                context, foreground = self._build_context()
            except (ForegroundUnavailable, NativeCallError) as exc:
                return self._abort(summary, exc)

            snapshots = self._enumerator.list_processes(
                pids=self._policy.process_ids or None,
                foreground_pid=foreground,
            )
            for snapshot in snapshots:
                summary.record(self._process(snapshot, context))

        logger.info(
            "Pass %d: %d considered, %d skipped, %d trimmed, %d failed, %d reclaimed bytes",
            summary.pass_number,
            summary.considered,
            summary.skipped,
            summary.trimmed,
            summary.failed,
            summary.bytes_reclaimed,
        )
        return summary.finish()

    def _abort(self, summary: TrimSummary, exc: Exception) -> TrimSummary:
        logger.error("Pass %d aborted: %s", summary.pass_number, exc)
        summary.aborted = str(exc)
        return summary.finish()

    def _process(self, snapshot: ProcessSnapshot, context: FilterContext) -> TrimResult:
        decision = self._chain.evaluate(snapshot, context)
        if isinstance(decision, Skipped):
            logger.debug(
                "Skipping %s (%d): %s", snapshot.name, snapshot.pid, decision.reason.value
            )
            return TrimResult(
                pid=snapshot.pid,
                name=snapshot.name,
                outcome=Outcome.SKIPPED,
                reason=decision.reason,
                bytes_before=snapshot.working_set_bytes,
                session_id=snapshot.session_id,
            )
        if self._policy.report_only:
            return self._executor.query(snapshot)
        return self._executor.trim(snapshot)

    def _build_context(self) -> tuple[FilterContext, int | None]:
        policy = self._policy
        foreground = self._gate.foreground_pid(required=policy.protects_foreground)

        caller_session = None
        if policy.this_session:
            caller_session = self._api.current_session_id()

        disconnected: frozenset[int] = frozenset()
        if policy.disconnected_only:
            try:
                disconnected = frozenset(
                    s.session_id
                    for s in self._api.list_sessions()
                    if s.state is SessionState.DISCONNECTED
                )
            except NativeCallError as exc:
                logger.warning("Cannot enumerate sessions: %s", exc)

        context = FilterContext(
            caller_session_id=caller_session,
            disconnected_sessions=disconnected,
            idle_override=self._gate.idle_override(policy),
        )
        return context, foreground

    def targets_exited(self) -> bool:
        """True when explicit target pids were given and none of them is alive."""
        if not self._policy.process_ids:
            return False
        return not self._enumerator.alive(self._policy.process_ids)

    def wait_for_target(self, stop_event: threading.Event, poll_seconds: float) -> bool:
        """Block until a process named in ``wait_for`` exists. False if stopped first."""
        if not self._wait_for:
            return True
        logger.info("Waiting for %s to start", ", ".join(self._wait_for))
        while not stop_event.is_set():
            found = self._enumerator.find(self._wait_for)
            if found:
                logger.info("Target started: %s", ", ".join(str(pid) for pid in found))
                return True
            stop_event.wait(timeout=poll_seconds)
        return False

    def run(
        self,
        stop_event: threading.Event,
        on_summary: Callable[[TrimSummary], None],
        *,
        loop: bool = False,
        poll_seconds: float = 60.0,
    ) -> None:
        """
        Run passes until stopped.

        Each summary is handed to ``on_summary`` before the next pass starts.
        Stops after one pass unless ``loop`` is set, when ``stop_event`` is set,
        or when every explicitly listed target process has exited.
        """
        if not self.wait_for_target(stop_event, poll_seconds):
            return

        while not stop_event.is_set():
            try:
                summary = self.run_pass()
                on_summary(summary)
            except Exception:
                if not loop:
                    raise
                logger.exception("Trim pass failed")

            if not loop:
                break
            if self.targets_exited():
                logger.info("All target processes have exited; stopping")
                break
            stop_event.wait(timeout=poll_seconds)
