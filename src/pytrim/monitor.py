"""Process enumeration and the background trim loop for pytrim."""

import threading
from collections.abc import Callable, Iterable
from queue import Queue

import psutil

from pytrim.models import ProcessSnapshot, TrimSummary
from pytrim.report import ReportSink
from pytrim.trimmer import Trimmer


def _no_session(pid: int) -> int | None:
    return None


class ProcessEnumerator:
    """
    Lists live processes as ProcessSnapshots using psutil.

    Owner names come back as None when the caller may not read them;
    processes that vanish mid-enumeration are silently left out.
    """

    ATTRS = ["pid", "name", "username", "memory_info", "create_time"]

    def __init__(self, session_of: Callable[[int], int | None] = _no_session) -> None:
        """
        Initialize the ProcessEnumerator.

        Args:
            session_of: Resolves a pid to its logon session id.
        """
        self._session_of = session_of

    def list_processes(
        self,
        pids: Iterable[int] | None = None,
        foreground_pid: int | None = None,
    ) -> list[ProcessSnapshot]:
        """Collect snapshots of all (or only the given) running processes."""
        wanted = set(pids) if pids else None
        processes: list[ProcessSnapshot] = []

        for proc in psutil.process_iter(attrs=self.ATTRS, ad_value=None):
            try:
                info = proc.info
                pid = info.get("pid", proc.pid)
                if wanted is not None and pid not in wanted:
                    continue

                mem_info = info.get("memory_info")
                snapshot = ProcessSnapshot(
                    pid=pid,
                    name=info.get("name") or "",
                    username=info.get("username"),
                    session_id=self._session_of(pid),
                    working_set_bytes=mem_info.rss if mem_info else 0,
                    foreground=foreground_pid is not None and pid == foreground_pid,
                    start_time=info.get("create_time") or 0.0,
                )
                processes.append(snapshot)

            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                continue

        return processes

    def alive(self, pids: Iterable[int]) -> set[int]:
        """Return the subset of ``pids`` still running."""
        return {pid for pid in pids if psutil.pid_exists(pid)}

    def find(self, names: Iterable[str]) -> list[int]:
        """Return pids of processes whose name matches one of ``names``."""
        targets = {name.lower() for name in names}
        targets |= {f"{name}.exe" for name in targets if not name.endswith(".exe")}
        found = []
        for proc in psutil.process_iter(attrs=["pid", "name"], ad_value=None):
            name = (proc.info.get("name") or "").lower()
            if name in targets:
                found.append(proc.info["pid"])
        return found


class TrimMonitor:
    """
    Drives a Trimmer on a daemon thread and pushes each TrimSummary to a Queue.

    Used by the interactive UI; passes never overlap.
    """

    def __init__(
        self,
        trimmer: Trimmer,
        update_queue: Queue[TrimSummary],
        poll_seconds: float = 60.0,
        sink: ReportSink | None = None,
    ) -> None:
        """
        Initialize the TrimMonitor.

        Args:
            trimmer: Engine that runs each pass.
            update_queue: Thread-safe queue to push summaries to.
            poll_seconds: Pause between passes (in seconds).
            sink: Written to on the trim thread before the summary is queued.
        """
        self._trimmer = trimmer
        self._queue = update_queue
        self._sink = sink
        self._poll_seconds = max(0.1, poll_seconds)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_seconds(self) -> float:
        """Get the current poll interval."""
        return self._poll_seconds

    @poll_seconds.setter
    def poll_seconds(self, value: float) -> None:
        """Set the poll interval."""
        self._poll_seconds = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the trimming thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="TrimMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the trimming thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _publish(self, summary: TrimSummary) -> None:
        if self._sink is not None:
            self._sink.emit(summary)
        self._queue.put(summary)

    def _run(self) -> None:
        self._trimmer.run(
            self._stop_event,
            self._publish,
            loop=True,
            poll_seconds=self._poll_seconds,
        )
