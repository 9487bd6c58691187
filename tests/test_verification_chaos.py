"""Verification Test: Chaos Monkey - targets exiting while pytrim works.

Processes can exit between enumeration and the working-set call; the
pass must record them as skipped and keep going, and a loop watching
explicit process ids must stop once they are all gone.
"""

import multiprocessing
import random
import threading
import time

from fakes import FakeOsApi
from pytrim.models import SkipReason, TrimPolicy
from pytrim.monitor import ProcessEnumerator
from pytrim.trimmer import Trimmer


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_pass_survives_targets_exiting(self):
        processes = []
        for _ in range(10):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        try:
            pids = frozenset(p.pid for p in processes)
            api = FakeOsApi()
            killed = random.sample(processes, 5)
            # Vanish after enumeration, before the handle is opened
            api.gone.update(p.pid for p in killed)
            trimmer = Trimmer(
                TrimPolicy(above=0, process_ids=pids),
                api,
                ProcessEnumerator(),
                boost_priority=False,
            )

            summary = trimmer.run_pass()

            assert summary.considered == 10
            assert summary.skip_reasons[SkipReason.PROCESS_EXITED] == 5
            assert summary.trimmed == 5
        finally:
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=1.0)

    def test_enumeration_handles_terminated_process(self):
        p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        p.start()
        time.sleep(0.1)
        p.terminate()
        p.join(timeout=1.0)

        processes = ProcessEnumerator().list_processes()

        assert isinstance(processes, list)
        assert p.pid not in {proc.pid for proc in processes}

    def test_loop_stops_once_targets_exit(self):
        processes = []
        for _ in range(3):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        stop = threading.Event()
        summaries = []
        trimmer = Trimmer(
            TrimPolicy(above=0, process_ids=frozenset(p.pid for p in processes)),
            FakeOsApi(),
            ProcessEnumerator(),
            boost_priority=False,
        )

        def on_summary(summary):
            summaries.append(summary)
            if len(summaries) == 2:
                for p in processes:
                    p.terminate()
                for p in processes:
                    p.join(timeout=1.0)

        worker = threading.Thread(
            target=trimmer.run,
            args=(stop, on_summary),
            kwargs={"loop": True, "poll_seconds": 0.1},
            daemon=True,
        )
        try:
            worker.start()
            worker.join(timeout=10.0)

            assert not worker.is_alive(), "Loop should stop once every target exited"
            assert len(summaries) >= 2
        finally:
            stop.set()
            for p in processes:
                if p.is_alive():
                    p.terminate()
