"""Interfaces to the native facilities pytrim relies on."""

import sys
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from pytrim.errors import UnsupportedPlatformError
from pytrim.models import WorkingSetBounds, WorkingSetRequest


class NativeCallError(OSError):
    """A native call failed after the process handle was obtained."""

    def __init__(self, call: str, winerror: int) -> None:
        super().__init__(winerror, f"{call} failed with error {winerror}")
        self.call = call
        self.winerror = winerror


class ProcessAccessError(NativeCallError):
    """The process could not be opened with the requested rights."""


class ProcessGoneError(NativeCallError):
    """The process exited between enumeration and the native call."""


class SessionState(Enum):
    """Connection state of a logon session."""

    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    OTHER = "other"


@dataclass(slots=True, frozen=True)
class SessionInfo:
    """A logon session as reported by the session enumerator."""

    session_id: int
    state: SessionState
    name: str = ""


class OsApi(Protocol):
    """Native working-set, input, window and session facilities."""

    def open_process(self, pid: int, write: bool = False) -> AbstractContextManager[Any]:
        """Open a process handle, closed when the context exits."""
        ...

    def get_working_set_bounds(self, handle: Any) -> WorkingSetBounds: ...

    def set_working_set_bounds(self, handle: Any, request: WorkingSetRequest) -> None: ...

    def working_set_bytes(self, handle: Any) -> int: ...

    def last_input_time(self) -> float:
        """Time of the last keyboard or mouse input, on the time.monotonic() clock."""
        ...

    def foreground_window_pid(self) -> int | None: ...

    def list_sessions(self) -> list[SessionInfo]: ...

    def session_of(self, pid: int) -> int | None: ...

    def current_session_id(self) -> int: ...


def load_os_api() -> OsApi:
    """Return the native facilities for this platform."""
    if sys.platform != "win32":
        raise UnsupportedPlatformError(
            f"Working-set control needs Windows, not {sys.platform}"
        )
    from pytrim.win32 import Win32Api

    return Win32Api()
