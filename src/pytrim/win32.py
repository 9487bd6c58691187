"""Win32 bindings: ctypes for the working-set calls, pywin32 for input, window and session lookups."""

import ctypes
import ctypes.wintypes as wt
import time
from collections.abc import Iterator
from contextlib import contextmanager

import pywintypes
import win32api
import win32gui
import win32process
import win32ts

from pytrim.models import WorkingSetBounds, WorkingSetRequest
from pytrim.osapi import (
    NativeCallError,
    ProcessAccessError,
    ProcessGoneError,
    SessionInfo,
    SessionState,
)

# Access rights
PROCESS_SET_QUOTA = 0x0100
PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

# SetProcessWorkingSetSizeEx flags
QUOTA_LIMITS_HARDWS_MIN_ENABLE = 0x00000001
QUOTA_LIMITS_HARDWS_MIN_DISABLE = 0x00000002
QUOTA_LIMITS_HARDWS_MAX_ENABLE = 0x00000004
QUOTA_LIMITS_HARDWS_MAX_DISABLE = 0x00000008

ERROR_INVALID_PARAMETER = 87

# (SIZE_T)-1 for both sizes empties the working set
SIZE_T_MAX = ctypes.c_size_t(-1).value


class PROCESS_MEMORY_COUNTERS(ctypes.Structure):
    _fields_ = [
        ("cb", wt.DWORD),
        ("PageFaultCount", wt.DWORD),
        ("PeakWorkingSetSize", ctypes.c_size_t),
        ("WorkingSetSize", ctypes.c_size_t),
        ("QuotaPeakPagedPoolUsage", ctypes.c_size_t),
        ("QuotaPagedPoolUsage", ctypes.c_size_t),
        ("QuotaPeakNonPagedPoolUsage", ctypes.c_size_t),
        ("QuotaNonPagedPoolUsage", ctypes.c_size_t),
        ("PagefileUsage", ctypes.c_size_t),
        ("PeakPagefileUsage", ctypes.c_size_t),
    ]



def encode_flags(request: WorkingSetRequest) -> int:
    """Translate the structured hard/soft choices into QUOTA_LIMITS_HARDWS_* bits."""
    flags = 0
    if request.hard_min is True:
        flags |= QUOTA_LIMITS_HARDWS_MIN_ENABLE
    elif request.hard_min is False:
        flags |= QUOTA_LIMITS_HARDWS_MIN_DISABLE
    if request.hard_max is True:
        flags |= QUOTA_LIMITS_HARDWS_MAX_ENABLE
    elif request.hard_max is False:
        flags |= QUOTA_LIMITS_HARDWS_MAX_DISABLE
    return flags


class Win32Api:
    """Native facilities backed by kernel32 and psapi, plus pywin32 lookups."""

    def __init__(self) -> None:
        self._kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        self._psapi = ctypes.WinDLL("psapi", use_last_error=True)
        self._declare()

    def _declare(self) -> None:
        k32 = self._kernel32
        k32.OpenProcess.argtypes = [wt.DWORD, wt.BOOL, wt.DWORD]
        k32.OpenProcess.restype = wt.HANDLE
        k32.CloseHandle.argtypes = [wt.HANDLE]
        k32.CloseHandle.restype = wt.BOOL
        k32.GetProcessWorkingSetSizeEx.argtypes = [
            wt.HANDLE,
            ctypes.POINTER(ctypes.c_size_t),
            ctypes.POINTER(ctypes.c_size_t),
            ctypes.POINTER(wt.DWORD),
        ]
        k32.GetProcessWorkingSetSizeEx.restype = wt.BOOL
        k32.SetProcessWorkingSetSizeEx.argtypes = [
            wt.HANDLE,
            ctypes.c_size_t,
            ctypes.c_size_t,
            wt.DWORD,
        ]
        k32.SetProcessWorkingSetSizeEx.restype = wt.BOOL

        self._psapi.GetProcessMemoryInfo.argtypes = [
            wt.HANDLE,
            ctypes.POINTER(PROCESS_MEMORY_COUNTERS),
            wt.DWORD,
        ]
        self._psapi.GetProcessMemoryInfo.restype = wt.BOOL

    @contextmanager
    def open_process(self, pid: int, write: bool = False) -> Iterator[int]:
        access = PROCESS_QUERY_LIMITED_INFORMATION
        if write:
            access |= PROCESS_SET_QUOTA
        handle = self._kernel32.OpenProcess(access, False, pid)
        if not handle:
            error = ctypes.get_last_error()
            if error == ERROR_INVALID_PARAMETER:
                raise ProcessGoneError("OpenProcess", error)
            raise ProcessAccessError("OpenProcess", error)
        try:
            yield handle
        finally:
            self._kernel32.CloseHandle(handle)

    def get_working_set_bounds(self, handle: int) -> WorkingSetBounds:
        minimum = ctypes.c_size_t()
        maximum = ctypes.c_size_t()
        flags = wt.DWORD()
        if not self._kernel32.GetProcessWorkingSetSizeEx(
            handle, ctypes.byref(minimum), ctypes.byref(maximum), ctypes.byref(flags)
        ):
            raise NativeCallError("GetProcessWorkingSetSizeEx", ctypes.get_last_error())
        return WorkingSetBounds(
            minimum=minimum.value,
            maximum=maximum.value,
            hard_min=bool(flags.value & QUOTA_LIMITS_HARDWS_MIN_ENABLE),
            hard_max=bool(flags.value & QUOTA_LIMITS_HARDWS_MAX_ENABLE),
        )

    def set_working_set_bounds(self, handle: int, request: WorkingSetRequest) -> None:
        if request.empty:
            minimum = maximum = SIZE_T_MAX
            flags = 0
        else:
            minimum, maximum = request.minimum, request.maximum
            flags = encode_flags(request)
        if not self._kernel32.SetProcessWorkingSetSizeEx(handle, minimum, maximum, flags):
            raise NativeCallError("SetProcessWorkingSetSizeEx", ctypes.get_last_error())

    def working_set_bytes(self, handle: int) -> int:
        counters = PROCESS_MEMORY_COUNTERS()
        counters.cb = ctypes.sizeof(PROCESS_MEMORY_COUNTERS)
        if not self._psapi.GetProcessMemoryInfo(handle, ctypes.byref(counters), counters.cb):
            raise NativeCallError("GetProcessMemoryInfo", ctypes.get_last_error())
        return int(counters.WorkingSetSize)

    def last_input_time(self) -> float:
        try:
            last_input = win32api.GetLastInputInfo()
        except pywintypes.error as exc:
            raise NativeCallError("GetLastInputInfo", exc.winerror) from exc
        # Both tick counts are 32-bit and wrap after ~49.7 days
        idle_ms = (win32api.GetTickCount() - last_input) & 0xFFFFFFFF
        return time.monotonic() - idle_ms / 1000.0

    def foreground_window_pid(self) -> int | None:
        hwnd = win32gui.GetForegroundWindow()
        if not hwnd:
            return None
        try:
            _, pid = win32process.GetWindowThreadProcessId(hwnd)
        except pywintypes.error as exc:
            raise NativeCallError("GetWindowThreadProcessId", exc.winerror) from exc
        return pid or None

    def list_sessions(self) -> list[SessionInfo]:
        try:
            entries = win32ts.WTSEnumerateSessions(win32ts.WTS_CURRENT_SERVER_HANDLE)
        except pywintypes.error as exc:
            raise NativeCallError("WTSEnumerateSessions", exc.winerror) from exc
        sessions = []
        for entry in entries:
            if entry["State"] == win32ts.WTSActive:
                state = SessionState.ACTIVE
            elif entry["State"] == win32ts.WTSDisconnected:
                state = SessionState.DISCONNECTED
            else:
                state = SessionState.OTHER
            sessions.append(
                SessionInfo(
                    session_id=entry["SessionId"],
                    state=state,
                    name=entry["WinStationName"] or "",
                )
            )
        return sessions

    def session_of(self, pid: int) -> int | None:
        try:
            return win32ts.ProcessIdToSessionId(pid)
        except pywintypes.error:
            return None

    def current_session_id(self) -> int:
        try:
            return win32ts.ProcessIdToSessionId(win32api.GetCurrentProcessId())
        except pywintypes.error as exc:
            raise NativeCallError("ProcessIdToSessionId", exc.winerror) from exc
