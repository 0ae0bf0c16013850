"""Exceptions raised by the console harness."""

from __future__ import annotations

import enum
from typing import Any, Optional


class TimeoutKind(enum.Enum):
    """Why a console read ran out of time."""

    NOTHING_ARRIVED = "nothing arrived"
    NO_MATCH = "arrived but never matched"


class VMConsoleError(Exception):
    """Base class for harness failures."""


class PlatformError(VMConsoleError):
    """A call to the orchestration platform failed."""


class ConnectFailed(VMConsoleError):
    """The console channel could not be established."""


class NotRunning(VMConsoleError):
    """The VM failed or never reached the running state."""

    def __init__(self, message: str, *, state: Any = None) -> None:
        super().__init__(message)
        self.state = state


class PollError(VMConsoleError):
    """Querying VM state kept failing."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class ReadTimeout(VMConsoleError):
    """An expected pattern did not appear before the deadline."""

    def __init__(
        self,
        pattern: str,
        timeout: float,
        *,
        kind: TimeoutKind,
        tail: str = "",
    ) -> None:
        super().__init__(
            f"pattern {pattern!r} not seen within {timeout:.1f}s ({kind.value})"
        )
        self.pattern = pattern
        self.timeout = timeout
        self.kind = kind
        self.tail = tail


class ConsoleClosed(VMConsoleError):
    """The console reached EOF or was used after being closed."""

    def __init__(self, pattern: Optional[str] = None, *, tail: str = "") -> None:
        if pattern is None:
            super().__init__("console session is closed")
        else:
            super().__init__(f"console closed while waiting for {pattern!r}")
        self.pattern = pattern
        self.tail = tail


class StepFailed(VMConsoleError):
    """A batch script aborted on one of its steps."""

    def __init__(
        self,
        index: int,
        step: Any,
        reason: str,
        *,
        pattern: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = f"step {index} failed: {reason}"
        if pattern is not None:
            detail += f" (pattern {pattern!r})"
        if cause is not None:
            detail += f": {cause}"
        super().__init__(detail)
        self.index = index
        self.step = step
        self.reason = reason
        self.pattern = pattern
        self.cause = cause
