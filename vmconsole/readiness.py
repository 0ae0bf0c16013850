"""Bounded polling until a VM is running."""

from __future__ import annotations

import time
from typing import Callable

from .errors import NotRunning, PlatformError, PollError
from .logging_utils import log_event
from .orchestration import Platform, VMHandle, VMState


def wait_running(
    platform: Platform,
    handle: VMHandle,
    timeout: float,
    *,
    poll_interval: float = 1.0,
    max_poll_errors: int = 3,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Return once *handle* reports :attr:`VMState.RUNNING`.

    A ``FAILED`` state raises :class:`NotRunning` straight away, as does still
    being pending once *timeout* has elapsed. Platform errors are retried until
    more than *max_poll_errors* happen back to back, then :class:`PollError`
    is raised.
    """

    deadline = clock() + timeout
    consecutive_errors = 0
    polls = 0
    state = VMState.PENDING
    while True:
        polls += 1
        try:
            state = platform.get_vm_state(handle)
        except PlatformError as exc:
            consecutive_errors += 1
            log_event(
                "vmconsole.readiness.poll_error",
                vm=str(handle),
                attempt=consecutive_errors,
                error=str(exc),
            )
            if consecutive_errors > max_poll_errors:
                raise PollError(
                    f"could not query state of {handle}: {exc}",
                    attempts=consecutive_errors,
                ) from exc
        else:
            consecutive_errors = 0
            if state is VMState.RUNNING:
                log_event("vmconsole.readiness.running", vm=str(handle), polls=polls)
                return
            if state is VMState.FAILED:
                log_event("vmconsole.readiness.failed", vm=str(handle), polls=polls)
                raise NotRunning(f"VM {handle} entered the Failed state", state=state)

        remaining = deadline - clock()
        if remaining <= 0:
            log_event(
                "vmconsole.readiness.timeout",
                vm=str(handle),
                timeout=timeout,
                state=state.value,
            )
            raise NotRunning(
                f"VM {handle} was not running after {timeout:.0f}s "
                f"(last state: {state.value})",
                state=state,
            )
        sleep(min(poll_interval, remaining))
