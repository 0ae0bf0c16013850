"""Serial console acceptance harness for virtual machines."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as pkg_version

from .batch import BatchStep, Expect, Send, run_batch
from .driver import ScenarioResult, ScenarioState, run_scenario
from .errors import (
    ConnectFailed,
    ConsoleClosed,
    NotRunning,
    PlatformError,
    PollError,
    ReadTimeout,
    StepFailed,
    VMConsoleError,
)
from .orchestration import VMHandle, VMState
from .readiness import wait_running
from .stream import ConsoleSession, MatchResult, literal

__all__ = [
    "BatchStep",
    "ConnectFailed",
    "ConsoleClosed",
    "ConsoleSession",
    "Expect",
    "MatchResult",
    "NotRunning",
    "PlatformError",
    "PollError",
    "ReadTimeout",
    "ScenarioResult",
    "ScenarioState",
    "Send",
    "StepFailed",
    "VMConsoleError",
    "VMHandle",
    "VMState",
    "literal",
    "run_batch",
    "run_scenario",
    "wait_running",
]


def _discover_version() -> str:
    try:
        return pkg_version("vmconsole")
    except PackageNotFoundError:
        return "unknown"


__version__ = _discover_version()
