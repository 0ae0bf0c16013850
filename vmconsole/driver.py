"""End-to-end execution of one console scenario."""

from __future__ import annotations

import datetime
import enum
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .batch import BatchStep, run_batch, validate_script
from .config import HarnessConfig
from .errors import PlatformError, StepFailed, VMConsoleError
from .logging_utils import log_event
from .metadata import (
    record_scenario_diagnostic,
    write_diagnostic_artifact,
    write_scenario_metadata,
)
from .orchestration import Platform, VMHandle
from .readiness import wait_running
from .stream import ConsoleSession, MatchResult


class ScenarioState(enum.Enum):
    CREATED = "created"
    AWAITING_RUNNING = "awaiting-running"
    CONSOLE_OPEN = "console-open"
    SCRIPT_RUNNING = "script-running"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class ScenarioTimings:
    """Wall-clock measurements captured while a scenario runs."""

    ready_seconds: Optional[float] = None
    script_seconds: Optional[float] = None
    total_seconds: Optional[float] = None
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None

    def to_metadata(self) -> Dict[str, object]:
        timings: Dict[str, object] = {}
        if self.started_at:
            timings["start"] = self.started_at.isoformat()
        if self.completed_at:
            timings["end"] = self.completed_at.isoformat()
        if self.ready_seconds is not None:
            timings["ready_seconds"] = round(self.ready_seconds, 3)
        if self.script_seconds is not None:
            timings["script_seconds"] = round(self.script_seconds, 3)
        if self.total_seconds is not None:
            timings["total_seconds"] = round(self.total_seconds, 3)
        return timings


@dataclass
class ScenarioResult:
    """Verdict of a scenario, with enough context to attribute a failure."""

    name: str
    state: ScenarioState = ScenarioState.CREATED
    reason: Optional[str] = None
    detail: Optional[str] = None
    failed_in: Optional[ScenarioState] = None
    step_index: Optional[int] = None
    pattern: Optional[str] = None
    vm: Optional[VMHandle] = None
    matches: List[MatchResult] = field(default_factory=list)
    transcript: List[str] = field(default_factory=list)
    timings: ScenarioTimings = field(default_factory=ScenarioTimings)
    log_dir: Optional[Path] = None

    @property
    def passed(self) -> bool:
        return self.state is ScenarioState.PASSED

    def summary(self) -> str:
        if self.passed:
            return f"{self.name}: passed"
        parts = [f"{self.name}: failed"]
        if self.step_index is not None:
            parts.append(f"at step {self.step_index}")
        if self.pattern is not None:
            parts.append(f"waiting for {self.pattern!r}")
        if self.reason:
            parts.append(f"({self.reason})")
        return " ".join(parts)

    def raise_for_failure(self) -> None:
        """Raise ``AssertionError`` describing the failure, if there was one."""

        if self.passed:
            return
        details = [self.summary()]
        if self.detail:
            details.append(f"Detail: {self.detail}")
        if self.failed_in is not None:
            details.append(f"Failed while: {self.failed_in.value}")
        if self.vm is not None:
            details.append(f"VM: {self.vm}")
        if self.transcript:
            details.append("Console transcript:")
            details.extend(self.transcript)
        if self.log_dir is not None:
            details.append(f"Logs: {self.log_dir}")
        raise AssertionError("\n".join(details))


def _advance(result: ScenarioResult, state: ScenarioState) -> None:
    result.state = state
    log_event("vmconsole.scenario.state", scenario=result.name, state=state.value)


def _fail(result: ScenarioResult, reason: str, exc: BaseException) -> None:
    result.failed_in = result.state
    result.reason = reason
    result.detail = str(exc)
    _advance(result, ScenarioState.FAILED)


def _scenario_name(spec: Dict[str, Any], name: Optional[str]) -> str:
    if name:
        return name
    metadata = spec.get("metadata")
    if isinstance(metadata, dict) and metadata.get("name"):
        return str(metadata["name"])
    return "scenario"


def run_scenario(
    platform: Platform,
    spec: Dict[str, Any],
    script: Sequence[BatchStep],
    overall_timeout: float,
    *,
    name: Optional[str] = None,
    config: Optional[HarnessConfig] = None,
    device: str = "serial0",
    log_dir: Optional[Path] = None,
    delete_vm: bool = True,
) -> ScenarioResult:
    """Create a VM from *spec*, drive *script* on its console and report.

    Every failure is turned into a ``FAILED`` result rather than raised. The
    console is closed before the result is returned, whatever happened.
    """

    validate_script(script)
    if config is None:
        config = HarnessConfig.from_env()
    result = ScenarioResult(name=_scenario_name(spec, name), log_dir=log_dir)
    result.timings.started_at = datetime.datetime.now(datetime.timezone.utc)
    started = time.perf_counter()
    harness_log = log_dir / "harness.log" if log_dir is not None else None
    serial_log = log_dir / "serial.log" if log_dir is not None else None
    session: Optional[ConsoleSession] = None
    log_event(
        "vmconsole.scenario.start",
        scenario=result.name,
        steps=len(script),
        overall_timeout=overall_timeout,
    )

    try:
        result.vm = platform.create_vm(spec)
        _advance(result, ScenarioState.AWAITING_RUNNING)
        wait_running(
            platform,
            result.vm,
            config.running_timeout,
            poll_interval=config.poll_interval,
            max_poll_errors=config.max_poll_errors,
        )
        result.timings.ready_seconds = time.perf_counter() - started

        _advance(result, ScenarioState.CONSOLE_OPEN)
        session = platform.open_console(result.vm, device, config.connect_timeout)
        session.attach_logs(harness_log=harness_log, serial_log=serial_log)

        _advance(result, ScenarioState.SCRIPT_RUNNING)
        script_started = time.perf_counter()
        try:
            result.matches = run_batch(session, script, overall_timeout)
        finally:
            result.timings.script_seconds = time.perf_counter() - script_started
        _advance(result, ScenarioState.PASSED)
    except StepFailed as exc:
        result.step_index = exc.index
        result.pattern = exc.pattern
        _fail(result, exc.reason, exc)
    except VMConsoleError as exc:
        _fail(result, type(exc).__name__, exc)
    finally:
        if session is not None:
            session.close()
            result.transcript = session.transcript
        if delete_vm and result.vm is not None:
            _delete_quietly(platform, result)
        result.timings.total_seconds = time.perf_counter() - started
        result.timings.completed_at = datetime.datetime.now(datetime.timezone.utc)
        if log_dir is not None:
            _write_run_artifacts(
                result,
                log_dir=log_dir,
                script=script,
                device=device,
                overall_timeout=overall_timeout,
            )

    log_event(
        "vmconsole.scenario.finished",
        scenario=result.name,
        outcome=result.state.value,
        reason=result.reason,
        step_index=result.step_index,
        pattern=result.pattern,
        timings=result.timings.to_metadata(),
    )
    return result


def _delete_quietly(platform: Platform, result: ScenarioResult) -> None:
    try:
        platform.delete_vm(result.vm)
    except PlatformError as exc:
        # Cleanup must never change the verdict.
        log_event(
            "vmconsole.scenario.delete_failed",
            scenario=result.name,
            vm=str(result.vm),
            error=str(exc),
        )


def _write_run_artifacts(
    result: ScenarioResult,
    *,
    log_dir: Path,
    script: Sequence[BatchStep],
    device: str,
    overall_timeout: float,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    metadata_path = log_dir / "metadata.json"
    write_scenario_metadata(
        metadata_path,
        result=result,
        script=script,
        device=device,
        overall_timeout=overall_timeout,
        harness_log=log_dir / "harness.log",
        serial_log=log_dir / "serial.log",
    )
    if result.passed:
        return
    lines = [
        result.summary(),
        f"Detail: {result.detail or '<none>'}",
        f"Failed while: {result.failed_in.value if result.failed_in else 'unknown'}",
        "",
    ]
    lines.extend(result.transcript or ["<no transcript entries recorded>"])
    path = write_diagnostic_artifact(log_dir, "failure-context", "\n".join(lines))
    record_scenario_diagnostic(metadata_path, label="Failure context", path=path)
