"""Ordered send/expect scripts executed against a console session."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from .errors import ConsoleClosed, ReadTimeout, StepFailed
from .logging_utils import log_event
from .stream import MatchResult, Pattern, pattern_text

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .stream import ConsoleSession


@dataclass(frozen=True)
class Send:
    """Write ``data`` to the guest without waiting."""

    data: Union[str, bytes]


@dataclass(frozen=True)
class Expect:
    """Wait for ``pattern``; ``timeout`` of ``None`` means the batch deadline."""

    pattern: Pattern
    timeout: Optional[float] = None


BatchStep = Union[Send, Expect]


def describe_step(step: BatchStep) -> str:
    if isinstance(step, Send):
        return f"send {step.data!r}"
    return f"expect {pattern_text(step.pattern)!r}"


def validate_script(script: Sequence[BatchStep]) -> None:
    """Reject scripts that cannot be executed."""

    if not script:
        raise ValueError("batch script must contain at least one step")
    for index, step in enumerate(script):
        if isinstance(step, Send):
            if not isinstance(step.data, (str, bytes)):
                raise ValueError(f"step {index}: send data must be text")
            if isinstance(step.data, bytes):
                try:
                    step.data.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise ValueError(
                        f"step {index}: send data is not valid UTF-8"
                    ) from exc
        elif isinstance(step, Expect):
            if step.timeout is not None and step.timeout < 0:
                raise ValueError(f"step {index}: timeout must not be negative")
        else:
            raise ValueError(f"step {index}: unsupported batch step {step!r}")


def run_batch(
    session: "ConsoleSession",
    script: Sequence[BatchStep],
    overall_timeout: float,
) -> List[MatchResult]:
    """Execute *script* in order and return the result of every expectation.

    Each expectation gets the smaller of its own timeout and whatever is left
    of *overall_timeout*. The first failing expectation aborts the batch with
    :class:`StepFailed`; output already sent to the guest stays sent.
    """

    validate_script(script)
    deadline = time.monotonic() + overall_timeout
    results: List[MatchResult] = []
    log_event(
        "vmconsole.batch.start",
        label=session.label,
        steps=len(script),
        overall_timeout=overall_timeout,
    )
    for index, step in enumerate(script):
        if isinstance(step, Send):
            try:
                session.send(step.data)
            except ConsoleClosed as exc:
                raise StepFailed(index, step, "ConsoleClosed", cause=exc) from exc
            continue

        remaining = max(deadline - time.monotonic(), 0.0)
        budget = remaining if step.timeout is None else min(remaining, step.timeout)
        pattern = pattern_text(step.pattern)
        try:
            results.append(session.read_until_match(step.pattern, budget))
        except ReadTimeout as exc:
            log_event(
                "vmconsole.batch.step_failed",
                label=session.label,
                index=index,
                pattern=pattern,
                reason="ReadTimeout",
                kind=exc.kind.value,
            )
            raise StepFailed(
                index, step, "ReadTimeout", pattern=pattern, cause=exc
            ) from exc
        except ConsoleClosed as exc:
            log_event(
                "vmconsole.batch.step_failed",
                label=session.label,
                index=index,
                pattern=pattern,
                reason="ConsoleClosed",
            )
            raise StepFailed(
                index, step, "ConsoleClosed", pattern=pattern, cause=exc
            ) from exc

    log_event("vmconsole.batch.passed", label=session.label, steps=len(script))
    return results
