"""Serial console sessions driven through pexpect."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, List, Optional, Sequence, Union

import pexpect

from .errors import ConnectFailed, ConsoleClosed, ReadTimeout, TimeoutKind
from .logging_utils import append_harness_entry, log_event

Pattern = Union[str, "re.Pattern[str]"]

ANSI_ESCAPE_PATTERN = re.compile(
    r"""
    \x1B(
        \[[0-?]*[ -/]*[@-~]      # CSI sequences, including bracketed paste toggles
        |\][^\x07]*(?:\x07|\x1b\\)  # OSC sequences for terminal title updates
        |P[^\x07\x1b]*(?:\x07|\x1b\\)  # DCS sequences
        |[@-OQ-Z\\]               # 2-character sequences other than string introducers
        |_[^\x07]*(?:\x07|\x1b\\)    # APC sequences
        |\^[^\x07]*(?:\x07|\x1b\\)   # PM sequences
    )
    """,
    re.VERBOSE,
)


def literal(text: str) -> str:
    """Return a pattern matching *text* verbatim."""

    return re.escape(text)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from console output."""

    return ANSI_ESCAPE_PATTERN.sub("", text)


def pattern_text(pattern: Pattern) -> str:
    if isinstance(pattern, str):
        return pattern
    return pattern.pattern


@dataclass(frozen=True)
class MatchResult:
    """A satisfied expectation and where it sits in the console stream.

    ``start`` and ``end`` are absolute offsets into everything the session has
    received; ``end`` is where the next read starts searching.
    """

    pattern: str
    matched: str
    before: str
    start: int
    end: int


class ConsoleSession:
    """Exclusive duplex handle to a VM serial console.

    Output is accumulated by the underlying ``pexpect`` child. Each call to
    :meth:`read_until_match` searches only what has not yet been consumed by a
    previous match, so banners seen earlier can never satisfy a later
    expectation.
    """

    def __init__(
        self,
        child: "pexpect.spawn",
        *,
        idle_timeout: float,
        harness_log: Optional[Path] = None,
        serial_handle: Optional[IO[str]] = None,
        strip_ansi: bool = True,
        detach_sequence: Optional[str] = None,
        label: str = "console",
    ) -> None:
        self.child = child
        self.idle_timeout = idle_timeout
        self.harness_log = harness_log
        self.strip_ansi = strip_ansi
        self.detach_sequence = detach_sequence
        self.label = label
        self._serial_handle = serial_handle
        self._consumed = 0
        self._closed = False
        self._transcript: List[str] = []

    @classmethod
    def open(
        cls,
        command: Sequence[str],
        idle_timeout: float,
        *,
        ready_pattern: Optional[Pattern] = None,
        serial_log: Optional[Path] = None,
        harness_log: Optional[Path] = None,
        strip_ansi: bool = True,
        detach_sequence: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        label: Optional[str] = None,
    ) -> "ConsoleSession":
        """Spawn the console client described by *command* and connect to it.

        When *ready_pattern* is given the client must print it within
        *idle_timeout*; otherwise the client only has to survive being spawned.
        """

        if not command:
            raise ValueError("console command must not be empty")
        argv = [str(part) for part in command]
        serial_handle: Optional[IO[str]] = None
        if serial_log is not None:
            serial_log.parent.mkdir(parents=True, exist_ok=True)
            serial_handle = serial_log.open("a", encoding="utf-8")
        try:
            child = pexpect.spawn(
                argv[0],
                argv[1:],
                encoding="utf-8",
                codec_errors="ignore",
                timeout=idle_timeout,
                env=env,
            )
        except pexpect.ExceptionPexpect as exc:
            if serial_handle is not None:
                serial_handle.close()
            log_event("vmconsole.session.spawn_failed", command=argv, error=str(exc))
            raise ConnectFailed(
                f"could not start console client {argv[0]!r}: {exc}"
            ) from exc
        child.logfile_read = serial_handle

        session = cls(
            child,
            idle_timeout=idle_timeout,
            harness_log=harness_log,
            serial_handle=serial_handle,
            strip_ansi=strip_ansi,
            detach_sequence=detach_sequence,
            label=label or argv[0],
        )
        session._log_step("Console client started", body=" ".join(argv))
        try:
            session._await_connection(ready_pattern)
        except ConnectFailed:
            session.close()
            raise
        log_event("vmconsole.session.opened", label=session.label, command=argv)
        return session

    def _await_connection(self, ready_pattern: Optional[Pattern]) -> None:
        if ready_pattern is None:
            if not self.is_alive():
                raise ConnectFailed(f"{self.label} exited before connecting")
            return
        try:
            self.read_until_match(ready_pattern, self.idle_timeout)
        except ReadTimeout as exc:
            raise ConnectFailed(
                f"{self.label} did not report a connection within "
                f"{self.idle_timeout:.1f}s ({exc.kind.value})"
            ) from exc
        except ConsoleClosed as exc:
            raise ConnectFailed(
                f"{self.label} exited before connecting: {exc.tail.strip()}"
            ) from exc

    def __enter__(self) -> "ConsoleSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consumed(self) -> int:
        """Offset of the first character not yet consumed by a match."""

        return self._consumed

    @property
    def pending(self) -> str:
        """Output received but not yet consumed by a match."""

        buffer = getattr(self.child, "buffer", "")
        return buffer if isinstance(buffer, str) else ""

    @property
    def transcript(self) -> List[str]:
        return list(self._transcript)

    def is_alive(self) -> bool:
        if self._closed:
            return False
        try:
            return bool(self.child.isalive())
        except pexpect.ExceptionPexpect:
            return False

    def attach_logs(
        self,
        *,
        harness_log: Optional[Path] = None,
        serial_log: Optional[Path] = None,
    ) -> None:
        """Mirror the transcript and raw console output into files.

        Entries recorded before the harness log was attached are written out
        first so the file holds the whole session.
        """

        if harness_log is not None and harness_log != self.harness_log:
            harness_log.parent.mkdir(parents=True, exist_ok=True)
            with harness_log.open("a", encoding="utf-8") as handle:
                for entry in self._transcript:
                    handle.write(entry + "\n")
            self.harness_log = harness_log
        if serial_log is not None and self._serial_handle is None and not self._closed:
            serial_log.parent.mkdir(parents=True, exist_ok=True)
            self._serial_handle = serial_log.open("a", encoding="utf-8")
            self.child.logfile_read = self._serial_handle

    def _log_step(self, message: str, body: Optional[str] = None) -> None:
        entry = append_harness_entry(self.harness_log, message, body)
        self._transcript.append(entry)

    def _record_output(self, text: str) -> None:
        for raw_line in text.replace("\r", "").splitlines():
            line = strip_ansi(raw_line).strip()
            if line:
                self._log_step(f"Console output: {line}")

    def send(self, data: Union[str, bytes]) -> None:
        """Write *data* to the guest exactly as given."""

        if self._closed:
            raise ConsoleClosed()
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("utf-8")
        else:
            text = data
        self._log_step(f"Sending {text!r}")
        try:
            self.child.send(text)
        except OSError as exc:
            raise ConsoleClosed() from exc

    def read_until_match(self, pattern: Pattern, timeout: float) -> MatchResult:
        """Block until *pattern* matches unconsumed output or *timeout* passes.

        *timeout* is wall-clock seconds for the whole call regardless of how
        often data trickles in. A timeout of zero still checks output that is
        already buffered.
        """

        text = pattern_text(pattern)
        if self._closed:
            raise ConsoleClosed(text)
        compiled = pattern if not isinstance(pattern, str) else re.compile(pattern)
        candidates = [compiled]
        if self.strip_ansi:
            candidates.append(ANSI_ESCAPE_PATTERN)

        budget = max(timeout, 0.0)
        deadline = time.monotonic() + budget
        skipped: List[str] = []
        self._log_step(f"Awaiting pattern: {text!r} (timeout={budget:.1f}s)")
        while True:
            remaining = max(deadline - time.monotonic(), 0.0)
            try:
                idx = self.child.expect_list(candidates, timeout=remaining)
            except pexpect.TIMEOUT:
                tail = self.child.before if isinstance(self.child.before, str) else ""
                self._record_output(tail)
                kind = (
                    TimeoutKind.NO_MATCH
                    if tail or skipped
                    else TimeoutKind.NOTHING_ARRIVED
                )
                self._log_step(f"Timed out waiting for {text!r}", body=kind.value)
                log_event(
                    "vmconsole.session.read_timeout",
                    label=self.label,
                    pattern=text,
                    timeout=budget,
                    kind=kind.value,
                    alive=self.is_alive(),
                )
                raise ReadTimeout(text, budget, kind=kind, tail=tail) from None
            except pexpect.EOF:
                tail = self.child.before if isinstance(self.child.before, str) else ""
                self._record_output(tail)
                self._log_step(f"Console reached EOF while waiting for {text!r}")
                log_event("vmconsole.session.eof", label=self.label, pattern=text)
                raise ConsoleClosed(text, tail=tail) from None

            before = self.child.before
            after = self.child.after
            if idx != 0:
                self._consumed += len(before) + len(after)
                skipped.append(before)
                continue

            start = self._consumed + len(before)
            end = start + len(after)
            self._consumed = end
            preceding = "".join(skipped) + before
            self._record_output(preceding)
            self._log_step(f"Matched pattern: {text!r}")
            return MatchResult(
                pattern=text,
                matched=after,
                before=preceding,
                start=start,
                end=end,
            )

    def close(self) -> None:
        """Release the console. Calling it again is a no-op."""

        if self._closed:
            return
        self._closed = True
        try:
            if self.detach_sequence and self.child.isalive():
                self.child.send(self.detach_sequence)
            self.child.close(force=True)
        except (pexpect.ExceptionPexpect, OSError) as exc:
            log_event(
                "vmconsole.session.close_failed", label=self.label, error=repr(exc)
            )
        finally:
            if self._serial_handle is not None:
                self._serial_handle.close()
                self._serial_handle = None
        self._log_step("Console session closed")
        log_event("vmconsole.session.closed", label=self.label)
