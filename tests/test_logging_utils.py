import json
from pathlib import Path

from vmconsole.logging_utils import (
    _DEFAULT_LOG_FILE,
    _log_file_path,
    append_harness_entry,
    log_event,
)


def test_log_event_emits_json_to_stderr(capsys, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("VMCONSOLE_LOG_EVENTS", "1")
    monkeypatch.setenv("VMCONSOLE_LOG_FILE", str(tmp_path / "events.log"))

    log_event("vmconsole.test", path=Path("/tmp/demo"), value=5, raw=b"login:")

    captured = capsys.readouterr()
    assert captured.out == ""
    lines = [line for line in captured.err.splitlines() if line.strip()]
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["event"] == "vmconsole.test"
    assert record["path"] == "/tmp/demo"
    assert record["value"] == 5
    assert record["raw"] == "login:"
    assert "timestamp" in record


def test_log_event_is_silent_by_default(capsys, monkeypatch) -> None:
    monkeypatch.delenv("VMCONSOLE_LOG_EVENTS", raising=False)

    log_event("vmconsole.test.quiet")

    assert capsys.readouterr().err == ""


def test_log_event_respects_falsey_values(capsys, monkeypatch) -> None:
    monkeypatch.setenv("VMCONSOLE_LOG_EVENTS", "no")

    log_event("vmconsole.test.quiet")

    assert capsys.readouterr().err == ""


def test_log_event_appends_to_file(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.setenv("VMCONSOLE_LOG_EVENTS", "1")
    log_path = tmp_path / "logs" / "events.log"
    monkeypatch.setenv("VMCONSOLE_LOG_FILE", str(log_path))

    log_event("vmconsole.test.file", payload={"key": "value"})

    captured = capsys.readouterr()
    stderr_lines = [line for line in captured.err.splitlines() if line.strip()]
    assert len(stderr_lines) == 1
    stderr_record = json.loads(stderr_lines[0])

    file_lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(file_lines) == 1
    file_record = json.loads(file_lines[0])

    assert file_record == stderr_record
    assert file_record["payload"] == {"key": "value"}


def test_log_file_defaults_to_tempdir(monkeypatch) -> None:
    monkeypatch.setenv("VMCONSOLE_LOG_FILE", "")

    assert _log_file_path() == _DEFAULT_LOG_FILE


def test_append_harness_entry_writes_body(tmp_path) -> None:
    path = tmp_path / "harness.log"

    entry = append_harness_entry(path, "Console client started", "virtctl console\nvmi")
    append_harness_entry(path, "Empty body", "")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert entry.endswith("] Console client started")
    assert lines[0] == entry
    assert lines[1].endswith("]   virtctl console")
    assert lines[2].endswith("]   vmi")
    assert lines[4].endswith("]   <no output>")


def test_append_harness_entry_without_path_only_formats() -> None:
    entry = append_harness_entry(None, "Sending 'root\\n'")

    assert entry.startswith("[")
    assert entry.endswith("] Sending 'root\\n'")
