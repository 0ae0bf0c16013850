"""Tests for scenario metadata, diagnostics and the run ledger."""

from __future__ import annotations

import json
from pathlib import Path

from vmconsole.batch import Expect, Send
from vmconsole.driver import ScenarioResult, ScenarioState
from vmconsole.metadata import (
    append_run_ledger_entry,
    record_scenario_diagnostic,
    write_diagnostic_artifact,
    write_scenario_metadata,
)
from vmconsole.orchestration import VMHandle


def _failed_result() -> ScenarioResult:
    result = ScenarioResult(
        name="sata-disk",
        state=ScenarioState.FAILED,
        reason="ReadTimeout",
        failed_in=ScenarioState.SCRIPT_RUNNING,
        step_index=4,
        pattern="\\#",
        vm=VMHandle(name="testvmiabcde", namespace="ci"),
    )
    result.timings.total_seconds = 12.34567
    return result


def _write_metadata(path: Path, result: ScenarioResult) -> None:
    write_scenario_metadata(
        path,
        result=result,
        script=[Expect("login"), Send("root\n")],
        device="serial0",
        overall_timeout=150.0,
        harness_log=path.parent / "harness.log",
        serial_log=path.parent / "serial.log",
    )


def test_metadata_describes_the_run(tmp_path: Path) -> None:
    metadata_path = tmp_path / "metadata.json"

    _write_metadata(metadata_path, _failed_result())

    metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    assert metadata["scenario"]["outcome"] == "failed"
    assert metadata["scenario"]["failed_in"] == "script-running"
    assert metadata["vm"] == {"name": "testvmiabcde", "namespace": "ci"}
    assert metadata["console"]["script"] == ["expect 'login'", "send 'root\\n'"]
    assert metadata["timings"] == {"total_seconds": 12.346}
    assert metadata["diagnostics"]["artifacts"] == []
    assert (tmp_path / "diagnostics").is_dir()


def test_diagnostic_artifacts_are_numbered(tmp_path: Path) -> None:
    first = write_diagnostic_artifact(tmp_path, "failure context", "one")
    second = write_diagnostic_artifact(tmp_path, "failure context", "two\n")
    fallback = write_diagnostic_artifact(tmp_path, "///", "x", extension="txt")

    assert first.name == "failure-context-01.log"
    assert second.name == "failure-context-02.log"
    assert fallback.name == "diagnostic-01.txt"
    assert first.read_text(encoding="utf-8") == "one\n"


def test_recorded_diagnostics_survive_metadata_rewrite(tmp_path: Path) -> None:
    metadata_path = tmp_path / "metadata.json"
    result = _failed_result()
    _write_metadata(metadata_path, result)
    artifact = write_diagnostic_artifact(tmp_path, "vmi-describe", "status: Failed")

    record_scenario_diagnostic(metadata_path, label="VMI description", path=artifact)
    record_scenario_diagnostic(metadata_path, label="VMI description", path=artifact)
    _write_metadata(metadata_path, result)

    metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    assert metadata["diagnostics"]["artifacts"] == [
        {"label": "VMI description", "path": str(artifact)}
    ]


def test_record_diagnostic_ignores_missing_metadata(tmp_path: Path) -> None:
    metadata_path = tmp_path / "metadata.json"

    record_scenario_diagnostic(metadata_path, label="x", path=tmp_path / "x.log")

    assert not metadata_path.exists()


def test_run_ledger_appends_json_lines(tmp_path: Path) -> None:
    ledger = tmp_path / "ledger" / "runs.jsonl"
    metadata_path = tmp_path / "metadata.json"
    result = _failed_result()
    _write_metadata(metadata_path, result)

    append_run_ledger_entry(
        ledger, result=result, metadata_path=metadata_path, invocation_args=["run"]
    )
    append_run_ledger_entry(
        ledger, result=result, metadata_path=None, invocation_args=["run", "sata-disk"]
    )

    entries = [json.loads(line) for line in ledger.read_text(encoding="utf-8").splitlines()]
    assert len(entries) == 2
    assert entries[0]["scenario"] == "sata-disk"
    assert entries[0]["outcome"] == "failed"
    assert entries[0]["vm"] == "ci/testvmiabcde"
    assert entries[0]["metadata"] == str(metadata_path)
    assert "metadata" not in entries[1]
    assert entries[1]["args"] == ["run", "sata-disk"]
