"""Utilities for capturing and annotating scenario run metadata."""

from __future__ import annotations

import datetime
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from .batch import BatchStep, describe_step

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .driver import ScenarioResult


def write_scenario_metadata(
    metadata_path: Path,
    *,
    result: "ScenarioResult",
    script: Sequence[BatchStep],
    device: str,
    overall_timeout: float,
    harness_log: Path,
    serial_log: Path,
) -> None:
    """Persist structured metadata describing a finished scenario run.

    Diagnostic entries already recorded in an earlier file are kept.
    """

    log_dir = metadata_path.parent
    diagnostics_dir = log_dir / "diagnostics"
    diagnostics_dir.mkdir(parents=True, exist_ok=True)
    metadata: Dict[str, object] = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "scenario": {
            "name": result.name,
            "outcome": result.state.value,
            "reason": result.reason,
            "detail": result.detail,
            "failed_in": result.failed_in.value if result.failed_in else None,
            "step_index": result.step_index,
            "pattern": result.pattern,
        },
        "vm": (
            {"name": result.vm.name, "namespace": result.vm.namespace}
            if result.vm is not None
            else None
        ),
        "console": {
            "device": device,
            "overall_timeout": overall_timeout,
            "script": [describe_step(step) for step in script],
        },
        "logs": {
            "harness": str(harness_log),
            "serial": str(serial_log),
        },
        "diagnostics": {
            "directory": str(diagnostics_dir),
            "artifacts": _read_diagnostics(metadata_path),
        },
    }
    timings = result.timings.to_metadata()
    if timings:
        metadata["timings"] = timings
    metadata_path.write_text(
        json.dumps(metadata, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def write_diagnostic_artifact(
    log_dir: Path,
    slug: str,
    content: str,
    *,
    extension: str = ".log",
) -> Path:
    """Write *content* under ``diagnostics/`` with a unique numbered name."""

    diagnostics_dir = log_dir / "diagnostics"
    diagnostics_dir.mkdir(parents=True, exist_ok=True)
    safe_slug = re.sub(r"[^A-Za-z0-9_-]", "-", slug).strip("-")
    if not safe_slug:
        safe_slug = "diagnostic"
    if not extension.startswith("."):
        extension = "." + extension
    counter = len(list(diagnostics_dir.glob(f"{safe_slug}-*{extension}"))) + 1
    path = diagnostics_dir / f"{safe_slug}-{counter:02d}{extension}"
    if content and not content.endswith("\n"):
        content += "\n"
    path.write_text(content, encoding="utf-8")
    return path


def record_scenario_diagnostic(
    metadata_path: Path,
    *,
    label: str,
    path: Path,
) -> None:
    """Append a diagnostic artifact entry to ``metadata.json`` when available."""

    try:
        raw_metadata = metadata_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return

    if not raw_metadata.strip():
        return

    try:
        metadata = json.loads(raw_metadata)
    except json.JSONDecodeError:
        return

    diagnostics = metadata.setdefault("diagnostics", {})
    artifacts = diagnostics.setdefault("artifacts", [])
    entry = {"label": label, "path": str(path)}
    if any(existing.get("path") == entry["path"] for existing in artifacts):
        return

    artifacts.append(entry)
    metadata_path.write_text(
        json.dumps(metadata, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def _read_diagnostics(metadata_path: Path) -> List[Dict[str, str]]:
    """Return diagnostic artifact entries from ``metadata.json`` when present."""

    try:
        raw_metadata = metadata_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    if not raw_metadata.strip():
        return []
    try:
        metadata = json.loads(raw_metadata)
    except json.JSONDecodeError:
        return []
    diagnostics_section = metadata.get("diagnostics")
    if not isinstance(diagnostics_section, dict):
        return []
    artifacts = diagnostics_section.get("artifacts")
    if not isinstance(artifacts, list):
        return []
    entries: List[Dict[str, str]] = []
    for artifact in artifacts:
        label = artifact.get("label") if isinstance(artifact, dict) else None
        path = artifact.get("path") if isinstance(artifact, dict) else None
        if isinstance(label, str) and isinstance(path, str):
            entries.append({"label": label, "path": path})
    return entries


def append_run_ledger_entry(
    ledger_path: Path,
    *,
    result: "ScenarioResult",
    metadata_path: Optional[Path],
    invocation_args: List[str],
) -> None:
    """Append a JSON line capturing one scenario attempt to the run ledger.

    Entries are additive so slow boots can be compared across sessions.
    """

    entry: Dict[str, object] = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "scenario": result.name,
        "outcome": result.state.value,
        "reason": result.reason,
        "step_index": result.step_index,
        "pattern": result.pattern,
        "vm": str(result.vm) if result.vm is not None else None,
        "args": invocation_args,
    }
    timings = result.timings.to_metadata()
    if timings:
        entry["timings"] = timings
    if metadata_path is not None:
        entry["metadata"] = str(metadata_path)
        diagnostics = _read_diagnostics(metadata_path)
        if diagnostics:
            entry["diagnostics"] = diagnostics

    ledger_path.parent.mkdir(parents=True, exist_ok=True)
    with ledger_path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(entry, sort_keys=True) + "\n")


__all__ = [
    "append_run_ledger_entry",
    "record_scenario_diagnostic",
    "write_diagnostic_artifact",
    "write_scenario_metadata",
]
