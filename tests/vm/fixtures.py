"""Shared fixtures for scenario tests against a live KubeVirt cluster.

The tests in this directory create real VMs and are skipped unless
``VMCONSOLE_RUN_VM_TESTS`` is set and ``kubectl``/``virtctl`` are on ``PATH``.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Callable, Optional

import pytest

from vmconsole.config import HarnessConfig
from vmconsole.driver import ScenarioResult
from vmconsole.kubevirt import KubevirtPlatform
from vmconsole.metadata import append_run_ledger_entry
from vmconsole.scenarios import Scenario, execute


def _vm_tests_enabled() -> bool:
    value = os.environ.get("VMCONSOLE_RUN_VM_TESTS", "").strip().lower()
    return value in {"1", "true", "yes"}


def _resolve_ledger_path() -> Optional[Path]:
    override = os.environ.get("VMCONSOLE_LEDGER_PATH")
    if override:
        return Path(override)
    return None


def _require_executable(executable: str) -> str:
    """Ensure an executable exists in ``PATH`` or skip the invoking test."""

    path: Optional[str] = shutil.which(executable)
    if path is None:
        pytest.skip(f"required executable '{executable}' is not available in PATH")
    return path


@pytest.fixture(scope="session")
def harness_config() -> HarnessConfig:
    try:
        return HarnessConfig.from_env()
    except ValueError as exc:
        pytest.fail(f"invalid harness configuration: {exc}")


@pytest.fixture(scope="session")
def kubevirt_platform(harness_config: HarnessConfig) -> KubevirtPlatform:
    if not _vm_tests_enabled():
        pytest.skip("set VMCONSOLE_RUN_VM_TESTS=1 to run scenarios against a cluster")
    kubectl = _require_executable(harness_config.kubectl)
    virtctl = _require_executable(harness_config.virtctl)
    return KubevirtPlatform(harness_config.namespace, kubectl=kubectl, virtctl=virtctl)


@pytest.fixture
def scenario_log_dir(request: pytest.FixtureRequest, tmp_path: Path) -> Path:
    """Directory receiving one scenario's harness log, serial log and metadata."""

    configured = request.config.getoption("vm_log_dir")
    base = Path(configured) if configured else tmp_path
    log_dir = base / request.node.name.replace("/", "-")
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


@pytest.fixture
def run_vm_scenario(
    kubevirt_platform: KubevirtPlatform,
    harness_config: HarnessConfig,
    scenario_log_dir: Path,
    request: pytest.FixtureRequest,
) -> Callable[[Scenario], ScenarioResult]:
    invocation_params = getattr(request.config, "invocation_params", None)
    invocation_args = (
        list(invocation_params.args)
        if invocation_params and invocation_params.args is not None
        else []
    )
    ledger_path = _resolve_ledger_path()

    def _run(scenario: Scenario) -> ScenarioResult:
        result = execute(
            scenario, kubevirt_platform, harness_config, log_dir=scenario_log_dir
        )
        if ledger_path is not None:
            append_run_ledger_entry(
                ledger_path,
                result=result,
                metadata_path=scenario_log_dir / "metadata.json",
                invocation_args=invocation_args,
            )
        return result

    return _run
