"""Guest-visible VM configuration checks driven over the serial console."""

from __future__ import annotations

from typing import Callable

import pytest

from vmconsole.driver import ScenarioResult
from vmconsole.scenarios import SCENARIOS, Scenario

pytestmark = [pytest.mark.vm, pytest.mark.slow]


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_vm_configuration_visible_in_guest(
    name: str, run_vm_scenario: Callable[[Scenario], ScenarioResult]
) -> None:
    result = run_vm_scenario(SCENARIOS[name])

    result.raise_for_failure()
