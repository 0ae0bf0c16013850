"""Acceptance scenarios checking guest-visible VM configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .batch import BatchStep, Expect, Send
from .config import HarnessConfig
from .driver import ScenarioResult, run_scenario
from .orchestration import Platform
from .stream import literal
from .vmspec import (
    Manifest,
    add_cloud_init_disk,
    add_container_disk,
    new_vm_with_container_disk,
    set_cpu_cores,
)


@dataclass(frozen=True)
class Scenario:
    """A VM configuration paired with the console script that verifies it."""

    name: str
    description: str
    build_spec: Callable[[HarnessConfig], Manifest]
    script: Sequence[BatchStep]
    overall_timeout: float


def alpine_root_shell(command: str, expected: str) -> List[BatchStep]:
    """Log into an Alpine guest as root, run *command* and expect *expected*."""

    return [
        Expect(literal("Welcome to Alpine")),
        Send("\n"),
        Expect(literal("login")),
        Send("root\n"),
        Expect(literal("#")),
        Send(command + "\n"),
        Expect(literal(expected)),
    ]


def cirros_user_shell(command: str, expected: str) -> List[BatchStep]:
    """Log into a CirrOS guest with its default account and run *command*."""

    return [
        Expect(
            literal(
                "login as 'cirros' user. default password: 'gocubsgo'. "
                "use 'sudo' for root."
            )
        ),
        Send("\n"),
        Expect(literal("cirros login:")),
        Send("cirros\n"),
        Expect(literal("Password:")),
        Send("gocubsgo\n"),
        Expect(literal("$")),
        Send(command + "\n"),
        Expect(literal(expected)),
    ]


def _cpu_cores_spec(config: HarnessConfig) -> Manifest:
    vm = new_vm_with_container_disk(config.alpine_image, namespace=config.namespace)
    return set_cpu_cores(vm, 3)


def _bus_spec(bus: str) -> Callable[[HarnessConfig], Manifest]:
    def build(config: HarnessConfig) -> Manifest:
        return new_vm_with_container_disk(
            config.alpine_image, bus=bus, namespace=config.namespace
        )

    return build


def _all_disks_spec(config: HarnessConfig) -> Manifest:
    # Device names follow attach order per bus: vda root, vdb cloud-init, sda.
    vm = new_vm_with_container_disk(config.cirros_image, namespace=config.namespace)
    add_cloud_init_disk(vm, "disk1", "#!/bin/sh\n\necho hi!\n")
    add_container_disk(vm, "disk2", "sata", config.cirros_image)
    return vm


SCENARIOS: Dict[str, Scenario] = {
    scenario.name: scenario
    for scenario in (
        Scenario(
            name="cpu-cores",
            description="a VM with 3 cores reports 3 processors",
            build_spec=_cpu_cores_spec,
            script=alpine_root_shell("grep -c ^processor /proc/cpuinfo", "3"),
            overall_timeout=250.0,
        ),
        Scenario(
            name="virtio-disk",
            description="a virtio disk shows up as /dev/vda",
            build_spec=_bus_spec("virtio"),
            script=alpine_root_shell("ls /dev/vda", "/dev/vda"),
            overall_timeout=150.0,
        ),
        Scenario(
            name="sata-disk",
            description="a SATA disk shows up as /dev/sda",
            build_spec=_bus_spec("sata"),
            script=alpine_root_shell("ls /dev/sda", "/dev/sda"),
            overall_timeout=150.0,
        ),
        Scenario(
            name="all-disks",
            description="virtio, cloud-init and SATA disks all get device nodes",
            build_spec=_all_disks_spec,
            script=cirros_user_shell(
                "ls /dev/sda  /dev/vda  /dev/vdb", "/dev/sda  /dev/vda  /dev/vdb"
            ),
            overall_timeout=150.0,
        ),
    )
}


def get_scenario(name: str) -> Scenario:
    try:
        return SCENARIOS[name]
    except KeyError:
        known = ", ".join(sorted(SCENARIOS))
        raise KeyError(f"unknown scenario {name!r}; known scenarios: {known}") from None


def execute(
    scenario: Scenario,
    platform: Platform,
    config: HarnessConfig,
    *,
    log_dir: Optional[Path] = None,
    delete_vm: bool = True,
) -> ScenarioResult:
    """Run *scenario* once, applying any configured batch deadline override."""

    return run_scenario(
        platform,
        scenario.build_spec(config),
        scenario.script,
        config.batch_deadline(scenario.overall_timeout),
        name=scenario.name,
        config=config,
        log_dir=log_dir,
        delete_vm=delete_vm,
    )
