"""Builders for KubeVirt ``VirtualMachineInstance`` manifests."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

API_VERSION = "kubevirt.io/v1"
KIND = "VirtualMachineInstance"
SUPPORTED_BUSES = ("virtio", "sata", "scsi")

Manifest = Dict[str, Any]


def random_vm_name(prefix: str = "testvmi") -> str:
    """Return a DNS-safe VM name with a random suffix."""

    return f"{prefix}{uuid.uuid4().hex[:5]}"


def new_vm(
    *,
    name: Optional[str] = None,
    namespace: Optional[str] = None,
    memory: str = "64M",
) -> Manifest:
    """Return a diskless VM manifest."""

    metadata: Dict[str, Any] = {"name": name or random_vm_name()}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": metadata,
        "spec": {
            "terminationGracePeriodSeconds": 0,
            "domain": {
                "resources": {"requests": {"memory": memory}},
                "devices": {"disks": []},
            },
            "volumes": [],
        },
    }


def _add_volume(vm: Manifest, name: str, disk: Dict[str, Any], volume: Dict[str, Any]) -> None:
    disks = vm["spec"]["domain"]["devices"]["disks"]
    if any(existing["name"] == name for existing in disks):
        raise ValueError(f"disk {name!r} is already defined")
    disks.append({"name": name, **disk})
    vm["spec"]["volumes"].append({"name": name, **volume})


def add_container_disk(vm: Manifest, name: str, bus: str, image: str) -> Manifest:
    """Attach an ephemeral disk backed by a container image."""

    if bus not in SUPPORTED_BUSES:
        raise ValueError(
            f"unsupported disk bus {bus!r}; expected one of {', '.join(SUPPORTED_BUSES)}"
        )
    _add_volume(vm, name, {"disk": {"bus": bus}}, {"containerDisk": {"image": image}})
    return vm


def add_cloud_init_disk(vm: Manifest, name: str, userdata: str) -> Manifest:
    """Attach a NoCloud cloud-init disk carrying *userdata*."""

    _add_volume(
        vm,
        name,
        {"disk": {"bus": "virtio"}},
        {"cloudInitNoCloud": {"userData": userdata}},
    )
    return vm


def new_vm_with_container_disk(
    image: str,
    *,
    bus: str = "virtio",
    name: Optional[str] = None,
    namespace: Optional[str] = None,
    memory: str = "64M",
) -> Manifest:
    """Return a VM booting from *image* on a disk attached to *bus*."""

    vm = new_vm(name=name, namespace=namespace, memory=memory)
    return add_container_disk(vm, "disk0", bus, image)


def set_cpu_cores(vm: Manifest, cores: int) -> Manifest:
    if cores < 1:
        raise ValueError("a VM needs at least one CPU core")
    vm["spec"]["domain"]["cpu"] = {"cores": cores}
    return vm

