"""Tests for VirtualMachineInstance manifest builders."""

import pytest

from vmconsole import vmspec


def test_new_vm_has_no_disks() -> None:
    vm = vmspec.new_vm(name="testvmi", namespace="ci")

    assert vm["apiVersion"] == "kubevirt.io/v1"
    assert vm["kind"] == "VirtualMachineInstance"
    assert vm["metadata"] == {"name": "testvmi", "namespace": "ci"}
    assert vm["spec"]["domain"]["devices"]["disks"] == []
    assert vm["spec"]["domain"]["resources"]["requests"]["memory"] == "64M"


def test_random_names_differ() -> None:
    first = vmspec.random_vm_name()
    second = vmspec.random_vm_name()

    assert first.startswith("testvmi")
    assert first != second


def test_container_disk_uses_requested_bus() -> None:
    vm = vmspec.new_vm_with_container_disk("registry/alpine", bus="sata")

    assert vm["spec"]["domain"]["devices"]["disks"] == [
        {"name": "disk0", "disk": {"bus": "sata"}}
    ]
    assert vm["spec"]["volumes"] == [
        {"name": "disk0", "containerDisk": {"image": "registry/alpine"}}
    ]


def test_unknown_bus_is_rejected() -> None:
    with pytest.raises(ValueError, match="ide"):
        vmspec.new_vm_with_container_disk("registry/alpine", bus="ide")


def test_duplicate_disk_names_are_rejected() -> None:
    vm = vmspec.new_vm_with_container_disk("registry/alpine")

    with pytest.raises(ValueError, match="disk0"):
        vmspec.add_cloud_init_disk(vm, "disk0", "#!/bin/sh\n")


def test_cloud_init_disk_carries_userdata() -> None:
    vm = vmspec.new_vm(name="testvmi")
    vmspec.add_cloud_init_disk(vm, "disk1", "#!/bin/sh\necho hi\n")

    assert vm["spec"]["volumes"][0] == {
        "name": "disk1",
        "cloudInitNoCloud": {"userData": "#!/bin/sh\necho hi\n"},
    }


def test_cpu_core_settings() -> None:
    vm = vmspec.new_vm(name="testvmi")
    vmspec.set_cpu_cores(vm, 3)

    assert vm["spec"]["domain"]["cpu"] == {"cores": 3}
    with pytest.raises(ValueError):
        vmspec.set_cpu_cores(vm, 0)
