"""KubeVirt platform client built on ``kubectl`` and ``virtctl``."""

from __future__ import annotations

import json
import math
import subprocess
from typing import Any, Dict, List, Optional

from .errors import ConnectFailed, PlatformError
from .logging_utils import log_event
from .orchestration import VMHandle, VMState
from .stream import ConsoleSession, literal

RESOURCE = "virtualmachineinstance"
CONNECTED_BANNER = literal("Successfully connected to")
DETACH_SEQUENCE = chr(29)

_PHASES = {
    "Running": VMState.RUNNING,
    "Failed": VMState.FAILED,
    "Succeeded": VMState.FAILED,
}


def phase_to_state(phase: Optional[str]) -> VMState:
    """Map a VMI ``status.phase`` onto the harness' readiness states."""

    if not phase:
        return VMState.PENDING
    return _PHASES.get(phase, VMState.PENDING)


class KubevirtPlatform:
    """Create, observe and attach to VMs in one namespace."""

    def __init__(
        self,
        namespace: str,
        *,
        kubectl: str = "kubectl",
        virtctl: str = "virtctl",
        command_timeout: float = 60.0,
    ) -> None:
        self.namespace = namespace
        self.kubectl = kubectl
        self.virtctl = virtctl
        self.command_timeout = command_timeout

    def _kubectl(self, args: List[str], *, input_text: Optional[str] = None) -> str:
        cmd = [self.kubectl, "-n", self.namespace, *args]
        try:
            result = subprocess.run(
                cmd,
                input=input_text,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise PlatformError(
                f"{' '.join(cmd)} exited with status {exc.returncode}: {stderr}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise PlatformError(
                f"{' '.join(cmd)} did not finish within {self.command_timeout:.0f}s"
            ) from exc
        except OSError as exc:
            raise PlatformError(f"could not run {self.kubectl}: {exc}") from exc
        return result.stdout

    def create_vm(self, spec: Dict[str, Any]) -> VMHandle:
        output = self._kubectl(
            ["create", "-f", "-", "-o", "json"], input_text=json.dumps(spec)
        )
        try:
            created = json.loads(output)
            name = created["metadata"]["name"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise PlatformError(f"unexpected output from kubectl create: {output!r}") from exc
        handle = VMHandle(name=name, namespace=self.namespace)
        log_event("vmconsole.kubevirt.created", vm=str(handle))
        return handle

    def get_vm_state(self, handle: VMHandle) -> VMState:
        output = self._kubectl(["get", RESOURCE, handle.name, "-o", "json"])
        try:
            status = json.loads(output).get("status") or {}
        except (json.JSONDecodeError, AttributeError) as exc:
            raise PlatformError(f"unexpected output from kubectl get: {output!r}") from exc
        return phase_to_state(status.get("phase"))

    def open_console(
        self, handle: VMHandle, device_name: str, connect_timeout: float
    ) -> ConsoleSession:
        if not device_name.startswith("serial"):
            raise ConnectFailed(
                f"console device {device_name!r} is not a serial device"
            )
        minutes = max(1, math.ceil(connect_timeout / 60))
        command = [
            self.virtctl,
            "console",
            handle.name,
            "-n",
            handle.namespace,
            "--timeout",
            str(minutes),
        ]
        return ConsoleSession.open(
            command,
            connect_timeout,
            ready_pattern=CONNECTED_BANNER,
            detach_sequence=DETACH_SEQUENCE,
            label=f"{handle}:{device_name}",
        )

    def delete_vm(self, handle: VMHandle) -> None:
        self._kubectl(
            ["delete", RESOURCE, handle.name, "--ignore-not-found", "--wait=false"]
        )
        log_event("vmconsole.kubevirt.deleted", vm=str(handle))
