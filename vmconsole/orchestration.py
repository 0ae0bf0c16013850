"""Client contract for the VM orchestration platform."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Protocol

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .stream import ConsoleSession


class VMState(enum.Enum):
    """Observed lifecycle state of a VM."""

    PENDING = "Pending"
    RUNNING = "Running"
    FAILED = "Failed"


@dataclass(frozen=True)
class VMHandle:
    """Reference to a VM created on the platform."""

    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class Platform(Protocol):
    """Operations the harness needs from the orchestration platform.

    ``create_vm``, ``get_vm_state`` and ``delete_vm`` raise
    :class:`~vmconsole.errors.PlatformError`; ``open_console`` raises
    :class:`~vmconsole.errors.ConnectFailed`.
    """

    def create_vm(self, spec: Dict[str, Any]) -> VMHandle:
        ...

    def get_vm_state(self, handle: VMHandle) -> VMState:
        ...

    def open_console(
        self, handle: VMHandle, device_name: str, connect_timeout: float
    ) -> "ConsoleSession":
        ...

    def delete_vm(self, handle: VMHandle) -> None:
        ...
