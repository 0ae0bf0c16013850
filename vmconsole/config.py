"""Environment-driven configuration for console scenarios."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_RUNNING_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_POLL_ERRORS = 3
DEFAULT_NAMESPACE = "kubevirt-test-default"
DEFAULT_ALPINE_IMAGE = "quay.io/kubevirt/alpine-container-disk-demo:latest"
DEFAULT_CIRROS_IMAGE = "quay.io/kubevirt/cirros-container-disk-demo:latest"


def read_seconds_env(name: str, default: Optional[float]) -> Optional[float]:
    """Return a positive number of seconds configured via environment variable.

    The defaults are generous so that slow boots are not mistaken for hangs.
    Values are validated so that misconfiguration surfaces as an explicit error
    rather than silently disabling a deadline.
    """

    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return parsed


def read_count_env(name: str, default: int) -> int:
    """Return a non-negative integer configured via environment variable."""

    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value") from exc
    if parsed < 0:
        raise ValueError(f"{name} must not be negative")
    return parsed


@dataclass(frozen=True)
class HarnessConfig:
    """Timeouts and tool locations shared by every scenario run."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    running_timeout: float = DEFAULT_RUNNING_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_errors: int = DEFAULT_MAX_POLL_ERRORS
    batch_timeout: Optional[float] = None
    namespace: str = DEFAULT_NAMESPACE
    kubectl: str = "kubectl"
    virtctl: str = "virtctl"
    alpine_image: str = DEFAULT_ALPINE_IMAGE
    cirros_image: str = DEFAULT_CIRROS_IMAGE

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        return cls(
            connect_timeout=read_seconds_env(
                "VMCONSOLE_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT
            ),
            running_timeout=read_seconds_env(
                "VMCONSOLE_RUNNING_TIMEOUT", DEFAULT_RUNNING_TIMEOUT
            ),
            poll_interval=read_seconds_env(
                "VMCONSOLE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL
            ),
            max_poll_errors=read_count_env(
                "VMCONSOLE_MAX_POLL_ERRORS", DEFAULT_MAX_POLL_ERRORS
            ),
            batch_timeout=read_seconds_env("VMCONSOLE_BATCH_TIMEOUT", None),
            namespace=os.environ.get("VMCONSOLE_NAMESPACE") or DEFAULT_NAMESPACE,
            kubectl=os.environ.get("VMCONSOLE_KUBECTL") or "kubectl",
            virtctl=os.environ.get("VMCONSOLE_VIRTCTL") or "virtctl",
            alpine_image=os.environ.get("VMCONSOLE_ALPINE_IMAGE") or DEFAULT_ALPINE_IMAGE,
            cirros_image=os.environ.get("VMCONSOLE_CIRROS_IMAGE") or DEFAULT_CIRROS_IMAGE,
        )

    def batch_deadline(self, default: float) -> float:
        """Return the overall batch deadline, honouring the global override."""

        if self.batch_timeout is not None:
            return self.batch_timeout
        return default
