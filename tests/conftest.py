from pathlib import Path
import sys
import pytest

pytest_plugins = ["tests.vm.fixtures"]


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--vm-log-dir",
        action="store",
        default=None,
        help=(
            "Keep harness logs, serial logs and metadata for VM scenario tests "
            "under this directory instead of a temporary one."
        ),
    )


# Ensure repository root is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
