"""Command line entry point for running console scenarios."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Sequence

from .config import HarnessConfig
from .kubevirt import KubevirtPlatform
from .metadata import append_run_ledger_entry
from .scenarios import SCENARIOS, execute, get_scenario


def _list_cli(args: argparse.Namespace) -> int:
    for name in sorted(SCENARIOS):
        print(f"{name}\t{SCENARIOS[name].description}")
    return 0


def _run_cli(args: argparse.Namespace) -> int:
    try:
        config = HarnessConfig.from_env()
    except ValueError as exc:
        print(f"vmconsole: {exc}", file=sys.stderr)
        return 2
    if args.namespace:
        config = dataclasses.replace(config, namespace=args.namespace)
    if args.batch_timeout is not None:
        config = dataclasses.replace(config, batch_timeout=args.batch_timeout)

    try:
        scenarios = [get_scenario(name) for name in (args.scenario or sorted(SCENARIOS))]
    except KeyError as exc:
        print(f"vmconsole: {exc.args[0]}", file=sys.stderr)
        return 2

    platform = KubevirtPlatform(
        config.namespace, kubectl=config.kubectl, virtctl=config.virtctl
    )
    failures = 0
    for scenario in scenarios:
        log_dir = args.log_dir / scenario.name if args.log_dir is not None else None
        result = execute(
            scenario, platform, config, log_dir=log_dir, delete_vm=not args.keep_vm
        )
        print(result.summary())
        if args.ledger is not None:
            append_run_ledger_entry(
                args.ledger,
                result=result,
                metadata_path=log_dir / "metadata.json" if log_dir is not None else None,
                invocation_args=list(args.argv),
            )
        if not result.passed:
            failures += 1
    return 1 if failures else 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for ``python -m vmconsole``."""

    parser = argparse.ArgumentParser(description="VM serial console scenarios")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="list known scenarios")
    list_parser.set_defaults(func=_list_cli)

    run_parser = subparsers.add_parser("run", help="run scenarios against KubeVirt")
    run_parser.add_argument(
        "scenario", nargs="*", help="Scenario names (default: all scenarios)"
    )
    run_parser.add_argument("--namespace", help="Namespace to create VMs in")
    run_parser.add_argument(
        "--batch-timeout",
        type=float,
        help="Override every scenario's overall console deadline (seconds)",
    )
    run_parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for per-scenario harness logs, serial logs and metadata",
    )
    run_parser.add_argument(
        "--ledger",
        type=Path,
        help="Append one JSON line per scenario run to this file",
    )
    run_parser.add_argument(
        "--keep-vm",
        action="store_true",
        help="Leave VMs in place after the run for debugging",
    )
    run_parser.set_defaults(func=_run_cli)

    argv_list = list(sys.argv[1:] if argv is None else argv)
    parsed = parser.parse_args(argv_list)
    parsed.argv = argv_list
    return parsed.func(parsed)
