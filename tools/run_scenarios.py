#!/usr/bin/env python3
"""
Actor harness scenario runner.

Runs YAML scenario files through a fresh harness each and reports balance
and exit-code mismatches. Scenario layout:

    name: transfer_from_miner
    miner: alice            # optional; default is the built-in miner
    accounts:
      alice: 1000           # funded at genesis with a generated address
    steps:
      - send: {from: miner, to: alice, value: 500}
        expect_exit: OK     # optional
      - expect_balances: {miner: 999500, alice: 1500}
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from actor_harness.config import HarnessSettings  # noqa: E402
from actor_harness.errors import ErrorCode, ExitCode, HarnessError  # noqa: E402
from actor_harness.harness import Harness, new_harness  # noqa: E402
from actor_harness.options import AddressSlot, harness_addr, harness_miner  # noqa: E402
from fixtures_io import (  # noqa: E402
    apply_ret_to_json,
    funding_to_json,
    read_yaml,
    state_to_json,
    write_yaml,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

MINER = "miner"


def _build(
    spec: Dict[str, Any], settings: Optional[HarnessSettings] = None
) -> tuple[Harness, Dict[str, AddressSlot]]:
    slots: Dict[str, AddressSlot] = {}
    options = []
    miner_name = spec.get("miner")
    if not miner_name:
        slots[MINER] = AddressSlot()
        options.append(harness_miner(slots[MINER]))

    for name, balance in (spec.get("accounts") or {}).items():
        slots[name] = AddressSlot()
        options.append(harness_addr(slots[name], int(balance)))

    if miner_name:
        if miner_name not in slots:
            raise HarnessError(
                ErrorCode.PRECONDITION, f"miner {miner_name!r} is not a declared account"
            )
        options.append(harness_miner(slots[miner_name]))
        slots[MINER] = slots[miner_name]

    return new_harness(*options, settings=settings).unwrap(), slots


def _addr(slots: Dict[str, AddressSlot], name: str):
    if name not in slots:
        raise HarnessError(ErrorCode.PRECONDITION, f"unknown account {name!r}")
    return slots[name].get()


def run_scenario(spec: Dict[str, Any], settings: Optional[HarnessSettings] = None) -> Dict[str, Any]:
    name = spec.get("name", "unnamed")
    h, slots = _build(spec, settings)
    failures: List[str] = []
    results: List[Dict[str, Any]] = []

    for i, step in enumerate(spec.get("steps") or []):
        if "send" in step:
            send = step["send"]
            ret, _ = h.send_funds(
                _addr(slots, send["from"]), _addr(slots, send["to"]), int(send["value"])
            )
            results.append(apply_ret_to_json(ret))
            expect_name = step.get("expect_exit", "OK")
            if expect_name not in ExitCode.__members__:
                raise HarnessError(
                    ErrorCode.PRECONDITION, f"step {i}: unknown exit code {expect_name!r}"
                )
            expected = ExitCode[expect_name]
            if ret.exit_code != expected:
                failures.append(f"step {i}: exit {ret.exit_code.name}, expected {expected.name}")
        elif "expect_balances" in step:
            for acct, balance in step["expect_balances"].items():
                h.assert_balance(_addr(slots, acct), int(balance))
        else:
            raise HarnessError(ErrorCode.PRECONDITION, f"step {i} has no known action")

    failures.extend(str(f) for f in h.failures)
    return {
        "name": name,
        "passed": not failures,
        "failures": failures,
        "funding": funding_to_json(h.funding),
        "results": results,
        "post_state": state_to_json(h.state()),
    }


def _collect(paths: tuple[str, ...]) -> List[Path]:
    files: List[Path] = []
    for p in map(Path, paths):
        if p.is_dir():
            files.extend(sorted(p.glob("*.yaml")) + sorted(p.glob("*.yml")))
        else:
            files.append(p)
    return files


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), default=None, help="Write a YAML report here")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(paths: tuple[str, ...], output: str | None, verbose: bool) -> None:
    """Run actor harness scenarios from YAML files or directories."""
    settings = HarnessSettings.from_env()
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        raise click.ClickException(f"invalid HARNESS_LOG_LEVEL {settings.log_level!r}")
    logging.getLogger().setLevel(logging.DEBUG if verbose else level)

    files = _collect(paths)
    if not files:
        logger.error("No scenario files found")
        sys.exit(1)

    reports: List[Dict[str, Any]] = []
    for path in files:
        data = read_yaml(path) or {}
        for spec in data.get("scenarios", [data]):
            try:
                report = run_scenario(spec, settings)
            except HarnessError as e:
                report = {"name": spec.get("name", path.stem), "passed": False, "failures": [str(e)]}
            status = "PASS" if report["passed"] else "FAIL"
            logger.info(f"  [{status}] {path.name}::{report['name']}")
            for failure in report["failures"]:
                logger.info(f"      {failure}")
            reports.append(report)

    failed = sum(1 for r in reports if not r["passed"])
    logger.info(f"{len(reports) - failed}/{len(reports)} scenarios passed")

    if output:
        write_yaml(Path(output), {"scenarios": reports})

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
