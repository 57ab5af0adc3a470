"""Helpers to serialize harness funding, results and state trees for reports."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from actor_harness.address import Address
from actor_harness.state_tree import StateTree
from actor_harness.types import ApplyRet, FundingSpec


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def address_to_json(addr: Address) -> str:
    return str(addr)


def funding_to_json(funding: FundingSpec) -> dict[str, Any]:
    return {
        "miner": address_to_json(funding.miner),
        "n_addrs": funding.n_addrs,
        "accounts": [
            {"address": address_to_json(addr), "balance": balance}
            for addr, balance in funding
        ],
    }


def apply_ret_to_json(ret: ApplyRet) -> dict[str, Any]:
    return {
        "exit_code": int(ret.exit_code),
        "exit_name": ret.exit_code.name,
        "return": _bytes_to_hex(ret.return_value),
        "actor_err": ret.actor_err.message if ret.actor_err else None,
    }


def state_to_json(state: StateTree) -> dict[str, Any]:
    """Actors in ID order, with their key address when the init actor maps one."""
    reverse = {actor_id: addr for addr, actor_id in state.init_state().address_map.items()}
    actors_out: list[dict[str, Any]] = []
    for id_addr in state.actor_ids():
        actor = state.get_actor(id_addr)
        entry: dict[str, Any] = {
            "id": address_to_json(id_addr),
            "code": str(actor.code),
            "head": str(actor.head),
            "nonce": actor.nonce,
            "balance": actor.balance,
        }
        robust = reverse.get(id_addr.id())
        if robust is not None:
            entry["address"] = address_to_json(robust)
        actors_out.append(entry)
    return {"actors": actors_out}


def write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, width=4096))


def read_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text())
