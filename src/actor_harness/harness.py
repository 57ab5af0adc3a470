"""Test harness over the execution engine.

A harness is built in two passes over its options. The pre-init pass
fills the funding registry and picks the miner, genesis is flushed from
that registry, the engine is constructed over the genesis root, and the
post-init pass runs options that need a live engine (actor creation).

Every message application flushes the engine and hands back a freshly
loaded state tree. Earlier trees stay valid because the blockstore is
append-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from .actors import INIT_ACTOR_ADDRESS, ActorCode
from .address import Address, bls_address
from .chain_store import ChainStore
from .config import (
    DEFAULT_GAS_LIMIT,
    DEFAULT_GAS_PRICE,
    INIT_METHOD_EXEC,
    METHOD_SEND,
    HarnessSettings,
)
from .encoding import dump_object
from .errors import ErrorCode, HarnessError
from .options import HarnessOption, OptionPipeline
from .state_tree import StateTree, load_state_tree, make_initial_state_tree
from .store import MemoryBlockstore
from .types import ApplyRet, Cid, ExecParams, ExecutionContext, FundingSpec, Message, Stage
from .vm import VM, new_vm
from .wallet import Wallet, new_wallet

logger = logging.getLogger(__name__)

DEFAULT_MINER = bls_address(0)


@dataclass(frozen=True)
class BalanceMismatch:
    address: Address
    expected: int
    actual: int

    def __str__(self) -> str:
        return f"expected {self.address} to have balance of {self.expected}. Instead has {self.actual}"


class Harness:
    def __init__(self, settings: Optional[HarnessSettings] = None, wallet: Optional[Wallet] = None):
        self.settings = settings or HarnessSettings()
        self.stage = Stage.PRE_INIT
        self.nonces: Dict[Address, int] = {}
        self.funding = FundingSpec(
            miner=DEFAULT_MINER,
            entries=[(DEFAULT_MINER, self.settings.miner_funds)],
            n_addrs=1,
        )
        self.actor_codes: Dict[Cid, ActorCode] = {}
        self.failures: List[BalanceMismatch] = []

        self.ctx = ExecutionContext()
        self.bs = MemoryBlockstore()
        self.wallet = wallet or new_wallet(self.settings.key_seed)
        self.cs: Optional[ChainStore] = None
        self.vm: Optional[VM] = None

    # --- construction ---

    def advance_stage(self) -> None:
        if self.stage != Stage.PRE_INIT:
            raise HarnessError(ErrorCode.INVALID_STAGE, f"cannot leave terminal stage {self.stage.value}")
        self.stage = Stage.POST_INIT

    def init_engine(self) -> None:
        if self.stage != Stage.PRE_INIT or self.vm is not None:
            raise HarnessError(ErrorCode.INVALID_STAGE, "engine already initialized")

        self.cs = ChainStore(self.bs)
        try:
            st = make_initial_state_tree(self.cs.store, self.funding.as_mapping())
            genesis_root = st.flush()
        except HarnessError as exc:
            raise HarnessError(ErrorCode.GENESIS, f"building genesis: {exc}") from exc
        self.cs.record_state_root(genesis_root)

        self.vm = new_vm(
            genesis_root,
            self.settings.block_height,
            self.funding.miner,
            self.cs,
            self.actor_codes,
        )
        logger.info(
            f"harness genesis {genesis_root} with {len(self.funding)} funded addresses, "
            f"miner {self.funding.miner}"
        )

    def _engine(self) -> VM:
        if self.vm is None:
            raise HarnessError(ErrorCode.INVALID_STAGE, "execution engine not initialized")
        return self.vm

    # --- message application ---

    def apply(self, msg: Message) -> Tuple[ApplyRet, StateTree]:
        vm = self._engine()
        tracked = self.nonces.get(msg.from_, 0)
        explicit = msg.nonce is not None
        if explicit:
            msg = replace(msg)
        else:
            msg = replace(msg, nonce=tracked)
            self.nonces[msg.from_] = tracked + 1
        logger.debug(f"applying {msg.from_} -> {msg.to} method {msg.method} nonce {msg.nonce}")

        try:
            ret = vm.apply_message(self.ctx, msg)
        except HarnessError as exc:
            raise HarnessError(ErrorCode.APPLY_FAILED, f"applying message: {exc}") from exc
        if explicit:
            # Only an accepted explicit nonce moves the tracker.
            self.nonces[msg.from_] = max(self.nonces.get(msg.from_, 0), msg.nonce + 1)
        try:
            root = vm.flush(self.ctx)
        except HarnessError as exc:
            raise HarnessError(ErrorCode.FLUSH, f"flushing vm: {exc}") from exc
        self.cs.record_state_root(root)
        return ret, load_state_tree(self.cs.store, root)

    def create_actor(self, from_: Address, code: Cid, params: Any) -> Tuple[ApplyRet, StateTree]:
        exec_params = ExecParams(code=code, params=dump_object(params))
        return self.apply(
            Message(
                to=INIT_ACTOR_ADDRESS,
                from_=from_,
                method=INIT_METHOD_EXEC,
                params=dump_object(exec_params),
                gas_price=DEFAULT_GAS_PRICE,
                gas_limit=DEFAULT_GAS_LIMIT,
                value=0,
            )
        )

    def send_funds(self, from_: Address, to: Address, value: int) -> Tuple[ApplyRet, StateTree]:
        return self.apply(
            Message(
                to=to,
                from_=from_,
                method=METHOD_SEND,
                value=value,
                gas_price=DEFAULT_GAS_PRICE,
                gas_limit=DEFAULT_GAS_LIMIT,
            )
        )

    def invoke(self, from_: Address, to: Address, method: int, params: Any) -> Tuple[ApplyRet, StateTree]:
        return self.apply(
            Message(
                to=to,
                from_=from_,
                method=method,
                value=0,
                params=dump_object(params),
                gas_price=DEFAULT_GAS_PRICE,
                gas_limit=DEFAULT_GAS_LIMIT,
            )
        )

    # --- queries and assertions ---

    def state(self) -> StateTree:
        """Reload the latest published state root."""
        if self.cs is None:
            raise HarnessError(ErrorCode.INVALID_STAGE, "no state published yet")
        return self.cs.load_state()

    def assert_balance(self, addr: Address, expected: int) -> bool:
        actual = self._engine().actor_balance(addr)
        if actual == expected:
            return True
        mismatch = BalanceMismatch(address=addr, expected=expected, actual=actual)
        self.failures.append(mismatch)
        logger.error(str(mismatch))
        return False

    def check_failures(self) -> None:
        """Raise AssertionError summarizing every recorded assertion failure."""
        if self.failures:
            raise AssertionError("\n".join(str(f) for f in self.failures))


class SetupResult:
    """Outcome of harness construction; the caller decides whether to abort."""

    def __init__(self, ok: bool, harness: Optional[Harness] = None, error: Optional[HarnessError] = None):
        self.ok = ok
        self.harness = harness
        self.error = error

    @classmethod
    def success(cls, harness: Harness) -> "SetupResult":
        return cls(True, harness, None)

    @classmethod
    def failure(cls, error: HarnessError) -> "SetupResult":
        return cls(False, None, error)

    def unwrap(self) -> Harness:
        if not self.ok or self.harness is None:
            raise self.error or HarnessError(ErrorCode.INTERNAL_ERROR, "setup failed without error")
        return self.harness


def new_harness(
    *options: HarnessOption,
    settings: Optional[HarnessSettings] = None,
    wallet: Optional[Wallet] = None,
) -> SetupResult:
    pipeline = OptionPipeline(options)
    h = Harness(settings, wallet)
    try:
        pipeline.run(h)
        h.init_engine()
        h.advance_stage()
        pipeline.run(h)
    except HarnessError as exc:
        logger.error(f"harness setup failed at {h.stage.value}: {exc}")
        return SetupResult.failure(exc)
    return SetupResult.success(h)
