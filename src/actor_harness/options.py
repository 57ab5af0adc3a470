"""Stage-tagged harness configuration options.

Each option declares the stages it is valid for. ``OptionPipeline`` keeps
two ordered lists (pre-init and post-init) and runs the one matching the
harness's current stage, so a single option set can mix both kinds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, FrozenSet, Iterable, List, Optional, Union

from .actors import ActorCode, decode_exec_return
from .address import Address
from .errors import ErrorCode, HarnessError
from .types import Cid, ExecutionContext, Stage
from .wallet import KeyType

if TYPE_CHECKING:
    from .harness import Harness

logger = logging.getLogger(__name__)

PRE_INIT_ONLY: FrozenSet[Stage] = frozenset({Stage.PRE_INIT})
POST_INIT_ONLY: FrozenSet[Stage] = frozenset({Stage.POST_INIT})
ANY_STAGE: FrozenSet[Stage] = frozenset(Stage)


class AddressSlot:
    """Mutable holder for an address an option may fill in."""

    def __init__(self, value: Optional[Address] = None):
        self.value = value

    def empty(self) -> bool:
        return self.value is None

    def get(self) -> Address:
        if self.value is None:
            raise HarnessError(ErrorCode.PRECONDITION, "address slot is empty")
        return self.value

    def set(self, addr: Address) -> None:
        self.value = addr

    def __repr__(self) -> str:
        return f"AddressSlot({self.value})"


AddressLike = Union[Address, AddressSlot]


def _resolve(addr: AddressLike) -> Address:
    if isinstance(addr, AddressSlot):
        return addr.get()
    return addr


@dataclass(frozen=True)
class HarnessOption:
    name: str
    stages: FrozenSet[Stage]
    fn: Callable[["Harness"], None]

    def valid_for(self, stage: Stage) -> bool:
        return stage in self.stages


class OptionPipeline:
    def __init__(self, options: Iterable[HarnessOption] = ()):
        self.pre_init: List[HarnessOption] = []
        self.post_init: List[HarnessOption] = []
        for opt in options:
            self.add(opt)

    def add(self, opt: HarnessOption) -> None:
        if not opt.stages:
            raise HarnessError(ErrorCode.INVALID_STAGE, f"option {opt.name} has no valid stage")
        if opt.valid_for(Stage.PRE_INIT):
            self.pre_init.append(opt)
        if opt.valid_for(Stage.POST_INIT):
            self.post_init.append(opt)

    def for_stage(self, stage: Stage) -> List[HarnessOption]:
        if stage == Stage.PRE_INIT:
            return list(self.pre_init)
        return list(self.post_init)

    def run(self, harness: "Harness") -> None:
        stage = harness.stage
        for opt in self.for_stage(stage):
            logger.debug(f"applying option {opt.name} at {stage.value}")
            try:
                opt.fn(harness)
            except HarnessError as exc:
                raise HarnessError(exc.code, f"applying option {opt.name}: {exc.message}") from exc
            except Exception as exc:
                raise HarnessError(
                    ErrorCode.INTERNAL_ERROR, f"applying option {opt.name}: {exc!r}"
                ) from exc


def harness_addr(slot: AddressSlot, value: int) -> HarnessOption:
    """Fund ``slot`` at genesis, generating a fresh address when it is empty."""

    def _apply(h: "Harness") -> None:
        if slot.empty():
            slot.set(h.wallet.generate_key(KeyType.SECP256K1))
            h.funding.n_addrs += 1
        h.funding.upsert(slot.get(), value)

    return HarnessOption("addr", PRE_INIT_ONLY, _apply)


def harness_miner(slot: AddressSlot) -> HarnessOption:
    """Read the miner into an empty slot, or replace the miner with the slot's address."""

    def _apply(h: "Harness") -> None:
        if slot.empty():
            slot.set(h.funding.miner)
            return
        if slot.get() == h.funding.miner:
            return
        h.funding.remove(h.funding.miner)
        h.funding.miner = slot.get()

    return HarnessOption("miner", PRE_INIT_ONLY, _apply)


def harness_ctx(ctx: ExecutionContext) -> HarnessOption:
    def _apply(h: "Harness") -> None:
        h.ctx = ctx

    return HarnessOption("ctx", ANY_STAGE, _apply)


def harness_actor(
    actor: AddressSlot,
    creator: AddressLike,
    code: Cid,
    params: Callable[[], Any],
) -> HarnessOption:
    """Create an actor once the engine exists and store its address in ``actor``.

    ``params`` is called exactly once, when the option runs.
    """

    def _apply(h: "Harness") -> None:
        if not actor.empty():
            raise HarnessError(ErrorCode.PRECONDITION, "actor address should be empty")
        try:
            payload = params()
        except Exception as exc:
            raise HarnessError(
                ErrorCode.ACTOR_CREATION, f"building constructor params: {exc!r}"
            ) from exc
        ret, _ = h.create_actor(_resolve(creator), code, payload)
        actor.set(decode_exec_return(ret))

    return HarnessOption("actor", POST_INIT_ONLY, _apply)


def harness_actor_code(code: Cid, impl: ActorCode) -> HarnessOption:
    """Register an actor implementation with the engine the harness will build."""

    def _apply(h: "Harness") -> None:
        h.actor_codes[code] = impl

    return HarnessOption("actor_code", PRE_INIT_ONLY, _apply)
