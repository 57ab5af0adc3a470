"""Actor state tree, persistence through the object store, and genesis."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from .actors import (
    ACCOUNT_CODE,
    INIT_ACTOR_ADDRESS,
    INIT_CODE,
    AccountActorState,
    InitActorState,
)
from .address import Address, Protocol
from .errors import ErrorCode, HarnessError
from .store import ObjectStore
from .types import Actor, Cid

logger = logging.getLogger(__name__)


class StateTree:
    """Actors keyed by ID address.

    Entries are immutable ``Actor`` values, so ``snapshot`` is a shallow copy
    and a loaded tree never observes later flushes.
    """

    def __init__(self, store: ObjectStore, actors: Optional[Dict[Address, Actor]] = None):
        self.store = store
        self._actors: Dict[Address, Actor] = dict(actors or {})

    # --- address resolution ---

    def init_state(self) -> InitActorState:
        init = self._actors.get(INIT_ACTOR_ADDRESS)
        if init is None:
            raise HarnessError(ErrorCode.ACTOR_NOT_FOUND, "init actor missing from state tree")
        return InitActorState.from_cbor(self.store.get(init.head))

    def lookup_id(self, addr: Address) -> Optional[Address]:
        if addr.protocol == Protocol.ID:
            return addr if addr in self._actors else None
        actor_id = self.init_state().address_map.get(addr)
        if actor_id is None:
            return None
        return Address.new_id(actor_id)

    def register_new_address(self, addr: Address) -> Address:
        """Allocate the next ID for ``addr`` in the init actor's address map."""
        if addr.protocol == Protocol.ID:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, "cannot register an ID address")
        state = self.init_state()
        if addr in state.address_map:
            raise HarnessError(ErrorCode.PRECONDITION, f"address {addr} already registered")
        id_addr = Address.new_id(state.next_id)
        state.address_map[addr] = state.next_id
        state.next_id += 1
        init = self._actors[INIT_ACTOR_ADDRESS]
        self._actors[INIT_ACTOR_ADDRESS] = Actor(
            code=init.code, head=self.store.put(state), nonce=init.nonce, balance=init.balance
        )
        return id_addr

    # --- actors ---

    def maybe_actor(self, addr: Address) -> Optional[Actor]:
        id_addr = self.lookup_id(addr)
        if id_addr is None:
            return None
        return self._actors.get(id_addr)

    def get_actor(self, addr: Address) -> Actor:
        actor = self.maybe_actor(addr)
        if actor is None:
            raise HarnessError(ErrorCode.ACTOR_NOT_FOUND, f"actor {addr} not found")
        return actor

    def set_actor(self, addr: Address, actor: Actor) -> None:
        id_addr = self.lookup_id(addr) if addr.protocol != Protocol.ID else addr
        if id_addr is None:
            raise HarnessError(ErrorCode.ACTOR_NOT_FOUND, f"no id registered for {addr}")
        self._actors[id_addr] = actor

    def balance(self, addr: Address) -> int:
        return self.get_actor(addr).balance

    def actor_ids(self) -> List[Address]:
        return sorted(self._actors, key=lambda a: a.id())

    def snapshot(self) -> Dict[Address, Actor]:
        return dict(self._actors)

    def revert(self, snapshot: Dict[Address, Actor]) -> None:
        self._actors = dict(snapshot)

    # --- persistence ---

    def flush(self) -> Cid:
        entries = [[addr, self._actors[addr]] for addr in self.actor_ids()]
        root = self.store.put(entries)
        logger.debug(f"flushed state tree with {len(entries)} actors to {root}")
        return root


def load_state_tree(store: ObjectStore, root: Cid) -> StateTree:
    try:
        entries = store.get(root)
        actors = {Address.from_bytes(raw_addr): Actor.from_cbor(raw) for raw_addr, raw in entries}
    except HarnessError as exc:
        raise HarnessError(ErrorCode.LOAD_STATE, f"loading state tree {root}: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise HarnessError(ErrorCode.LOAD_STATE, f"malformed state tree {root}: {exc}") from exc
    return StateTree(store, actors)


def make_initial_state_tree(store: ObjectStore, balances: Mapping[Address, int]) -> StateTree:
    """Build a genesis tree: the init actor plus one account actor per funded address."""
    st = StateTree(store)
    st.set_actor(INIT_ACTOR_ADDRESS, Actor(code=INIT_CODE, head=store.put(InitActorState())))

    for addr, balance in balances.items():
        if balance < 0:
            raise HarnessError(ErrorCode.GENESIS, f"negative genesis balance for {addr}")
        if not addr.is_key_address():
            raise HarnessError(ErrorCode.GENESIS, f"genesis accounts need key addresses, got {addr}")
        id_addr = st.register_new_address(addr)
        head = store.put(AccountActorState(address=addr))
        st.set_actor(id_addr, Actor(code=ACCOUNT_CODE, head=head, balance=balance))
        logger.debug(f"genesis account {addr} -> {id_addr} with balance {balance}")

    return st
