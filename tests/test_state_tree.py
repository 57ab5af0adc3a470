"""Genesis construction, address resolution and flush/reload snapshots."""

from __future__ import annotations

from dataclasses import replace

import pytest

from actor_harness.actors import ACCOUNT_CODE, INIT_ACTOR_ADDRESS, INIT_CODE
from actor_harness.address import Address, bls_address
from actor_harness.chain_store import ChainStore
from actor_harness.config import FIRST_NON_SINGLETON_ID
from actor_harness.errors import ErrorCode, HarnessError
from actor_harness.state_tree import load_state_tree, make_initial_state_tree
from actor_harness.store import MemoryBlockstore, ObjectStore, compute_cid

ALICE = bls_address(1)
BOB = bls_address(2)


def _store() -> ObjectStore:
    return ObjectStore(MemoryBlockstore())


def test_genesis_assigns_ids_in_registry_order() -> None:
    st = make_initial_state_tree(_store(), {ALICE: 10, BOB: 20})
    assert st.get_actor(INIT_ACTOR_ADDRESS).code == INIT_CODE
    assert st.lookup_id(ALICE) == Address.new_id(FIRST_NON_SINGLETON_ID)
    assert st.lookup_id(BOB) == Address.new_id(FIRST_NON_SINGLETON_ID + 1)
    assert st.get_actor(ALICE).code == ACCOUNT_CODE
    assert st.balance(ALICE) == 10
    assert st.balance(Address.new_id(FIRST_NON_SINGLETON_ID + 1)) == 20


def test_genesis_rejects_non_key_addresses() -> None:
    with pytest.raises(HarnessError) as exc:
        make_initial_state_tree(_store(), {Address.new_id(5): 1})
    assert exc.value.code == ErrorCode.GENESIS


def test_unknown_actor_lookup() -> None:
    st = make_initial_state_tree(_store(), {ALICE: 1})
    assert st.maybe_actor(BOB) is None
    with pytest.raises(HarnessError) as exc:
        st.get_actor(BOB)
    assert exc.value.code == ErrorCode.ACTOR_NOT_FOUND


def test_register_same_address_twice() -> None:
    st = make_initial_state_tree(_store(), {ALICE: 1})
    with pytest.raises(HarnessError) as exc:
        st.register_new_address(ALICE)
    assert exc.value.code == ErrorCode.PRECONDITION


def test_flush_then_reload_is_idempotent() -> None:
    store = _store()
    st = make_initial_state_tree(store, {ALICE: 10, BOB: 20})
    root = st.flush()
    reloaded = load_state_tree(store, root)
    assert reloaded.balance(ALICE) == 10
    assert reloaded.balance(BOB) == 20
    assert reloaded.flush() == root


def test_old_roots_remain_valid_snapshots() -> None:
    store = _store()
    st = make_initial_state_tree(store, {ALICE: 10})
    first = st.flush()
    st.set_actor(ALICE, replace(st.get_actor(ALICE), balance=99))
    second = st.flush()

    assert first != second
    assert load_state_tree(store, first).balance(ALICE) == 10
    assert load_state_tree(store, second).balance(ALICE) == 99


def test_snapshot_revert() -> None:
    st = make_initial_state_tree(_store(), {ALICE: 10})
    snap = st.snapshot()
    st.set_actor(ALICE, replace(st.get_actor(ALICE), balance=0))
    st.revert(snap)
    assert st.balance(ALICE) == 10


def test_load_missing_root() -> None:
    with pytest.raises(HarnessError) as exc:
        load_state_tree(_store(), compute_cid(b"nope"))
    assert exc.value.code == ErrorCode.LOAD_STATE


def test_chain_store_tracks_roots() -> None:
    cs = ChainStore(MemoryBlockstore())
    with pytest.raises(HarnessError):
        cs.load_state()
    root = make_initial_state_tree(cs.store, {ALICE: 5}).flush()
    cs.record_state_root(root)
    cs.record_state_root(root)
    assert cs.state_roots() == [root]
    assert cs.head_state_root == root
    assert cs.load_state().balance(ALICE) == 5
    with pytest.raises(HarnessError) as exc:
        cs.record_state_root(compute_cid(b"unknown"))
    assert exc.value.code == ErrorCode.BLOCK_NOT_FOUND
