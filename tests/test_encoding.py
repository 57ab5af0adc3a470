"""Canonical CBOR encoding and content-addressed storage."""

from __future__ import annotations

import pytest

from actor_harness.actors import ACCOUNT_CODE, INIT_CODE
from actor_harness.address import Address, bls_address
from actor_harness.encoding import dump_object, load_object
from actor_harness.errors import ErrorCode, HarnessError
from actor_harness.store import MemoryBlockstore, ObjectStore, compute_cid
from actor_harness.types import Cid, ExecParams


def test_dump_is_canonical_for_maps() -> None:
    a = dump_object({b"b": 2, b"a": 1, b"ccc": 3})
    b = dump_object({b"ccc": 3, b"a": 1, b"b": 2})
    assert a == b


def test_cid_survives_cbor() -> None:
    loaded = load_object(dump_object([INIT_CODE, ACCOUNT_CODE]))
    assert loaded == [INIT_CODE, ACCOUNT_CODE]
    assert isinstance(loaded[0], Cid)


def test_cid_bytes_round_trip() -> None:
    cid = compute_cid(b"hello")
    assert Cid.from_bytes(cid.to_bytes()) == cid
    assert str(cid).startswith("b")


def test_address_encodes_as_bytes() -> None:
    addr = bls_address(7)
    assert load_object(dump_object(addr)) == addr.to_bytes()


def test_exec_params_nesting() -> None:
    inner = dump_object(42)
    outer = dump_object(ExecParams(code=ACCOUNT_CODE, params=inner))
    params = ExecParams.from_cbor(load_object(outer))
    assert params.code == ACCOUNT_CODE
    assert load_object(params.params) == 42


def test_unserializable_object_is_serialization_error() -> None:
    with pytest.raises(HarnessError) as exc:
        dump_object(object())
    assert exc.value.code == ErrorCode.SERIALIZATION


def test_garbage_bytes_fail_to_load() -> None:
    with pytest.raises(HarnessError) as exc:
        load_object(b"\xff\xff")
    assert exc.value.code == ErrorCode.SERIALIZATION


def test_trailing_bytes_fail_to_load() -> None:
    with pytest.raises(HarnessError) as exc:
        load_object(dump_object(7) + b"\x01")
    assert exc.value.code == ErrorCode.SERIALIZATION
    assert "trailing" in exc.value.message


def test_empty_bytes_fail_to_load() -> None:
    with pytest.raises(HarnessError) as exc:
        load_object(b"")
    assert exc.value.code == ErrorCode.SERIALIZATION


def test_blockstore_is_content_addressed() -> None:
    bs = MemoryBlockstore()
    first = bs.put(b"block")
    second = bs.put(b"block")
    assert first == second
    assert len(bs) == 1
    assert bs.get(first) == b"block"
    with pytest.raises(HarnessError) as exc:
        bs.get(compute_cid(b"missing"))
    assert exc.value.code == ErrorCode.BLOCK_NOT_FOUND


def test_object_store_round_trip() -> None:
    store = ObjectStore(MemoryBlockstore())
    cid = store.put({b"k": [1, 2, Address.new_id(5)]})
    assert store.get(cid) == {b"k": [1, 2, Address.new_id(5).to_bytes()]}
