"""Option pipeline: stage split, slot handling and registry edits."""

from __future__ import annotations

import pytest

from actor_harness.address import bls_address
from actor_harness.errors import ErrorCode, HarnessError
from actor_harness.harness import DEFAULT_MINER, Harness
from actor_harness.options import (
    ANY_STAGE,
    AddressSlot,
    HarnessOption,
    OptionPipeline,
    harness_actor,
    harness_addr,
    harness_ctx,
    harness_miner,
)
from actor_harness.types import ExecutionContext, Stage
from conftest import COUNTER_CODE


def test_pipeline_splits_by_stage() -> None:
    slot = AddressSlot()
    addr = harness_addr(slot, 10)
    actor = harness_actor(AddressSlot(), slot, COUNTER_CODE, lambda: 0)
    ctx = harness_ctx(ExecutionContext())

    pipeline = OptionPipeline([addr, actor, ctx])
    assert pipeline.for_stage(Stage.PRE_INIT) == [addr, ctx]
    assert pipeline.for_stage(Stage.POST_INIT) == [actor, ctx]
    assert ctx.stages == ANY_STAGE


def test_option_without_stage_rejected() -> None:
    with pytest.raises(HarnessError) as exc:
        OptionPipeline([HarnessOption("nowhere", frozenset(), lambda h: None)])
    assert exc.value.code == ErrorCode.INVALID_STAGE


def test_empty_slot_get() -> None:
    slot = AddressSlot()
    assert slot.empty()
    with pytest.raises(HarnessError) as exc:
        slot.get()
    assert exc.value.code == ErrorCode.PRECONDITION


def test_addr_generates_and_funds() -> None:
    h = Harness()
    slot = AddressSlot()
    harness_addr(slot, 42).fn(h)
    assert not slot.empty()
    assert h.funding.balance_of(slot.get()) == 42
    assert h.funding.n_addrs == 2

    harness_addr(slot, 7).fn(h)
    assert h.funding.balance_of(slot.get()) == 7
    assert len(h.funding) == 2


def test_addr_with_preset_address() -> None:
    h = Harness()
    preset = bls_address(9)
    harness_addr(AddressSlot(preset), 5).fn(h)
    assert h.funding.balance_of(preset) == 5
    assert h.funding.n_addrs == 1


def test_miner_read_and_replace() -> None:
    h = Harness()
    read = AddressSlot()
    harness_miner(read).fn(h)
    assert read.get() == DEFAULT_MINER

    new_miner = bls_address(3)
    harness_miner(AddressSlot(new_miner)).fn(h)
    assert h.funding.miner == new_miner
    assert DEFAULT_MINER not in h.funding


def test_pipeline_run_prefixes_option_name() -> None:
    h = Harness()
    h.stage = Stage.POST_INIT
    taken = AddressSlot(bls_address(4))
    pipeline = OptionPipeline([harness_actor(taken, bls_address(1), COUNTER_CODE, lambda: 0)])
    with pytest.raises(HarnessError) as exc:
        pipeline.run(h)
    assert exc.value.code == ErrorCode.PRECONDITION
    assert exc.value.message.startswith("applying option actor:")


def test_unexpected_exception_becomes_harness_error() -> None:
    def explode(h: Harness) -> None:
        raise KeyError("missing")

    h = Harness()
    pipeline = OptionPipeline([HarnessOption("explode", frozenset({Stage.PRE_INIT}), explode)])
    with pytest.raises(HarnessError) as exc:
        pipeline.run(h)
    assert exc.value.code == ErrorCode.INTERNAL_ERROR
    assert isinstance(exc.value.__cause__, KeyError)


def test_miner_slot_with_current_miner_is_a_no_op() -> None:
    h = Harness()
    harness_miner(AddressSlot(DEFAULT_MINER)).fn(h)
    assert h.funding.miner == DEFAULT_MINER
    assert h.funding.balance_of(DEFAULT_MINER) == 1_000_000
