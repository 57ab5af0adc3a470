"""Pytest fixtures: harness construction, a test actor, and trace collection."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List

import pytest

from actor_harness.actors import ActorCode, Method, code_cid, decode_params
from actor_harness.encoding import dump_object
from actor_harness.errors import ActorError, ExitCode
from actor_harness.harness import Harness, new_harness
from actor_harness.options import HarnessOption, harness_actor_code
from actor_harness.state_tree import StateTree
from tools.fixtures_io import funding_to_json, state_to_json, write_yaml

COUNTER_CODE = code_cid("test/counter")
COUNTER_METHOD_INCREMENT = 2
COUNTER_METHOD_GET = 3
COUNTER_METHOD_FAIL = 4
COUNTER_METHOD_BLOCK = 5


class CounterActor(ActorCode):
    """Minimal stateful actor: an integer that can be bumped and read."""

    name = "counter"

    def exports(self) -> Dict[int, Method]:
        return {
            1: self.constructor,
            COUNTER_METHOD_INCREMENT: self.increment,
            COUNTER_METHOD_GET: self.get,
            COUNTER_METHOD_FAIL: self.fail,
            COUNTER_METHOD_BLOCK: self.block,
        }

    def constructor(self, rt, params: bytes) -> bytes:
        start = decode_params(params)
        if not isinstance(start, int):
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, "counter start must be an int")
        rt.commit([start])
        return b""

    def increment(self, rt, params: bytes) -> bytes:
        by = decode_params(params)
        (value,) = rt.load_state()
        rt.commit([value + by])
        return dump_object(value + by)

    def get(self, rt, params: bytes) -> bytes:
        (value,) = rt.load_state()
        return dump_object(value)

    def fail(self, rt, params: bytes) -> bytes:
        (value,) = rt.load_state()
        rt.commit([value + 1000])
        raise ActorError(ExitCode.ILLEGAL_STATE, "counter refuses")

    def block(self, rt, params: bytes) -> bytes:
        return dump_object([rt.block_height, rt.block_miner])


_TRACES: List[dict[str, Any]] = []


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for harness scenario traces",
    )


@pytest.fixture
def counter_code() -> HarnessOption:
    """Option registering the counter actor under COUNTER_CODE."""
    return harness_actor_code(COUNTER_CODE, CounterActor())


@pytest.fixture
def harness_factory() -> Iterator[Callable[..., Harness]]:
    """Build harnesses; setup failures fail the test, recorded assertion failures fail teardown."""
    built: List[Harness] = []

    def _factory(*options: HarnessOption, **kwargs: Any) -> Harness:
        result = new_harness(*options, **kwargs)
        if not result.ok:
            pytest.fail(f"harness setup failed: {result.error}")
        built.append(result.harness)
        return result.harness

    yield _factory

    for h in built:
        h.check_failures()


@pytest.fixture
def scenario_trace() -> Callable[[str, Harness, StateTree], None]:
    """Collect a scenario's funding and post-state for the --output report."""

    def _trace(name: str, h: Harness, post_state: StateTree) -> None:
        _TRACES.append(
            {
                "name": name,
                "funding": funding_to_json(h.funding),
                "nonces": {str(addr): n for addr, n in h.nonces.items()},
                "post_state": state_to_json(post_state),
            }
        )

    return _trace


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir or not _TRACES:
        return
    write_yaml(Path(output_dir) / "harness_traces.yaml", {"scenarios": _TRACES})
