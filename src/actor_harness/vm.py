"""Reference execution engine: applies one message at a time to a state tree.

Failure semantics:
- Engine-level failure (cancelled context, malformed message, unknown
  sender, nonce mismatch): raised as HarnessError, state unchanged.
- Actor-level failure (insufficient funds, bad receiver/method, ActorError
  from actor code): returned in ApplyRet, state reverted except the sender
  nonce bump.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from .actors import ACCOUNT_CODE, AccountActorState, ActorCode, builtin_codes
from .address import Address
from .chain_store import ChainStore
from .config import METHOD_CONSTRUCTOR, METHOD_SEND
from .errors import ActorError, ErrorCode, ExitCode, HarnessError
from .state_tree import StateTree
from .types import Actor, ApplyRet, Cid, ExecutionContext, Message

logger = logging.getLogger(__name__)


class Runtime:
    """Per-invocation view handed to actor methods."""

    def __init__(self, vm: "VM", message: Message, receiver: Address, origin_nonce: int):
        self._vm = vm
        self.message = message
        self.receiver = receiver
        self.origin_nonce = origin_nonce

    @property
    def state_tree(self) -> StateTree:
        return self._vm.state_tree

    @property
    def block_height(self) -> int:
        return self._vm.height

    @property
    def block_miner(self) -> Address:
        return self._vm.miner

    def has_code(self, code: Cid) -> bool:
        return code in self._vm.codes

    def load_state(self) -> Any:
        actor = self.state_tree.get_actor(self.receiver)
        return self.state_tree.store.get(actor.head)

    def commit(self, state: Any) -> Cid:
        head = self.state_tree.store.put(state)
        actor = self.state_tree.get_actor(self.receiver)
        self.state_tree.set_actor(self.receiver, replace(actor, head=head))
        return head

    def create_actor(self, code: Cid, addr: Address, value: int = 0) -> Address:
        st = self.state_tree
        id_addr = st.register_new_address(addr)
        st.set_actor(id_addr, Actor(code=code, head=st.store.put([])))
        self._vm._transfer(self.receiver, id_addr, value)
        logger.debug(f"created actor {addr} -> {id_addr}")
        return id_addr

    def call_constructor(self, id_addr: Address, params: bytes) -> bytes:
        inner = Message(to=id_addr, from_=self.receiver, method=METHOD_CONSTRUCTOR, params=params)
        return self._vm._invoke(id_addr, inner, self.origin_nonce)


class VM:
    def __init__(
        self,
        base: Cid,
        height: int,
        miner: Address,
        cs: ChainStore,
        codes: Optional[Mapping[Cid, ActorCode]] = None,
    ):
        self.height = height
        self.miner = miner
        self.cs = cs
        self.codes: Dict[Cid, ActorCode] = builtin_codes()
        self.codes.update(codes or {})
        self.state_tree = cs.load_state(base)

    def apply_message(self, ctx: ExecutionContext, msg: Message) -> ApplyRet:
        ctx.check()
        _validate_message(msg)

        st = self.state_tree
        from_id = st.lookup_id(msg.from_)
        from_actor = st.maybe_actor(msg.from_)
        if from_id is None or from_actor is None:
            raise HarnessError(ErrorCode.ACTOR_NOT_FOUND, f"sender {msg.from_} not found")
        if msg.nonce != from_actor.nonce:
            raise HarnessError(
                ErrorCode.NONCE_MISMATCH,
                f"invalid nonce for {msg.from_}: got {msg.nonce}, expected {from_actor.nonce}",
            )

        pre_message = st.snapshot()
        st.set_actor(from_id, replace(from_actor, nonce=from_actor.nonce + 1))
        post_nonce = st.snapshot()
        try:
            ret = self._send(msg, from_id)
        except ActorError as exc:
            st.revert(post_nonce)
            logger.debug(f"message {msg.from_}#{msg.nonce} exited {exc.exit_code.name}: {exc.message}")
            return ApplyRet(exit_code=exc.exit_code, actor_err=exc)
        except BaseException:
            st.revert(pre_message)
            raise
        return ApplyRet(exit_code=ExitCode.OK, return_value=ret)

    def flush(self, ctx: ExecutionContext) -> Cid:
        ctx.check()
        try:
            return self.state_tree.flush()
        except HarnessError as exc:
            raise HarnessError(ErrorCode.FLUSH, f"flushing state tree: {exc}") from exc

    def actor_balance(self, addr: Address) -> int:
        return self.state_tree.get_actor(addr).balance

    # --- internals ---

    def _send(self, msg: Message, from_id: Address) -> bytes:
        st = self.state_tree
        to_id = st.lookup_id(msg.to)
        if to_id is None:
            if not msg.to.is_key_address():
                raise ActorError(ExitCode.SYS_ERR_INVALID_RECEIVER, f"no actor at {msg.to}")
            to_id = self._create_account(msg.to)

        self._transfer(from_id, to_id, msg.value)
        if msg.method == METHOD_SEND:
            return b""
        return self._invoke(to_id, msg, msg.nonce)

    def _invoke(self, to_id: Address, msg: Message, origin_nonce: int) -> bytes:
        actor = self.state_tree.get_actor(to_id)
        code = self.codes.get(actor.code)
        if code is None:
            raise ActorError(ExitCode.SYS_ERR_INVALID_RECEIVER, f"no code registered for {actor.code}")
        method = code.method(msg.method)
        if method is None:
            raise ActorError(
                ExitCode.SYS_ERR_INVALID_METHOD, f"{code.name} actor has no method {msg.method}"
            )
        rt = Runtime(self, msg, to_id, origin_nonce)
        try:
            return method(rt, msg.params)
        except HarnessError as exc:
            raise ActorError(ExitCode.SYS_ERR_ACTOR_PANIC, str(exc)) from exc

    def _transfer(self, from_id: Address, to_id: Address, value: int) -> None:
        if value == 0:
            return
        st = self.state_tree
        sender = st.get_actor(from_id)
        if sender.balance < value:
            raise ActorError(
                ExitCode.SYS_ERR_INSUFFICIENT_FUNDS,
                f"{from_id} has {sender.balance}, needs {value}",
            )
        if from_id == to_id:
            return
        st.set_actor(from_id, replace(sender, balance=sender.balance - value))
        receiver = st.get_actor(to_id)
        st.set_actor(to_id, replace(receiver, balance=receiver.balance + value))

    def _create_account(self, addr: Address) -> Address:
        st = self.state_tree
        id_addr = st.register_new_address(addr)
        head = st.store.put(AccountActorState(address=addr))
        st.set_actor(id_addr, Actor(code=ACCOUNT_CODE, head=head))
        return id_addr


def _validate_message(msg: Message) -> None:
    if msg.nonce is None:
        raise HarnessError(ErrorCode.INVALID_MESSAGE, "message nonce unassigned")
    for name in ("nonce", "value", "gas_price", "gas_limit", "method"):
        if getattr(msg, name) < 0:
            raise HarnessError(ErrorCode.INVALID_MESSAGE, f"message {name} is negative")
    if not isinstance(msg.params, (bytes, bytearray)):
        raise HarnessError(ErrorCode.INVALID_MESSAGE, "message params must be bytes")


def new_vm(
    base: Cid,
    height: int,
    miner: Address,
    cs: ChainStore,
    codes: Optional[Mapping[Cid, ActorCode]] = None,
) -> VM:
    try:
        return VM(base, height, miner, cs, codes)
    except HarnessError as exc:
        raise HarnessError(ErrorCode.ENGINE_CONSTRUCTION, f"constructing vm: {exc}") from exc
