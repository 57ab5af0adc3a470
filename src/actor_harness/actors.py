"""Built-in actors (Init, Account) and the actor code interface.

Actor methods take the runtime and the raw CBOR params and return raw
return bytes. Failures are signalled by raising ``ActorError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .address import Address, encode_uvarint
from .config import (
    FIRST_NON_SINGLETON_ID,
    INIT_METHOD_CONSTRUCTOR,
    INIT_METHOD_EXEC,
    INIT_METHOD_GET_ID_FOR_ADDRESS,
    METHOD_CONSTRUCTOR,
)
from .encoding import load_object
from .errors import ActorError, ErrorCode, ExitCode, HarnessError
from .store import compute_cid
from .types import CODEC_RAW, ApplyRet, Cid, ExecParams

if TYPE_CHECKING:
    from .vm import Runtime

Method = Callable[["Runtime", bytes], bytes]

INIT_ACTOR_ADDRESS = Address.new_id(1)

ACCOUNT_METHOD_PUBKEY_ADDRESS = 2


def code_cid(name: str) -> Cid:
    """Code identifier for a named actor implementation."""
    return compute_cid(name.encode("utf-8"), CODEC_RAW)


INIT_CODE = code_cid("builtin/init")
ACCOUNT_CODE = code_cid("builtin/account")


@dataclass
class InitActorState:
    address_map: Dict[Address, int] = field(default_factory=dict)
    next_id: int = FIRST_NON_SINGLETON_ID

    def to_cbor(self) -> list:
        pairs = sorted(self.address_map.items(), key=lambda kv: kv[1])
        return [[[addr, actor_id] for addr, actor_id in pairs], self.next_id]

    @classmethod
    def from_cbor(cls, raw: list) -> "InitActorState":
        pairs, next_id = raw
        return cls(
            address_map={Address.from_bytes(a): actor_id for a, actor_id in pairs},
            next_id=next_id,
        )


@dataclass
class AccountActorState:
    address: Address

    def to_cbor(self) -> list:
        return [self.address]

    @classmethod
    def from_cbor(cls, raw: list) -> "AccountActorState":
        return cls(address=Address.from_bytes(raw[0]))


def decode_params(params: bytes) -> Any:
    """Decode CBOR params, mapping malformed input to an actor-level failure."""
    try:
        return load_object(params)
    except HarnessError as exc:
        raise ActorError(ExitCode.ILLEGAL_ARGUMENT, f"decoding params: {exc.message}") from exc


class ActorCode:
    """Base class for actor implementations registered with the VM."""

    name = "actor"

    def exports(self) -> Dict[int, Method]:
        return {}

    def method(self, number: int) -> Optional[Method]:
        return self.exports().get(number)


class InitActor(ActorCode):
    name = "init"

    def exports(self) -> Dict[int, Method]:
        return {
            INIT_METHOD_CONSTRUCTOR: self.constructor,
            INIT_METHOD_EXEC: self.exec,
            INIT_METHOD_GET_ID_FOR_ADDRESS: self.get_id_for_address,
        }

    def constructor(self, rt: "Runtime", params: bytes) -> bytes:
        rt.commit(InitActorState())
        return b""

    def exec(self, rt: "Runtime", params: bytes) -> bytes:
        raw = decode_params(params)
        try:
            exec_params = ExecParams.from_cbor(raw)
        except (HarnessError, TypeError, ValueError) as exc:
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, f"invalid exec params: {exc}") from exc

        if not rt.has_code(exec_params.code):
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, f"unknown actor code {exec_params.code}")

        # Creator address plus creator nonce keeps actor addresses unique per message.
        seed = rt.message.from_.to_bytes() + encode_uvarint(rt.origin_nonce)
        actor_addr = Address.new_actor(seed)
        id_addr = rt.create_actor(exec_params.code, actor_addr, rt.message.value)
        rt.call_constructor(id_addr, exec_params.params)
        return id_addr.to_bytes()

    def get_id_for_address(self, rt: "Runtime", params: bytes) -> bytes:
        raw = decode_params(params)
        if not isinstance(raw, bytes):
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, "expected address bytes")
        try:
            addr = Address.from_bytes(raw)
        except HarnessError as exc:
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, exc.message) from exc
        id_addr = rt.state_tree.lookup_id(addr)
        if id_addr is None:
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, f"no id for {addr}")
        return id_addr.to_bytes()


class AccountActor(ActorCode):
    name = "account"

    def exports(self) -> Dict[int, Method]:
        return {
            METHOD_CONSTRUCTOR: self.constructor,
            ACCOUNT_METHOD_PUBKEY_ADDRESS: self.pubkey_address,
        }

    def constructor(self, rt: "Runtime", params: bytes) -> bytes:
        raw = decode_params(params)
        if not isinstance(raw, bytes):
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, "expected address bytes")
        try:
            addr = Address.from_bytes(raw)
        except HarnessError as exc:
            raise ActorError(ExitCode.ILLEGAL_ARGUMENT, exc.message) from exc
        rt.commit(AccountActorState(address=addr))
        return b""

    def pubkey_address(self, rt: "Runtime", params: bytes) -> bytes:
        state = AccountActorState.from_cbor(rt.load_state())
        return state.address.to_bytes()


def builtin_codes() -> Dict[Cid, ActorCode]:
    return {
        INIT_CODE: InitActor(),
        ACCOUNT_CODE: AccountActor(),
    }


def decode_exec_return(ret: ApplyRet) -> Address:
    """Decode the address returned by Init Exec; non-success exits become errors."""
    if ret.exit_code != ExitCode.OK:
        raise HarnessError(
            ErrorCode.ACTOR_CREATION, f"creating actor: exit {int(ret.exit_code)}: {ret.actor_err}"
        ) from ret.actor_err
    if not ret.return_value:
        raise HarnessError(ErrorCode.ACTOR_CREATION, "creating actor: empty return value")
    try:
        return Address.from_bytes(ret.return_value)
    except HarnessError as exc:
        raise HarnessError(ErrorCode.ACTOR_CREATION, f"decoding created address: {exc}") from exc
