"""Core types for the actor harness.

Messages, apply results, state-tree entries, the funding registry used to
build genesis, and the lifecycle stage of a harness.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .address import Address, decode_uvarint, encode_uvarint
from .config import DEFAULT_GAS_LIMIT, DEFAULT_GAS_PRICE, METHOD_SEND
from .errors import ActorError, ErrorCode, ExitCode, HarnessError

CID_VERSION = 0x01
CODEC_DAG_CBOR = 0x71
CODEC_RAW = 0x55
MULTIHASH_BLAKE3 = 0x1E


class Stage(Enum):
    PRE_INIT = "pre_init"
    POST_INIT = "post_init"


@dataclass(frozen=True, order=True)
class Cid:
    """Content identifier: version, codec and a BLAKE3-256 multihash."""
    codec: int
    digest: bytes

    def to_bytes(self) -> bytes:
        return (
            encode_uvarint(CID_VERSION)
            + encode_uvarint(self.codec)
            + encode_uvarint(MULTIHASH_BLAKE3)
            + encode_uvarint(len(self.digest))
            + self.digest
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Cid":
        pos = 0
        fields = []
        for _ in range(4):
            value, used = decode_uvarint(raw[pos:])
            fields.append(value)
            pos += used
        version, codec, hash_code, length = fields
        if version != CID_VERSION or hash_code != MULTIHASH_BLAKE3:
            raise HarnessError(ErrorCode.SERIALIZATION, "unsupported cid prefix")
        digest = bytes(raw[pos:])
        if len(digest) != length:
            raise HarnessError(ErrorCode.SERIALIZATION, "cid digest length mismatch")
        return cls(codec, digest)

    def __str__(self) -> str:
        return "b" + base64.b32encode(self.to_bytes()).decode("ascii").rstrip("=").lower()

    def __repr__(self) -> str:
        return f"Cid({self})"


@dataclass(frozen=True)
class Actor:
    """State tree entry. Replaced, never mutated."""
    code: Cid
    head: Cid
    nonce: int = 0
    balance: int = 0

    def to_cbor(self) -> list:
        return [self.code, self.head, self.nonce, self.balance]

    @classmethod
    def from_cbor(cls, raw: list) -> "Actor":
        code, head, nonce, balance = raw
        return cls(code=code, head=head, nonce=nonce, balance=balance)


@dataclass
class Message:
    to: Address
    from_: Address
    method: int = METHOD_SEND
    params: bytes = b""
    value: int = 0
    gas_price: int = DEFAULT_GAS_PRICE
    gas_limit: int = DEFAULT_GAS_LIMIT
    # None means "let the harness assign the sender's next nonce".
    nonce: Optional[int] = None


@dataclass
class ApplyRet:
    exit_code: ExitCode = ExitCode.OK
    return_value: bytes = b""
    actor_err: Optional[ActorError] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.OK


@dataclass(frozen=True)
class ExecParams:
    """Init actor Exec payload."""
    code: Cid
    params: bytes = b""

    def to_cbor(self) -> list:
        return [self.code, self.params]

    @classmethod
    def from_cbor(cls, raw: list) -> "ExecParams":
        code, params = raw
        if not isinstance(code, Cid) or not isinstance(params, bytes):
            raise HarnessError(ErrorCode.SERIALIZATION, "malformed exec params")
        return cls(code=code, params=params)


@dataclass
class ExecutionContext:
    """Propagated to the engine; the harness itself never times out."""
    name: str = "background"
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def check(self) -> None:
        if self.cancelled:
            raise HarnessError(ErrorCode.CONTEXT_CANCELLED, f"context {self.name!r} cancelled")


@dataclass
class FundingSpec:
    """Ordered (address, balance) registry plus the designated miner."""
    miner: Address
    entries: List[Tuple[Address, int]] = field(default_factory=list)
    n_addrs: int = 0

    def upsert(self, addr: Address, balance: int) -> None:
        if balance < 0:
            raise HarnessError(ErrorCode.PRECONDITION, f"negative balance for {addr}")
        for i, (existing, _) in enumerate(self.entries):
            if existing == addr:
                self.entries[i] = (addr, balance)
                return
        self.entries.append((addr, balance))

    def remove(self, addr: Address) -> bool:
        for i, (existing, _) in enumerate(self.entries):
            if existing == addr:
                del self.entries[i]
                return True
        return False

    def balance_of(self, addr: Address) -> Optional[int]:
        for existing, balance in self.entries:
            if existing == addr:
                return balance
        return None

    def addresses(self) -> List[Address]:
        return [addr for addr, _ in self.entries]

    def as_mapping(self) -> dict[Address, int]:
        return dict(self.entries)

    def __contains__(self, addr: object) -> bool:
        return any(existing == addr for existing, _ in self.entries)

    def __iter__(self) -> Iterator[Tuple[Address, int]]:
        return iter(list(self.entries))

    def __len__(self) -> int:
        return len(self.entries)
