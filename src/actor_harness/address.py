"""Protocol-tagged actor addresses.

Byte form is ``protocol || payload``. ID payloads are unsigned varints,
SECP256K1 and ACTOR payloads are 20-byte BLAKE3 hashes, BLS payloads are the
48-byte public key. The string form is ``t<protocol><body>`` where the body
is the decimal ID or lowercase unpadded base32 of ``payload || checksum``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import IntEnum

from blake3 import blake3

from .config import (
    BLS_PUBLIC_KEY_BYTES,
    CHECKSUM_HASH_LENGTH,
    NETWORK_PREFIX,
    PAYLOAD_HASH_LENGTH,
)
from .errors import ErrorCode, HarnessError


class Protocol(IntEnum):
    ID = 0
    SECP256K1 = 1
    ACTOR = 2
    BLS = 3


_HASHED_PROTOCOLS = frozenset({Protocol.SECP256K1, Protocol.ACTOR})


def _hash(data: bytes, length: int) -> bytes:
    return blake3(data).digest(length=length)


def encode_uvarint(value: int) -> bytes:
    if value < 0:
        raise HarnessError(ErrorCode.INVALID_ADDRESS, "uvarint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_uvarint(data: bytes) -> tuple[int, int]:
    """Return (value, bytes consumed)."""
    value = 0
    shift = 0
    for i, byte in enumerate(data):
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, i + 1
        shift += 7
        if shift > 63:
            break
    raise HarnessError(ErrorCode.INVALID_ADDRESS, "malformed uvarint")


@dataclass(frozen=True, order=True)
class Address:
    protocol: Protocol
    payload: bytes

    def __post_init__(self) -> None:
        _validate_payload(self.protocol, self.payload)

    # --- constructors ---

    @classmethod
    def new_id(cls, actor_id: int) -> "Address":
        return cls(Protocol.ID, encode_uvarint(actor_id))

    @classmethod
    def new_secp256k1(cls, public_key: bytes) -> "Address":
        return cls(Protocol.SECP256K1, _hash(public_key, PAYLOAD_HASH_LENGTH))

    @classmethod
    def new_actor(cls, data: bytes) -> "Address":
        return cls(Protocol.ACTOR, _hash(data, PAYLOAD_HASH_LENGTH))

    @classmethod
    def new_bls(cls, public_key: bytes) -> "Address":
        return cls(Protocol.BLS, bytes(public_key))

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Address":
        if not raw:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, "empty address bytes")
        try:
            protocol = Protocol(raw[0])
        except ValueError:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"unknown protocol {raw[0]}") from None
        payload = bytes(raw[1:])
        if protocol == Protocol.ID:
            _, consumed = decode_uvarint(payload)
            if consumed != len(payload):
                raise HarnessError(ErrorCode.INVALID_ADDRESS, "trailing bytes after ID")
        return cls(protocol, payload)

    @classmethod
    def from_string(cls, text: str) -> "Address":
        if len(text) < 3 or text[0] != NETWORK_PREFIX:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"bad address string {text!r}")
        try:
            protocol = Protocol(int(text[1]))
        except ValueError:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"bad protocol in {text!r}") from None
        body = text[2:]
        if protocol == Protocol.ID:
            if not body.isdigit():
                raise HarnessError(ErrorCode.INVALID_ADDRESS, f"bad ID address {text!r}")
            return cls.new_id(int(body))

        padded = body.upper() + "=" * (-len(body) % 8)
        try:
            decoded = base64.b32decode(padded)
        except ValueError:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"bad base32 in {text!r}") from None
        payload, checksum = decoded[:-CHECKSUM_HASH_LENGTH], decoded[-CHECKSUM_HASH_LENGTH:]
        addr = cls(protocol, payload)
        if addr.checksum() != checksum:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"checksum mismatch in {text!r}")
        return addr

    # --- accessors ---

    def to_bytes(self) -> bytes:
        return bytes([self.protocol]) + self.payload

    def checksum(self) -> bytes:
        return _hash(self.to_bytes(), CHECKSUM_HASH_LENGTH)

    def id(self) -> int:
        if self.protocol != Protocol.ID:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, f"{self} is not an ID address")
        value, _ = decode_uvarint(self.payload)
        return value

    def is_key_address(self) -> bool:
        return self.protocol in (Protocol.SECP256K1, Protocol.BLS)

    def __str__(self) -> str:
        prefix = f"{NETWORK_PREFIX}{int(self.protocol)}"
        if self.protocol == Protocol.ID:
            return f"{prefix}{self.id()}"
        body = base64.b32encode(self.payload + self.checksum()).decode("ascii")
        return prefix + body.rstrip("=").lower()

    def __repr__(self) -> str:
        return f"Address({self})"


def _validate_payload(protocol: Protocol, payload: bytes) -> None:
    if protocol == Protocol.ID:
        if not payload:
            raise HarnessError(ErrorCode.INVALID_ADDRESS, "empty ID payload")
        return
    if protocol in _HASHED_PROTOCOLS and len(payload) != PAYLOAD_HASH_LENGTH:
        raise HarnessError(
            ErrorCode.INVALID_ADDRESS,
            f"{protocol.name} payload must be {PAYLOAD_HASH_LENGTH} bytes, got {len(payload)}",
        )
    if protocol == Protocol.BLS and len(payload) != BLS_PUBLIC_KEY_BYTES:
        raise HarnessError(
            ErrorCode.INVALID_ADDRESS,
            f"BLS payload must be {BLS_PUBLIC_KEY_BYTES} bytes, got {len(payload)}",
        )


def bls_address(n: int) -> Address:
    """Deterministic BLS-protocol address for well-known test identities."""
    return Address.new_bls(n.to_bytes(BLS_PUBLIC_KEY_BYTES, "big"))
