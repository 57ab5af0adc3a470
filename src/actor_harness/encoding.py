"""Canonical CBOR object dump/load.

Addresses encode as their byte form, CIDs as tag 42 with a leading zero
byte, and any object exposing ``to_cbor()`` as the value it returns.
"""

from __future__ import annotations

from enum import Enum
from io import BytesIO
from typing import Any

import cbor2

from .address import Address
from .errors import ErrorCode, HarnessError
from .types import Cid

CID_TAG = 42


def _default(encoder: cbor2.CBOREncoder, value: Any) -> None:
    if isinstance(value, Address):
        encoder.encode(value.to_bytes())
    elif isinstance(value, Cid):
        encoder.encode(cbor2.CBORTag(CID_TAG, b"\x00" + value.to_bytes()))
    elif isinstance(value, Enum):
        encoder.encode(value.value)
    elif hasattr(value, "to_cbor"):
        encoder.encode(value.to_cbor())
    else:
        raise cbor2.CBOREncodeError(f"cannot serialize type {type(value).__name__}")


def _tag_hook(decoder: cbor2.CBORDecoder, tag: cbor2.CBORTag) -> Any:
    if tag.tag != CID_TAG:
        return tag
    raw = tag.value
    if not isinstance(raw, bytes) or not raw or raw[0] != 0:
        raise cbor2.CBORDecodeError("malformed cid tag")
    return Cid.from_bytes(raw[1:])


def dump_object(obj: Any) -> bytes:
    try:
        return cbor2.dumps(obj, canonical=True, default=_default)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
        raise HarnessError(ErrorCode.SERIALIZATION, f"dumping object: {exc}") from exc


def load_object(data: bytes) -> Any:
    """Decode exactly one CBOR item; trailing bytes and stray breaks are errors."""
    fp = BytesIO(data)
    try:
        obj = cbor2.CBORDecoder(fp, tag_hook=_tag_hook).decode()
    except HarnessError:
        raise
    except (cbor2.CBORDecodeError, TypeError, ValueError) as exc:
        raise HarnessError(ErrorCode.SERIALIZATION, f"loading object: {exc}") from exc
    if obj is cbor2.break_marker:
        raise HarnessError(ErrorCode.SERIALIZATION, "loading object: unexpected break")
    if fp.tell() != len(data):
        raise HarnessError(
            ErrorCode.SERIALIZATION, f"loading object: {len(data) - fp.tell()} trailing bytes"
        )
    return obj
