"""Key provider: generates externally-owned addresses.

Keys are derived from ``blake3(seed || key type || counter)`` so a harness
built with the same seed produces the same addresses, while every address
in a run stays distinct and has a real signing key behind it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from blake3 import blake3
from py_ecc.bls import G2Basic
from py_ecc.secp256k1 import secp256k1

from .address import Address
from .config import DEFAULT_KEY_SEED
from .errors import ErrorCode, HarnessError

logger = logging.getLogger(__name__)


class KeyType(Enum):
    SECP256K1 = "secp256k1"
    BLS = "bls"


@dataclass(frozen=True)
class KeyInfo:
    key_type: KeyType
    private_key: bytes
    public_key: bytes


class MemKeyStore:
    """Address -> key info, in memory only."""

    def __init__(self) -> None:
        self._keys: Dict[Address, KeyInfo] = {}

    def put(self, addr: Address, info: KeyInfo) -> None:
        if addr in self._keys:
            raise HarnessError(ErrorCode.KEY_GENERATION, f"key for {addr} already stored")
        self._keys[addr] = info

    def get(self, addr: Address) -> Optional[KeyInfo]:
        return self._keys.get(addr)

    def addresses(self) -> List[Address]:
        return list(self._keys)


def _secp256k1_key(ikm: bytes) -> tuple[bytes, bytes]:
    secret = int.from_bytes(ikm, "big") % (secp256k1.N - 1) + 1
    private_key = secret.to_bytes(32, "big")
    x, y = secp256k1.privtopub(private_key)
    return private_key, b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def _bls_key(ikm: bytes) -> tuple[bytes, bytes]:
    secret = G2Basic.KeyGen(ikm)
    return int(secret).to_bytes(32, "big"), bytes(G2Basic.SkToPk(secret))


class Wallet:
    def __init__(self, keystore: Optional[MemKeyStore] = None, seed: bytes = DEFAULT_KEY_SEED):
        self.keystore = keystore or MemKeyStore()
        self._seed = seed
        self._counter = 0

    def _next_ikm(self, key_type: KeyType) -> bytes:
        material = self._seed + key_type.value.encode("ascii") + self._counter.to_bytes(8, "big")
        self._counter += 1
        return blake3(material).digest()

    def generate_key(self, key_type: KeyType) -> Address:
        if not isinstance(key_type, KeyType):
            raise HarnessError(ErrorCode.KEY_GENERATION, f"unsupported key type {key_type!r}")
        ikm = self._next_ikm(key_type)
        try:
            if key_type == KeyType.SECP256K1:
                private_key, public_key = _secp256k1_key(ikm)
                addr = Address.new_secp256k1(public_key)
            else:
                private_key, public_key = _bls_key(ikm)
                addr = Address.new_bls(public_key)
        except (ValueError, TypeError) as exc:
            raise HarnessError(ErrorCode.KEY_GENERATION, f"generating {key_type.value} key: {exc}") from exc

        self.keystore.put(addr, KeyInfo(key_type, private_key, public_key))
        logger.debug(f"generated {key_type.value} key {addr}")
        return addr

    def has(self, addr: Address) -> bool:
        return self.keystore.get(addr) is not None

    def list_addrs(self) -> List[Address]:
        return self.keystore.addresses()


def new_wallet(seed: bytes = DEFAULT_KEY_SEED) -> Wallet:
    return Wallet(MemKeyStore(), seed=seed)
