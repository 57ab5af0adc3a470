"""Harness configuration constants and environment settings.

Keep method numbers aligned with the built-in actor exports in `actors.py`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# Genesis
HARNESS_MINER_FUNDS = 1_000_000
GENESIS_BLOCK_HEIGHT = 1
DEFAULT_KEY_SEED = b"actor-harness"

# Messages
DEFAULT_GAS_PRICE = 1
DEFAULT_GAS_LIMIT = 1
METHOD_SEND = 0
METHOD_CONSTRUCTOR = 1

# Init actor
INIT_METHOD_CONSTRUCTOR = 1
INIT_METHOD_EXEC = 2
INIT_METHOD_GET_ID_FOR_ADDRESS = 3
FIRST_NON_SINGLETON_ID = 100

# Addresses
NETWORK_PREFIX = "t"
PAYLOAD_HASH_LENGTH = 20
CHECKSUM_HASH_LENGTH = 4
BLS_PUBLIC_KEY_BYTES = 48
SECP256K1_PUBLIC_KEY_BYTES = 65


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return int(raw, 0)


@dataclass
class HarnessSettings:
    """Tunables for a harness instance."""
    miner_funds: int = HARNESS_MINER_FUNDS
    block_height: int = GENESIS_BLOCK_HEIGHT
    key_seed: bytes = DEFAULT_KEY_SEED
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "HarnessSettings":
        """Load settings from environment variables."""
        settings = cls()
        settings.miner_funds = _env_int("HARNESS_MINER_FUNDS", HARNESS_MINER_FUNDS)
        settings.block_height = _env_int("HARNESS_BLOCK_HEIGHT", GENESIS_BLOCK_HEIGHT)
        seed = os.environ.get("HARNESS_KEY_SEED")
        if seed:
            settings.key_seed = seed.encode("utf-8")
        settings.log_level = os.environ.get("HARNESS_LOG_LEVEL", "INFO").strip().upper()
        return settings
