"""Content-addressed, append-only block storage."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator

from blake3 import blake3

from .encoding import dump_object, load_object
from .errors import ErrorCode, HarnessError
from .types import CODEC_DAG_CBOR, CODEC_RAW, Cid

logger = logging.getLogger(__name__)


def compute_cid(data: bytes, codec: int = CODEC_DAG_CBOR) -> Cid:
    return Cid(codec=codec, digest=blake3(data).digest())


class MemoryBlockstore:
    """In-memory blockstore. Blocks are never overwritten or deleted."""

    def __init__(self) -> None:
        self._blocks: Dict[Cid, bytes] = {}

    def put(self, data: bytes, codec: int = CODEC_RAW) -> Cid:
        cid = compute_cid(data, codec)
        # Same content, same cid: re-puts are no-ops.
        self._blocks.setdefault(cid, bytes(data))
        return cid

    def get(self, cid: Cid) -> bytes:
        try:
            return self._blocks[cid]
        except KeyError:
            raise HarnessError(ErrorCode.BLOCK_NOT_FOUND, f"block {cid} not found") from None

    def has(self, cid: Cid) -> bool:
        return cid in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Cid]:
        return iter(list(self._blocks))


class ObjectStore:
    """CBOR object view over a blockstore."""

    def __init__(self, blockstore: MemoryBlockstore):
        self.blockstore = blockstore

    def put(self, obj: Any) -> Cid:
        cid = self.blockstore.put(dump_object(obj), codec=CODEC_DAG_CBOR)
        logger.debug(f"stored object {cid}")
        return cid

    def get(self, cid: Cid) -> Any:
        return load_object(self.blockstore.get(cid))


def object_store_from_blockstore(blockstore: MemoryBlockstore) -> ObjectStore:
    return ObjectStore(blockstore)
