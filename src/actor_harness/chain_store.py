"""Chain store handle: the engine's view of the blockstore and state roots."""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import ErrorCode, HarnessError
from .state_tree import StateTree, load_state_tree
from .store import MemoryBlockstore, ObjectStore, object_store_from_blockstore
from .types import Cid

logger = logging.getLogger(__name__)


class ChainStore:
    """Tracks published state roots over a shared blockstore.

    Roots are append-only; loading an older root yields the snapshot that
    was current when it was published.
    """

    def __init__(self, blockstore: MemoryBlockstore):
        self.blockstore = blockstore
        self.store: ObjectStore = object_store_from_blockstore(blockstore)
        self._roots: List[Cid] = []

    def record_state_root(self, root: Cid) -> None:
        if not self.blockstore.has(root):
            raise HarnessError(ErrorCode.BLOCK_NOT_FOUND, f"state root {root} not in blockstore")
        if self._roots and self._roots[-1] == root:
            return
        self._roots.append(root)
        logger.debug(f"recorded state root #{len(self._roots)} {root}")

    @property
    def head_state_root(self) -> Optional[Cid]:
        return self._roots[-1] if self._roots else None

    def state_roots(self) -> List[Cid]:
        return list(self._roots)

    def load_state(self, root: Optional[Cid] = None) -> StateTree:
        target = root or self.head_state_root
        if target is None:
            raise HarnessError(ErrorCode.LOAD_STATE, "no state root recorded")
        return load_state_tree(self.store, target)
