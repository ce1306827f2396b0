# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Owner of the in-memory seed document.

All reads and writes of the seed go through a SeedState. Callers that
mutate or persist the seed must hold ``state.lock`` for the whole
read-modify-persist sequence so that command dispatches and autosave ticks
never interleave.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .store import SaveError, SeedStore

logger = logging.getLogger(__name__)


class SeedState:

    def __init__(self, store: SeedStore, seed: Optional[Dict[str, Any]] = None):
        self.store = store
        self.seed: Dict[str, Any] = seed if seed is not None else {}
        self.lock = asyncio.Lock()
        self.last_save_ok: Optional[bool] = None

    @classmethod
    def from_store(cls, store: SeedStore) -> "SeedState":
        """Load the seed from ``store``. LoadError propagates to the caller."""
        return cls(store, store.load())

    def section(self, key: str) -> Dict[str, Any]:
        """Return a named top-level mapping, or an empty dict if absent or not a mapping."""
        value = self.seed.get(key)
        return value if isinstance(value, dict) else {}

    def value(self, section: str, key: str, default: Any = None) -> Any:
        return self.section(section).get(key, default)

    def reload(self) -> Dict[str, Any]:
        """Replace the in-memory seed with the stored one. Caller holds the lock."""
        self.seed = self.store.load()
        logger.info(f"📂 Seed reloaded from {self.store.path}")
        return self.seed

    async def persist(self) -> bool:
        """
        Save the seed. Caller holds the lock.

        The snapshot is serialized on the event loop and written from a
        worker thread, so new connections keep being served while the write
        is in flight.

        Returns:
            True if the save succeeded, False otherwise (the error is logged)
        """
        try:
            text = self.store.dumps(self.seed)
            await asyncio.to_thread(self.store.write_text, text)
        except SaveError as e:
            logger.error(f"❌ [Persistence] Save failed: {e}")
            self.last_save_ok = False
            return False
        self.last_save_ok = True
        return True

    def summary(self) -> str:
        identity = self.section("identity")
        return (
            f"{identity.get('name', '')} v{identity.get('version', '')} [{identity.get('status', '')}] "
            f"agents={len(self.section('agents'))} "
            f"runs={self.value('runs', 'total', 0)} "
            f"vault={self.value('vault', 'status', '')}"
        )
