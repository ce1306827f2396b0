# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

import asyncio
import logging
from typing import Optional

from .constants import AUTOSAVE_INTERVAL_SEC, MSG_AUTO_SAVE
from .protocol import encode_message, make_message
from .registry import ConnectionRegistry
from .state import SeedState

logger = logging.getLogger(__name__)


class AutosaveScheduler:
    """Periodically persists the seed and tells every open connection about it."""

    def __init__(self, state: SeedState, registry: ConnectionRegistry,
                 interval_sec: float = AUTOSAVE_INTERVAL_SEC):
        self.state = state
        self.registry = registry
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"🔄 Auto-save service started ({self.interval_sec}s interval)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("🛑 Auto-save service stopped")

    async def tick(self) -> int:
        """
        Run one auto-save cycle.

        Returns:
            Number of connections notified
        """
        logger.info("💾 Auto-save triggered")
        async with self.state.lock:
            await self.state.persist()
            message = make_message(MSG_AUTO_SAVE, seed=self.state.seed)
            # Serialize under the lock; the broadcast itself may await slow clients
            data = encode_message(message)
        return await self.registry.broadcast_raw(data, MSG_AUTO_SAVE)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"❌ Error in auto-save loop: {e}")
