# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Command dispatcher for the seed WebSocket channel.

Each inbound frame names one command. The dispatcher runs the command
against the shared SeedState and answers the sending connection with a
single message. Commands that touch the seed run while holding the state
lock, persistence included, so no two of them (and no autosave tick) can
interleave.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Union

from .constants import (
    AUTONOMY_OVERRIDES,
    CMD_AUTONOMY_FULL,
    CMD_GET_SEED,
    CMD_LOAD_TWIN_HISTORY,
    CMD_PING,
    CMD_RECALL_SEED,
    CMD_SAVE_SEED,
    CMD_UPDATE_SEED,
    MSG_AUTONOMY_CONFIRMED,
    MSG_ERROR,
    MSG_PONG,
    MSG_SEED_DATA,
    MSG_SEED_RECALLED,
    MSG_SEED_UPDATED,
    MSG_TWIN_HISTORY,
    MSG_UNKNOWN,
)
from .merge import deep_merge
from .protocol import Command, decode_message, make_message, timestamp
from .registry import ConnectionRegistry, conn_label
from .state import SeedState
from .store import LoadError

logger = logging.getLogger(__name__)

Handler = Callable[[Command, str], Awaitable[Dict[str, Any]]]


class CommandError(Exception):
    """A command could not be carried out; reported to the sender only."""


class BadPayload(CommandError):
    pass


class UnknownCommand(CommandError):

    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name}")
        self.name = name


class CommandDispatcher:

    def __init__(self, state: SeedState, registry: ConnectionRegistry):
        self.state = state
        self.registry = registry
        self.handlers: Dict[str, Handler] = {
            CMD_SAVE_SEED: self._handle_get_seed,
            CMD_GET_SEED: self._handle_get_seed,
            CMD_RECALL_SEED: self._handle_recall_seed,
            CMD_UPDATE_SEED: self._handle_update_seed,
            CMD_AUTONOMY_FULL: self._handle_autonomy_full,
            CMD_LOAD_TWIN_HISTORY: self._handle_load_twin_history,
            CMD_PING: self._handle_ping,
        }
        # Commands that never read or write the seed
        self.lock_free = {CMD_PING}

    async def dispatch(self, conn, raw: Union[str, bytes]) -> Dict[str, Any]:
        """Run the command in ``raw`` and send the response to ``conn``."""
        logger.debug(f"📨 [Dispatcher] Frame from {conn_label(conn)}")
        response = await self.execute_raw(raw)
        # The response references the live seed; unicast encodes it before its
        # first await, so no other command can change it in between.
        await self.registry.unicast(conn, response)
        return response

    async def execute_raw(self, raw: Union[str, bytes]) -> Dict[str, Any]:
        command = decode_message(raw)
        logger.debug(f"📨 [Dispatcher] Command '{command.name}' (structured={command.structured})")
        return await self.execute(command)

    async def execute(self, command: Command) -> Dict[str, Any]:
        """Run a decoded command and return the response message."""
        ts = timestamp()
        try:
            handler = self.handlers.get(command.name)
            if handler is None:
                raise UnknownCommand(command.name)
            if command.name in self.lock_free:
                return await handler(command, ts)
            async with self.state.lock:
                return await handler(command, ts)
        except UnknownCommand as e:
            logger.info(f"❓ [Dispatcher] {e}")
            return make_message(MSG_UNKNOWN, ts, received=e.name, message=str(e))
        except CommandError as e:
            logger.warning(f"⚠️ [Dispatcher] '{command.name}' rejected: {e}")
            return make_message(MSG_ERROR, ts, message=str(e))
        except Exception as e:
            logger.exception(f"❌ [Dispatcher] '{command.name}' failed")
            return make_message(MSG_ERROR, ts, message=f"{command.name} failed: {e}")

    async def _handle_get_seed(self, command: Command, ts: str) -> Dict[str, Any]:
        saved = await self.state.persist()
        return make_message(MSG_SEED_DATA, ts, seed=self.state.seed, saved=saved)

    async def _handle_recall_seed(self, command: Command, ts: str) -> Dict[str, Any]:
        try:
            seed = self.state.reload()
        except LoadError as e:
            logger.error(f"❌ [Persistence] Recall failed, keeping in-memory seed: {e}")
            raise CommandError(f"recall_seed failed: {e}") from e
        return make_message(MSG_SEED_RECALLED, ts, seed=seed)

    async def _handle_update_seed(self, command: Command, ts: str) -> Dict[str, Any]:
        if not isinstance(command.payload, dict):
            raise BadPayload("update_seed requires an object payload")
        deep_merge(self.state.seed, command.payload)
        saved = await self.state.persist()
        return make_message(MSG_SEED_UPDATED, ts, seed=self.state.seed, saved=saved)

    async def _handle_autonomy_full(self, command: Command, ts: str) -> Dict[str, Any]:
        constitution = self.state.seed.get("constitution")
        if not isinstance(constitution, dict):
            logger.warning("⚠️ [Dispatcher] autonomy_full ignored: seed has no constitution section")
            return make_message(MSG_AUTONOMY_CONFIRMED, ts, constitution={}, saved=False)
        constitution.update(AUTONOMY_OVERRIDES)
        saved = await self.state.persist()
        return make_message(MSG_AUTONOMY_CONFIRMED, ts, constitution=constitution, saved=saved)

    async def _handle_load_twin_history(self, command: Command, ts: str) -> Dict[str, Any]:
        state = self.state
        return make_message(
            MSG_TWIN_HISTORY,
            ts,
            agents=state.section("agents"),
            total_runs=state.value("runs", "total", 0),
            mints=state.section("mints"),
            whispers=state.section("whispers"),
            vault_entries=state.value("vault", "entries", 0),
        )

    async def _handle_ping(self, command: Command, ts: str) -> Dict[str, Any]:
        return make_message(MSG_PONG, ts)
