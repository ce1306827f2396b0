#!/usr/bin/env python3
# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Zenith seed server: HTTP health endpoint + WebSocket command channel on one port
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Union

import click
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from .autosave import AutosaveScheduler
from .constants import (
    AUTOSAVE_INTERVAL_SEC,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SEED_FILE,
    MSG_SHUTDOWN,
    PORT_ENV_VAR,
    SHUTDOWN_TIMEOUT_SEC,
)
from .dispatcher import CommandDispatcher
from .health import HealthRoute
from .protocol import make_message
from .registry import ConnectionRegistry, conn_label
from .state import SeedState
from .store import LoadError, SeedStore

logger = logging.getLogger(__name__)


class ZenithServer:
    """Owns the seed and serves it over HTTP and WebSocket."""

    def __init__(self, seed_file: Union[str, Path] = DEFAULT_SEED_FILE,
                 host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 autosave_interval_sec: float = AUTOSAVE_INTERVAL_SEC,
                 shutdown_timeout: float = SHUTDOWN_TIMEOUT_SEC):
        self.host = host
        self.port = port
        self.autosave_interval_sec = autosave_interval_sec
        self.shutdown_timeout = shutdown_timeout
        self.store = SeedStore(seed_file)
        self.registry = ConnectionRegistry()
        self.state: Optional[SeedState] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.autosave: Optional[AutosaveScheduler] = None
        self.health: Optional[HealthRoute] = None
        self.server: Optional[Server] = None
        self._stopped = False

    @property
    def bound_port(self) -> int:
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.port

    async def start(self) -> None:
        """
        Load the seed and start listening.

        Raises:
            LoadError: if the seed cannot be loaded; the server cannot run without it
        """
        self.state = SeedState.from_store(self.store)
        logger.info(f"📂 Seed loaded from {self.store.path}: {self.state.summary()}")

        self.dispatcher = CommandDispatcher(self.state, self.registry)
        self.autosave = AutosaveScheduler(self.state, self.registry, self.autosave_interval_sec)
        self.health = HealthRoute(self.state, self.port)

        self.server = await serve(
            self.handle_connection,
            self.host,
            self.port,
            process_request=self.health,
            ping_interval=20,
            ping_timeout=10,
        )
        self.health.port = self.bound_port
        self.autosave.start()
        logger.info(f"✅ HTTP + WS listening on {self.host}:{self.bound_port}")

    async def serve_forever(self) -> None:
        if self.server is None:
            await self.start()
        await self.server.wait_closed()

    async def handle_connection(self, conn: ServerConnection) -> None:
        self.registry.register(conn)
        try:
            async for message in conn:
                await self.dispatcher.dispatch(conn, message)
        except ConnectionClosed:
            logger.info(f"🚪 WebSocket connection {conn_label(conn)} closed")
        except Exception as e:
            logger.error(f"❌ WebSocket connection {conn_label(conn)} error: {e}")
        finally:
            self.registry.unregister(conn)

    async def stop(self) -> None:
        """
        Drain and stop: halt auto-save, save once more, say goodbye to every
        open connection, then close the listener. Gives up after
        ``shutdown_timeout`` seconds.
        """
        if self._stopped:
            return
        self._stopped = True
        logger.info("🛑 Shutting down - saving seed...")
        try:
            await asyncio.wait_for(self._drain(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Shutdown did not finish within {self.shutdown_timeout}s, forcing exit")
            if self.server:
                self.server.close(close_connections=False)
            return
        logger.info("👋 Server closed. Goodbye.")

    async def _drain(self) -> None:
        if self.autosave:
            await self.autosave.stop()
        if self.state:
            async with self.state.lock:
                try:
                    await self.state.persist()
                except Exception:
                    logger.exception("❌ [Persistence] Final save failed, closing connections anyway")
        results = await asyncio.gather(
            *(self._farewell(c) for c in self.registry.open_connections()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"⚠️ Farewell failed: {result}")
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _farewell(self, conn: ServerConnection) -> None:
        await self.registry.unicast(conn, make_message(MSG_SHUTDOWN))
        await conn.close()


async def run_server(server: ZenithServer) -> None:
    await server.start()

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await stop_requested.wait()
        logger.info("🛑 Stop signal received")
    finally:
        await server.stop()


@click.command()
@click.option("--host", default=DEFAULT_HOST, help="Host to bind the server to")
@click.option("--port", default=DEFAULT_PORT, envvar=PORT_ENV_VAR, show_envvar=True, type=int,
              help="Port for both HTTP and WebSocket")
@click.option("--seed-file", default=str(DEFAULT_SEED_FILE), type=click.Path(dir_okay=False),
              help="Path of the persisted seed JSON file")
@click.option("--autosave-interval", default=AUTOSAVE_INTERVAL_SEC, type=float,
              help="Seconds between automatic saves")
@click.option("--shutdown-timeout", default=SHUTDOWN_TIMEOUT_SEC, type=float,
              help="Maximum seconds to wait for a clean shutdown")
@click.option("--log-level", default="INFO", help="Logging level")
def main(host: str, port: int, seed_file: str, autosave_interval: float,
         shutdown_timeout: float, log_level: str):
    """Run the Zenith seed server"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    server = ZenithServer(
        seed_file=seed_file,
        host=host,
        port=port,
        autosave_interval_sec=autosave_interval,
        shutdown_timeout=shutdown_timeout,
    )
    try:
        asyncio.run(run_server(server))
    except LoadError as e:
        logger.error(f"❌ Cannot start without a valid seed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.debug("✅ Server shutdown complete")


if __name__ == "__main__":
    main()
