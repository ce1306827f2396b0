# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

import logging
from typing import Any, Dict, List, Optional, Set

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .protocol import encode_message

logger = logging.getLogger(__name__)


def conn_label(conn) -> str:
    address = getattr(conn, "remote_address", None)
    if address:
        return f"conn-{address[0]}:{address[1]}"
    return f"conn-{id(conn):x}"


def is_open(conn) -> bool:
    return getattr(conn, "state", None) is State.OPEN


class ConnectionRegistry:
    """Live WebSocket connections, with unicast and broadcast helpers."""

    def __init__(self):
        self.conns: Set[Any] = set()

    def __len__(self):
        return len(self.conns)

    def register(self, conn) -> None:
        self.conns.add(conn)
        logger.info(f"📱 [Registry] {conn_label(conn)} connected. Total connections: {len(self.conns)}")

    def unregister(self, conn) -> None:
        self.conns.discard(conn)
        logger.info(f"📴 [Registry] {conn_label(conn)} removed. Total connections: {len(self.conns)}")

    def open_connections(self) -> List[Any]:
        return [c for c in self.conns if is_open(c)]

    async def unicast(self, conn, message: Dict[str, Any]) -> bool:
        """Send ``message`` to a single connection. Returns False if it could not be delivered."""
        if not is_open(conn):
            logger.debug(f"[Registry] Skipping send to closed {conn_label(conn)}")
            return False
        try:
            await conn.send(encode_message(message))
        except ConnectionClosed:
            logger.info(f"🚪 [Registry] {conn_label(conn)} closed before '{message.get('cmd')}' was sent")
            return False
        except Exception as e:
            logger.error(f"❌ [Registry] Failed to send '{message.get('cmd')}' to {conn_label(conn)}: {e}")
            return False
        return True

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Send ``message`` to every open connection.

        Closed connections are skipped and a failed send is logged without
        affecting the others.

        Returns:
            Number of connections the message was delivered to
        """
        return await self.broadcast_raw(encode_message(message), message.get("cmd"))

    async def broadcast_raw(self, data: str, label: Optional[str] = None) -> int:
        sent = 0
        # Copy: the handler may unregister connections while we await
        for conn in list(self.conns):
            if not is_open(conn):
                continue
            try:
                await conn.send(data)
                sent += 1
            except ConnectionClosed:
                logger.debug(f"[Registry] {conn_label(conn)} closed during broadcast")
            except Exception as e:
                logger.error(f"❌ [Registry] Broadcast to {conn_label(conn)} failed: {e}")
        logger.debug(f"📡 [Registry] Broadcast '{label}' to {sent} connections")
        return sent
