# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Read-only HTTP health endpoint served on the WebSocket port
"""

import json
import logging
import time
from http import HTTPStatus
from typing import Any, Dict, Optional

from websockets.http11 import Request, Response

from .constants import DEFAULT_NAME, DEFAULT_VAULT_STATUS, DEFAULT_VERSION
from .state import SeedState

logger = logging.getLogger(__name__)

HEALTH_PATHS = ("/", "/health")


def health_payload(state: SeedState, port: int, started_at: float) -> Dict[str, Any]:
    """Build the health document from the live seed."""
    return {
        "status": "alive",
        "name": state.value("identity", "name", DEFAULT_NAME),
        "version": state.value("identity", "version", DEFAULT_VERSION),
        "port": port,
        "uptime_seconds": round(time.monotonic() - started_at, 3),
        "total_runs": state.value("runs", "total", 0),
        "vault_status": state.value("vault", "status", DEFAULT_VAULT_STATUS),
    }


def is_websocket_upgrade(request: Request) -> bool:
    return request.headers.get("Upgrade", "").lower() == "websocket"


class HealthRoute:
    """``process_request`` hook: answers plain HTTP requests, lets upgrades through."""

    def __init__(self, state: SeedState, port: int, started_at: Optional[float] = None):
        self.state = state
        self.port = port
        self.started_at = started_at if started_at is not None else time.monotonic()

    def __call__(self, connection, request: Request) -> Optional[Response]:
        if is_websocket_upgrade(request):
            return None

        method = getattr(request, "method", "GET")
        path = request.path.split("?", 1)[0]
        if method != "GET" or path not in HEALTH_PATHS:
            logger.debug(f"[HTTP] 404 {method} {request.path}")
            # HEAD responses carry headers only
            body = "" if method == "HEAD" else "ZENITH: Unknown route"
            return connection.respond(HTTPStatus.NOT_FOUND, body)

        body = json.dumps(health_payload(self.state, self.port, self.started_at))
        response = connection.respond(HTTPStatus.OK, body)
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        logger.debug(f"[HTTP] 200 {request.path}")
        return response
