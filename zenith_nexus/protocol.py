# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Inbound message decoding and outbound message encoding
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class Command:
    name: str
    payload: Optional[Any] = None
    structured: bool = True


def timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-01T00:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_blank(value: Any) -> bool:
    """null, false, 0, NaN and "" count as not given; {} and [] do not."""
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0 or value != value
    return value == ""


def _first_present(data: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = data.get(key)
        if not _is_blank(value):
            return value
    return None


def decode_message(raw: Union[str, bytes]) -> Command:
    """
    Decode an inbound frame into a Command.

    Structured frames are JSON objects ``{cmd|command, payload|data}``.
    Anything else (invalid JSON, or JSON that is not an object) is read as a
    bare command name: the trimmed, lower-cased text with no payload.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        data = None

    if isinstance(data, dict):
        name = _first_present(data, "cmd", "command")
        return Command(
            name=str(name) if name is not None else "",
            payload=_first_present(data, "payload", "data"),
        )

    # Plain-text fallback
    logger.debug(f"[Protocol] Treating non-envelope frame as bare command: {raw[:50]!r}")
    return Command(name=raw.strip().lower(), payload=None, structured=False)


def encode_message(message: Dict[str, Any]) -> str:
    return json.dumps(message)


def make_message(cmd: str, ts: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    """Build an outbound message carrying ``cmd`` and ``ts``."""
    message = {"cmd": cmd, "ts": ts or timestamp()}
    message.update(fields)
    return message
