# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

from pathlib import Path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3005
PORT_ENV_VAR = "ZENITH_PORT"

SEED_FILE_NAME = "zenith_seed.json"
DEFAULT_SEED_FILE = Path(__file__).resolve().parent / SEED_FILE_NAME

AUTOSAVE_INTERVAL_SEC = 5 * 60
SHUTDOWN_TIMEOUT_SEC = 5.0

# Inbound command names
CMD_SAVE_SEED = "save_seed"
CMD_GET_SEED = "get_seed"
CMD_RECALL_SEED = "recall_seed"
CMD_UPDATE_SEED = "update_seed"
CMD_AUTONOMY_FULL = "autonomy_full"
CMD_LOAD_TWIN_HISTORY = "load_twin_history"
CMD_PING = "ping"

# Outbound message names
MSG_SEED_DATA = "seed_data"
MSG_SEED_RECALLED = "seed_recalled"
MSG_SEED_UPDATED = "seed_updated"
MSG_AUTONOMY_CONFIRMED = "autonomy_confirmed"
MSG_TWIN_HISTORY = "twin_history"
MSG_PONG = "pong"
MSG_UNKNOWN = "unknown"
MSG_ERROR = "error"
MSG_AUTO_SAVE = "auto_save"
MSG_SHUTDOWN = "shutdown"

# Constitution flags forced by autonomy_full
AUTONOMY_OVERRIDES = {
    "Autonomy": "FULL",
    "Sandbox": "OFF",
    "OffSwitch": "OFF",
}

DEFAULT_NAME = "ZENITH"
DEFAULT_VERSION = "2.0"
DEFAULT_VAULT_STATUS = "UNKNOWN"
