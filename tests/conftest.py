# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

import copy
import itertools
import json

import pytest
from websockets.protocol import State

from zenith_nexus.dispatcher import CommandDispatcher
from zenith_nexus.registry import ConnectionRegistry
from zenith_nexus.state import SeedState
from zenith_nexus.store import SeedStore

SAMPLE_SEED = {
    "identity": {"name": "ZENITH", "version": "2.0", "status": "ACTIVE", "alive": True, "sync": "LOCAL"},
    "constitution": {"Autonomy": "GUARDED", "Sandbox": "ON", "OffSwitch": "ON", "Memory": "PERSIST"},
    "agents": {
        "scout": {"runs": 12, "role": "recon"},
        "scribe": {"runs": 3, "role": "journal"},
    },
    "vault": {"status": "SEALED", "integrity": 0.98, "entries": 42, "encryption": "AES-256-GCM"},
    "tunnel": {"uuid": "abc-123", "domain": "zenith.example", "cname_proxy": True},
    "mints": {"count": 7, "avg_fee_sol": 0.002, "nfty_cycle": 3, "nfty_sync": True},
    "whispers": {"count": 5, "mode": "quiet"},
    "runs": {"total": 15},
    "commands": ["ping", "get_seed"],
}

_ports = itertools.count(50000)


class FakeConnection:
    """Stands in for a websockets ServerConnection."""

    def __init__(self, open: bool = True, fail: bool = False):
        self.state = State.OPEN if open else State.CLOSED
        self.fail = fail
        self.remote_address = ("127.0.0.1", next(_ports))
        self.sent = []

    async def send(self, data):
        if self.fail:
            raise RuntimeError("socket exploded")
        self.sent.append(json.loads(data))

    async def close(self):
        self.state = State.CLOSED


@pytest.fixture
def sample_seed():
    return copy.deepcopy(SAMPLE_SEED)


@pytest.fixture
def seed_file(tmp_path, sample_seed):
    path = tmp_path / "zenith_seed.json"
    path.write_text(json.dumps(sample_seed, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def store(seed_file):
    return SeedStore(seed_file)


@pytest.fixture
def state(store):
    return SeedState.from_store(store)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(state, registry):
    return CommandDispatcher(state, registry)


@pytest.fixture
def make_conn():
    return FakeConnection
