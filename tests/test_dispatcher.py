# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

import json
from datetime import datetime

import pytest

from zenith_nexus.dispatcher import CommandDispatcher
from zenith_nexus.state import SeedState
from zenith_nexus.store import SeedStore


def send(payload) -> str:
    return json.dumps(payload)


class TestCommandDispatcher:
    """One response per inbound command, sent to the sender only"""

    @pytest.mark.asyncio
    async def test_get_seed_persists_and_returns_seed(self, make_conn, dispatcher, state, store):
        state.seed["runs"]["total"] = 16
        conn = make_conn()
        response = await dispatcher.dispatch(conn, send({"cmd": "get_seed"}))
        assert response["cmd"] == "seed_data"
        assert response["saved"] is True
        assert conn.sent[0]["seed"]["runs"]["total"] == 16
        assert store.load()["runs"]["total"] == 16

    @pytest.mark.asyncio
    async def test_save_seed_is_alias_of_get_seed(self, make_conn, dispatcher):
        conn = make_conn()
        await dispatcher.dispatch(conn, "save_seed")
        assert conn.sent[0]["cmd"] == "seed_data"

    @pytest.mark.asyncio
    async def test_update_then_get(self, make_conn, dispatcher, sample_seed):
        conn = make_conn()
        await dispatcher.dispatch(conn, send({"cmd": "update_seed", "payload": {"x": 1}}))
        assert conn.sent[0]["cmd"] == "seed_updated"
        assert conn.sent[0]["saved"] is True

        await dispatcher.dispatch(conn, "get_seed")
        seed = conn.sent[1]["seed"]
        assert seed["x"] == 1
        for key, value in sample_seed.items():
            assert seed[key] == value

    @pytest.mark.asyncio
    async def test_update_deep_merges_and_persists(self, dispatcher, store):
        payload = {"vault": {"entries": 43}, "agents": {"scout": {"runs": 13}}}
        response = await dispatcher.execute_raw(send({"command": "update_seed", "data": payload}))
        assert response["seed"]["vault"] == {
            "status": "SEALED", "integrity": 0.98, "entries": 43, "encryption": "AES-256-GCM",
        }
        assert response["seed"]["agents"]["scout"] == {"runs": 13, "role": "recon"}
        assert store.load()["vault"]["entries"] == 43

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["hello", 5, [1, 2], None])
    async def test_update_rejects_non_object_payload(self, make_conn, dispatcher, state, store, payload):
        before_memory = json.dumps(state.seed)
        before_file = store.path.read_bytes()
        conn = make_conn()
        await dispatcher.dispatch(conn, send({"cmd": "update_seed", "payload": payload}))
        assert conn.sent == [{
            "cmd": "error",
            "ts": conn.sent[0]["ts"],
            "message": "update_seed requires an object payload",
        }]
        assert json.dumps(state.seed) == before_memory
        assert store.path.read_bytes() == before_file

    @pytest.mark.asyncio
    async def test_update_with_plain_text_has_no_payload(self, dispatcher):
        response = await dispatcher.execute_raw("update_seed")
        assert response["cmd"] == "error"

    @pytest.mark.asyncio
    async def test_update_reports_failed_save(self, tmp_path, registry, sample_seed):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        state = SeedState(SeedStore(blocker / "seed.json"), sample_seed)
        dispatcher = CommandDispatcher(state, registry)

        response = await dispatcher.execute_raw(send({"cmd": "update_seed", "payload": {"x": 1}}))
        assert response["cmd"] == "seed_updated"
        assert response["saved"] is False
        assert state.seed["x"] == 1
        assert state.last_save_ok is False

    @pytest.mark.asyncio
    async def test_update_with_lone_surrogate_keeps_saving(self, make_conn, dispatcher, store):
        conn = make_conn()
        await dispatcher.dispatch(conn, '{"cmd": "update_seed", "payload": {"x": "\\ud800"}}')
        assert conn.sent[0]["cmd"] == "seed_updated"
        assert conn.sent[0]["saved"] is True
        assert store.load()["x"] == "\ud800"

        await dispatcher.dispatch(conn, "get_seed")
        assert conn.sent[1]["cmd"] == "seed_data"
        assert conn.sent[1]["saved"] is True

    @pytest.mark.asyncio
    async def test_recall_discards_unsaved_changes(self, dispatcher, state, sample_seed):
        state.seed["unsaved"] = True
        response = await dispatcher.execute_raw("recall_seed")
        assert response["cmd"] == "seed_recalled"
        assert response["seed"] == sample_seed
        assert "unsaved" not in state.seed

    @pytest.mark.asyncio
    async def test_recall_failure_keeps_memory(self, dispatcher, state, store):
        store.path.write_text("{corrupt", encoding="utf-8")
        state.seed["unsaved"] = True
        response = await dispatcher.execute_raw("recall_seed")
        assert response["cmd"] == "error"
        assert response["message"].startswith("recall_seed failed")
        assert state.seed["unsaved"] is True

    @pytest.mark.asyncio
    async def test_autonomy_full_sets_three_flags(self, dispatcher, state, store):
        response = await dispatcher.execute_raw("autonomy_full")
        assert response["cmd"] == "autonomy_confirmed"
        assert response["saved"] is True
        assert response["constitution"] == {
            "Autonomy": "FULL", "Sandbox": "OFF", "OffSwitch": "OFF", "Memory": "PERSIST",
        }

        # Recalling from disk shows the persisted flags
        state.seed["constitution"]["Autonomy"] = "GUARDED"
        recalled = await dispatcher.execute_raw("recall_seed")
        assert recalled["seed"]["constitution"]["Autonomy"] == "FULL"
        assert recalled["seed"]["constitution"]["Sandbox"] == "OFF"
        assert recalled["seed"]["constitution"]["OffSwitch"] == "OFF"

    @pytest.mark.asyncio
    async def test_autonomy_full_without_constitution(self, dispatcher, state, store):
        del state.seed["constitution"]
        before_file = store.path.read_bytes()
        response = await dispatcher.execute_raw("autonomy_full")
        assert response["cmd"] == "autonomy_confirmed"
        assert response["constitution"] == {}
        assert response["saved"] is False
        assert "constitution" not in state.seed
        assert store.path.read_bytes() == before_file

    @pytest.mark.asyncio
    async def test_load_twin_history(self, dispatcher, sample_seed):
        response = await dispatcher.execute_raw("load_twin_history")
        assert response["cmd"] == "twin_history"
        assert response["agents"] == sample_seed["agents"]
        assert response["total_runs"] == 15
        assert response["mints"] == sample_seed["mints"]
        assert response["whispers"] == sample_seed["whispers"]
        assert response["vault_entries"] == 42

    @pytest.mark.asyncio
    async def test_load_twin_history_on_sparse_seed(self, dispatcher, state):
        state.seed.clear()
        response = await dispatcher.execute_raw("load_twin_history")
        assert response["agents"] == {}
        assert response["total_runs"] == 0
        assert response["mints"] == {}
        assert response["whispers"] == {}
        assert response["vault_entries"] == 0

    @pytest.mark.asyncio
    async def test_ping_has_no_side_effect(self, dispatcher, state, store):
        before_memory = json.dumps(state.seed)
        before_file = store.path.read_bytes()
        response = await dispatcher.execute_raw(send({"cmd": "ping"}))
        assert set(response) == {"cmd", "ts"}
        assert response["cmd"] == "pong"
        datetime.fromisoformat(response["ts"].replace("Z", "+00:00"))
        assert json.dumps(state.seed) == before_memory
        assert store.path.read_bytes() == before_file

    @pytest.mark.asyncio
    async def test_ping_does_not_wait_for_lock(self, dispatcher, state):
        async with state.lock:
            response = await dispatcher.execute_raw("ping")
        assert response["cmd"] == "pong"

    @pytest.mark.asyncio
    async def test_unknown_command_echoes_name(self, make_conn, dispatcher):
        conn = make_conn()
        await dispatcher.dispatch(conn, send({"cmd": "launch_rockets"}))
        response = conn.sent[0]
        assert response["cmd"] == "unknown"
        assert response["received"] == "launch_rockets"
        assert response["message"] == "Unknown command: launch_rockets"

    @pytest.mark.asyncio
    async def test_plain_text_command_is_lowercased(self, make_conn, dispatcher):
        conn = make_conn()
        await dispatcher.dispatch(conn, "  PING  ")
        assert conn.sent[0]["cmd"] == "pong"

    @pytest.mark.asyncio
    async def test_unparseable_text_is_unknown_command(self, dispatcher):
        response = await dispatcher.execute_raw("{broken json")
        assert response["cmd"] == "unknown"
        assert response["received"] == "{broken json"

    @pytest.mark.asyncio
    async def test_response_goes_to_sender_only(self, make_conn, dispatcher, registry):
        sender, other = make_conn(), make_conn()
        registry.register(sender)
        registry.register(other)
        await dispatcher.dispatch(sender, send({"cmd": "update_seed", "payload": {"y": 2}}))
        assert len(sender.sent) == 1
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_closed_sender_does_not_raise(self, make_conn, dispatcher, state):
        conn = make_conn(open=False)
        await dispatcher.dispatch(conn, send({"cmd": "update_seed", "payload": {"z": 3}}))
        assert conn.sent == []
        assert state.seed["z"] == 3

    @pytest.mark.asyncio
    async def test_unexpected_handler_error_becomes_error_response(self, dispatcher):
        async def explode(command, ts):
            raise RuntimeError("boom")

        dispatcher.handlers["get_seed"] = explode
        response = await dispatcher.execute_raw("get_seed")
        assert response["cmd"] == "error"
        assert "boom" in response["message"]

    @pytest.mark.asyncio
    async def test_deeply_nested_frame_is_unknown_command(self, make_conn, dispatcher):
        conn = make_conn()
        await dispatcher.dispatch(conn, "[" * 100000 + "]" * 100000)
        assert conn.sent[0]["cmd"] == "unknown"
