import json

from starlette import status

from flappy_versus.core.config import settings
from flappy_versus.realtime import ConnectionHandler, JoinParams

from conftest import FIXED_NOW_MS, FakeSocket


def test_join_params_defaults_and_trimming():
    params = JoinParams.from_query({"code": " 123456 ", "nick": "   ", "char": ""}, settings)
    assert params == JoinParams(room_code="123456", nickname="Player", character="bird")

    long_nick = JoinParams.from_query({"code": "1", "nick": "  " + "x" * 40}, settings)
    assert long_nick.nickname == "x" * 18

    assert JoinParams.from_query({"nick": "Alice"}, settings) is None
    assert JoinParams.from_query({"code": "   "}, settings) is None


async def test_missing_room_code_is_closed_before_accept(registry, broadcaster):
    socket = FakeSocket()
    handler = ConnectionHandler(socket, registry, broadcaster)

    assert not await handler.admit({"nick": "Alice"})

    assert not socket.accepted
    assert socket.close_code == status.WS_1008_POLICY_VIOLATION
    assert socket.sent == []
    assert len(registry) == 0


async def test_admission_sends_welcome_then_snapshot(join, registry):
    handler, socket = await join(nick="Alice")

    assert socket.accepted
    welcome, sync = socket.sent
    assert welcome == {
        "type": "welcome",
        "playerId": handler.player.id,
        "slot": 1,
        "roomCode": "ABC123",
    }
    assert sync["type"] == "sync"
    assert sync["hostId"] == handler.player.id
    assert sync["players"][0]["nick"] == "Alice"
    assert sync["players"][0]["char"] == "bird"
    assert registry.get("ABC123").host_connection == handler.connection_id


async def test_join_broadcasts_identical_snapshot_to_everyone(join):
    _, alice = await join(nick="Alice")
    alice.clear()
    _, bob = await join(nick="Bob", char="owl")

    assert bob.of_type("welcome")[0]["slot"] == 2
    assert alice.sent == [bob.last_sync]
    assert [p["nick"] for p in alice.last_sync["players"]] == ["Alice", "Bob"]


async def test_duplicate_nickname_is_rejected_without_touching_room(join, registry):
    _, alice = await join(nick="Alice")
    alice.clear()

    handler, intruder = await join(nick=" ALICE ")

    assert intruder.sent == [
        {
            "type": "error",
            "reason": "nick_taken",
            "message": "That nickname is already in use in this room. Pick another one.",
        }
    ]
    assert intruder.close_code == status.WS_1008_POLICY_VIOLATION
    assert handler.match is None
    assert len(registry.get("ABC123").players) == 1
    assert alice.sent == []


async def test_fifth_player_is_turned_away(join, registry):
    for nick in ("A", "B", "C", "D"):
        await join(nick=nick)

    _, late = await join(nick="E")

    assert late.sent[0]["reason"] == "room_full"
    assert late.close_code == status.WS_1008_POLICY_VIOLATION
    assert sorted(p.slot for p in registry.get("ABC123").players.values()) == [1, 2, 3, 4]


async def test_ready_that_completes_the_room_broadcasts_twice(join):
    alice_handler, alice = await join(nick="Alice")
    bob_handler, bob = await join(nick="Bob")
    await alice_handler.handle_message(json.dumps({"type": "start"}))
    await alice_handler.handle_message(json.dumps({"type": "ready", "ready": True}))
    alice.clear()
    bob.clear()

    await bob_handler.handle_message(json.dumps({"type": "ready", "ready": True}))

    assert alice.sent == bob.sent
    readied, started = alice.sent
    assert readied["starting"] is True and all(p["ready"] for p in readied["players"])
    assert started["started"] is True and started["starting"] is False
    assert started["startTime"] == FIXED_NOW_MS + 3000
    assert started["seed"] != readied["seed"]


async def test_out_of_turn_and_malformed_messages_are_silent(join):
    alice_handler, alice = await join(nick="Alice")
    bob_handler, bob = await join(nick="Bob")
    alice.clear()
    bob.clear()

    await bob_handler.handle_message(json.dumps({"type": "start"}))
    await bob_handler.handle_message(json.dumps({"type": "restart"}))
    await bob_handler.handle_message(json.dumps({"type": "dead"}))
    await bob_handler.handle_message("{not json")
    await bob_handler.handle_message(json.dumps({"type": "teleport", "y": 1}))
    await bob_handler.handle_message(json.dumps({"type": "update_position", "y": "high"}))
    await bob_handler.handle_message(json.dumps({"type": "ready"}))
    await bob_handler.handle_message(json.dumps({"type": "ready", "ready": "no"}))
    await bob_handler.handle_message(json.dumps({"type": "ready", "ready": 1}))
    await bob_handler.handle_message(json.dumps({"type": "update_position", "y": True}))
    await bob_handler.handle_message(json.dumps({"type": "update_position", "y": "12"}))
    await bob_handler.handle_message(json.dumps([1, 2, 3]))
    await bob_handler.handle_message(b"\x00\x01")

    assert alice.sent == []
    assert bob.sent == []
    assert bob_handler.match is not None


async def test_position_update_is_broadcast(join):
    alice_handler, alice = await join(nick="Alice")
    _, bob = await join(nick="Bob")
    bob.clear()

    await alice_handler.handle_message(json.dumps({"type": "update_position", "y": 123.5}))

    assert bob.last_sync["players"][0]["y"] == 123.5


async def test_unexpected_error_drops_only_the_message(join, monkeypatch):
    alice_handler, alice = await join(nick="Alice")
    alice.clear()

    def explode(*args, **kwargs):
        raise KeyError("boom")

    monkeypatch.setattr(alice_handler.match, "update_position", explode)
    await alice_handler.handle_message(json.dumps({"type": "update_position", "y": 1}))
    assert alice.sent == []

    monkeypatch.undo()
    await alice_handler.handle_message(json.dumps({"type": "update_position", "y": 2}))
    assert alice.last_sync["players"][0]["y"] == 2


async def test_failed_send_does_not_starve_other_players(registry, broadcaster, join):
    _, alice = await join(nick="Alice")
    broken = FakeSocket()
    broken_handler = ConnectionHandler(broken, registry, broadcaster)
    await broken_handler.admit({"code": "ABC123", "nick": "Broken"})
    broken.fail_sends = True
    alice.clear()

    _, carol = await join(nick="Carol")

    assert len(alice.sent) == 1
    assert carol.of_type("welcome")


async def test_host_departure_transfers_host_and_broadcasts(join, registry):
    alice_handler, alice = await join(nick="Alice")
    bob_handler, bob = await join(nick="Bob")
    bob.clear()

    await alice_handler.disconnect()

    match = registry.get("ABC123")
    assert match.host_connection == bob_handler.connection_id
    assert bob.last_sync["hostId"] == bob_handler.player.id
    assert [p["nick"] for p in bob.last_sync["players"]] == ["Bob"]
    assert alice_handler.match is None


async def test_host_leaving_mid_round_with_two_remaining(join, registry):
    host, _ = await join(nick="Host")
    bob_handler, bob = await join(nick="Bob")
    cleo_handler, _ = await join(nick="Cleo")
    await host.handle_message(json.dumps({"type": "start"}))
    for handler in (host, bob_handler, cleo_handler):
        await handler.handle_message(json.dumps({"type": "ready", "ready": True}))
    bob.clear()

    await host.disconnect()

    assert registry.get("ABC123").host_connection in {bob_handler.connection_id, cleo_handler.connection_id}
    assert bob.last_sync["started"] is True
    assert bob.last_sync["roundOver"] is False


async def test_last_player_leaving_removes_match(join, registry, broadcaster):
    alice_handler, alice = await join(nick="Alice")
    first_seed = registry.get("ABC123").seed
    alice.clear()

    await alice_handler.disconnect()
    await alice_handler.disconnect()

    assert "ABC123" not in registry
    assert alice.sent == []

    newcomer_handler, newcomer = await join(nick="Alice")
    match = registry.get("ABC123")
    assert match.host_connection == newcomer_handler.connection_id
    assert match.seed != first_seed
    assert newcomer.last_sync["started"] is False and newcomer.last_sync["starting"] is False


async def test_lenient_values_do_not_slip_through(join, registry):
    await join(nick="Alice")
    bob_handler, _ = await join(nick="Bob")

    await bob_handler.handle_message(json.dumps({"type": "update_position", "y": True}))
    await bob_handler.handle_message(json.dumps({"type": "ready", "ready": 1}))

    assert bob_handler.player.y == 320
    assert bob_handler.player.ready is False

    await bob_handler.handle_message(json.dumps({"type": "update_position", "y": 75}))
    assert bob_handler.player.y == 75


async def test_host_restart_after_round_rearms_everyone(join):
    alice_handler, alice = await join(nick="Alice")
    bob_handler, bob = await join(nick="Bob")
    await alice_handler.handle_message(json.dumps({"type": "start"}))
    for handler in (alice_handler, bob_handler):
        await handler.handle_message(json.dumps({"type": "ready", "ready": True}))
    await alice_handler.handle_message(json.dumps({"type": "update_position", "y": 90}))
    await bob_handler.handle_message(json.dumps({"type": "dead"}))
    round_over = alice.last_sync
    assert round_over["roundOver"] is True
    alice.clear()
    bob.clear()

    await alice_handler.handle_message(json.dumps({"type": "restart"}))

    assert alice.sent == bob.sent
    (rearmed,) = alice.sent
    assert rearmed["type"] == "sync"
    assert rearmed["starting"] is True and rearmed["started"] is False
    assert rearmed["roundOver"] is False and rearmed["winnerId"] is None
    assert all(not p["ready"] and p["alive"] and p["y"] == 320 for p in rearmed["players"])
    assert rearmed["seed"] != round_over["seed"]
