"""Tests for the peer directory."""
from __future__ import annotations

import pytest

from callrelay.services.connection import PeerConnection
from callrelay.services.directory import Directory


def _updates(connection: PeerConnection) -> list[list[dict]]:
    return [message["peers"] for message in connection.pending() if message["type"] == "directory-update"]


@pytest.mark.asyncio
async def test_register_broadcasts_snapshot_excluding_each_recipient():
    directory = Directory()
    alice = PeerConnection("a")
    bob = PeerConnection("b")

    directory.register(alice, "alice")
    assert _updates(alice) == [[]]

    directory.register(bob, "bob")
    assert _updates(alice) == [[{"identity": "b", "displayName": "bob", "status": "online"}]]
    assert _updates(bob) == [[{"identity": "a", "displayName": "alice", "status": "online"}]]


@pytest.mark.asyncio
async def test_register_is_idempotent_and_overwrites_name():
    directory = Directory()
    alice = PeerConnection("a")
    bob = PeerConnection("b")
    directory.register(alice, "alice")
    directory.register(bob, "bob")
    alice.pending()
    bob.pending()

    directory.register(alice, "alice2")

    assert len(directory) == 2
    assert _updates(bob) == [[{"identity": "a", "displayName": "alice2", "status": "online"}]]
    assert _updates(alice) == [[{"identity": "b", "displayName": "bob", "status": "online"}]]


@pytest.mark.asyncio
async def test_duplicate_display_names_are_distinct_entries():
    directory = Directory()
    first = PeerConnection("1")
    second = PeerConnection("2")

    directory.register(first, "sam")
    directory.register(second, "sam")

    snapshot = directory.snapshot_excluding(None)
    assert [entry["identity"] for entry in snapshot] == ["1", "2"]
    assert {entry["displayName"] for entry in snapshot} == {"sam"}


@pytest.mark.asyncio
async def test_remove_broadcasts_to_remaining_peers_only():
    directory = Directory()
    alice = PeerConnection("a")
    bob = PeerConnection("b")
    carol = PeerConnection("c")
    for connection, name in ((alice, "alice"), (bob, "bob"), (carol, "carol")):
        directory.register(connection, name)
    for connection in (alice, bob, carol):
        connection.pending()

    removed = directory.remove(bob)

    assert removed is bob
    assert "b" not in directory
    assert directory.lookup("b") is None
    assert _updates(bob) == []
    assert _updates(alice) == [[{"identity": "c", "displayName": "carol", "status": "online"}]]
    assert _updates(carol) == [[{"identity": "a", "displayName": "alice", "status": "online"}]]


@pytest.mark.asyncio
async def test_remove_unknown_connection_is_a_noop():
    directory = Directory()
    alice = PeerConnection("a")
    directory.register(alice, "alice")
    alice.pending()

    assert directory.remove(PeerConnection("ghost")) is None
    assert alice.pending() == []


@pytest.mark.asyncio
async def test_snapshots_track_membership_through_churn():
    directory = Directory()
    live: dict[str, PeerConnection] = {}

    for step, identity in enumerate(["a", "b", "c", "b", "d", "a", "e"]):
        if identity in live:
            directory.remove(live.pop(identity))
        else:
            live[identity] = PeerConnection(identity)
            directory.register(live[identity], f"user-{step}")

        for connection in live.values():
            latest = _updates(connection)[-1]
            seen = {entry["identity"] for entry in latest}
            assert seen == set(live) - {connection.connection_id}


@pytest.mark.asyncio
async def test_clear_empties_directory():
    directory = Directory()
    directory.register(PeerConnection("a"), "alice")

    directory.clear()

    assert len(directory) == 0
    assert directory.snapshot_excluding(None) == []


@pytest.mark.asyncio
async def test_attached_connection_gets_snapshots_without_being_listed():
    directory = Directory()
    watcher = PeerConnection("w")
    alice = PeerConnection("a")
    directory.attach(watcher)

    directory.register(alice, "alice")

    assert _updates(watcher) == [[{"identity": "a", "displayName": "alice", "status": "online"}]]
    assert _updates(alice) == [[]]
    assert "w" not in directory
    assert directory.lookup("w") is None

    directory.remove(alice)

    assert _updates(watcher) == [[]]

    assert directory.remove(watcher) is watcher
