"""In-memory directory of registered peers."""
from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional

from ..schemas import signaling as messages
from .connection import PeerConnection

logger = logging.getLogger(__name__)

STATUS_ONLINE = "online"


class Directory:
    """Track live connections and publish snapshots of the registered ones.

    Every live connection receives a snapshot on each change, registered or
    not; only registered connections appear in snapshots and resolve through
    ``lookup``.

    Mutations are synchronous and deliver through non-blocking queues, so the
    caller's lock covers both the change and the broadcast.
    """

    def __init__(self) -> None:
        self._live: Dict[str, PeerConnection] = {}
        self._entries: Dict[str, PeerConnection] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __iter__(self) -> Iterator[PeerConnection]:
        return iter(list(self._entries.values()))

    def attach(self, connection: PeerConnection) -> None:
        """Track a freshly connected client so it receives snapshots."""

        self._live[connection.connection_id] = connection

    def register(self, connection: PeerConnection, display_name: str) -> None:
        """Attach or overwrite the display name and broadcast the new snapshot."""

        self.attach(connection)
        is_new = connection.connection_id not in self._entries
        connection.display_name = display_name
        self._entries[connection.connection_id] = connection
        logger.info(
            "%s %s as %r (%d peers)",
            "Registered" if is_new else "Renamed",
            connection.connection_id,
            display_name,
            len(self._entries),
        )
        self.broadcast()

    def remove(self, connection: PeerConnection) -> Optional[PeerConnection]:
        """Remove the connection if present and broadcast to the remaining peers."""

        live = self._live.pop(connection.connection_id, None)
        removed = self._entries.pop(connection.connection_id, None)
        if live is None and removed is None:
            return None
        logger.info("Removed %s from directory (%d peers)", connection.connection_id, len(self._entries))
        self.broadcast()
        return removed or live

    def lookup(self, identity: str) -> Optional[PeerConnection]:
        return self._entries.get(identity)

    def snapshot_excluding(self, identity: str | None) -> list[dict[str, str]]:
        """Return the current peer list without the given identity."""

        return [
            {
                "identity": entry.connection_id,
                "displayName": entry.display_name or "",
                "status": STATUS_ONLINE,
            }
            for entry in self._entries.values()
            if entry.connection_id != identity
        ]

    def broadcast(self) -> None:
        """Send every live connection the snapshot that omits itself."""

        for connection in list(self._live.values()):
            connection.deliver(messages.directory_update(self.snapshot_excluding(connection.connection_id)))

    def clear(self) -> None:
        self._live.clear()
        self._entries.clear()


directory = Directory()
