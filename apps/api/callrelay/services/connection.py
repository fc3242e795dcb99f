"""Per-connection state for signaling participants."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from ..schemas.signaling import CallKind

logger = logging.getLogger(__name__)


class CallState(str, enum.Enum):
    IDLE = "idle"
    RINGING_OUTBOUND = "ringing_outbound"
    RINGING_INBOUND = "ringing_inbound"
    CONNECTING = "connecting"
    ACTIVE = "active"


@dataclass(eq=False)
class PeerConnection:
    """One live client session.

    ``peer_id`` is the call linkage: the identity of the counterpart, resolved
    through the directory on every use. It is ``None`` exactly when ``state``
    is idle.
    """

    connection_id: str
    queue_size: int = 64
    display_name: str | None = None
    state: CallState = CallState.IDLE
    peer_id: str | None = None
    call_kind: CallKind | None = None
    stalled: bool = False
    closed: bool = False
    _outbox: asyncio.Queue = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._outbox = asyncio.Queue(maxsize=self.queue_size)

    def deliver(self, message: dict[str, Any]) -> bool:
        """Queue a message without blocking; return False if it was dropped."""

        if self.closed:
            return False
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full for %s (%d pending), marking connection stalled",
                self.connection_id,
                self._outbox.qsize(),
            )
            self.stalled = True
            self.close()
            return False
        return True

    def close(self) -> None:
        """Stop accepting messages and wake the writer.

        A stalled connection loses its backlog; otherwise pending messages are
        still flushed before the writer sees the end marker.
        """

        if self.closed:
            return
        self.closed = True
        if self.stalled:
            while not self._outbox.empty():
                self._outbox.get_nowait()
        try:
            self._outbox.put_nowait(None)
        except asyncio.QueueFull:
            # Writer will find the queue empty once drained and closed is set.
            pass

    async def next_outbound(self) -> dict[str, Any] | None:
        """Wait for the next queued message; ``None`` once the connection is closed."""

        if self.closed and self._outbox.empty():
            return None
        return await self._outbox.get()

    def pending(self) -> list[dict[str, Any]]:
        """Drain and return queued messages without waiting."""

        messages: list[dict[str, Any]] = []
        while not self._outbox.empty():
            message = self._outbox.get_nowait()
            if message is not None:
                messages.append(message)
        return messages

    def link(self, peer_id: str, state: CallState, call_kind: CallKind | None = None) -> None:
        self.peer_id = peer_id
        self.state = state
        if call_kind is not None:
            self.call_kind = call_kind

    def unlink(self) -> None:
        self.peer_id = None
        self.state = CallState.IDLE
        self.call_kind = None
