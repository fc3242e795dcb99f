"""In-memory WebRTC call signaling router."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional
from uuid import uuid4

from pydantic import ValidationError

from ..core.config import settings
from ..schemas import signaling as messages
from .connection import CallState, PeerConnection
from .directory import Directory, directory as default_directory

logger = logging.getLogger(__name__)


class CallRouter:
    """Relay negotiation messages between the two parties of a call.

    Every connection takes part in at most one call. Messages carry no call
    identifier; they are routed through the sender's current linkage, and any
    message that does not fit the sender's state is dropped.
    """

    def __init__(
        self,
        directory: Directory | None = None,
        *,
        queue_size: int = 64,
        ring_timeout: float = 0.0,
    ) -> None:
        self.directory = directory if directory is not None else Directory()
        self.queue_size = queue_size
        self.ring_timeout = ring_timeout
        self._connections: Dict[str, PeerConnection] = {}
        self._ring_timers: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    # === Connection lifecycle ===

    def connect(self, connection_id: str | None = None) -> PeerConnection:
        """Create a connection with a fresh opaque identity and greet it."""

        connection = PeerConnection(connection_id=connection_id or uuid4().hex, queue_size=self.queue_size)
        self._connections[connection.connection_id] = connection
        connection.deliver(messages.connected(connection.connection_id))
        self.directory.attach(connection)
        logger.info("Connection %s opened (%d live)", connection.connection_id, len(self._connections))
        return connection

    async def disconnect(self, connection: PeerConnection) -> None:
        """Terminate any call the connection is part of and drop it from the directory."""

        async with self._lock:
            if self._connections.pop(connection.connection_id, None) is None:
                return
            self._terminate(connection, messages.TerminationReason.DISCONNECTED)
            self.directory.remove(connection)
            connection.close()
        logger.info("Connection %s closed (%d live)", connection.connection_id, len(self._connections))

    async def start(self) -> None:
        """Begin serving with an empty directory."""

        async with self._lock:
            self.directory.clear()
        logger.info(
            "Call router ready (queue_size=%d, ring_timeout=%.0fs)",
            self.queue_size,
            self.ring_timeout,
        )

    async def shutdown(self) -> None:
        """Cancel ring timers, close every connection and empty the directory."""

        async with self._lock:
            for task in self._ring_timers.values():
                task.cancel()
            self._ring_timers.clear()
            for connection in self._connections.values():
                connection.close()
            self._connections.clear()
            self.directory.clear()

    # === Message dispatch ===

    async def handle_raw(self, connection: PeerConnection, raw: str | bytes) -> None:
        """Validate a raw frame and dispatch it; malformed frames are dropped."""

        try:
            message = messages.parse_inbound(raw)
        except ValidationError as exc:
            logger.warning(
                "Dropping malformed message from %s: %s",
                connection.connection_id,
                exc.errors(include_url=False, include_input=False),
            )
            return
        await self.handle(connection, message)

    async def handle(self, connection: PeerConnection, message: messages.InboundMessage) -> None:
        async with self._lock:
            if connection.connection_id not in self._connections:
                return
            if isinstance(message, messages.RegisterMessage):
                self.directory.register(connection, message.display_name)
            elif isinstance(message, messages.InitiateCallMessage):
                self._initiate_call(connection, message)
            elif isinstance(message, messages.AnswerCallMessage):
                self._answer_call(connection, message)
            elif isinstance(message, messages.RejectCallMessage):
                self._reject_call(connection)
            elif isinstance(message, messages.IceCandidateMessage):
                self._relay_candidate(connection, message)
            elif isinstance(message, messages.EndCallMessage):
                self._end_call(connection)
            elif isinstance(message, messages.CallConnectedMessage):
                self._mark_active(connection)

    # === Transitions (caller holds the lock) ===

    def _initiate_call(self, caller: PeerConnection, message: messages.InitiateCallMessage) -> None:
        if caller.state is not CallState.IDLE:
            logger.info("Ignoring call from %s: already %s", caller.connection_id, caller.state.value)
            return

        target_id = message.target_identity
        target = self.directory.lookup(target_id)
        if target is None:
            logger.info("Call target %s not found for %s", target_id, caller.connection_id)
            caller.deliver(messages.call_unreachable(target_id, messages.UnreachableReason.NOT_FOUND))
            return
        if target is caller:
            logger.info("Ignoring self-call from %s", caller.connection_id)
            return
        if target.state is not CallState.IDLE:
            logger.info("Call target %s busy for %s", target_id, caller.connection_id)
            caller.deliver(messages.call_unreachable(target_id, messages.UnreachableReason.BUSY))
            return

        caller.link(target.connection_id, CallState.RINGING_OUTBOUND, message.call_kind)
        target.link(caller.connection_id, CallState.RINGING_INBOUND, message.call_kind)
        target.deliver(
            messages.incoming_call(
                message.offer,
                message.call_kind,
                caller.connection_id,
                caller.display_name or "",
            )
        )
        self._start_ring_timer(caller, target)
        logger.info(
            "Call %s -> %s (%s) ringing",
            caller.connection_id,
            target.connection_id,
            message.call_kind.value,
        )

    def _answer_call(self, callee: PeerConnection, message: messages.AnswerCallMessage) -> None:
        if callee.state is not CallState.RINGING_INBOUND:
            logger.info("Ignoring answer from %s in state %s", callee.connection_id, callee.state.value)
            return
        caller = self._counterpart(callee)
        if caller is None or caller.state is not CallState.RINGING_OUTBOUND:
            logger.info("Ignoring answer from %s: caller no longer ringing", callee.connection_id)
            return

        self._cancel_ring_timer(caller.connection_id)
        caller.state = CallState.CONNECTING
        callee.state = CallState.CONNECTING
        caller.deliver(messages.call_answered(message.answer))
        logger.info("Call %s -> %s answered", caller.connection_id, callee.connection_id)

    def _reject_call(self, callee: PeerConnection) -> None:
        if callee.state is not CallState.RINGING_INBOUND:
            logger.info("Ignoring reject from %s in state %s", callee.connection_id, callee.state.value)
            return
        caller = self._counterpart(callee)
        if caller is not None:
            self._cancel_ring_timer(caller.connection_id)
            caller.unlink()
            caller.deliver(messages.call_rejected(callee.connection_id))
        callee.unlink()
        logger.info("Call to %s rejected", callee.connection_id)

    def _relay_candidate(self, sender: PeerConnection, message: messages.IceCandidateMessage) -> None:
        counterpart = self._counterpart(sender)
        if counterpart is None:
            logger.debug("Dropping ICE candidate from unlinked %s", sender.connection_id)
            return
        counterpart.deliver(messages.ice_candidate(message.candidate, sender.connection_id))

    def _end_call(self, sender: PeerConnection) -> None:
        if sender.state is CallState.IDLE:
            logger.info("Ignoring end-call from idle %s", sender.connection_id)
            return
        self._terminate(sender, messages.TerminationReason.ENDED)

    def _mark_active(self, sender: PeerConnection) -> None:
        if sender.state is not CallState.CONNECTING:
            logger.debug("Ignoring call-connected from %s in state %s", sender.connection_id, sender.state.value)
            return
        counterpart = self._counterpart(sender)
        if counterpart is None:
            return
        sender.state = CallState.ACTIVE
        counterpart.state = CallState.ACTIVE
        logger.info("Call %s <-> %s active", sender.connection_id, counterpart.connection_id)

    def _terminate(self, sender: PeerConnection, reason: messages.TerminationReason) -> None:
        """Clear both sides of the sender's call and notify the counterpart."""

        if sender.peer_id is None:
            return
        counterpart = self._counterpart(sender)
        self._cancel_ring_timer(sender.connection_id)
        if counterpart is not None:
            self._cancel_ring_timer(counterpart.connection_id)
            counterpart.unlink()
            counterpart.deliver(messages.call_terminated(sender.connection_id, reason))
        logger.info("Call %s <-> %s terminated (%s)", sender.connection_id, sender.peer_id, reason.value)
        sender.unlink()

    def _counterpart(self, connection: PeerConnection) -> Optional[PeerConnection]:
        """Resolve the linked peer, requiring the link to point back."""

        if connection.peer_id is None:
            return None
        counterpart = self._connections.get(connection.peer_id)
        if counterpart is None or counterpart.peer_id != connection.connection_id:
            return None
        return counterpart

    # === Ring timeout ===

    def _start_ring_timer(self, caller: PeerConnection, callee: PeerConnection) -> None:
        if self.ring_timeout <= 0:
            return
        self._ring_timers[caller.connection_id] = asyncio.create_task(
            self._expire_ringing(caller.connection_id, callee.connection_id)
        )

    def _cancel_ring_timer(self, caller_id: str) -> None:
        task = self._ring_timers.pop(caller_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire_ringing(self, caller_id: str, callee_id: str) -> None:
        await asyncio.sleep(self.ring_timeout)
        async with self._lock:
            if self._ring_timers.get(caller_id) is not asyncio.current_task():
                return
            self._ring_timers.pop(caller_id, None)
            caller = self._connections.get(caller_id)
            callee = self._connections.get(callee_id)
            if caller is None or callee is None:
                return
            if caller.state is not CallState.RINGING_OUTBOUND or self._counterpart(caller) is not callee:
                return
            logger.info("Call %s -> %s not answered within %gs", caller_id, callee_id, self.ring_timeout)
            caller.unlink()
            callee.unlink()
            caller.deliver(messages.call_terminated(callee_id, messages.TerminationReason.TIMEOUT))
            callee.deliver(messages.call_terminated(caller_id, messages.TerminationReason.TIMEOUT))

    # === Queries ===

    def get(self, connection_id: str) -> Optional[PeerConnection]:
        return self._connections.get(connection_id)

    def __len__(self) -> int:
        return len(self._connections)


call_router = CallRouter(
    default_directory,
    queue_size=settings.outbound_queue_size,
    ring_timeout=settings.ring_timeout_seconds,
)
