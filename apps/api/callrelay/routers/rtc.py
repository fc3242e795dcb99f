"""ICE discovery and call signaling endpoints."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from ..schemas.rtc import IceServerModel, IceServersResponse, PeerEntry, PeersResponse
from ..services import rtc as rtc_service
from ..services.connection import PeerConnection
from ..services.signaling import call_router

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ice-servers", response_model=IceServersResponse)
async def get_ice_servers(identity: str = "anonymous") -> IceServersResponse:
    """Return the STUN/TURN servers a peer should hand to its RTCPeerConnection."""

    identity = identity.strip()
    if not identity or ":" in identity:
        # TURN usernames are "<expiry>:<identity>".
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="identity must be non-empty and contain no colon")

    config = await rtc_service.ice_config(identity)
    return IceServersResponse(
        ice_servers=[
            IceServerModel(urls=server.urls, username=server.username, credential=server.credential)
            for server in config.ice_servers
        ],
        ttl=config.ttl,
    )


@router.get("/peers", response_model=PeersResponse)
async def list_peers() -> PeersResponse:
    """Current directory snapshot, for diagnostics."""

    return PeersResponse(
        peers=[PeerEntry(**entry) for entry in call_router.directory.snapshot_excluding(None)]
    )


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Relay call negotiation between two registered peers."""

    await websocket.accept()
    connection = call_router.connect()

    reader = asyncio.create_task(_read_frames(websocket, connection))
    writer = asyncio.create_task(_write_frames(websocket, connection))
    try:
        done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.warning("Signaling socket %s failed: %s", connection.connection_id, exc)
    finally:
        reader.cancel()
        writer.cancel()
        await asyncio.gather(reader, writer, return_exceptions=True)
        await call_router.disconnect(connection)

    if connection.stalled:
        logger.warning("Closing stalled connection %s", connection.connection_id)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)


async def _read_frames(websocket: WebSocket, connection: PeerConnection) -> None:
    try:
        while True:
            frame = await websocket.receive_text()
            await call_router.handle_raw(connection, frame)
    except WebSocketDisconnect:
        logger.debug("Client %s disconnected", connection.connection_id)


async def _write_frames(websocket: WebSocket, connection: PeerConnection) -> None:
    while True:
        message = await connection.next_outbound()
        if message is None:
            return
        await websocket.send_json(message)
