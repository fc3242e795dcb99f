"""Data contracts for RTC HTTP endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class IceServerModel(BaseModel):
    urls: list[str] = Field(..., description="STUN or TURN URLs")
    username: str | None = Field(default=None, description="TURN username, absent for STUN")
    credential: str | None = Field(default=None, description="TURN credential, absent for STUN")


class IceServersResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ice_servers: list[IceServerModel] = Field(..., alias="iceServers")
    ttl: int = Field(..., ge=0, description="Seconds the TURN credentials stay valid")


class PeerEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identity: str
    display_name: str = Field(..., alias="displayName")
    status: str = Field(default="online")


class PeersResponse(BaseModel):
    peers: list[PeerEntry]
