"""ICE server discovery for browser peers.

STUN entries come straight from settings. TURN entries get short-lived
credentials derived from a shared secret (the TURN REST API scheme understood
by coturn's ``use-auth-secret``), so no long-term password reaches the client.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass, field

from ..core.config import Settings, settings as default_settings


@dataclass(slots=True)
class IceServer:
    urls: list[str]
    username: str | None = None
    credential: str | None = None


@dataclass(slots=True)
class IceConfig:
    ice_servers: list[IceServer] = field(default_factory=list)
    ttl: int = 0


def turn_credentials(secret: str, identity: str, expires_at: int) -> tuple[str, str]:
    """Return the ``(username, credential)`` pair for a TURN REST login."""

    username = f"{expires_at}:{identity}"
    digest = hmac.new(secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha1).digest()
    return username, base64.b64encode(digest).decode("ascii")


async def ice_config(identity: str, config: Settings | None = None, now: float | None = None) -> IceConfig:
    """Build the ICE server list a peer should use for its next call."""

    config = config or default_settings
    servers: list[IceServer] = []
    if config.stun_urls:
        servers.append(IceServer(urls=list(config.stun_urls)))

    ttl = 0
    if config.turn_urls and config.turn_secret:
        ttl = config.turn_ttl_seconds
        issued_at = int(now if now is not None else time.time())
        username, credential = turn_credentials(config.turn_secret, identity, issued_at + ttl)
        servers.append(IceServer(urls=list(config.turn_urls), username=username, credential=credential))

    return IceConfig(ice_servers=servers, ttl=ttl)
