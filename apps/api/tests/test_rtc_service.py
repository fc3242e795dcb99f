"""Tests for ICE server discovery."""
from __future__ import annotations

import base64
import hashlib
import hmac

import pytest

from callrelay.core.config import Settings
from callrelay.services import rtc


@pytest.mark.asyncio
async def test_ice_config_without_turn_returns_stun_only():
    config = Settings(stun_urls=["stun:stun.example.org:3478"], turn_urls=[], turn_secret="")

    result = await rtc.ice_config("peer-1", config)

    assert result.ttl == 0
    assert len(result.ice_servers) == 1
    assert result.ice_servers[0].urls == ["stun:stun.example.org:3478"]
    assert result.ice_servers[0].username is None


@pytest.mark.asyncio
async def test_ice_config_mints_time_limited_turn_credentials():
    config = Settings(
        stun_urls=[],
        turn_urls=["turn:turn.example.org:3478?transport=udp"],
        turn_secret="s3cret",
        turn_ttl_seconds=600,
    )

    result = await rtc.ice_config("peer-1", config, now=1_700_000_000)

    assert result.ttl == 600
    [turn] = result.ice_servers
    assert turn.username == "1700000600:peer-1"
    expected = base64.b64encode(
        hmac.new(b"s3cret", b"1700000600:peer-1", hashlib.sha1).digest()
    ).decode("ascii")
    assert turn.credential == expected


@pytest.mark.asyncio
async def test_turn_requires_secret():
    config = Settings(stun_urls=[], turn_urls=["turn:turn.example.org"], turn_secret="")

    result = await rtc.ice_config("peer-1", config)

    assert result.ice_servers == []


def test_settings_accept_comma_separated_urls():
    config = Settings(stun_urls="stun:a.example:3478, stun:b.example:3478")

    assert config.stun_urls == ["stun:a.example:3478", "stun:b.example:3478"]
