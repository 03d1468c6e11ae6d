"""
Access token caching and refresh
"""

import asyncio

import pytest

from conftest import FakeResponse, FakeSession
from showcase.core.config import Settings
from showcase.core.exceptions import ConfigurationError, UpstreamAuthError
from showcase.services.image_search_service import AccessTokenManager


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_token_is_reused_within_validity_window(config, token_response):
    session = FakeSession({config.BAIDU_TOKEN_URL: token_response})
    manager = AccessTokenManager(config, session=session)

    async def acquire_many():
        return [await manager.acquire_token() for _ in range(5)]

    assert asyncio.run(acquire_many()) == ["token-1"] * 5

    calls = session.calls_to(config.BAIDU_TOKEN_URL)
    assert len(calls) == 1
    assert calls[0]["params"] == {
        "grant_type": "client_credentials",
        "client_id": "test-key",
        "client_secret": "test-secret",
    }


def test_token_expiry_keeps_one_hour_margin(config):
    clock = FakeClock()
    session = FakeSession({
        config.BAIDU_TOKEN_URL: [
            FakeResponse({"access_token": "token-1", "expires_in": 7200}),
            FakeResponse({"access_token": "token-2", "expires_in": 7200}),
        ]
    })
    manager = AccessTokenManager(config, session=session, clock=clock)

    assert asyncio.run(manager.acquire_token()) == "token-1"
    assert manager.expires_at == 1000.0 + 7200 - 3600

    clock.now = manager.expires_at - 1
    assert asyncio.run(manager.acquire_token()) == "token-1"

    clock.now = manager.expires_at
    assert asyncio.run(manager.acquire_token()) == "token-2"
    assert len(session.calls_to(config.BAIDU_TOKEN_URL)) == 2


def test_missing_expires_in_uses_default_ttl(config):
    clock = FakeClock()
    session = FakeSession({config.BAIDU_TOKEN_URL: FakeResponse({"access_token": "token-1"})})
    manager = AccessTokenManager(config, session=session, clock=clock)

    asyncio.run(manager.acquire_token())

    assert manager.expires_at == 1000.0 + config.BAIDU_TOKEN_DEFAULT_TTL - config.BAIDU_TOKEN_REFRESH_MARGIN


def test_concurrent_callers_share_one_exchange(config, token_response):
    session = FakeSession({config.BAIDU_TOKEN_URL: token_response})
    manager = AccessTokenManager(config, session=session)

    async def acquire_concurrently():
        return await asyncio.gather(*(manager.acquire_token() for _ in range(4)))

    assert asyncio.run(acquire_concurrently()) == ["token-1"] * 4
    assert len(session.calls_to(config.BAIDU_TOKEN_URL)) == 1


def test_missing_credentials_raise_configuration_error(tmp_path):
    config = Settings(BAIDU_API_KEY=None, BAIDU_SECRET_KEY=None, UPLOAD_DIR=str(tmp_path))
    session = FakeSession()
    manager = AccessTokenManager(config, session=session)

    with pytest.raises(ConfigurationError):
        asyncio.run(manager.acquire_token())
    assert session.calls == []


def test_rejected_credentials_raise_upstream_auth_error(config):
    payload = {"error": "invalid_client", "error_description": "unknown client id"}
    session = FakeSession({config.BAIDU_TOKEN_URL: FakeResponse(payload, status=401)})
    manager = AccessTokenManager(config, session=session)

    with pytest.raises(UpstreamAuthError) as exc_info:
        asyncio.run(manager.acquire_token())

    assert "invalid_client" in str(exc_info.value)
    assert exc_info.value.payload == payload
    assert manager.access_token is None


def test_invalidate_forces_new_exchange(config, token_response):
    session = FakeSession({config.BAIDU_TOKEN_URL: token_response})
    manager = AccessTokenManager(config, session=session)

    asyncio.run(manager.acquire_token())
    manager.invalidate()
    asyncio.run(manager.acquire_token())

    assert len(session.calls_to(config.BAIDU_TOKEN_URL)) == 2
