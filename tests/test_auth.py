"""Tests for registration, logout, settings and client tokens."""

import pytest
from httpx import AsyncClient

from conftest import UNREACHABLE_API_KEY, VALID_API_KEY


@pytest.mark.asyncio
async def test_register_with_invalid_key(client: AsyncClient, context):
    response = await client.post("/api/register", json={"name": "Ann", "api_key": "sk-wrong"})

    assert response.status_code == 400
    assert context.users.latest() is None


@pytest.mark.asyncio
async def test_register_when_videodb_unreachable(client: AsyncClient, context):
    response = await client.post("/api/register", json={"name": "Ann", "api_key": UNREACHABLE_API_KEY})

    assert response.status_code == 500
    assert context.users.latest() is None


@pytest.mark.asyncio
async def test_register_twice_reuses_access_token(client: AsyncClient, context):
    first = await client.post("/api/register", json={"name": "Ann", "api_key": VALID_API_KEY})
    second = await client.post("/api/register", json={"name": "Someone Else", "api_key": VALID_API_KEY})

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["access_token"] == second.json()["access_token"]
    assert second.json()["name"] == "Ann"

    with context.session_factory() as db:
        from async_recorder.db.models import User
        assert db.query(User).count() == 1


@pytest.mark.asyncio
async def test_register_without_name_defaults_to_guest(client: AsyncClient):
    response = await client.post("/api/register", json={"api_key": VALID_API_KEY})

    assert response.status_code == 200
    assert response.json()["name"] == "Guest"


@pytest.mark.asyncio
async def test_register_result_is_typed_failure(context):
    result = await context.recorder.register("Ann", "sk-wrong")

    assert result.success is False
    assert result.access_token is None
    assert "Invalid API key" in result.error


@pytest.mark.asyncio
async def test_config_requires_access_token(client: AsyncClient):
    assert (await client.get("/api/config")).status_code == 401
    assert (await client.get("/api/config", headers={"X-Access-Token": "nope"})).status_code == 401


@pytest.mark.asyncio
async def test_config_after_register(client: AsyncClient):
    registered = await client.post("/api/register", json={"name": "Ann", "api_key": VALID_API_KEY})
    token = registered.json()["access_token"]

    response = await client.get("/api/config", headers={"X-Access-Token": token})

    assert response.status_code == 200
    data = response.json()
    assert data["is_connected"] is True
    assert data["user_name"] == "Ann"
    assert data["backend_base_url"] == "http://localhost:8000"


@pytest.mark.asyncio
async def test_session_token_is_cached_until_refresh(client: AsyncClient, videodb_service, auth_headers):
    first = await client.post("/api/token", headers=auth_headers)
    second = await client.post("/api/token", headers=auth_headers)

    assert first.status_code == 200
    assert first.json()["session_token"] == second.json()["session_token"]
    assert videodb_service.tokens_issued == 1


@pytest.mark.asyncio
async def test_session_tokens_are_cached_per_user(client: AsyncClient, context, videodb_service, auth_headers):
    other = context.users.create("Other User", "sk-other", "token-456")
    other_headers = {"X-Access-Token": other.access_token}

    mine = await client.post("/api/token", headers=auth_headers)
    theirs = await client.post("/api/token", headers=other_headers)
    mine_again = await client.post("/api/token", headers=auth_headers)

    assert mine.json()["session_token"] == "st-1"
    assert theirs.json()["session_token"] == "st-2"
    assert mine_again.json()["session_token"] == "st-1"
    assert videodb_service.tokens_issued == 2


def test_token_cache_expires_with_buffer():
    from async_recorder.services.recorder import SessionTokenCache

    now = [1000.0]
    cache = SessionTokenCache(refresh_buffer=300, clock=lambda: now[0])
    cache.put(1, "st-1", expires_in=3600)

    now[0] += 3600 - 301
    assert cache.get(1) == "st-1"
    now[0] += 2
    assert cache.get(1) is None


@pytest.mark.asyncio
async def test_logout_clears_caches(client: AsyncClient, context, videodb_service, user, auth_headers):
    await client.post("/api/token", headers=auth_headers)
    assert context.recorder.current_user is not None

    response = await client.post("/api/logout")

    assert response.json() == {"success": True}
    assert context.recorder.current_user is None
    assert context.recorder.token_cache.get(user.id) is None
    assert videodb_service.connections == {}

    await client.post("/api/token", headers=auth_headers)
    assert videodb_service.tokens_issued == 2
