"""Tests for the Supabase REST/Auth client using a mocked HTTP transport."""
import json

import httpx
import pytest
from unittest.mock import patch

from config.settings import Settings, get_settings, reset_settings
from config.supabase import SupabaseClient, SupabaseError

REAL_ASYNC_CLIENT = httpx.AsyncClient


def mocked_client(handler):
    """Patch the client factory so every request goes to `handler`"""
    def factory(*args, **kwargs):
        return REAL_ASYNC_CLIENT(*args, transport=httpx.MockTransport(handler), **kwargs)
    return patch("config.supabase.httpx.AsyncClient", side_effect=factory)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_builds_postgrest_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "p1"}])

    client = SupabaseClient("http://supabase.test/", "anon-key")
    with mocked_client(handler):
        rows = await client.query(
            "pills", filters={"user_id": "u1", "taken": False},
            order=("created_at", "desc"), limit=5, access_token="user-token",
        )

    assert rows == [{"id": "p1"}]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/pills"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.url.params["taken"] == "eq.false"
    assert request.url.params["order"] == "created_at.desc"
    assert request.url.params["limit"] == "5"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer user-token"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_without_token_uses_api_key_and_sends_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "p1", "name": "Aspirin"})

    client = SupabaseClient("http://supabase.test", "service-key")
    with mocked_client(handler):
        rows = await client.query("pills", "POST", data={"name": "Aspirin"})

    assert rows == [{"id": "p1", "name": "Aspirin"}]
    assert seen[0].headers["authorization"] == "Bearer service-key"
    assert seen[0].headers["prefer"] == "return=representation"
    assert json.loads(seen[0].content) == {"name": "Aspirin"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_response_is_empty_list():
    client = SupabaseClient("http://supabase.test", "key")
    with mocked_client(lambda request: httpx.Response(204)):
        assert await client.query("pills", "DELETE", filters={"id": "p1"}) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsupported_method():
    with pytest.raises(ValueError):
        await SupabaseClient("http://supabase.test", "key").query("pills", "PUT")


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("body, expected", [
    ({"msg": "User already registered"}, "User already registered"),
    ({"error": "invalid_grant", "error_description": "Invalid login credentials"}, "Invalid login credentials"),
    ({"message": "permission denied for table pills"}, "permission denied for table pills"),
])
async def test_error_bodies_become_supabase_errors(body, expected):
    client = SupabaseClient("http://supabase.test", "key")
    with mocked_client(lambda request: httpx.Response(400, json=body)):
        with pytest.raises(SupabaseError) as exc_info:
            await client.auth_signin("jane@example.com", "wrong")

    assert exc_info.value.message == expected
    assert exc_info.value.status_code == 400


@pytest.mark.unit
@pytest.mark.asyncio
async def test_network_failure_is_a_503():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = SupabaseClient("http://supabase.test", "key")
    with mocked_client(handler):
        with pytest.raises(SupabaseError) as exc_info:
            await client.query("pills")

    assert exc_info.value.status_code == 503
    assert exc_info.value.message.startswith("Network error")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auth_endpoints():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "u1"})

    client = SupabaseClient("http://supabase.test", "key")
    with mocked_client(handler):
        await client.auth_signup("jane@example.com", "secret123", {"first_name": "Jane"})
        await client.auth_signin("jane@example.com", "secret123")
        await client.auth_recover("jane@example.com", redirect_to="pilltracker://reset-password")
        await client.auth_update_user("token", {"password": "newsecret"})

    signup, signin, recover, update = seen
    assert signup.url.path == "/auth/v1/signup"
    assert json.loads(signup.content)["data"] == {"first_name": "Jane"}
    assert signin.url.params["grant_type"] == "password"
    assert recover.url.params["redirect_to"] == "pilltracker://reset-password"
    assert update.method == "PUT"
    assert update.headers["authorization"] == "Bearer token"


@pytest.mark.unit
def test_settings_reject_unknown_timing_window(monkeypatch):
    monkeypatch.setenv("TIMING_WINDOW", "lenient")
    with pytest.raises(ValueError):
        Settings()


@pytest.mark.unit
def test_settings_are_cached_until_reset(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", " Boss@Example.com ")
    reset_settings()
    try:
        assert get_settings().admin_email == "boss@example.com"
        monkeypatch.setenv("ADMIN_EMAIL", "other@example.com")
        assert get_settings().admin_email == "boss@example.com"
    finally:
        monkeypatch.undo()
        reset_settings()
