import json
import time

import httpx
import pytest
from supabase import AuthApiError, PostgrestAPIError

from bookerhq.config import AUTH_STORAGE_KEY
from bookerhq.session_store import MemoryTokenStorage
from bookerhq.supabase_client import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    SessionStorage,
    is_access_denied,
    is_bad_request,
    is_no_rows,
    is_unique_violation,
    looks_like_jwt,
)


def store_session(backend, namespace, user, expires_at):
    access_token, refresh_token = backend.issue_tokens(user["id"])
    MemoryTokenStorage(namespace).set(
        AUTH_STORAGE_KEY,
        json.dumps(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "bearer",
                "expires_in": 3600,
                "expires_at": expires_at,
                "user": user,
            }
        ),
    )
    return access_token, refresh_token


async def test_session_storage_adapter_reads_and_writes_namespace():
    storage = SessionStorage(MemoryTokenStorage("browser-1"))

    await storage.set_item("key", "value")
    assert await storage.get_item("key") == "value"
    assert MemoryTokenStorage("browser-1").get("key") == "value"

    await storage.remove_item("key")
    assert await storage.get_item("key") is None


async def test_client_bootstraps_with_stored_session(make_client, backend):
    user = backend.create_auth_user("ana@example.com")
    access_token, _ = store_session(backend, "browser-1", user, expires_at=int(time.time()) + 3600)

    client = await make_client("browser-1")

    assert client.options.headers["Authorization"] == f"Bearer {access_token}"


async def test_expired_stored_session_is_refreshed(make_client, backend):
    user = backend.create_auth_user("ana@example.com")
    client = await make_client("browser-1")
    old_access, _ = store_session(backend, "browser-1", user, expires_at=int(time.time()) - 5)
    events = []
    client.auth.on_auth_state_change(lambda event, session: events.append(event))

    session = await client.auth.get_session()

    assert session.user.id == user["id"]
    assert session.access_token != old_access
    assert events == [TOKEN_REFRESHED]
    assert len(backend.refresh_requests()) == 1
    stored = json.loads(MemoryTokenStorage("browser-1").get(AUTH_STORAGE_KEY))
    assert stored["access_token"] == session.access_token
    assert client.options.headers["Authorization"] == f"Bearer {session.access_token}"


async def test_failed_refresh_raises_auth_api_error(make_client, backend):
    user = backend.create_auth_user("ana@example.com")
    client = await make_client("browser-1")
    _, refresh_token = store_session(backend, "browser-1", user, expires_at=int(time.time()) - 5)
    backend.refresh_tokens.pop(refresh_token)

    with pytest.raises(AuthApiError) as exc_info:
        await client.auth.get_session()

    assert exc_info.value.code == "refresh_token_not_found"


async def test_unreadable_stored_session_is_discarded(make_client):
    client = await make_client("browser-1")
    MemoryTokenStorage("browser-1").set(AUTH_STORAGE_KEY, "{not json")

    assert await client.auth.get_session() is None
    assert MemoryTokenStorage("browser-1").get(AUTH_STORAGE_KEY) is None


async def test_sign_in_and_out_notify_listeners(client, backend):
    backend.create_auth_user("ana@example.com")
    events = []

    def listener(event, session):
        events.append((event, session.user.email if session else None))

    subscription = client.auth.on_auth_state_change(listener)
    await client.auth.sign_in_with_password({"email": "ana@example.com", "password": "secret123"})
    await client.auth.sign_out()
    subscription.unsubscribe()
    await client.auth.sign_in_with_password({"email": "ana@example.com", "password": "secret123"})

    assert events == [(SIGNED_IN, "ana@example.com"), (SIGNED_OUT, None)]


async def test_single_without_rows_is_no_rows(client):
    with pytest.raises(PostgrestAPIError) as exc_info:
        await client.table("testing_users").select("*").eq("id", "missing").single().execute()

    assert is_no_rows(exc_info.value)
    assert not is_unique_violation(exc_info.value)


async def test_maybe_single_without_rows_returns_none(client):
    result = await client.table("testing_users").select("*").eq("id", "missing").maybe_single().execute()

    assert result is None


async def test_insert_conflict_is_unique_violation(client, backend):
    backend.seed("testing_users", auth_user_id="auth-1", email="ana@example.com")

    with pytest.raises(PostgrestAPIError) as exc_info:
        await client.table("testing_users").insert({"auth_user_id": "auth-1", "email": "ana@example.com"}).execute()

    assert is_unique_violation(exc_info.value)
    assert is_bad_request(exc_info.value)


async def test_expired_jwt_is_access_denied(client, backend):
    backend.create_auth_user("ana@example.com")
    response = await client.auth.sign_in_with_password({"email": "ana@example.com", "password": "secret123"})
    backend.expire(response.session.access_token)

    with pytest.raises(PostgrestAPIError) as exc_info:
        await client.table("testing_services").select("*").execute()

    assert is_access_denied(exc_info.value)


async def test_filters_and_bearer_token(client, backend):
    backend.create_auth_user("ana@example.com")
    response = await client.auth.sign_in_with_password({"email": "ana@example.com", "password": "secret123"})

    await (
        client.table("testing_services")
        .select("*")
        .eq("is_active", True)
        .is_("tenant_id", "null")
        .order("created_at", desc=True)
        .execute()
    )

    request = backend.rest_requests()[-1]
    assert request.headers["authorization"] == f"Bearer {response.session.access_token}"
    assert request.url.params["is_active"] == "eq.true"
    assert request.url.params["tenant_id"] == "is.null"
    assert request.url.params["order"] == "created_at.desc"


def test_error_predicates_ignore_other_errors():
    error = httpx.ConnectError("boom")
    assert not is_no_rows(error)
    assert not is_unique_violation(error)
    assert not is_access_denied(error)
    assert not is_bad_request(error)


def test_looks_like_jwt():
    assert looks_like_jwt("a.b.c")
    assert not looks_like_jwt("not-a-jwt")
    assert not looks_like_jwt("a..c")
    assert not looks_like_jwt(None)
