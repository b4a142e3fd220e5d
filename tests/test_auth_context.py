import asyncio
import json
import time

import pytest

from bookerhq.auth_context import (
    AuthStore,
    AuthStoreRegistry,
    get_role_display_name,
)
from bookerhq.config import AUTH_STORAGE_KEY
from bookerhq.session_store import MemoryTokenStorage
from bookerhq.supabase_client import SIGNED_IN
from tests.fakes import ANON_KEY, SUPABASE_URL


async def hang_forever():
    await asyncio.sleep(3600)


def sign_in(client):
    return client.auth.sign_in_with_password({"email": "ana@example.com", "password": "secret123"})


def stored_session(namespace) -> dict:
    raw = MemoryTokenStorage(namespace).get(AUTH_STORAGE_KEY)
    return json.loads(raw) if raw else None


def expire_stored_session(namespace) -> None:
    session = stored_session(namespace)
    session["expires_at"] = int(time.time()) - 60
    MemoryTokenStorage(namespace).set(AUTH_STORAGE_KEY, json.dumps(session))


def profile_requests(backend, table="testing_users"):
    return [request for request in backend.requests if request.url.path == f"/rest/v1/{table}"]


@pytest.fixture
def stylist(backend):
    return backend.seed_account("ana@example.com", "stylist", first_name="Ana", last_name="Silva")


async def started_store(client, token_storage=None, **options) -> AuthStore:
    store = AuthStore(client, token_storage, **options)
    store.start()
    await store.wait_initialized()
    await store.wait_idle()
    return store


async def test_bootstrap_restores_stored_session(make_client, backend, stylist):
    # Sign in from one client, then bootstrap a fresh one over the same storage
    first = await make_client("browser-1")
    await sign_in(first)

    store = await started_store(await make_client("browser-1"))

    assert store.initialized is True
    assert store.loading is False
    assert store.user.id == stylist["auth_user"]["id"]
    assert store.user_roles == ["stylist"]
    assert store.user_profile["stylist"]["id"] == stylist["profile"]["id"]
    assert store.is_stylist()
    assert not store.is_customer()
    store.close()


async def test_bootstrap_without_session(client, backend):
    store = await started_store(client)

    assert store.initialized is True
    assert store.loading is False
    assert store.user is None
    assert store.user_profile is None
    assert profile_requests(backend) == []
    store.close()


async def test_sign_in_event_loads_profile(client, backend, stylist):
    store = await started_store(client)

    await sign_in(client)
    await store.wait_idle()

    assert store.user.email == "ana@example.com"
    assert store.user_profile["auth_user_id"] == stylist["auth_user"]["id"]
    assert store.snapshot()["email_verified"] is True
    store.close()


async def test_repeated_sign_in_for_same_user_does_not_refetch(client, backend, stylist):
    store = await started_store(client)
    response = await sign_in(client)
    await store.wait_idle()
    requests_before = len(backend.requests)

    await store.handle_auth_event(SIGNED_IN, response.session)
    await store.handle_auth_event(SIGNED_IN, response.session)
    await store.wait_idle()

    assert len(backend.requests) == requests_before
    assert store.user_roles == ["stylist"]
    store.close()


async def test_concurrent_profile_loads_fetch_once(client, backend, stylist):
    store = AuthStore(client)
    response = await sign_in(client)

    await asyncio.gather(
        store.load_user_profile(response.user),
        store.load_user_profile(response.user),
        store.load_user_profile(response.user),
    )

    assert len(profile_requests(backend)) == 1
    assert store.user_roles == ["stylist"]


async def test_forced_reload_fetches_again(client, backend, stylist):
    store = await started_store(client)
    await sign_in(client)
    await store.wait_idle()

    backend.seed("testing_user_role_assignments", user_id=stylist["user_row"]["id"], role="customer")
    await store.refresh_profile()

    assert len(profile_requests(backend)) == 2
    assert sorted(store.user_roles) == ["customer", "stylist"]
    # No customer profile row yet, the user still loads
    assert "customer" not in store.user_profile
    store.close()


async def test_verified_user_without_database_rows(client, backend):
    backend.create_auth_user("new@example.com", metadata={"role": "customer"})
async def test_verified_user_without_database_rows(client, backend):
    backend.create_auth_user("new@example.com", metadata={"role": "customer"})
    store = await started_store(client)

    await client.auth.sign_in_with_password({"email": "new@example.com", "password": "secret123"})
    await store.wait_idle()

    assert store.user is not None
    assert store.user_profile is None
    assert store.user_roles == []
    store.close()


async def test_admin_roles_show_in_snapshot(client, backend):
    account = backend.seed_account("ana@example.com", "partner_admin")
    backend.seed("testing_user_role_assignments", user_id=account["user_row"]["id"], role="super_admin")
    store = await started_store(client)

    await sign_in(client)
    await store.wait_idle()

    assert store.is_partner_admin()
    assert store.is_super_admin()
    assert not store.is_stylist()
    snapshot = store.snapshot()
    assert snapshot["is_partner_admin"] is True
    assert snapshot["is_super_admin"] is True
    assert snapshot["is_tenant_admin"] is False
    store.close()


async def test_failsafe_completes_initialization(client, monkeypatch):
    monkeypatch.setattr(client.auth, "get_session", hang_forever)
    store = AuthStore(client, session_timeout=60, failsafe_timeout=0.05)
    store.start()

    await asyncio.wait_for(store.wait_initialized(), timeout=2)

    assert store.initialized is True
    assert store.loading is False
    assert store.user is None
    store.close()


async def test_session_fetch_timeout_ends_loading(client, monkeypatch):
    monkeypatch.setattr(client.auth, "get_session", hang_forever)
    store = AuthStore(client, session_timeout=0.05, failsafe_timeout=60)
    store.start()

    await asyncio.wait_for(store.wait_initialized(), timeout=2)
    await store.wait_idle()

    assert store.initialized is True
    assert store.user is None
    store.close()


# ============================================================================
# Token refresh
# ============================================================================


async def test_expired_session_is_refreshed_before_queries(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"))
    response = await sign_in(client)
    await store.wait_idle()
    old_token = response.session.access_token

    expire_stored_session("browser-1")
    backend.expire(old_token)
    await store.ensure_fresh_session()

    assert len(backend.refresh_requests()) == 1
    new_token = store.session.access_token
    assert new_token != old_token
    assert stored_session("browser-1")["access_token"] == new_token
    assert store.user.id == stylist["auth_user"]["id"]

    result = await client.table("testing_services").select("*").execute()
    assert result.data == []
    assert backend.rest_requests()[-1].headers["authorization"] == f"Bearer {new_token}"
    store.close()


async def test_fresh_session_is_not_refreshed(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"))
    response = await sign_in(client)
    await store.wait_idle()

    await store.ensure_fresh_session()

    assert backend.refresh_requests() == []
    assert store.session.access_token == response.session.access_token
    store.close()


async def test_rejected_refresh_signs_out(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"))
    response = await sign_in(client)
    await store.wait_idle()

    expire_stored_session("browser-1")
    backend.refresh_tokens.pop(response.session.refresh_token)
    await store.ensure_fresh_session()
    await store.wait_idle()

    assert store.user is None
    assert store.user_profile is None
    assert stored_session("browser-1") is None
    store.close()


# ============================================================================
# Sign out
# ============================================================================


async def test_sign_out_clears_state(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"))
    await sign_in(client)
    await store.wait_idle()

    assert await store.sign_out() == "/"

    assert store.user is None
    assert store.user_profile is None
    assert store.user_roles == []
    assert stored_session("browser-1") is None
    assert await client.auth.get_session() is None
    store.close()


async def test_sign_out_timeout_still_clears_local_state(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"), sign_out_timeout=0.05)
    await sign_in(client)
    await store.wait_idle()
    backend.hanging.add("/auth/v1/logout")

    assert await asyncio.wait_for(store.sign_out(), timeout=2) == "/"

    assert store.user is None
    assert store.loading is False
    assert stored_session("browser-1") is None
    assert await client.auth.get_session() is None
    assert client.options.headers["Authorization"] == f"Bearer {ANON_KEY}"
    store.close()


async def test_sign_out_remote_error_still_clears_local_state(make_client, backend, stylist):
    client = await make_client("browser-1")
    store = await started_store(client, MemoryTokenStorage("browser-1"))
    await sign_in(client)
    await store.wait_idle()
    backend.failures["/auth/v1/logout"] = (500, {"msg": "down"})

    await store.sign_out()

    assert store.user is None
    assert stored_session("browser-1") is None
    store.close()


# ============================================================================
# Registry
# ============================================================================


def make_registry(backend, **options) -> AuthStoreRegistry:
    return AuthStoreRegistry(
        SUPABASE_URL,
        ANON_KEY,
        http_client=backend.http_client(),
        storage_factory=MemoryTokenStorage,
        **options,
    )


async def test_registry_keeps_one_store_per_browser(backend):
    registry = make_registry(backend)

    first, again = await asyncio.gather(registry.get_or_create("browser-a"), registry.get_or_create("browser-a"))
    assert again is first
    assert await registry.get_or_create("browser-a") is first
    assert await registry.get_or_create("browser-b") is not first
    assert len(registry) == 2

    await first.wait_initialized()
    registry.discard("browser-a")
    assert registry.get("browser-a") is None
    assert first.closed

    await registry.close()
    assert registry.get("browser-b") is None
    assert len(registry) == 0


async def test_registry_drops_least_recently_used_store(backend):
    registry = make_registry(backend, max_stores=2)

    first = await registry.get_or_create("browser-a")
    await registry.get_or_create("browser-b")
    await registry.get_or_create("browser-a")
    await registry.get_or_create("browser-c")

    assert len(registry) == 2
    assert registry.get("browser-a") is first
    assert registry.get("browser-b") is None
    await registry.close()


async def test_registry_evicts_anonymous_stores_first(make_client, backend, stylist):
    await sign_in(await make_client("browser-a"))
    registry = make_registry(backend, max_stores=2)

    signed_in = await registry.get_or_create("browser-a")
    await signed_in.wait_initialized()
    await signed_in.wait_idle()
    anonymous = await registry.get_or_create("browser-b")
    await registry.get_or_create("browser-c")

    assert signed_in.user is not None
    assert registry.get("browser-a") is signed_in
    assert registry.get("browser-b") is None
    assert anonymous.closed
    await registry.close()


async def test_registry_evicts_idle_stores(make_client, backend, stylist):
    await sign_in(await make_client("browser-a"))
    registry = make_registry(backend, idle_timeout=60)

    idle = await registry.get_or_create("browser-a")
    await idle.wait_initialized()
    await idle.wait_idle()
    idle.last_seen -= 120
    await registry.get_or_create("browser-b")

    assert registry.get("browser-a") is None
    assert idle.closed
    # The signed-in browser keeps its persisted session and is restored on its next request
    assert stored_session("browser-a") is not None
    restored = await registry.get_or_create("browser-a")
    await restored.wait_initialized()
    await restored.wait_idle()
    assert restored is not idle
    assert restored.user.id == stylist["auth_user"]["id"]
    await registry.close()


async def test_discarding_anonymous_store_clears_its_storage(backend):
    registry = make_registry(backend)
    store = await registry.get_or_create("browser-a")
    await store.wait_initialized()
    MemoryTokenStorage("browser-a").set("pkce", "verifier")

    registry.discard_if_anonymous("browser-a")

    assert registry.get("browser-a") is None
    assert MemoryTokenStorage("browser-a").get("pkce") is None
    await registry.close()


def test_role_display_names():
    assert get_role_display_name("tenant_admin") == "Business Owner"
    assert get_role_display_name("stylist") == "Stylist"
    assert get_role_display_name("unknown") == "unknown"
    assert get_role_display_name(None, "User") == "User"
