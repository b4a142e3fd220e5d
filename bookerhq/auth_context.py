"""
Per-browser auth state: session bootstrap, session-change sync, profile loading and sign-out.

One AuthStore is owned by each browser session (see AuthStoreRegistry); routes read it
through the guards in guards.py and never mutate it directly.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

import httpx
from supabase import AsyncClient, AuthApiError, AuthError
from supabase_auth.types import Session, User

from .config import (
    AUTH_INIT_FAILSAFE_SECONDS,
    AUTH_STORE_IDLE_SECONDS,
    AUTH_STORE_MAX,
    SESSION_TIMEOUT_SECONDS,
    SIGN_OUT_TIMEOUT_SECONDS,
    get_table_name,
)
from .session_store import TokenStorage, create_token_storage
from .supabase_client import (
    REMOTE_ERRORS,
    SIGNED_OUT,
    create_supabase_client,
    error_message,
    is_email_verified,
    is_no_rows,
    user_to_dict,
)

logger = logging.getLogger(__name__)

CUSTOMER = "customer"
STYLIST = "stylist"
TENANT_ADMIN = "tenant_admin"
PARTNER_ADMIN = "partner_admin"
SUPER_ADMIN = "super_admin"

# role -> (profile table, key under user_profile)
ROLE_PROFILE_TABLES = {
    CUSTOMER: ("customer_profiles", "customer"),
    STYLIST: ("stylist_profiles", "stylist"),
    TENANT_ADMIN: ("tenant_profiles", "tenant"),
}

ROLE_DISPLAY_NAMES = {
    CUSTOMER: "Customer",
    STYLIST: "Stylist",
    TENANT_ADMIN: "Business Owner",
    PARTNER_ADMIN: "Partner Admin",
    SUPER_ADMIN: "Super Admin",
}


def get_role_display_name(role: Optional[str], default: Optional[str] = None) -> str:
    return ROLE_DISPLAY_NAMES.get(role, default if default is not None else role or "")


class AuthStore:
    """Auth state of one browser session"""

    def __init__(
        self,
        client: AsyncClient,
        token_storage: Optional[TokenStorage] = None,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        sign_out_timeout: float = SIGN_OUT_TIMEOUT_SECONDS,
        failsafe_timeout: float = AUTH_INIT_FAILSAFE_SECONDS,
    ):
        self.client = client
        self.token_storage = token_storage
        self.session_timeout = session_timeout
        self.sign_out_timeout = sign_out_timeout
        self.failsafe_timeout = failsafe_timeout

        self.user: Optional[User] = None
        self.session: Optional[Session] = None
        self.user_profile: Optional[dict] = None
        self.user_roles: list[str] = []
        self.loading = True
        self.initialized = False

        # Set by guards.get_callback_handler, dropped together with the store
        self.callback_handler = None
        self.last_seen = time.monotonic()

        self._initialized_event = asyncio.Event()
        self._profile_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()
        self._loading_profile_for: Optional[str] = None
        self._subscription = None
        self._failsafe_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to session changes and kick off the bootstrap"""
        loop = asyncio.get_running_loop()
        self._subscription = self.client.auth.on_auth_state_change(self._on_auth_state_change)
        self._failsafe_handle = loop.call_later(self.failsafe_timeout, self._failsafe)
        self._spawn(self.initialize())

    async def initialize(self) -> None:
        logger.debug("🔄 Initializing auth...")
        try:
            session = await asyncio.wait_for(self.client.auth.get_session(), timeout=self.session_timeout)
            if session and session.user and not self._closed:
                logger.debug(f"✅ Found existing session for {session.user.id}")
                self.session = session
                self.user = session.user
                # Profile loading is not awaited during init
                self._spawn(self.load_user_profile(session.user))
            else:
                logger.info("No existing session")
        except asyncio.TimeoutError:
            logger.error(f"❌ Session fetch timed out after {self.session_timeout}s")
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Session error: {error_message(e)}")
        except Exception as e:
            logger.error(f"❌ Auth init error: {e}")

        self._mark_initialized()

    def _failsafe(self) -> None:
        if not self.initialized:
            logger.warning("⚠️ Auth init timeout - forcing completion")
            self._mark_initialized()

    def _mark_initialized(self) -> None:
        if self._closed:
            return
        self.loading = False
        if self.initialized:
            return
        self.initialized = True
        self._initialized_event.set()
        if self._failsafe_handle:
            self._failsafe_handle.cancel()
            self._failsafe_handle = None

    async def wait_initialized(self) -> None:
        await self._initialized_event.wait()

    async def wait_idle(self) -> None:
        """Wait for background event handling and profile loads scheduled so far"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def close(self) -> None:
        self._closed = True
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._failsafe_handle:
            self._failsafe_handle.cancel()
            self._failsafe_handle = None
        for task in list(self._tasks):
            task.cancel()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Session-change events
    # ------------------------------------------------------------------

    def _on_auth_state_change(self, event: str, session: Optional[Session]) -> None:
        # The platform client notifies listeners synchronously
        if not self._closed:
            self._spawn(self.handle_auth_event(event, session))

    def _has_profile_for(self, user_id: str) -> bool:
        return bool(
            self.user_profile
            and self.user_profile.get("auth_user_id") == user_id
            and self.user_roles
        )

    async def handle_auth_event(self, event: str, session: Optional[Session]) -> None:
        if self._closed:
            return

        user = session.user if session else None
        user_id = user.id if user else None
        current_user_id = self.user.id if self.user else None
        has_profile = user_id is not None and user_id == current_user_id and self._has_profile_for(user_id)

        if user_id != current_user_id or event == SIGNED_OUT:
            logger.info(f"🔄 Auth event: {event} {user_id or 'no user'}")
        else:
            logger.debug(f"Auth event: {event} {user_id}")

        self.session = session
        self.user = user

        if user is None:
            self.user_profile = None
            self.user_roles = []
        elif has_profile:
            logger.debug("Profile already loaded for user, skipping reload")
        else:
            self._spawn(self.load_user_profile(user))

        self.loading = False

    async def ensure_fresh_session(self) -> None:
        """
        Re-read the stored session before a request runs.

        The platform client refreshes an access token that is expired or about to expire;
        a refresh the platform rejects signs the browser out.
        """
        if self._closed or not self.user:
            return

        async with self._refresh_lock:
            try:
                session = await asyncio.wait_for(self.client.auth.get_session(), timeout=self.session_timeout)
            except asyncio.TimeoutError:
                logger.error(f"❌ Session refresh timed out after {self.session_timeout}s")
                return
            except AuthApiError as e:
                logger.warning(f"⚠️ Session refresh rejected, signing out: {e.message}")
                await self.sign_out()
                return
            except (AuthError, httpx.HTTPError) as e:
                logger.error(f"❌ Session refresh error: {error_message(e)}")
                return

        if session is None:
            logger.info("Stored session is gone, clearing auth state")
            self.session = None
            self.user = None
            self.user_profile = None
            self.user_roles = []
            return

        # A refresh notifies TOKEN_REFRESHED, handled in the background
        await self.wait_idle()
        self.session = session
        self.user = session.user

    # ------------------------------------------------------------------
    # Profile loading
    # ------------------------------------------------------------------

    async def load_user_profile(self, auth_user: Optional[User], force: bool = False) -> None:
        """
        Load the user row, role assignments and one profile row per role.
        A missing user row is the normal state between signup and email verification.
        """
        if not auth_user:
            return

        if self._loading_profile_for == auth_user.id:
            logger.debug(f"Already loading profile for {auth_user.id}, skipping")
            return

        if not force and self._has_profile_for(auth_user.id):
            logger.debug(f"Profile already loaded for {auth_user.id}")
            return

        async with self._profile_lock:
            # Re-check: another load for this user may have finished while we waited
            if not force and self._has_profile_for(auth_user.id):
                return

            self._loading_profile_for = auth_user.id
            try:
                await self._fetch_profile(auth_user)
            except REMOTE_ERRORS as e:
                logger.error(f"❌ Profile loading error: {error_message(e)}")
                self.user_profile = None
                self.user_roles = []
            except Exception as e:
                logger.error(f"❌ Profile loading error: {e}")
                self.user_profile = None
                self.user_roles = []
            finally:
                self._loading_profile_for = None

    async def _fetch_profile(self, auth_user: User) -> None:
        try:
            result = await (
                self.client.table(get_table_name("users"))
                .select("*")
                .eq("auth_user_id", auth_user.id)
                .single()
                .execute()
            )
            user_data = result.data
        except REMOTE_ERRORS as e:
            if is_no_rows(e):
                logger.info("📝 User verified but database setup not complete - normal during signup flow")
            else:
                logger.error(f"❌ Unexpected error loading user data: {error_message(e)}")
            self.user_profile = None
            self.user_roles = []
            return

        if not user_data:
            self.user_profile = None
            self.user_roles = []
            return

        # Basic profile is visible before roles arrive
        self.user_profile = dict(user_data)

        roles_result = await (
            self.client.table(get_table_name("user_role_assignments"))
            .select("role")
            .eq("user_id", user_data["id"])
            .execute()
        )
        roles = [row["role"] for row in roles_result.data or []]
        self.user_roles = roles

        profile = dict(user_data)
        for role, (table, key) in ROLE_PROFILE_TABLES.items():
            if role not in roles:
                continue
            try:
                detail = await (
                    self.client.table(get_table_name(table))
                    .select("*")
                    .eq("user_id", user_data["id"])
                    .single()
                    .execute()
                )
            except REMOTE_ERRORS as e:
                if not is_no_rows(e):
                    raise
                logger.debug(f"No {table} row yet for user {user_data['id']}")
                continue
            if detail.data:
                profile[key] = detail.data

        self.user_profile = profile
        logger.info(f"✅ Profile loaded for {auth_user.id}: roles={roles}")

    async def refresh_profile(self) -> None:
        if self.user:
            await self.load_user_profile(self.user, force=True)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def has_role(self, role: str) -> bool:
        return role in self.user_roles

    def is_customer(self) -> bool:
        return self.has_role(CUSTOMER)

    def is_stylist(self) -> bool:
        return self.has_role(STYLIST)

    def is_tenant_admin(self) -> bool:
        return self.has_role(TENANT_ADMIN)

    def is_partner_admin(self) -> bool:
        return self.has_role(PARTNER_ADMIN)

    def is_super_admin(self) -> bool:
        return self.has_role(SUPER_ADMIN)

    def is_email_verified(self) -> bool:
        return is_email_verified(self.user)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def sign_out(self) -> str:
        """Sign out remotely if possible, always clear local state. Returns the page to reset to."""
        self.loading = True
        signed_out = False

        try:
            await asyncio.wait_for(self.client.auth.sign_out(), timeout=self.sign_out_timeout)
            signed_out = True
        except asyncio.TimeoutError:
            logger.error(f"❌ Sign out timed out after {self.sign_out_timeout}s")
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Supabase sign out error: {error_message(e)}")
        except Exception as e:
            logger.error(f"❌ Sign out failed: {e}")

        self.session = None
        self.user = None
        self.user_profile = None
        self.user_roles = []

        try:
            if self.token_storage is not None:
                self.token_storage.clear_namespace()
            if not signed_out:
                # Nothing is stored now, so this only drops the client's session and auth header
                await self.client.auth.sign_out()
        except Exception as e:
            logger.error(f"❌ Storage clear error: {e}")

        self.loading = False
        return "/"

    def snapshot(self) -> dict:
        return {
            "initialized": self.initialized,
            "loading": self.loading,
            "user": user_to_dict(self.user) if self.user else None,
            "user_profile": self.user_profile,
            "user_roles": list(self.user_roles),
            "email_verified": self.is_email_verified(),
            "is_customer": self.is_customer(),
            "is_stylist": self.is_stylist(),
            "is_tenant_admin": self.is_tenant_admin(),
            "is_partner_admin": self.is_partner_admin(),
            "is_super_admin": self.is_super_admin(),
        }


class AuthStoreRegistry:
    """
    Owns one platform client + AuthStore pair per browser session id.

    Stores idle longer than `idle_timeout` are dropped, and past `max_stores` the least
    recently used one goes, anonymous browsers first. A signed-in browser keeps its
    persisted session, so its next request restores the store.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        http_client: httpx.AsyncClient,
        storage_factory: Optional[Callable[[str], TokenStorage]] = None,
        store_options: Optional[dict] = None,
        max_stores: int = AUTH_STORE_MAX,
        idle_timeout: float = AUTH_STORE_IDLE_SECONDS,
    ):
        self.url = url
        self.anon_key = anon_key
        self.http_client = http_client
        self.storage_factory = storage_factory or create_token_storage
        self.store_options = store_options or {}
        self.max_stores = max_stores
        self.idle_timeout = idle_timeout
        self._stores: OrderedDict[str, AuthStore] = OrderedDict()
        self._pending: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._stores)

    def get(self, session_id: str) -> Optional[AuthStore]:
        return self._stores.get(session_id)

    async def get_or_create(self, session_id: str) -> AuthStore:
        store = self._stores.get(session_id)
        if store is None:
            # Concurrent first requests of one browser share a single client
            task = self._pending.get(session_id)
            if task is None:
                task = asyncio.ensure_future(self._create(session_id))
                self._pending[session_id] = task
                task.add_done_callback(lambda _: self._pending.pop(session_id, None))
            store = await asyncio.shield(task)

        store.last_seen = time.monotonic()
        if session_id in self._stores:
            self._stores.move_to_end(session_id)
        self.evict(keep=session_id)
        return store

    async def _create(self, session_id: str) -> AuthStore:
        storage = self.storage_factory(session_id)
        client = await create_supabase_client(self.url, self.anon_key, storage, self.http_client)
        store = AuthStore(client, storage, **self.store_options)
        store.start()
        self._stores[session_id] = store
        logger.debug(f"🆕 Auth store created for browser session {session_id[:8]}")
        return store

    def evict(self, keep: Optional[str] = None) -> None:
        """Drop idle stores, then the least recently used ones above the limit"""
        now = time.monotonic()
        for session_id, store in list(self._stores.items()):
            if session_id != keep and now - store.last_seen > self.idle_timeout:
                logger.debug(f"Evicting idle auth store {session_id[:8]}")
                self.discard(session_id)

        while len(self._stores) > self.max_stores:
            candidates = [session_id for session_id in self._stores if session_id != keep]
            if not candidates:
                break
            anonymous = [session_id for session_id in candidates if self._stores[session_id].user is None]
            victim = (anonymous or candidates)[0]
            logger.debug(f"Evicting auth store {victim[:8]}, {len(self._stores)} held")
            self.discard(victim)

    def discard(self, session_id: str) -> None:
        store = self._stores.pop(session_id, None)
        if not store:
            return
        if store.user is None and store.token_storage is not None:
            # Anonymous browsers have nothing to restore
            store.token_storage.clear_namespace()
        store.close()

    def discard_if_anonymous(self, session_id: str) -> None:
        store = self._stores.get(session_id)
        if store is not None and store.user is None:
            self.discard(session_id)

    async def close(self) -> None:
        for task in list(self._pending.values()):
            task.cancel()
        for session_id in list(self._stores):
            self.discard(session_id)
