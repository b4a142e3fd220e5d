"""
Supabase platform client, one per browser session.

Wraps supabase-py's async client: the auth session is persisted in the browser's
TokenStorage, and every client shares the app's httpx connection pool.
"""

import logging
from typing import Optional

import httpx
from supabase import AsyncClient, AsyncClientOptions, AuthApiError, AuthError, PostgrestAPIError, acreate_client
from supabase_auth import AsyncSupportedStorage
from supabase_auth.types import User

from .config import HTTP_TIMEOUT_SECONDS
from .session_store import TokenStorage

logger = logging.getLogger(__name__)

# PostgREST error codes the app reacts to
NO_ROWS_CODE = "PGRST116"
UNIQUE_VIOLATION_CODE = "23505"
ACCESS_DENIED_CODES = ("42501", "PGRST301", "PGRST302")

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

# Anything a platform call can raise
REMOTE_ERRORS = (PostgrestAPIError, AuthError, httpx.HTTPError)


class SessionStorage(AsyncSupportedStorage):
    """Auth session persistence backed by a browser's TokenStorage"""

    def __init__(self, storage: TokenStorage):
        self.storage = storage

    async def get_item(self, key: str) -> Optional[str]:
        return self.storage.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.storage.set(key, value)

    async def remove_item(self, key: str) -> None:
        self.storage.remove(key)


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True)


async def create_supabase_client(
    url: str,
    anon_key: str,
    storage: TokenStorage,
    http_client: httpx.AsyncClient,
) -> AsyncClient:
    """
    Build a client whose auth session lives in `storage`.

    Tokens are refreshed on demand (see AuthStore.ensure_fresh_session) rather than by
    a background timer, and email links use the implicit flow so they carry the tokens.
    """
    options = AsyncClientOptions(
        storage=SessionStorage(storage),
        httpx_client=http_client,
        auto_refresh_token=False,
        persist_session=True,
        flow_type="implicit",
    )
    return await acreate_client(url, anon_key, options=options)


def error_message(e: Exception) -> str:
    return getattr(e, "message", None) or str(e)


def is_no_rows(e: Exception) -> bool:
    return isinstance(e, PostgrestAPIError) and e.code == NO_ROWS_CODE


def is_unique_violation(e: Exception) -> bool:
    return isinstance(e, PostgrestAPIError) and e.code == UNIQUE_VIOLATION_CODE


def is_access_denied(e: Exception) -> bool:
    if isinstance(e, PostgrestAPIError):
        return e.code in ACCESS_DENIED_CODES
    return isinstance(e, AuthApiError) and e.status in (401, 403)


def is_bad_request(e: Exception) -> bool:
    if isinstance(e, AuthApiError):
        return e.status == 400
    # Postgres data exceptions (22xxx) and integrity violations (23xxx)
    return isinstance(e, PostgrestAPIError) and str(e.code or "").startswith(("22", "23"))


def is_email_verified(user: Optional[User]) -> bool:
    return bool(user and user.email_confirmed_at)


def looks_like_jwt(token: Optional[str]) -> bool:
    return bool(token) and token.count(".") == 2 and all(token.split("."))


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "email_confirmed_at": user.email_confirmed_at.isoformat() if user.email_confirmed_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "user_metadata": user.user_metadata,
    }
