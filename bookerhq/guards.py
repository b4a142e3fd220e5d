"""
Route guards: FastAPI dependencies that resolve the browser's AuthStore and
enforce sign-in, email verification and roles.
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, HTTPException, Request
from supabase import AsyncClient

from .auth_callback import AuthCallbackHandler
from .auth_context import AuthStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
VERIFY_EMAIL_PATH = "/auth/verify-email"
DASHBOARD_PATH = "/dashboard"


def get_session_id(request: Request) -> str:
    return request.state.session_id


async def get_auth_store(request: Request) -> AuthStore:
    """The browser's auth store, once bootstrap and pending profile loads are done and its token is fresh"""
    registry = request.app.state.auth_registry
    store = await registry.get_or_create(get_session_id(request))
    await store.wait_initialized()
    await store.ensure_fresh_session()
    await store.wait_idle()
    return store


async def get_supabase_client(store: AuthStore = Depends(get_auth_store)) -> AsyncClient:
    return store.client


def get_callback_handler(store: AuthStore = Depends(get_auth_store)) -> AuthCallbackHandler:
    if store.callback_handler is None:
        store.callback_handler = AuthCallbackHandler(store.client)
    return store.callback_handler


def _redirect_error(status_code: int, message: str, redirect_to: str, **extra) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"message": message, "redirect_to": redirect_to, **extra},
    )


async def require_auth(request: Request, store: AuthStore = Depends(get_auth_store)) -> AuthStore:
    if not store.user:
        logger.info(f"🔒 Unauthenticated request to {request.url.path}")
        raise _redirect_error(
            401,
            "Authentication required",
            f"{LOGIN_PATH}?next={quote(request.url.path)}",
        )
    return store


async def require_verified(store: AuthStore = Depends(require_auth)) -> AuthStore:
    if not store.is_email_verified():
        raise _redirect_error(
            403,
            "Please verify your email address",
            VERIFY_EMAIL_PATH,
            email=store.user.email,
        )
    return store


def require_roles(*roles: str):
    """Dependency factory: signed in, verified and holding at least one of the roles"""

    async def dependency(store: AuthStore = Depends(require_verified)) -> AuthStore:
        if not any(store.has_role(role) for role in roles):
            logger.warning(f"⚠️ Access denied for roles {store.user_roles}, need one of {list(roles)}")
            raise HTTPException(status_code=403, detail="Access denied")
        return store

    return dependency


def redirect_authenticated(store: AuthStore, next_path: Optional[str] = None) -> Optional[str]:
    """Where a signed-in user visiting login/signup should go instead, or None"""
    if store.user:
        return next_path or DASHBOARD_PATH
    return None
