"""
Email-verification callback: exchange the emailed tokens for a session, then create the
user, role assignment and role profile rows that signup deferred.
"""

import asyncio
import hashlib
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Optional

from supabase import AsyncClient
from supabase_auth.errors import UserDoesntExist
from supabase_auth.types import User

from .auth_context import CUSTOMER, STYLIST, TENANT_ADMIN
from .config import CALLBACK_RESULTS_MAX, ENVIRONMENT, get_role_function_name, get_table_name
from .supabase_client import (
    REMOTE_ERRORS,
    error_message,
    is_email_verified,
    is_unique_violation,
    looks_like_jwt,
)

logger = logging.getLogger(__name__)

VERIFYING = "verifying"
SUCCESS = "success"
ERROR = "error"

SUCCESS_REDIRECT_DELAY = 2
ERROR_REDIRECT_DELAY = 3

SETUP_FAILED_MESSAGE = "Email verified but account setup failed. Please contact support or try signing in."


class ProvisioningError(Exception):
    pass


@dataclass
class CallbackParams:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    type: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    def fingerprint(self) -> str:
        """Identifies one verification click"""
        raw = "|".join(
            [self.type or "", self.access_token or "", self.refresh_token or "", self.error or ""]
        )
        return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class CallbackResult:
    status: str = VERIFYING
    message: str = "Verifying your email..."
    redirect_to: Optional[str] = None
    redirect_delay: Optional[int] = None
    redirect_state: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProvisioningReport:
    user_id: Optional[str] = None
    created_user: bool = False
    assigned_role: bool = False
    created_profile: bool = False

    @property
    def created_anything(self) -> bool:
        return self.created_user or self.assigned_role or self.created_profile


def _success(message: str, redirect_to: str) -> CallbackResult:
    return CallbackResult(SUCCESS, message, redirect_to, SUCCESS_REDIRECT_DELAY)


def _error(message: str, redirect_to: Optional[str] = None, state: Optional[dict] = None) -> CallbackResult:
    return CallbackResult(
        ERROR,
        message,
        redirect_to,
        ERROR_REDIRECT_DELAY if redirect_to else None,
        state or {},
    )


class AuthCallbackHandler:
    """Runs each verification click once, however many times the callback page is hit"""

    def __init__(self, client: AsyncClient, environment: str = ENVIRONMENT, max_results: int = CALLBACK_RESULTS_MAX):
        self.client = client
        self.environment = environment
        self.max_results = max_results
        self._locks: dict[str, asyncio.Lock] = {}
        self._completed: OrderedDict[str, CallbackResult] = OrderedDict()

    def _table(self, name: str) -> str:
        return get_table_name(name, self.environment)

    def _remember(self, key: str, result: CallbackResult) -> None:
        self._completed[key] = result
        self._completed.move_to_end(key)
        while len(self._completed) > self.max_results:
            self._completed.popitem(last=False)

    async def handle(self, params: CallbackParams) -> CallbackResult:
        key = params.fingerprint()
        if key in self._completed:
            logger.info("⚠️ Callback already completed, returning stored result")
            return self._completed[key]

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key in self._completed:
                return self._completed[key]
            try:
                result = await self._process(params)
            except Exception as e:
                logger.error(f"❌ Callback error: {e}")
                result = _error("An unexpected error occurred. Please try again.", "/login")
            # Completed on error too, so a re-render never retries
            self._remember(key, result)
        self._locks.pop(key, None)
        return result

    async def _process(self, params: CallbackParams) -> CallbackResult:
        logger.info("🔄 Processing auth callback...")

        if params.error:
            logger.error(f"❌ Auth provider error: {params.error} {params.error_description}")
            return _error(params.error_description or "An error occurred during authentication")

        if params.type == "signup":
            return await self._handle_signup(params)
        if params.type == "recovery":
            return await self._handle_recovery(params)
        return await self._handle_existing_session()

    async def _set_session(self, params: CallbackParams) -> Optional[User]:
        """Exchange the link's tokens for a session; None when the platform refuses them"""
        if not looks_like_jwt(params.access_token):
            logger.error("❌ Session error: access token is not a JWT")
            return None
        try:
            response = await self.client.auth.set_session(params.access_token, params.refresh_token)
        except (UserDoesntExist, ValueError, *REMOTE_ERRORS) as e:
            logger.error(f"❌ Session error: {error_message(e)}")
            return None
        return response.user

    async def _handle_signup(self, params: CallbackParams) -> CallbackResult:
        if not (params.access_token and params.refresh_token):
            return _error("Invalid verification link. Please try again.")

        user = await self._set_session(params)
        if user is None:
            return _error("Failed to verify email. Please try again.")

        if not is_email_verified(user):
            return _error("Email verification failed. Please try again.")

        try:
            report = await self.provision_user(user)
        except (ProvisioningError, *REMOTE_ERRORS) as e:
            logger.error(f"❌ Database setup failed: {error_message(e)}")
            return _error(SETUP_FAILED_MESSAGE, "/login", {"verified": True, "setup_failed": True})

        if report.created_anything:
            return _success("Account created successfully! Redirecting to dashboard...", "/dashboard")
        return _success("Welcome back! Redirecting to dashboard...", "/dashboard")

    async def _handle_recovery(self, params: CallbackParams) -> CallbackResult:
        if not (params.access_token and params.refresh_token):
            return _error("Invalid reset link. Please try again.")

        if await self._set_session(params) is None:
            return _error("Invalid reset link. Please try again.")

        return _success("Password reset link verified! Redirecting...", "/auth/reset-password")

    async def _handle_existing_session(self) -> CallbackResult:
        try:
            session = await self.client.auth.get_session()
        except REMOTE_ERRORS as e:
            logger.error(f"❌ Session error: {error_message(e)}")
            return _error("Authentication failed. Please try again.")

        if session and session.user:
            return _success("Authentication successful! Redirecting...", "/dashboard")
        return _error("No valid session found. Please sign in again.", "/login")

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def provision_user(self, user: User) -> ProvisioningReport:
        """
        Create the rows deferred at signup, in order: user -> role assignment -> role profile.
        Each step checks first and skips when the row already exists, so a second run
        (double navigation, another tab) inserts nothing.
        """
        metadata = user.user_metadata or {}
        role = metadata.get("role")
        if not role:
            raise ProvisioningError("User role not found in metadata")

        report = ProvisioningReport()
        report.user_id, report.created_user = await self._ensure_user_row(user)
        if not report.user_id:
            raise ProvisioningError("Could not get user ID")
        logger.info("✅ User record created/found")

        report.assigned_role = await self._ensure_role_assignment(report.user_id, role)
        logger.info("✅ Role assigned")

        report.created_profile = await self._ensure_role_profile(report.user_id, role, metadata)
        logger.info("✅ Profile created/found")
        return report

    async def _fetch_user_row(self, auth_user_id: str) -> Optional[dict]:
        result = await (
            self.client.table(self._table("users"))
            .select("*")
            .eq("auth_user_id", auth_user_id)
            .maybe_single()
            .execute()
        )
        return result.data if result else None

    async def _ensure_user_row(self, user: User) -> tuple[Optional[str], bool]:
        existing = await self._fetch_user_row(user.id)
        if existing:
            logger.info("User record already exists, skipping creation")
            return existing["id"], False

        try:
            result = await (
                self.client.table(self._table("users"))
                .insert({"auth_user_id": user.id, "email": user.email})
                .execute()
            )
            return result.data[0]["id"], True
        except REMOTE_ERRORS as e:
            if not is_unique_violation(e):
                raise
            # Created by a concurrent attempt
            logger.info("🔄 User record already exists, fetching...")
            existing = await self._fetch_user_row(user.id)
            return (existing["id"] if existing else None), False

    async def _ensure_role_assignment(self, user_id: str, role: str) -> bool:
        existing = await (
            self.client.table(self._table("user_role_assignments"))
            .select("role")
            .eq("user_id", user_id)
            .eq("role", role)
            .execute()
        )
        if existing.data:
            logger.info(f"Role {role} already assigned, skipping")
            return False

        try:
            await self.client.rpc(
                get_role_function_name(self.environment),
                {"user_uuid": user_id, "user_role": role},
            ).execute()
        except REMOTE_ERRORS as e:
            if "already assigned" in error_message(e):
                return False
            raise
        return True

    async def _ensure_role_profile(self, user_id: str, role: str, metadata: dict) -> bool:
        payload = self._role_profile_payload(user_id, role, metadata)
        if payload is None:
            logger.info(f"No profile table for role {role}")
            return False
        table, row = payload

        existing = await (
            self.client.table(self._table(table)).select("id").eq("user_id", user_id).execute()
        )
        if existing.data:
            logger.info(f"{table} row already exists, skipping")
            return False

        try:
            await self.client.table(self._table(table)).insert(row).execute()
        except REMOTE_ERRORS as e:
            if is_unique_violation(e):
                return False
            raise
        return True

    @staticmethod
    def _role_profile_payload(user_id: str, role: str, metadata: dict) -> Optional[tuple[str, dict]]:
        if role == CUSTOMER:
            return "customer_profiles", {
                "user_id": user_id,
                "first_name": metadata.get("first_name") or "",
                "last_name": metadata.get("last_name") or "",
                "phone": metadata.get("phone") or None,
            }
        if role == STYLIST:
            return "stylist_profiles", {
                "user_id": user_id,
                "first_name": metadata.get("first_name") or "",
                "last_name": metadata.get("last_name") or "",
                "phone": metadata.get("phone") or None,
                "bio": metadata.get("bio") or None,
            }
        if role == TENANT_ADMIN:
            return "tenant_profiles", {
                "user_id": user_id,
                "business_name": metadata.get("business_name") or "",
                "bio": metadata.get("bio") or None,
                "address": metadata.get("address") or None,
                "phone": metadata.get("phone") or None,
            }
        return None
