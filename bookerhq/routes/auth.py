"""Auth routes: signup, login, email verification, callback and logout"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from pydantic import BaseModel, field_validator

from ..auth_callback import SUCCESS, AuthCallbackHandler, CallbackParams
from ..auth_context import AuthStore, get_role_display_name
from ..config import APP_NAME, AUTH_REDIRECT_URL
from ..email_service import send_welcome_email
from ..guards import (
    VERIFY_EMAIL_PATH,
    get_auth_store,
    get_callback_handler,
    get_session_id,
    redirect_authenticated,
)
from ..shared.validators import validate_email, validate_signup
from ..supabase_client import REMOTE_ERRORS, error_message, is_email_verified

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])

EMAIL_EXISTS_MESSAGE = "An account with this email already exists. Please sign in instead."


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    next: Optional[str] = None


class SignupRequest(BaseModel):
    role: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    business_name: Optional[str] = None
    bio: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return validate_email(v)


class EmailRequest(BaseModel):
    email: Optional[str] = None


def safe_next_path(next_path: Optional[str]) -> Optional[str]:
    """Only same-site paths are accepted as post-login targets"""
    if next_path and next_path.startswith("/") and not next_path.startswith("//"):
        return next_path
    return None


def is_already_registered(e: Exception) -> bool:
    message = error_message(e)
    return (
        "User already registered" in message
        or "already been registered" in message
        or getattr(e, "code", None) == "user_already_exists"
    )


# ============================================================================
# LOGIN / LOGOUT
# ============================================================================


@router.post("/login")
async def login(data: LoginRequest, store: AuthStore = Depends(get_auth_store)):
    """Sign in with email and password"""
    next_path = safe_next_path(data.next)
    redirect_to = redirect_authenticated(store, next_path)
    if redirect_to:
        return {"message": "Already signed in", "redirect_to": redirect_to}

    if not data.email or not data.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    try:
        response = await store.client.auth.sign_in_with_password(
            {"email": data.email.strip(), "password": data.password}
        )
    except REMOTE_ERRORS as e:
        message = error_message(e)
        logger.warning(f"⚠️ Login failed: {message}")
        if "Invalid login credentials" in message:
            raise HTTPException(status_code=401, detail="Invalid email or password")
        if "Email not confirmed" in message:
            raise HTTPException(
                status_code=403,
                detail="Please check your email and click the verification link before signing in.",
            )
        raise HTTPException(status_code=400, detail=message)

    user = response.user
    if not is_email_verified(user):
        # Unverified users do not keep a session
        await store.sign_out()
        raise HTTPException(
            status_code=403,
            detail="Please verify your email before signing in. Check your inbox for a verification link.",
        )

    await store.wait_idle()
    logger.info(f"✅ User signed in: {user.id}")
    return {
        "message": "Signed in successfully",
        "redirect_to": next_path or "/dashboard",
        "auth": store.snapshot(),
    }


@router.post("/logout")
async def logout(request: Request, store: AuthStore = Depends(get_auth_store)):
    """Sign out and drop this browser's auth state"""
    redirect_to = await store.sign_out()

    request.app.state.auth_registry.discard(get_session_id(request))
    return {"message": "Signed out", "redirect_to": redirect_to}


# ============================================================================
# SIGNUP
# ============================================================================


@router.post("/signup/check-email")
async def check_email(data: EmailRequest, store: AuthStore = Depends(get_auth_store)):
    """Whether an account already uses this email; lookup failures count as 'no'"""
    email = (data.email or "").strip().lower()
    if not email or "@" not in email or len(email) < 5:
        return {"exists": False}

    try:
        result = await store.client.rpc("check_email_exists", {"check_email": email}).execute()
    except REMOTE_ERRORS as e:
        logger.info(f"Email check error (ignored): {error_message(e)}")
        return {"exists": False}

    if result.data is True:
        return {"exists": True, "message": EMAIL_EXISTS_MESSAGE}
    return {"exists": False}


@router.post("/signup", status_code=201)
async def signup(
    data: SignupRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    store: AuthStore = Depends(get_auth_store),
):
    """
    Create the auth identity and send the verification email.
    Database rows are created later, when the verification link is opened.
    """
    redirect_to = redirect_authenticated(store)
    if redirect_to:
        return {"message": "Already signed in", "redirect_to": redirect_to}

    error = validate_signup(data.model_dump())
    if error:
        raise HTTPException(status_code=400, detail=error)

    try:
        exists = await store.client.rpc("check_email_exists", {"check_email": data.email}).execute()
        if exists.data is True:
            raise HTTPException(status_code=409, detail=EMAIL_EXISTS_MESSAGE)
    except REMOTE_ERRORS as e:
        logger.info(f"Email check error (ignored): {error_message(e)}")

    metadata = {
        "role": data.role,
        "first_name": data.first_name,
        "last_name": data.last_name,
        "business_name": data.business_name,
        "phone": data.phone,
        "bio": data.bio,
        "address": data.address,
        "city": data.city,
        "state": data.state,
        "country": data.country,
        "postal_code": data.postal_code,
    }

    logger.info("🔄 Starting signup process...")
    try:
        result = await store.client.auth.sign_up(
            {
                "email": data.email,
                "password": data.password,
                "options": {"data": metadata, "email_redirect_to": AUTH_REDIRECT_URL},
            }
        )
    except REMOTE_ERRORS as e:
        if is_already_registered(e):
            raise HTTPException(status_code=409, detail=EMAIL_EXISTS_MESSAGE)
        logger.error(f"❌ Sign up error: {error_message(e)}")
        raise HTTPException(status_code=400, detail=error_message(e) or "An error occurred during sign up")

    if not result.user:
        raise HTTPException(status_code=502, detail="No user data returned from signup")

    name = data.business_name if data.role == "tenant_admin" else data.first_name
    background_tasks.add_task(
        send_welcome_email, data.email, name or "", data.role, request.app.state.http_client
    )

    logger.info(f"✅ Signup successful for role {data.role}, verification email sent")
    return {
        "message": "Account created! Please check your email to verify your account.",
        "email": data.email,
        "role": data.role,
        "role_display_name": get_role_display_name(data.role),
        "redirect_to": VERIFY_EMAIL_PATH,
    }


# ============================================================================
# EMAIL VERIFICATION
# ============================================================================


@router.get("/auth/verify-email")
async def verify_email_page(
    email: Optional[str] = Query(None),
    store: AuthStore = Depends(get_auth_store),
):
    email = email or (store.user.email if store.user else None)
    return {
        "email": email,
        "app_name": APP_NAME,
        "message": "We've sent a verification link to your email address",
        "steps": [
            "Check your email inbox",
            f"Look for an email from {APP_NAME}",
            "Click the verification link in the email",
        ],
    }


@router.post("/auth/verify-email/resend")
async def resend_verification(data: EmailRequest, store: AuthStore = Depends(get_auth_store)):
    if not data.email:
        raise HTTPException(status_code=400, detail="Please enter your email address first")

    try:
        await store.client.auth.resend(
            {"type": "signup", "email": data.email.strip(), "options": {"email_redirect_to": AUTH_REDIRECT_URL}}
        )
    except REMOTE_ERRORS as e:
        logger.error(f"❌ Resend verification error: {error_message(e)}")
        raise HTTPException(status_code=400, detail=error_message(e))

    return {"message": "Verification email sent! Please check your inbox."}


@router.get("/auth/callback")
async def auth_callback(
    access_token: Optional[str] = Query(None),
    refresh_token: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    handler: AuthCallbackHandler = Depends(get_callback_handler),
    store: AuthStore = Depends(get_auth_store),
):
    """
    Landing point of emailed links. The fragment tokens are forwarded as query
    parameters; the result is terminal and carries where to go next.
    """
    params = CallbackParams(
        access_token=access_token,
        refresh_token=refresh_token,
        type=type,
        error=error,
        error_description=error_description,
    )
    result = await handler.handle(params)

    if result.status == SUCCESS:
        # Rows created during provisioning are newer than the profile loaded on sign-in
        await store.wait_idle()
        await store.refresh_profile()
    return result.to_dict()
