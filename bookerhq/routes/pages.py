"""Home and dashboard pages, served as JSON"""

import logging

from fastapi import APIRouter, Depends

from ..auth_context import AuthStore, get_role_display_name
from ..config import APP_DESCRIPTION, APP_NAME
from ..guards import get_auth_store, require_verified

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"])

NEXT_STEPS = {
    "customer": [
        {"text": "Browse available stylists", "href": "/browse"},
        {"text": "Book your first appointment", "href": "/book"},
        {"text": "Complete your profile", "href": "/profile"},
    ],
    "stylist": [
        {"text": "Set up your services", "href": "/services"},
        {"text": "Configure your availability", "href": "/availability"},
        {"text": "Complete your profile", "href": "/profile"},
    ],
    "tenant_admin": [
        {"text": "Set up your business profile", "href": "/profile"},
        {"text": "Add your stylists", "href": "/stylists"},
        {"text": "Configure store hours", "href": "/settings"},
    ],
}
DEFAULT_NEXT_STEPS = [{"text": "Complete your profile setup", "href": "/profile"}]


def get_welcome_message(store: AuthStore) -> str:
    profile = store.user_profile or {}
    if store.is_customer():
        name = (profile.get("customer") or {}).get("first_name")
    elif store.is_stylist():
        name = (profile.get("stylist") or {}).get("first_name")
    elif store.is_tenant_admin():
        name = (profile.get("tenant") or {}).get("business_name")
    else:
        return "Welcome back!"
    return f"Welcome back, {name}!" if name else "Welcome back!"


def get_next_steps(store: AuthStore) -> list[dict]:
    # First matching role wins, in the order customer, stylist, tenant admin
    for role, steps in NEXT_STEPS.items():
        if store.has_role(role):
            return steps
    return DEFAULT_NEXT_STEPS


@router.get("/")
async def home(store: AuthStore = Depends(get_auth_store)):
    return {
        "app_name": APP_NAME,
        "description": APP_DESCRIPTION,
        "signed_in": store.user is not None,
        "links": {"signup": "/signup", "login": "/login", "services": "/services"},
    }


@router.get("/dashboard")
async def dashboard(store: AuthStore = Depends(require_verified)):
    return {
        "welcome_message": get_welcome_message(store),
        "email": store.user.email,
        "roles": [
            {"role": role, "display_name": get_role_display_name(role)} for role in store.user_roles
        ],
        "next_steps": get_next_steps(store),
        "profile": store.user_profile,
    }
