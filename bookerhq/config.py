import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

APP_NAME = "BookerHQ"
APP_DESCRIPTION = "Book, Buy, and Sell Stylist Appointments"

PRODUCTION = "production"
TESTING = "testing"
DEVELOPMENT = "development"

# Supabase Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
AUTH_STORAGE_KEY = "supabase.auth.token"


def get_app_url() -> str:
    """Public base URL; APP_URL=DEPLOY_URL defers to the deploy platform's URL"""
    app_url = os.getenv("APP_URL")
    if app_url == "DEPLOY_URL":
        return os.getenv("DEPLOY_URL") or "http://localhost:3000"
    return app_url or "http://localhost:3000"


def detect_environment(environment: Optional[str] = None, app_url: Optional[str] = None) -> str:
    """
    Resolve the runtime environment.
    An explicit production/testing setting wins, then the deploy URL is inspected,
    anything else is development.
    """
    if environment == PRODUCTION:
        return PRODUCTION
    if environment == TESTING:
        return TESTING

    if app_url:
        if "testing--" in app_url or "deploy-preview" in app_url or "branch-deploy" in app_url:
            logger.info(f"🔍 Detected testing environment from URL: {app_url}")
            return TESTING

        if "bookerhq.netlify.app" in app_url or "://bookerhq." in app_url:
            logger.info(f"🔍 Detected production environment from URL: {app_url}")
            return PRODUCTION

    logger.info("🔍 Defaulting to development environment")
    return DEVELOPMENT


APP_URL = get_app_url()
ENVIRONMENT = detect_environment(os.getenv("ENVIRONMENT"), APP_URL)
IS_PRODUCTION = ENVIRONMENT == PRODUCTION

# Email verification links land here
AUTH_REDIRECT_URL = f"{APP_URL}/auth/callback"

# Loops transactional email (optional)
LOOPS_API_KEY = os.getenv("LOOPS_API_KEY")
LOOPS_BASE_URL = os.getenv("LOOPS_BASE_URL", "https://app.loops.so/api/v1")
LOOPS_VERIFICATION_ID = os.getenv("LOOPS_VERIFICATION_ID")

# Auth timing (seconds)
SESSION_TIMEOUT_SECONDS = float(os.getenv("SESSION_TIMEOUT_SECONDS", "5"))
SIGN_OUT_TIMEOUT_SECONDS = float(os.getenv("SIGN_OUT_TIMEOUT_SECONDS", "5"))
AUTH_INIT_FAILSAFE_SECONDS = float(os.getenv("AUTH_INIT_FAILSAFE_SECONDS", "10"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

# Browser session cookie
SESSION_COOKIE_NAME = "bookerhq_session"
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "true" if IS_PRODUCTION else "false").lower() == "true"
SESSION_TOKEN_TTL_SECONDS = int(os.getenv("SESSION_TOKEN_TTL_SECONDS", str(60 * 60 * 24 * 30)))

# Per-browser auth stores held in memory
AUTH_STORE_MAX = int(os.getenv("AUTH_STORE_MAX", "1000"))
AUTH_STORE_IDLE_SECONDS = float(os.getenv("AUTH_STORE_IDLE_SECONDS", str(60 * 30)))
CALLBACK_RESULTS_MAX = int(os.getenv("CALLBACK_RESULTS_MAX", "256"))


def get_table_prefix(environment: str = ENVIRONMENT) -> str:
    """Non-production environments read and write the testing_ tables"""
    return "" if environment == PRODUCTION else "testing_"


def get_table_name(table_name: str, environment: str = ENVIRONMENT) -> str:
    return f"{get_table_prefix(environment)}{table_name}"


def get_view_name(view_name: str, environment: str = ENVIRONMENT) -> str:
    return f"{get_table_prefix(environment)}{view_name}"


def get_role_function_name(environment: str = ENVIRONMENT) -> str:
    """Name of the privileged RPC that assigns a role to a user row"""
    return "assign_testing_user_role" if get_table_prefix(environment) else "assign_user_role"


def require_supabase_config() -> None:
    """Fail fast when the backend connection settings are missing"""
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Missing Supabase configuration. Please check your environment variables.")
