"""
Transactional email through Loops.
Optional: every send is skipped when Loops is not configured, and failures never
reach the caller.
"""

import logging
from typing import Optional

import httpx

from .config import APP_NAME, HTTP_TIMEOUT_SECONDS, LOOPS_API_KEY, LOOPS_BASE_URL, LOOPS_VERIFICATION_ID

logger = logging.getLogger(__name__)


def loops_configured() -> bool:
    return bool(LOOPS_API_KEY and LOOPS_VERIFICATION_ID)


async def send_welcome_email(
    email: str,
    name: str,
    role: str,
    http_client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Send the welcome email sent alongside signup. Returns True when Loops accepted it."""
    if not loops_configured():
        logger.info("Loops not configured, skipping welcome email")
        return False

    payload = {
        "transactionalId": LOOPS_VERIFICATION_ID,
        "email": email,
        "dataVariables": {"name": name, "role": role, "appName": APP_NAME},
    }
    headers = {"Authorization": f"Bearer {LOOPS_API_KEY}", "Content-Type": "application/json"}

    client = http_client or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    try:
        response = await client.post(f"{LOOPS_BASE_URL}/transactional", json=payload, headers=headers)
        if response.status_code >= 400:
            logger.error(f"❌ Failed to send welcome email via Loops: {response.status_code}")
            return False
        logger.info(f"✅ Welcome email sent to {email}")
        return True
    except httpx.HTTPError as e:
        logger.error(f"❌ Error sending welcome email: {e}")
        return False
    finally:
        if http_client is None:
            await client.aclose()
