"""Translation of remote platform errors into HTTP errors"""

import logging

import httpx
from fastapi import HTTPException

from ..supabase_client import error_message, is_access_denied, is_bad_request, is_no_rows, is_unique_violation

logger = logging.getLogger(__name__)


def http_error_from_remote(e: Exception, resource: str, action: str) -> HTTPException:
    """
    Map a failed remote call to the HTTPException the router should raise.

    Args:
        e: Error raised by the platform client or its HTTP transport
        resource: Human readable resource name, e.g. "Service"
        action: What was being attempted, used in logs and the 502 message
    """
    if is_no_rows(e):
        return HTTPException(status_code=404, detail=f"{resource} not found")

    logger.error(f"❌ Error {action}: {error_message(e)}")

    if is_unique_violation(e):
        return HTTPException(status_code=409, detail=f"{resource} already exists")
    if isinstance(e, httpx.TimeoutException):
        return HTTPException(status_code=504, detail=f"Timed out {action}")
    if is_access_denied(e):
        return HTTPException(status_code=403, detail="Access denied")
    if is_bad_request(e):
        return HTTPException(status_code=400, detail=error_message(e))
    return HTTPException(status_code=502, detail=f"Error {action}")


def not_found(resource: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{resource} not found")


def form_error(errors: dict[str, str]) -> HTTPException:
    return HTTPException(status_code=422, detail={"errors": errors})
