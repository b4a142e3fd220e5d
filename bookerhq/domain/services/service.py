"""Service service - Business logic for stylist services"""

import logging
from typing import Optional

from fastapi import HTTPException
from supabase import AsyncClient

from ...auth_context import AuthStore
from ...shared.errors import form_error, http_error_from_remote, not_found
from ...supabase_client import REMOTE_ERRORS
from .formatting import format_duration, format_price
from .forms import FormValidationError, ServiceForm
from .repository import ServiceRepository, utc_now_iso
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)


def prepare_create_payload(data: dict) -> dict:
    """
    Check required pricing fields and shape a new service or option row.

    Fixed duration/price are required unless the matching "varies" flag is set;
    a varying value needs both bounds and its fixed value defaults to the minimum.
    Range fields of a non-varying value are stored as null.

    Raises:
        ValueError: If a required field is missing
    """
    payload = dict(data)
    time_varies = bool(payload.get("time_varies"))
    price_varies = bool(payload.get("price_varies"))

    if not payload.get("name"):
        raise ValueError("name is required")
    if not time_varies and not payload.get("duration_minutes"):
        raise ValueError("duration_minutes is required")
    if not price_varies and payload.get("price") is None:
        raise ValueError("price is required")

    if time_varies:
        if not payload.get("min_duration") or not payload.get("max_duration"):
            raise ValueError("Min and max duration required when time varies")
        if not payload.get("duration_minutes"):
            payload["duration_minutes"] = payload["min_duration"]
    else:
        payload["min_duration"] = None
        payload["max_duration"] = None

    if price_varies:
        if payload.get("min_price") is None or payload.get("max_price") is None:
            raise ValueError("Min and max price required when price varies")
        if not payload.get("price"):
            payload["price"] = payload["min_price"]
    else:
        payload["min_price"] = None
        payload["max_price"] = None

    if payload.get("is_active") is None:
        payload["is_active"] = True
    return payload


def prepare_update_payload(data: dict) -> dict:
    """Null the range of a value switched back to fixed and stamp updated_at"""
    payload = dict(data)
    if payload.get("time_varies") is False:
        payload["min_duration"] = None
        payload["max_duration"] = None
    if payload.get("price_varies") is False:
        payload["min_price"] = None
        payload["max_price"] = None
    payload["updated_at"] = utc_now_iso()
    return payload


def with_display(row: dict) -> dict:
    return {**row, "price_display": format_price(row), "duration_display": format_duration(row)}


def get_stylist_id(store: AuthStore) -> Optional[str]:
    profile = store.user_profile or {}
    stylist = profile.get("stylist") or {}
    return stylist.get("id")


class ServiceService:
    """Service layer for stylist services"""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.repo = ServiceRepository()

    @staticmethod
    def _filter_active(rows: list[dict], include_inactive: bool) -> list[dict]:
        if include_inactive:
            return rows
        return [row for row in rows if row.get("is_active")]

    async def list_public_services(self, include_inactive: bool = False) -> list[dict]:
        try:
            rows = await self.repo.get_public_services(self.client)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Services", "fetching services")
        return [with_display(row) for row in self._filter_active(rows, include_inactive)]

    async def list_stylist_services(self, stylist_id: str, include_inactive: bool = False) -> list[dict]:
        try:
            rows = await self.repo.get_services_by_stylist(self.client, stylist_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Services", "fetching stylist services")
        return [with_display(row) for row in self._filter_active(rows, include_inactive)]

    async def list_tenant_services(self, tenant_id: str, include_inactive: bool = False) -> list[dict]:
        try:
            rows = await self.repo.get_services_by_tenant(self.client, tenant_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Services", "fetching tenant services")
        return [with_display(row) for row in self._filter_active(rows, include_inactive)]

    async def list_user_services(self, include_inactive: bool = True) -> list[dict]:
        try:
            rows = await self.repo.get_user_services(self.client)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Services", "fetching user services")
        return [with_display(row) for row in self._filter_active(rows, include_inactive)]

    async def get_service(self, service_id: str) -> dict:
        try:
            row = await self.repo.get_service_by_id(self.client, service_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "fetching service")
        return with_display(row)

    async def create_service(self, data: ServiceCreate, store: AuthStore) -> dict:
        """Create a service owned by the signed-in stylist"""
        stylist_id = get_stylist_id(store)
        if not stylist_id:
            logger.warning("⚠️ Service create refused, user has no stylist profile")
            raise HTTPException(status_code=403, detail="User must have a stylist profile to create services")

        try:
            submitted = ServiceForm.from_submission(data.model_dump()).submit()
            payload = prepare_create_payload(submitted)
        except FormValidationError as e:
            raise form_error(e.errors)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        payload["stylist_id"] = stylist_id
        payload["tenant_id"] = None

        logger.info(f"📥 Creating service for stylist_id: {stylist_id}")
        try:
            row = await self.repo.create_service(self.client, payload)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "creating service")
        return with_display(row)

    async def update_service(self, service_id: str, data: ServiceUpdate) -> dict:
        """Apply the fields sent, validated together with the stored ones"""
        existing = await self.get_service(service_id)
        values = data.model_dump(exclude_unset=True)
        try:
            ServiceForm.from_submission(values, existing=existing).submit()
        except FormValidationError as e:
            raise form_error(e.errors)

        payload = prepare_update_payload(values)
        try:
            row = await self.repo.update_service(self.client, service_id, payload)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "updating service")
        if row is None:
            raise not_found("Service")
        return with_display(row)

    async def deactivate_service(self, service_id: str) -> dict:
        try:
            row = await self.repo.set_active(self.client, service_id, False)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "deactivating service")
        if row is None:
            raise not_found("Service")
        return with_display(row)

    async def activate_service(self, service_id: str) -> dict:
        try:
            row = await self.repo.set_active(self.client, service_id, True)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "activating service")
        if row is None:
            raise not_found("Service")
        return with_display(row)

    async def delete_service(self, service_id: str, soft_delete: bool = True) -> dict:
        """Soft delete deactivates; hard delete removes the row"""
        if soft_delete:
            await self.deactivate_service(service_id)
            return {"message": "Service deactivated"}

        try:
            await self.repo.delete_service(self.client, service_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service", "deleting service")
        return {"message": "Service deleted"}
