"""Service option service - Business logic for the options of a service"""

import logging

from fastapi import HTTPException
from supabase import AsyncClient

from ...shared.errors import form_error, http_error_from_remote, not_found
from ...supabase_client import REMOTE_ERRORS
from ..services.forms import FormValidationError, ServiceOptionForm
from ..services.service import prepare_create_payload, prepare_update_payload, with_display
from .repository import ServiceOptionRepository
from .schemas import ServiceOptionCreate, ServiceOptionUpdate

logger = logging.getLogger(__name__)


class ServiceOptionService:
    """Service layer for service options"""

    def __init__(self, client: AsyncClient):
        self.client = client
        self.repo = ServiceOptionRepository()

    async def get_options(self, service_id: str) -> list[dict]:
        """Options ordered by display_order, then name"""
        try:
            rows = await self.repo.get_options(self.client, service_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service options", "fetching service options")
        return [with_display(row) for row in rows]

    async def get_option(self, option_id: str) -> dict:
        try:
            row = await self.repo.get_option_by_id(self.client, option_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "fetching service option")
        return with_display(row)

    async def create_option(self, service_id: str, data: ServiceOptionCreate) -> dict:
        values = data.model_dump()
        try:
            submitted = ServiceOptionForm.from_submission(values).submit()
            payload = prepare_create_payload(submitted)
        except FormValidationError as e:
            raise form_error(e.errors)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        payload["service_id"] = service_id
        if values.get("display_order") is None:
            payload["display_order"] = 0

        logger.info(f"📥 Creating option for service_id: {service_id}")
        try:
            row = await self.repo.create_option(self.client, payload)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "creating service option")
        return with_display(row)

    async def update_option(self, option_id: str, data: ServiceOptionUpdate) -> dict:
        existing = await self.get_option(option_id)
        values = data.model_dump(exclude_unset=True)
        try:
            ServiceOptionForm.from_submission(values, existing=existing).submit()
        except FormValidationError as e:
            raise form_error(e.errors)

        try:
            row = await self.repo.update_option(self.client, option_id, prepare_update_payload(values))
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "updating service option")
        if row is None:
            raise not_found("Service option")
        return with_display(row)

    async def deactivate_option(self, option_id: str) -> dict:
        try:
            row = await self.repo.set_active(self.client, option_id, False)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "deactivating service option")
        if row is None:
            raise not_found("Service option")
        return with_display(row)

    async def activate_option(self, option_id: str) -> dict:
        try:
            row = await self.repo.set_active(self.client, option_id, True)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "activating service option")
        if row is None:
            raise not_found("Service option")
        return with_display(row)

    async def delete_option(self, option_id: str, soft_delete: bool = False) -> dict:
        if soft_delete:
            await self.deactivate_option(option_id)
            return {"message": "Service option deactivated"}

        try:
            await self.repo.delete_option(self.client, option_id)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service option", "deleting service option")
        return {"message": "Service option deleted"}

    async def reorder_options(self, service_id: str, option_ids: list[str]) -> list[dict]:
        """Set display_order from the position of each id; returns the reordered options"""
        current = {option["id"] for option in await self.get_options(service_id)}
        unknown = [option_id for option_id in option_ids if option_id not in current]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Options do not belong to this service: {unknown}")

        try:
            await self.repo.reorder_options(self.client, option_ids)
        except REMOTE_ERRORS as e:
            raise http_error_from_remote(e, "Service options", "reordering service options")
        return await self.get_options(service_id)
