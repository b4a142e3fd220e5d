"""Service repository - table and view queries for services"""

from datetime import datetime, timezone
from typing import Optional

from supabase import AsyncClient

from ...config import get_table_name, get_view_name

PUBLIC_SERVICES_VIEW = "vw_public_services_with_options"
USER_SERVICES_VIEW = "vw_user_services_with_options"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ServiceRepository:
    """Repository for service queries"""

    @staticmethod
    async def get_public_services(client: AsyncClient) -> list[dict]:
        """Public services with option summaries, newest first"""
        result = await (
            client.table(get_view_name(PUBLIC_SERVICES_VIEW))
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    @staticmethod
    async def get_services_by_stylist(client: AsyncClient, stylist_id: str) -> list[dict]:
        result = await (
            client.table(get_table_name("services"))
            .select("*")
            .eq("stylist_id", stylist_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    @staticmethod
    async def get_services_by_tenant(client: AsyncClient, tenant_id: str) -> list[dict]:
        result = await (
            client.table(get_table_name("services"))
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    @staticmethod
    async def get_user_services(client: AsyncClient) -> list[dict]:
        """Services of the signed-in user; row level security scopes the view"""
        result = await (
            client.table(get_view_name(USER_SERVICES_VIEW))
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    @staticmethod
    async def get_service_by_id(client: AsyncClient, service_id: str) -> dict:
        result = await (
            client.table(get_table_name("services")).select("*").eq("id", service_id).single().execute()
        )
        return result.data

    @staticmethod
    async def create_service(client: AsyncClient, service: dict) -> dict:
        result = await client.table(get_table_name("services")).insert(service).execute()
        return result.data[0]

    @staticmethod
    async def update_service(client: AsyncClient, service_id: str, updates: dict) -> Optional[dict]:
        result = await (
            client.table(get_table_name("services"))
            .update(updates)
            .eq("id", service_id)
            .execute()
        )
        return result.data[0] if result.data else None

    @staticmethod
    async def set_active(client: AsyncClient, service_id: str, is_active: bool) -> Optional[dict]:
        return await ServiceRepository.update_service(
            client, service_id, {"is_active": is_active, "updated_at": utc_now_iso()}
        )

    @staticmethod
    async def delete_service(client: AsyncClient, service_id: str) -> None:
        await client.table(get_table_name("services")).delete().eq("id", service_id).execute()
