"""Service option repository - table queries for service options"""

from typing import Optional

from supabase import AsyncClient

from ...config import get_table_name
from ..services.repository import utc_now_iso

TABLE = "service_options"


class ServiceOptionRepository:
    """Repository for service option queries"""

    @staticmethod
    async def get_options(client: AsyncClient, service_id: str) -> list[dict]:
        result = await (
            client.table(get_table_name(TABLE))
            .select("*")
            .eq("service_id", service_id)
            .order("display_order")
            .order("name")
            .execute()
        )
        return result.data or []

    @staticmethod
    async def get_option_by_id(client: AsyncClient, option_id: str) -> dict:
        result = await client.table(get_table_name(TABLE)).select("*").eq("id", option_id).single().execute()
        return result.data

    @staticmethod
    async def create_option(client: AsyncClient, option: dict) -> dict:
        result = await client.table(get_table_name(TABLE)).insert(option).execute()
        return result.data[0]

    @staticmethod
    async def update_option(client: AsyncClient, option_id: str, updates: dict) -> Optional[dict]:
        result = await (
            client.table(get_table_name(TABLE))
            .update(updates)
            .eq("id", option_id)
            .execute()
        )
        return result.data[0] if result.data else None

    @staticmethod
    async def set_active(client: AsyncClient, option_id: str, is_active: bool) -> Optional[dict]:
        return await ServiceOptionRepository.update_option(
            client, option_id, {"is_active": is_active, "updated_at": utc_now_iso()}
        )

    @staticmethod
    async def delete_option(client: AsyncClient, option_id: str) -> None:
        await client.table(get_table_name(TABLE)).delete().eq("id", option_id).execute()

    @staticmethod
    async def reorder_options(client: AsyncClient, option_ids: list[str]) -> None:
        """Rewrite display_order to each option's position in the list"""
        now = utc_now_iso()
        updates = [
            {"id": option_id, "display_order": index, "updated_at": now}
            for index, option_id in enumerate(option_ids)
        ]
        await client.table(get_table_name(TABLE)).upsert(updates, on_conflict="id").execute()
