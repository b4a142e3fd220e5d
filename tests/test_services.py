from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from bookerhq.domain.services.schemas import ServiceCreate, ServiceUpdate
from bookerhq.domain.services.service import (
    ServiceService,
    prepare_create_payload,
    prepare_update_payload,
)

SERVICES = "testing_services"


def stylist_store(stylist_id="stylist-1"):
    return SimpleNamespace(user_profile={"stylist": {"id": stylist_id}, "customer": None, "tenant": None})


@pytest.fixture
def service(client):
    return ServiceService(client)


# ============================================================================
# Payload rules
# ============================================================================


def test_create_payload_nulls_ranges_of_fixed_values():
    payload = prepare_create_payload(
        {"name": "Cut", "duration_minutes": 30, "price": 25, "min_price": 10, "max_price": 20, "min_duration": 5}
    )
    assert payload["min_price"] is None
    assert payload["max_price"] is None
    assert payload["min_duration"] is None
    assert payload["max_duration"] is None
    assert payload["is_active"] is True


def test_create_payload_defaults_fixed_values_to_range_minimum():
    payload = prepare_create_payload(
        {
            "name": "Color",
            "time_varies": True,
            "min_duration": 60,
            "max_duration": 120,
            "price_varies": True,
            "min_price": 80,
            "max_price": 200,
        }
    )
    assert payload["duration_minutes"] == 60
    assert payload["price"] == 80


def test_create_payload_accepts_free_services():
    assert prepare_create_payload({"name": "Consultation", "duration_minutes": 15, "price": 0})["price"] == 0


@pytest.mark.parametrize(
    "data, message",
    [
        ({"duration_minutes": 30, "price": 10}, "name is required"),
        ({"name": "Cut", "price": 10}, "duration_minutes is required"),
        ({"name": "Cut", "duration_minutes": 30}, "price is required"),
        ({"name": "Cut", "price": 10, "time_varies": True, "min_duration": 30}, "Min and max duration required when time varies"),
        ({"name": "Cut", "duration_minutes": 30, "price_varies": True, "max_price": 50}, "Min and max price required when price varies"),
    ],
)
def test_create_payload_required_fields(data, message):
    with pytest.raises(ValueError, match=message):
        prepare_create_payload(data)


def test_update_payload_clears_range_only_when_flag_switched_off():
    payload = prepare_update_payload({"price_varies": False, "name": "Trim"})
    assert payload["min_price"] is None
    assert payload["max_price"] is None
    assert "min_duration" not in payload
    assert "updated_at" in payload


# ============================================================================
# ServiceService against the platform
# ============================================================================


async def test_create_service_for_stylist(service, backend):
    created = await service.create_service(
        ServiceCreate(name="Silk press", duration_minutes=90, price=65),
        stylist_store(),
    )

    assert created["stylist_id"] == "stylist-1"
    assert created["tenant_id"] is None
    assert created["price_display"] == "65"
    assert created["duration_display"] == "90 min"
    assert backend.inserts[SERVICES] == 1
    assert backend.rows(SERVICES)[0]["is_active"] is True


async def test_create_service_with_options_stores_base_values(service, backend):
    created = await service.create_service(
        ServiceCreate(name="Braids", has_options=True),
        stylist_store(),
    )
    assert created["price"] == 0
    assert created["duration_minutes"] == 30


async def test_create_service_with_options_ignores_own_price_range(service, backend):
    created = await service.create_service(
        ServiceCreate(name="Cut", has_options=True, price_varies=True),
        stylist_store(),
    )

    assert created["price_varies"] is False
    assert created["min_price"] is None
    assert created["max_price"] is None
    assert backend.inserts[SERVICES] == 1


async def test_create_service_requires_stylist_profile(service, backend):
    store = SimpleNamespace(user_profile={"customer": {"id": "c-1"}, "stylist": None, "tenant": None})
    with pytest.raises(HTTPException) as exc_info:
        await service.create_service(ServiceCreate(name="Cut", duration_minutes=30, price=20), store)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "User must have a stylist profile to create services"
    assert backend.inserts[SERVICES] == 0


async def test_create_service_reports_form_errors(service, backend):
    with pytest.raises(HTTPException) as exc_info:
        await service.create_service(ServiceCreate(name="", duration_minutes=0, price=10), stylist_store())

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == {
        "errors": {
            "name": "Service name is required",
            "duration_minutes": "Duration must be greater than 0",
        }
    }
    assert backend.inserts[SERVICES] == 0


async def test_get_missing_service_is_404(service):
    with pytest.raises(HTTPException) as exc_info:
        await service.get_service("does-not-exist")
    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == "Service not found"


async def test_list_stylist_services_hides_inactive(service, backend):
    backend.seed(SERVICES, name="Active", stylist_id="s-1", is_active=True, price=10, duration_minutes=30)
    backend.seed(SERVICES, name="Retired", stylist_id="s-1", is_active=False, price=10, duration_minutes=30)
    backend.seed(SERVICES, name="Other", stylist_id="s-2", is_active=True, price=10, duration_minutes=30)

    names = [row["name"] for row in await service.list_stylist_services("s-1")]
    assert names == ["Active"]

    names = [row["name"] for row in await service.list_stylist_services("s-1", include_inactive=True)]
    assert names == ["Retired", "Active"]


async def test_public_services_show_option_price_range(service, backend):
    parent = backend.seed(SERVICES, name="Braids", has_options=True, is_active=True, price=0, duration_minutes=30)
    backend.seed("testing_service_options", service_id=parent["id"], name="Short", price=120, is_active=True)
    backend.seed("testing_service_options", service_id=parent["id"], name="Long", price=220, is_active=True)

    [row] = await service.list_public_services()
    assert row["option_count"] == 2
    assert row["price_display"] == "120 - 220"


async def test_update_service_validates_merged_values(service, backend):
    row = backend.seed(SERVICES, name="Cut", is_active=True, price=30, duration_minutes=30)

    with pytest.raises(HTTPException) as exc_info:
        await service.update_service(row["id"], ServiceUpdate(price_varies=True, min_price=50, max_price=20))
    assert exc_info.value.status_code == 422
    assert "max_price" in exc_info.value.detail["errors"]

    updated = await service.update_service(row["id"], ServiceUpdate(price_varies=True, min_price=20, max_price=50))
    assert updated["price_display"] == "20 - 50"
    assert backend.rows(SERVICES)[0]["max_price"] == 50


async def test_update_switching_price_back_to_fixed_clears_range(service, backend):
    row = backend.seed(
        SERVICES, name="Cut", is_active=True, price=20, duration_minutes=30, price_varies=True, min_price=20, max_price=50
    )
    updated = await service.update_service(row["id"], ServiceUpdate(price_varies=False))
    assert updated["min_price"] is None
    assert updated["max_price"] is None
    assert updated["price_display"] == "20"


async def test_soft_and_hard_delete(service, backend):
    row = backend.seed(SERVICES, name="Cut", is_active=True, price=20, duration_minutes=30)

    assert await service.delete_service(row["id"]) == {"message": "Service deactivated"}
    assert backend.rows(SERVICES)[0]["is_active"] is False

    reactivated = await service.activate_service(row["id"])
    assert reactivated["is_active"] is True

    assert await service.delete_service(row["id"], soft_delete=False) == {"message": "Service deleted"}
    assert backend.rows(SERVICES) == []


async def test_deactivating_missing_service_is_404(service):
    with pytest.raises(HTTPException) as exc_info:
        await service.deactivate_service("does-not-exist")
    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == "Service not found"


async def test_remote_failure_becomes_bad_gateway(service, backend):
    backend.failures[f"/rest/v1/{SERVICES}"] = (500, {"message": "boom"})
    with pytest.raises(HTTPException) as exc_info:
        await service.list_stylist_services("s-1")
    assert exc_info.value.status_code == 502
    assert exc_info.value.detail == "Error fetching stylist services"
