"""Variant endpoints: batch creation, serial preview, lookups."""

import uuid
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from app.models.tenant import Tenant, TenantPlan
from app.services.serial_allocator import AllocationResult, SerialLimitExceededError
from app.services.variant_limits import limit_for_plan
from app.services.variant_store import VariantStoreError


async def _signup(client: AsyncClient, slug: str) -> dict:
    """Helper: register a tenant and return auth headers."""
    resp = await client.post("/v1/tenants", json={
        "tenant_name": f"{slug} Kicks",
        "tenant_slug": slug,
        "owner_email": f"owner@{slug}.com",
        "owner_password": "testpass123",
    })
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['api_token']}"}


@pytest.mark.asyncio
async def test_create_variants_assigns_sequential_serials(client: AsyncClient):
    headers = await _signup(client, "var-seq")

    resp = await client.post("/v1/variants", json={"items": [
        {"variant_sku": "DZ5485-612-10", "size": "10", "cost_price": "180.00", "quantity": 2},
        {"variant_sku": "DZ5485-612-11", "size": "11", "location": "Shelf B"},
    ]}, headers=headers)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["requested"] == 3
    assert data["inserted_count"] == 3
    assert data["serial_numbers"] == [1, 2, 3]
    assert data["error"] is None

    resp = await client.post("/v1/variants", json={"items": [{"size": "12"}]}, headers=headers)
    assert resp.json()["serial_numbers"] == [4]

    resp = await client.get("/v1/variants", headers=headers)
    variants = resp.json()
    assert [v["serial_number"] for v in variants] == [1, 2, 3, 4]
    assert variants[2]["location"] == "Shelf B"
    assert variants[0]["size_label"] == "US"
    assert variants[0]["status"] == "Available"


@pytest.mark.asyncio
async def test_serials_are_scoped_per_tenant(client: AsyncClient):
    first = await _signup(client, "var-scope-a")
    second = await _signup(client, "var-scope-b")

    await client.post("/v1/variants", json={"items": [{"quantity": 3}]}, headers=first)
    resp = await client.post("/v1/variants", json={"items": [{}]}, headers=second)
    assert resp.json()["serial_numbers"] == [1]

    resp = await client.get("/v1/variants", headers=second)
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_create_variants_validation(client: AsyncClient):
    headers = await _signup(client, "var-invalid")

    resp = await client.post("/v1/variants", json={"items": []}, headers=headers)
    assert resp.status_code == 422

    resp = await client.post("/v1/variants", json={"items": [{"quantity": 0}]}, headers=headers)
    assert resp.status_code == 422

    resp = await client.post("/v1/variants", json={"items": [{"cost_price": "-1"}]}, headers=headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_variants_rejects_oversized_batch(client: AsyncClient):
    headers = await _signup(client, "var-big")
    resp = await client.post("/v1/variants", json={
        "items": [{"quantity": 400}, {"quantity": 400}],
    }, headers=headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_create_variants_requires_auth(client: AsyncClient):
    resp = await client.post("/v1/variants", json={"items": [{}]})
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_limit_reached_returns_409(client: AsyncClient):
    headers = await _signup(client, "var-limit")
    result = AllocationResult(error=SerialLimitExceededError(None))

    with patch(
        "app.services.serial_allocator.SerialAllocator.allocate_batch",
        return_value=result,
    ):
        resp = await client.post("/v1/variants", json={"items": [{}]}, headers=headers)
    assert resp.status_code == 409
    assert "limit" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_partial_insert_returns_207(client: AsyncClient):
    headers = await _signup(client, "var-partial")
    result = AllocationResult(
        inserted_count=1,
        serials=[1],
        error=VariantStoreError("Failed to insert variant 2: bad row"),
    )

    with patch(
        "app.services.serial_allocator.SerialAllocator.allocate_batch",
        return_value=result,
    ):
        resp = await client.post("/v1/variants", json={"items": [{"quantity": 3}]}, headers=headers)
    assert resp.status_code == 207
    data = resp.json()
    assert data["requested"] == 3
    assert data["inserted_count"] == 1
    assert "variant 2" in data["error"]


@pytest.mark.asyncio
async def test_next_serial_preview(client: AsyncClient):
    headers = await _signup(client, "var-next")

    resp = await client.get("/v1/variants/next-serial", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"next_serial_number": 1}

    await client.post("/v1/variants", json={"items": [{"quantity": 5}]}, headers=headers)
    resp = await client.get("/v1/variants/next-serial", headers=headers)
    assert resp.json() == {"next_serial_number": 6}


@pytest.mark.asyncio
async def test_check_serial(client: AsyncClient):
    headers = await _signup(client, "var-check")
    await client.post("/v1/variants", json={"items": [{}]}, headers=headers)

    resp = await client.post("/v1/variants/check-serial", json={"serial_number": 1}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_unique"] is False

    resp = await client.post("/v1/variants/check-serial", json={"serial_number": 2}, headers=headers)
    assert resp.json()["is_unique"] is True

    resp = await client.post("/v1/variants/check-serial", json={"serial_number": 0}, headers=headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_lookup_by_serial_or_id(client: AsyncClient):
    headers = await _signup(client, "var-lookup")
    await client.post("/v1/variants", json={"items": [
        {"variant_sku": "FQ8138-002-9", "size": "9"},
    ]}, headers=headers)

    resp = await client.get("/v1/variants/by-serial/1", headers=headers)
    assert resp.status_code == 200
    variant = resp.json()
    assert variant["variant_sku"] == "FQ8138-002-9"

    resp = await client.get(f"/v1/variants/by-serial/{variant['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["serial_number"] == 1

    resp = await client.get("/v1/variants/by-serial/2", headers=headers)
    assert resp.status_code == 404

    resp = await client.get("/v1/variants/by-serial/99999", headers=headers)
    assert resp.status_code == 404

    resp = await client.get("/v1/variants/by-serial/not-a-label", headers=headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_lookup_does_not_cross_tenants(client: AsyncClient):
    owner = await _signup(client, "var-iso-a")
    stranger = await _signup(client, "var-iso-b")
    await client.post("/v1/variants", json={"items": [{}]}, headers=owner)

    resp = await client.get("/v1/variants/by-serial/1", headers=stranger)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_list_filters_by_status(client: AsyncClient):
    headers = await _signup(client, "var-status")
    await client.post("/v1/variants", json={"items": [
        {"status": "Available"},
        {"status": "Sold"},
        {"status": "Available"},
    ]}, headers=headers)

    resp = await client.get("/v1/variants", params={"status": "Sold"}, headers=headers)
    assert [v["serial_number"] for v in resp.json()] == [2]


@pytest.mark.asyncio
async def test_tenant_summary_reports_inventory(client: AsyncClient):
    headers = await _signup(client, "var-summary")

    resp = await client.get("/v1/tenants/me", headers=headers)
    assert resp.json()["variant_count"] == 0
    assert resp.json()["highest_serial"] is None

    await client.post("/v1/variants", json={"items": [{"quantity": 4}]}, headers=headers)
    resp = await client.get("/v1/tenants/me", headers=headers)
    assert resp.json()["variant_count"] == 4
    assert resp.json()["highest_serial"] == 4


@pytest.mark.asyncio
async def test_variant_limits_report_plan_usage(client: AsyncClient):
    headers = await _signup(client, "var-usage")

    resp = await client.get("/v1/variants/limits", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"plan": "free", "limit": 100, "current": 0, "remaining": 100}

    await client.post("/v1/variants", json={"items": [
        {"quantity": 3},
        {"status": "Sold"},
    ]}, headers=headers)
    resp = await client.get("/v1/variants/limits", headers=headers)
    assert resp.json()["current"] == 3
    assert resp.json()["remaining"] == 97


@pytest.mark.asyncio
async def test_plan_limit_blocks_batch_before_allocation(client: AsyncClient):
    headers = await _signup(client, "var-cap")
    resp = await client.post("/v1/variants", json={"items": [{"quantity": 98}]}, headers=headers)
    assert resp.status_code == 201

    with patch(
        "app.services.serial_allocator.SerialAllocator.allocate_batch",
    ) as allocate:
        resp = await client.post("/v1/variants", json={"items": [{"quantity": 3}]}, headers=headers)
    assert resp.status_code == 403
    detail = resp.json()["detail"]
    assert detail["limit"] == 100
    assert detail["current"] == 98
    assert detail["remaining"] == 2
    allocate.assert_not_called()

    # sold stock does not count against the plan
    resp = await client.post("/v1/variants", json={"items": [
        {"status": "Sold", "quantity": 5},
    ]}, headers=headers)
    assert resp.status_code == 201

    resp = await client.post("/v1/variants", json={"items": [{"quantity": 2}]}, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["serial_numbers"] == [104, 105]


@pytest.mark.asyncio
async def test_plan_upgrade_raises_limit(client: AsyncClient, session):
    headers = await _signup(client, "var-upgrade")
    tenant_id = (await client.get("/v1/tenants/me", headers=headers)).json()["id"]

    tenant = await session.get(Tenant, uuid.UUID(tenant_id))
    tenant.plan = TenantPlan.TEAM
    session.add(tenant)
    await session.commit()

    resp = await client.get("/v1/variants/limits", headers=headers)
    assert resp.json()["plan"] == "team"
    assert resp.json()["limit"] == 1500


@pytest.mark.parametrize("plan,expected", [
    (TenantPlan.FREE, 100),
    (TenantPlan.INDIVIDUAL, 500),
    ("Team", 1500),
    ("store", 5000),
    ("enterprise", 100),
    (None, 100),
])
def test_limit_for_plan(plan, expected):
    assert limit_for_plan(plan) == expected
