"""Tests for company bootstrap and auth."""

import pytest
from httpx import AsyncClient

from app.core.security import create_jwt


async def _bootstrap(client: AsyncClient, slug: str, **extra) -> dict:
    resp = await client.post("/v1/companies", json={
        "company_name": f"{slug} Co",
        "company_slug": slug,
        "admin_email": f"admin@{slug}.com",
        "admin_display_name": "Admin",
        **extra,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_bootstrap_creates_company_and_admin(client: AsyncClient):
    data = await _bootstrap(client, "boot-basic", timezone="Europe/Berlin")

    assert data["company"]["slug"] == "boot-basic"
    assert data["company"]["timezone"] == "Europe/Berlin"
    assert data["company"]["subscription_status"] == "inactive"
    assert data["admin"]["is_admin"] is True
    assert data["admin"]["status"] == "active"

    headers = {"Authorization": f"Bearer {data['access_token']}"}
    resp = await client.get("/v1/companies/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == data["company"]["id"]


@pytest.mark.asyncio
async def test_duplicate_slug_rejected(client: AsyncClient):
    await _bootstrap(client, "boot-dup")
    resp = await client.post("/v1/companies", json={
        "company_name": "Again",
        "company_slug": "boot-dup",
        "admin_email": "other@boot-dup.com",
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_missing_token_rejected(client: AsyncClient):
    resp = await client.get("/v1/companies/me")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_token_for_other_company_rejected(client: AsyncClient):
    first = await _bootstrap(client, "boot-cross-a")
    second = await _bootstrap(client, "boot-cross-b")
    forged = create_jwt(first["admin"]["id"], second["company"]["id"])

    resp = await client.get(
        "/v1/companies/me", headers={"Authorization": f"Bearer {forged}"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token_rejected(client: AsyncClient):
    resp = await client.get(
        "/v1/companies/me", headers={"Authorization": "Bearer not.a.jwt"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
