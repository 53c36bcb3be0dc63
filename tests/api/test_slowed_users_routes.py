import pytest

from core.config import settings


@pytest.mark.asyncio
async def test_add_list_remove(client, denylist):
    resp = await client.post("/slowed-users", json={"shopperReference": "shopper-1"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"shopperReference": "shopper-1", "added": True}

    await client.post("/slowed-users", json={"shopperReference": "shopper-2"})
    resp = await client.get("/slowed-users")
    assert resp.json()["data"] == ["shopper-1", "shopper-2"]

    resp = await client.request("DELETE", "/slowed-users", json={"shopperReference": "shopper-1"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"shopperReference": "shopper-1", "removed": True}
    assert await denylist.list() == ["shopper-2"]


@pytest.mark.asyncio
async def test_duplicate_add_is_reported(client, denylist):
    await client.post("/slowed-users", json={"shopperReference": "shopper-1"})
    resp = await client.post("/slowed-users", json={"shopperReference": "shopper-1"})

    assert resp.status_code == 200
    assert resp.json()["data"]["added"] is False
    assert await denylist.list() == ["shopper-1"]


@pytest.mark.asyncio
async def test_remove_absent_is_not_found(client):
    resp = await client.request("DELETE", "/slowed-users", json={"shopperReference": "nobody"})
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "DenylistEntryNotFound"


@pytest.mark.asyncio
async def test_blank_reference_is_rejected(client):
    resp = await client.post("/slowed-users", json={"shopperReference": "   "})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_token_guards_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings.admin, "token", "admin-secret")

    resp = await client.get("/slowed-users")
    assert resp.status_code == 401

    resp = await client.get("/slowed-users", headers={"x-admin-token": "admin-secret"})
    assert resp.status_code == 200
