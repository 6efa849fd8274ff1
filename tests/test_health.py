"""Health check endpoint."""

import pytest


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["env"] == "test"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found", "code": "HTTP_404"}
