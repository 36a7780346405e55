"""Health endpoint tests."""

import httpx


async def test_health_check(client: httpx.AsyncClient) -> None:
    """Test health check endpoint returns ok status."""
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_health_check_ready(client: httpx.AsyncClient) -> None:
    """Test readiness check endpoint returns ok status."""
    response = await client.get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_root_endpoint(client: httpx.AsyncClient) -> None:
    """Test root endpoint returns service info."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "Teleconsulta API"
    assert "version" in data
