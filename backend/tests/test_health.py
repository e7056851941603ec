import pytest
from httpx import ASGITransport, AsyncClient

from lane_sense.app import create_app


@pytest.fixture
def app(monkeypatch):
    monkeypatch.delenv("LANE_SENSE_MODE", raising=False)
    return create_app()


async def test_health(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "mode": "dev"}
