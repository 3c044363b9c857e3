"""
Test closings endpoints
"""
import pytest
from httpx import AsyncClient, ASGITransport
from unittest.mock import AsyncMock, patch

from cierres.api.v1.endpoints.closings import get_closings_service
from cierres.core.exceptions import PersistVerificationError
from cierres.main import app
from cierres.services.closing_service import DailyClosingsService


@pytest.fixture
def client_service(store):
    service = DailyClosingsService(store, tz="UTC")
    app.dependency_overrides[get_closings_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_root():
    async with _client() as client:
        response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to Cierres API"}


@pytest.mark.asyncio
async def test_lifespan_opens_and_closes_mongo():
    with patch("cierres.main.connect_to_mongo", new_callable=AsyncMock) as connect, \
            patch("cierres.main.close_mongo_connection", new_callable=AsyncMock) as close:
        async with app.router.lifespan_context(app):
            connect.assert_awaited_once()
            close.assert_not_awaited()

    close.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_and_get_closing(client_service, sample_closing):
    async with _client() as client:
        response = await client.post("/api/v1/closings/Delifood", json=sample_closing)
        assert response.status_code == 201
        saved = response.json()
        assert saved["id"] == "dc_1717250000000_abc123"
        assert saved["totalCRC"] == 125000
        assert saved["breakdownCRC"] == {"20000": 5, "10000": 2, "5000": 1}

        response = await client.get("/api/v1/closings/Delifood/dates/2024-06-01")
        assert response.status_code == 200
        data = response.json()
        assert data["company"] == "Delifood"
        assert data["dateKey"] == "2024-06-01"
        assert data["count"] == 1
        assert data["closings"][0]["manager"] == "Ana"


@pytest.mark.asyncio
async def test_get_document(client_service, sample_closing):
    await client_service.save_closing("Delifood", sample_closing)

    async with _client() as client:
        response = await client.get("/api/v1/closings/Delifood")

    assert response.status_code == 200
    data = response.json()
    assert data["company"] == "Delifood"
    assert list(data["closingsByDate"]) == ["2024-06-01"]


@pytest.mark.asyncio
async def test_get_document_not_found(client_service):
    async with _client() as client:
        response = await client.get("/api/v1/closings/Delifood")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_records_newest_first(client_service):
    await client_service.save_closing("Delifood", {"id": "a", "closingDate": "2024-06-01T10:00:00Z"})
    await client_service.save_closing("Delifood", {"id": "b", "closingDate": "2024-06-02T10:00:00Z"})

    async with _client() as client:
        response = await client.get("/api/v1/closings/Delifood/records")

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert [c["id"] for c in data["closings"]] == ["b", "a"]


@pytest.mark.asyncio
async def test_list_records_unknown_company(client_service):
    async with _client() as client:
        response = await client.get("/api/v1/closings/Nadie/records")

    assert response.status_code == 200
    assert response.json()["closings"] == []


@pytest.mark.asyncio
async def test_save_blank_company(client_service):
    async with _client() as client:
        response = await client.post("/api/v1/closings/%20%20", json={"totalCRC": 1})

    assert response.status_code == 400
    assert response.json()["detail"] == "Company ID is required for saving closing"


@pytest.mark.asyncio
async def test_save_non_object_body(client_service):
    async with _client() as client:
        response = await client.post("/api/v1/closings/Delifood", json=["not", "a", "closing"])

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_save_verification_failure(store):
    service = DailyClosingsService(store, tz="UTC")
    service.save_closing = AsyncMock(side_effect=PersistVerificationError("dc_1", "2024-06-01"))
    app.dependency_overrides[get_closings_service] = lambda: service

    try:
        async with _client() as client:
            response = await client.post("/api/v1/closings/Delifood", json={"id": "dc_1"})

        assert response.status_code == 500
        assert "dc_1" in response.json()["detail"]
    finally:
        app.dependency_overrides.clear()
