import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.security.guards import reset_rate_limits
from app.services import analytics_service, menu_service


@pytest.fixture(name="api_client")
def client_fixture():
    reset_rate_limits()
    with TestClient(app) as client:
        yield client
    reset_rate_limits()


def test_languages_lists_source_and_targets(api_client: TestClient) -> None:
    languages = api_client.get("/api/languages").json()["languages"]

    assert languages[0] == {"code": "en", "label": "English"}
    assert [entry["code"] for entry in languages[1:]] == ["ko", "ja", "cn", "vi", "ru", "kz", "es", "fr", "it"]


def test_menu_forwards_filters(api_client: TestClient, monkeypatch) -> None:
    seen = {}

    async def fake_fetch_public_menu(**kwargs):
        seen.update(kwargs)
        return [{"id": "1", "name": "Pho", "display_description": "Phở bò"}]

    monkeypatch.setattr(menu_service, "fetch_public_menu", fake_fetch_public_menu)

    response = api_client.get("/api/menu", params={"search": "pho", "sort": "price-desc", "language": "vi"})

    assert response.status_code == 200
    assert response.json()["items"][0]["display_description"] == "Phở bò"
    assert seen == {"search": "pho", "category": None, "sort": "price-desc", "language": "vi"}


def test_menu_rejects_unknown_sort(api_client: TestClient) -> None:
    assert api_client.get("/api/menu", params={"sort": "calories"}).status_code == 422


def test_page_views_are_rate_limited_per_client(api_client: TestClient, monkeypatch) -> None:
    recorded = []

    async def fake_record(page_path, user_agent):
        recorded.append(page_path)
        return True

    monkeypatch.setattr(analytics_service, "record_page_view", fake_record)

    statuses = [api_client.post("/api/page-views", json={"page_path": "/menu"}).status_code for _ in range(31)]

    assert statuses[:30] == [202] * 30
    assert statuses[30] == 429
    assert len(recorded) == 30
