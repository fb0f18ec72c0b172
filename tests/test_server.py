import io

import pytest

from pharmafinder.core.config import Settings
from pharmafinder.jobs import search, server
from pharmafinder.models import SearchResponse

from payloads import maps_chunk


@pytest.fixture
def orchestrator(monkeypatch, settings):
    calls = []

    def fake_search(query, location, **options):
        calls.append(("search", query, location))
        return SearchResponse(
            summary="Found one.",
            chunks=(maps_chunk("https://maps/a", title="Alpha 24 Hour Pharmacy", place_id="a"),),
        )

    monkeypatch.setattr(search.gemini, "search_pharmacies", fake_search)
    monkeypatch.setattr(search.gemini, "lookup_hours", lambda name, location, **options: "Open 24 hours")
    monkeypatch.setattr(search.gemini, "assess_stock", lambda name, medicine, **options: f"{medicine}: High")
    monkeypatch.setattr(
        search.gemini, "extract_medicine_names", lambda image, mime_type, **options: f"Amoxicillin ({mime_type})"
    )
    monkeypatch.setattr(search.gemini, "reverse_geocode_to_postal_code", lambda lat, lng, **options: "560001")

    instance = search.SearchOrchestrator(settings)
    instance.calls = calls
    monkeypatch.setattr(server, "_orchestrator", instance)
    monkeypatch.setattr(server, "get_settings", lambda: settings)
    return instance


@pytest.fixture
def client(orchestrator):
    return server.app.test_client()


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["model"] == "test-model"
    assert body["credentials_configured"] is True


def test_search_returns_state(client, orchestrator):
    response = client.post("/search", json={"query": "", "override": None})

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["isLoading"] is False
    assert data["results"][0]["name"] == "Alpha 24 Hour Pharmacy"
    assert data["results"][0]["open24x7"] is True
    assert orchestrator.calls[0][1] == "pharmacies near me"


def test_state_includes_transient_views(client):
    client.post("/search", json={"query": "pharmacy"})
    client.post("/pharmacies/a/stock", json={"medicine": "Insulin"})

    data = client.get("/state").get_json()["data"]

    assert data["search"]["query"] == "pharmacy"
    assert data["stockCheck"]["result"] == "Insulin: High"
    assert data["prescription"]["medicines"] == ""


def test_location_endpoint_validates_and_grants(client, orchestrator):
    assert client.post("/location", json={"latitude": "bad", "longitude": 1}).status_code == 400
    assert client.post("/location", json={"latitude": 1}).status_code == 400

    response = client.post("/location", json={"latitude": 12.97, "longitude": 77.59})

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["locationStatus"] == "granted"
    assert data["location"] == {"latitude": 12.97, "longitude": 77.59}


def test_pincode_endpoint_reports_missing_location(client):
    response = client.post("/pincode")

    assert response.status_code == 200
    assert response.get_json()["data"]["error"] == search.LOCATION_REQUIRED


def test_pincode_endpoint_searches(client, orchestrator):
    client.post("/location", json={"latitude": 12.97, "longitude": 77.59})

    data = client.post("/pincode").get_json()["data"]

    assert data["query"] == "560001"
    assert orchestrator.calls[-1][1] == "560001"


def test_hours_endpoint(client):
    client.post("/search", json={"query": "pharmacy"})

    response = client.post("/pharmacies/a/hours")

    assert response.status_code == 200
    assert response.get_json()["data"] == {"id": "a", "openingHours": "Open 24 hours"}
    assert client.post("/pharmacies/missing/hours").status_code == 400


def test_stock_endpoint_requires_medicine(client):
    client.post("/search", json={"query": "pharmacy"})

    assert client.post("/pharmacies/a/stock", json={}).status_code == 400
    response = client.post("/pharmacies/a/stock", json={"medicine": "Insulin"})
    assert response.status_code == 200
    assert response.get_json()["data"]["result"] == "Insulin: High"


def test_prescription_upload_and_search(client, orchestrator):
    assert client.post("/prescription").status_code == 400

    response = client.post(
        "/prescription",
        data={"file": (io.BytesIO(b"jpeg"), "rx.jpg")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    assert response.get_json()["data"]["medicines"] == "Amoxicillin (image/jpeg)"

    data = client.post("/prescription/search").get_json()["data"]
    assert data["query"] == "Pharmacies with stock of: Amoxicillin (image/jpeg)"


def test_missing_credential_maps_to_503(monkeypatch, client):
    monkeypatch.setattr(server, "_orchestrator", search.SearchOrchestrator(Settings(gemini_api_key="")))

    response = client.post("/search", json={"query": "pharmacy"})

    assert response.status_code == 503
    assert "GEMINI_API_KEY" in response.get_json()["error"]


@pytest.mark.parametrize("path", ["/search", "/location", "/pharmacies/a/stock"])
def test_non_object_json_body_is_rejected(client, path):
    client.post("/search", json={"query": "pharmacy"})

    response = client.post(path, json=["not", "an", "object"])

    assert response.status_code == 400
    assert response.get_json()["error"] == "request body must be a JSON object"
