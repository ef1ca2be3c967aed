r"""backend/tests/test_recommendations_api.py"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.main import app  # noqa: E402
from backend.app.services.recommendation_service import RecommendationService  # noqa: E402

client = TestClient(app)


@pytest.fixture(autouse=True)
def catalog_service(monkeypatch, make_source, catalog_frames) -> RecommendationService:
    service = RecommendationService(make_source(catalog_frames))
    monkeypatch.setattr("backend.app.api.v1.recommendations._recommendation_service", service)
    return service


def _ids(payload):
    return [item["product_id"] for item in payload]


def test_popular_and_new_arrivals() -> None:
    popular = client.get("/api/v1/recommendations/popular", params={"limit": 3})
    assert popular.status_code == 200
    assert _ids(popular.json()) == ["P1", "P2", "P4"]

    arrivals = client.get("/api/v1/recommendations/new-arrivals")
    assert arrivals.status_code == 200
    assert _ids(arrivals.json()) == ["P5", "P2", "P3"]


def test_tenant_header_scopes_results() -> None:
    response = client.get("/api/v1/recommendations/popular", headers={"X-Tenant-ID": "t2"})
    assert _ids(response.json()) == ["Q1"]


def test_product_routes() -> None:
    together = client.get("/api/v1/recommendations/products/P1/frequently-bought-together")
    assert _ids(together.json()) == ["P2", "P3"]

    similar = client.get("/api/v1/recommendations/products/P1/similar", params={"limit": 2})
    assert _ids(similar.json()) == ["P2", "P3"]

    unknown = client.get("/api/v1/recommendations/products/nope/similar")
    assert unknown.status_code == 200
    assert unknown.json() == []


def test_customer_route_falls_back_to_popular() -> None:
    response = client.get("/api/v1/recommendations/customers/nobody", params={"limit": 2})
    assert _ids(response.json()) == ["P1", "P2"]


def test_cart_route() -> None:
    response = client.post("/api/v1/recommendations/cart", json={"cart_items": ["P2"]})
    assert response.status_code == 200
    assert _ids(response.json()) == ["P1", "P3"]


def test_bundle_route() -> None:
    response = client.post(
        "/api/v1/recommendations",
        json={"customer_id": "K2", "product_id": "P1", "cart_items": ["P2"], "limit": 10},
    )

    assert response.status_code == 200
    bundle = response.json()
    assert _ids(bundle["personalized"]) == ["P4", "P5"]
    assert _ids(bundle["frequently_bought_together"]) == ["P2", "P3"]
    assert _ids(bundle["cart"]) == ["P1", "P3"]
    assert "P2" in _ids(bundle["similar"]) and "P2" in _ids(bundle["popular"])


def test_bundle_route_validates_context() -> None:
    response = client.post("/api/v1/recommendations", json={"cart_items": "P1", "limit": 10})
    assert response.status_code == 422

    response = client.post("/api/v1/recommendations", json={"limit": 0})
    assert response.status_code == 422
