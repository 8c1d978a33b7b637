from __future__ import annotations

from fastapi.testclient import TestClient

from sergeant.app import app


def test_sets_list_route_returns_success() -> None:
    with TestClient(app) as client:
        response = client.get("/api/v1/sets/list")

    assert response.status_code == 200
    assert response.json()[0]["name"] == "all"
