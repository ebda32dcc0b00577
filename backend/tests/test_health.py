from fastapi.testclient import TestClient

from helpers import auth_headers, create_wishlist


def test_health_ok(client: TestClient):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json().get("status") == "ok"


def test_request_id_is_echoed(client: TestClient):
    res = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert res.headers["X-Request-Id"] == "req-123"


def test_request_id_is_generated(client: TestClient):
    res = client.get("/health")
    assert res.headers.get("X-Request-Id")


def test_security_headers(client: TestClient):
    res = client.get("/health")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"


def test_metrics_counts_requests_and_claims(client: TestClient):
    wishlist = create_wishlist(client)
    item = client.post(
        f"/wishlists/{wishlist['id']}/items", json={"title": "Book"}, headers=auth_headers("alice")
    ).json()
    client.put(f"/wishlists/{wishlist['id']}/items/{item['id']}/reserve", headers=auth_headers("alice"))
    client.put(f"/wishlists/{wishlist['id']}/items/{item['id']}/reserve", headers=auth_headers("alice"))

    data = client.get("/metrics").json()
    assert data["requests_total"] >= 4
    assert "/wishlists" in data["by_path"]
    assert data["claims"]["reserve"]["ok"] >= 1
    assert data["claims"]["reserve"]["conflict"] >= 1
    assert "total_entries" in data["rate_limiter"]


def test_missing_token_is_unauthorized(client: TestClient):
    res = client.get("/wishlists")
    assert res.status_code == 401
    assert res.json()["error"] == "unauthorized"


def test_invalid_token_is_unauthorized(client: TestClient):
    res = client.get("/wishlists", headers={"Authorization": "Bearer invalid.token.here"})
    assert res.status_code == 401


def test_token_in_cookie_is_accepted(client: TestClient):
    token = auth_headers("alice")["Authorization"].removeprefix("Bearer ")
    client.cookies.set("access_token", token)
    res = client.get("/wishlists")
    assert res.status_code == 200


def test_validation_errors_are_bad_request(client: TestClient):
    res = client.post("/wishlists", json={"name": "   "}, headers=auth_headers("alice"))
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "validation_error"
    assert isinstance(body["detail"], list)
