from __future__ import annotations


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_routes_are_mirrored_under_api_prefix(client, as_actor):
    resp = client.post("/api/deals", json={"name": "via proxy"}, headers=as_actor("intake"))
    assert resp.status_code == 201
    assert client.get(f"/api/deals/{resp.json()['id']}", headers=as_actor("intake")).status_code == 200
