"""
Login and token tests
"""


def test_login_and_me(client, admin):
    resp = client.post("/auth/login", json={"email": "ADMIN@example.com", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.get_json()["data"]["token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.get_json()["data"]["user"]["role"] == "admin"


def test_login_rejects_bad_password(client, admin):
    resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["status"] is False


def test_login_requires_fields(client):
    assert client.post("/auth/login", json={}).status_code == 400


def test_health(client):
    assert client.get("/").get_json()["message"] == "API running"
