"""
App-level behaviour: health probe, error envelope and request timing.
"""

from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import OperationalError


class TestApp:
    def test_health(self, client):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert "X-Process-Time" in resp.headers

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/nowhere/at/all")

        assert resp.status_code == 404
        assert "error" in resp.json()

    def test_validation_errors_are_400(self, client):
        resp = client.get("/api/data/ga", params={"page": "abc"}, headers={"x-user-id": "user-1"})

        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid ")

    def test_store_errors_are_500(self, client):
        with patch(
            "api.users.get_user",
            new_callable=AsyncMock,
            side_effect=OperationalError("SELECT", {}, Exception("connection lost")),
        ):
            resp = client.get("/api/user-profile", params={"userId": "user-1"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Database error"}

    def test_auth_callback_not_shadowed_by_connectors(self, client):
        resp = client.get("/api/auth/callback", follow_redirects=False)

        assert resp.status_code == 307
        assert "/auth/login?error=" in resp.headers["location"]
