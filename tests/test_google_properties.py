"""
Tests for Google property discovery and selection.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from connectors.google_api import fetch_ga4_properties, fetch_gsc_sites
from connectors.token_manager import NotConnectedError


class TestListProperties:
    def test_missing_user(self, client):
        resp = client.get("/api/google/properties")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing userId"}

    def test_not_connected(self, client):
        with patch(
            "connectors.routes.get_active_token",
            new_callable=AsyncMock,
            side_effect=NotConnectedError("google"),
        ):
            resp = client.get("/api/google/properties", params={"userId": "user-1"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Google account not connected"}

    def test_refresh_failure(self, client):
        with patch(
            "connectors.routes.get_active_token",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("down"),
        ):
            resp = client.get("/api/google/properties", params={"userId": "user-1"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Google session expired, please reconnect"}

    def test_lists_both(self, client):
        ga4 = [{"name": "properties/1", "displayName": "Site", "account": "accounts/9"}]
        gsc = [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}]

        with patch(
            "connectors.routes.get_active_token", new_callable=AsyncMock, return_value="ya29"
        ) as mock_token, patch(
            "connectors.routes.fetch_ga4_properties", new_callable=AsyncMock, return_value=ga4
        ), patch(
            "connectors.routes.fetch_gsc_sites", new_callable=AsyncMock, return_value=gsc
        ):
            resp = client.get("/api/google/properties", params={"userId": "user-1"})

        assert resp.status_code == 200
        assert resp.json() == {"ga4Properties": ga4, "gscSites": gsc}
        assert mock_token.await_args.args[1:] == ("user-1", "google")


class TestSaveProperties:
    def test_requires_a_selection(self, client):
        resp = client.post("/api/google/save-properties", json={"userId": "user-1"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "At least one property must be selected"}

    def test_saves_selection(self, client, make_user):
        saved = make_user(ga4_property_id="properties/1", ga4_property_name="Site")

        with patch(
            "connectors.routes.update_user", new_callable=AsyncMock, return_value=saved
        ) as mock_update:
            resp = client.post(
                "/api/google/save-properties",
                json={"userId": "user-1", "ga4PropertyId": "properties/1", "ga4PropertyName": "Site"},
            )

        assert resp.status_code == 200
        assert resp.json()["data"]["ga4_property_id"] == "properties/1"
        assert mock_update.await_args.args[1:] == (
            "user-1",
            {"ga4_property_id": "properties/1", "ga4_property_name": "Site"},
        )

    def test_unknown_user(self, client):
        with patch("connectors.routes.update_user", new_callable=AsyncMock, return_value=None):
            resp = client.post(
                "/api/google/save-properties",
                json={"userId": "ghost", "gscSiteUrl": "https://example.com/"},
            )

        assert resp.status_code == 404


class TestGoogleApi:
    @pytest.mark.asyncio
    async def test_gsc_sites(self):
        def handler(request):
            assert request.headers["authorization"] == "Bearer ya29"
            return httpx.Response(
                200,
                json={"siteEntry": [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}]},
            )

        sites = await fetch_gsc_sites("ya29", transport=httpx.MockTransport(handler))

        assert sites == [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}]

    @pytest.mark.asyncio
    async def test_ga4_properties_across_accounts(self):
        def handler(request):
            if request.url.path.endswith("/accounts"):
                return httpx.Response(
                    200,
                    json={"accounts": [
                        {"name": "accounts/1", "displayName": "One"},
                        {"name": "accounts/2", "displayName": "Two"},
                    ]},
                )
            parent = request.url.params["filter"].split(":", 1)[1]
            prop_id = parent.split("/")[1] + "00"
            return httpx.Response(
                200,
                json={"properties": [{"name": f"properties/{prop_id}", "displayName": f"Site {prop_id}"}]},
            )

        props = await fetch_ga4_properties("ya29", transport=httpx.MockTransport(handler))

        assert [p["propertyId"] for p in props] == ["100", "200"]
        assert [p["accountName"] for p in props] == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_ga4_errors_yield_empty_list(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(403, json={"error": {"message": "denied"}})
        )
        assert await fetch_ga4_properties("ya29", transport=transport) == []
