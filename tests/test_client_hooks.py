"""
Tests for the async client helpers and the paginator.
"""

import httpx
import pytest

from client.hooks import IntegrationHook, Paginator, UserProfileHook, use_ga, use_gsc


def _transport(handler):
    return httpx.MockTransport(handler)


class TestIntegrationHook:
    @pytest.mark.asyncio
    async def test_authorize_returns_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"authUrl": "https://accounts.google.com/o/oauth2/v2/auth?x=1"})

        hook = use_ga("http://api.test", transport=_transport(handler))
        url = await hook.authorize("user-1")

        assert url.startswith("https://accounts.google.com/")
        assert seen["url"] == "http://api.test/api/ga/authorize?userId=user-1"
        assert hook.error is None
        assert hook.loading is False

    @pytest.mark.asyncio
    async def test_authorize_without_url_records_error(self):
        hook = use_gsc(
            "http://api.test",
            transport=_transport(lambda r: httpx.Response(400, json={"error": "Missing userId"})),
        )

        assert await hook.authorize("") is None
        assert hook.error == "Missing userId"

    @pytest.mark.asyncio
    async def test_fetch_data_sends_user_header(self):
        seen = {}

        def handler(request):
            seen["user"] = request.headers["x-user-id"]
            seen["page"] = request.url.params["page"]
            return httpx.Response(
                200, json={"data": [], "totalCount": 0, "totalPages": 0, "currentPage": 3}
            )

        hook = IntegrationHook("pagespeed", "http://api.test", transport=_transport(handler))
        envelope = await hook.fetch_data("user-1", page=3)

        assert envelope["currentPage"] == 3
        assert seen == {"user": "user-1", "page": "3"}

    @pytest.mark.asyncio
    async def test_fetch_data_failure_is_recorded_and_raised(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        hook = use_ga("http://api.test", transport=_transport(handler))

        with pytest.raises(httpx.ConnectError):
            await hook.fetch_data("user-1")
        assert "connection refused" in hook.error
        assert hook.loading is False


class TestUserProfileHook:
    @pytest.mark.asyncio
    async def test_load_and_update(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"data": {"id": "user-1", "plan": "free"}})
            return httpx.Response(200, json={"data": {"id": "user-1", "display_name": "New"}})

        hook = UserProfileHook("http://api.test", transport=_transport(handler))

        assert (await hook.load("user-1"))["plan"] == "free"
        updated = await hook.update("user-1", display_name="New")
        assert updated["display_name"] == "New"
        assert hook.profile == updated

    @pytest.mark.asyncio
    async def test_update_error(self):
        hook = UserProfileHook(
            "http://api.test",
            transport=_transport(lambda r: httpx.Response(404, json={"error": "User not found"})),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await hook.update("ghost", display_name="x")
        assert hook.error == "User not found"


class TestPaginator:
    def test_total_pages(self):
        assert Paginator(total_items=250).total_pages == 3
        assert Paginator(total_items=0).total_pages == 0

    @pytest.mark.parametrize("page", [0, -1, 4])
    def test_out_of_range_is_ignored(self, page):
        paginator = Paginator(total_items=250)
        paginator.go_to_page(page)
        assert paginator.current_page == 1

    def test_navigation(self):
        paginator = Paginator(total_items=250)
        paginator.next_page()
        paginator.next_page()
        paginator.next_page()
        assert paginator.current_page == 3

        paginator.prev_page()
        assert paginator.current_page == 2

        paginator.reset()
        assert paginator.current_page == 1

        paginator.prev_page()
        assert paginator.current_page == 1
