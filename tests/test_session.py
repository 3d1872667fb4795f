"""
Tests for request-scoped and read-only sessions.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from database.helpers import run_readonly_query
from database.session import get_db_session, readonly_session


@pytest.fixture
def session():
    mock = MagicMock()
    mock.execute = AsyncMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    return mock


@pytest.fixture
def factory(session):
    make_session = MagicMock()
    make_session.return_value.__aenter__.return_value = session
    with patch("database.session.get_session_factory", return_value=make_session):
        yield make_session


class TestGetDbSession:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, factory, session):
        gen = get_db_session()
        assert await gen.__anext__() is session

        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, factory, session):
        gen = get_db_session()
        await gen.__anext__()

        with pytest.raises(RuntimeError):
            await gen.athrow(RuntimeError("boom"))

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()


class TestReadonlySession:
    @pytest.mark.asyncio
    async def test_read_only_and_rolled_back(self, factory, session):
        async with readonly_session() as s:
            assert s is session

        statement = session.execute.await_args.args[0]
        assert str(statement) == "SET TRANSACTION READ ONLY"
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()


class TestRunReadonlyQuery:
    @pytest.mark.asyncio
    async def test_binds_params_under_narrow_search_path(self, factory, session):
        result = MagicMock()
        result.mappings.return_value.fetchmany.return_value = [{"views": 3}]
        session.execute = AsyncMock(side_effect=[None, None, result])

        rows = await run_readonly_query(
            "SELECT views FROM ga_data", 5, {"scope_user_id": "user-1"}
        )

        assert rows == [{"views": 3}]
        calls = session.execute.await_args_list
        assert str(calls[0].args[0]) == "SET TRANSACTION READ ONLY"
        assert str(calls[1].args[0]) == "SET LOCAL search_path TO pg_catalog"
        assert str(calls[2].args[0]) == "SELECT views FROM ga_data"
        assert calls[2].args[1] == {"scope_user_id": "user-1"}
        result.mappings.return_value.fetchmany.assert_called_once_with(5)
        session.rollback.assert_awaited_once()
