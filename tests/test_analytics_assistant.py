"""
Tests for the AI analytics assistant — SQL guard, LLM output parsing,
the question → SQL → summary flow and the /api/ai/analytics route.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import ProgrammingError

from core.analytics_assistant import (
    AnalyticsAssistant,
    UnsafeQueryError,
    parse_llm_json,
    scope_to_user,
    validate_sql,
)
from utils.encryption import encrypt
from utils.llm_providers import LLMProviderError

USER = "user-123"
GOOD_SQL = (
    f"SELECT page_path, SUM(views) AS views FROM ga_data WHERE user_id = '{USER}' "
    "GROUP BY page_path ORDER BY views DESC LIMIT 10"
)


class TestValidateSql:
    def test_accepts_scoped_select(self):
        assert validate_sql(GOOD_SQL + ";", USER) == GOOD_SQL

    def test_created_at_column_is_not_a_keyword(self):
        sql = f"SELECT created_at FROM gsc_data WHERE user_id = '{USER}'"
        assert validate_sql(sql, USER) == sql

    @pytest.mark.parametrize(
        "sql",
        [
            f"SELECT g.page_path, SUM(g.views) AS views FROM ga_data AS g WHERE g.user_id = '{USER}' GROUP BY g.page_path",
            f"SELECT EXTRACT(DOW FROM date) AS dow, SUM(clicks) FROM gsc_data WHERE user_id = '{USER}' GROUP BY 1",
            f"SELECT page_path FROM ga_data WHERE user_id = '{USER}' AND page_path LIKE '/blog.html%'",
            f"SELECT t.query FROM (SELECT query FROM gsc_data WHERE user_id = '{USER}') t",
        ],
    )
    def test_accepts_ordinary_analytics(self, sql):
        assert validate_sql(sql, USER) == sql

    @pytest.mark.parametrize(
        "sql",
        [
            f"SELECT email, llm_api_key_encrypted, ga_token FROM users WHERE id <> '{USER}'",
            f"SELECT email FROM users WHERE id = '{USER}'",
            f"SELECT g.views, u.email FROM ga_data g, users u WHERE g.user_id = '{USER}'",
            f"SELECT * FROM public.ga_data WHERE user_id = '{USER}'",
            f"SELECT * FROM auth.refresh_tokens WHERE user_id = '{USER}'",
            f"SELECT g.views, r.token FROM ga_data g, auth.refresh_tokens r WHERE g.user_id = '{USER}'",
            f"SELECT usename FROM pg_user WHERE '{USER}' = '{USER}' AND user_id = '{USER}'",
            f"SELECT table_name FROM information_schema.tables WHERE user_id = '{USER}'",
            f"SELECT amount FROM payment_transactions WHERE user_id = '{USER}'",
        ],
    )
    def test_refuses_other_tables(self, sql):
        with pytest.raises(UnsafeQueryError):
            validate_sql(sql, USER)

    @pytest.mark.parametrize(
        "sql",
        [
            f"SELECT * FROM ga_data WHERE user_id <> '{USER}'",
            f"SELECT * FROM ga_data WHERE user_id != '{USER}'",
            f"SELECT * FROM ga_data WHERE user_id = '{USER}' OR user_id = 'user-999'",
            f"SELECT * FROM ga_data WHERE user_id IN ('{USER}', 'user-999')",
            f"SELECT * FROM ga_data WHERE user_id LIKE '%' AND page_path = '{USER}'",
            f"SELECT * FROM ga_data WHERE page_path = '{USER}'",
        ],
    )
    def test_refuses_other_users(self, sql):
        with pytest.raises(UnsafeQueryError):
            validate_sql(sql, USER)

    @pytest.mark.parametrize(
        "sql",
        [
            f"DELETE FROM ga_data WHERE user_id = '{USER}'",
            f"WITH x AS (SELECT 1) SELECT * FROM x WHERE '{USER}' = '{USER}'",
            f"SELECT * FROM ga_data WHERE user_id = '{USER}'; DROP TABLE ga_data",
            f"SELECT * FROM ga_data WHERE user_id = '{USER}' AND 1 = (SELECT 1); UPDATE users SET plan='pro'",
            f"select * from ga_data where user_id = '{USER}'; select 1",
            "SELECT * FROM ga_data",
            f"SELECT * FROM ga_data WHERE user_id = '{USER}' UNION SELECT grant FROM x",
        ],
    )
    def test_refuses(self, sql):
        with pytest.raises(UnsafeQueryError):
            validate_sql(sql, USER)


class TestScopeToUser:
    def test_tables_are_shadowed_by_bound_user_ctes(self):
        scoped = scope_to_user(GOOD_SQL)

        assert scoped.startswith(
            "WITH ga_data AS (SELECT * FROM public.ga_data WHERE user_id = :scope_user_id), "
            "gsc_data AS (SELECT * FROM public.gsc_data WHERE user_id = :scope_user_id) "
        )
        assert scoped.endswith(GOOD_SQL)
        assert USER not in scoped.replace(GOOD_SQL, "")


class TestParseLlmJson:
    def test_plain(self):
        assert parse_llm_json('{"sql": "SELECT 1"}') == {"sql": "SELECT 1"}

    def test_fenced(self):
        text = 'Here you go:\n```json\n{"sql": "SELECT 1", "chartType": "bar"}\n```'
        assert parse_llm_json(text)["chartType"] == "bar"

    def test_not_json(self):
        with pytest.raises(ValueError):
            parse_llm_json("I cannot help with that")


def _llm(*responses):
    llm = MagicMock()
    llm.generate = AsyncMock(side_effect=list(responses))
    return llm


class TestAssistant:
    @pytest.mark.asyncio
    async def test_full_flow(self):
        plan = {
            "sql": GOOD_SQL,
            "explanation": "Top pages by views",
            "chartType": "bar",
            "chartConfig": {"xAxis": "page_path", "yAxis": "views"},
        }
        rows = [{"page_path": f"/p{i}", "views": 100 - i} for i in range(30)]
        llm = _llm(json.dumps(plan), "Your home page leads traffic.")
        runner = AsyncMock(return_value=rows)

        reply = await AnalyticsAssistant(llm, query_runner=runner, max_rows=50, summary_rows=20).answer(
            "top pages?", USER
        )

        assert reply.answered is True
        assert reply.body["summary"] == "Your home page leads traffic."
        assert reply.body["rowCount"] == 30
        assert reply.body["chartType"] == "bar"
        assert reply.body["sql"] == GOOD_SQL
        runner.assert_awaited_once_with(scope_to_user(GOOD_SQL), 50, {"scope_user_id": USER})
        summary_prompt = llm.generate.await_args_list[1].args[0]
        assert "/p19" in summary_prompt
        assert "/p20" not in summary_prompt
        assert f"user_id = '{USER}'" in llm.generate.await_args_list[0].kwargs["system"]

    @pytest.mark.asyncio
    async def test_unparseable_llm_output(self):
        reply = await AnalyticsAssistant(_llm("sure! here is the data"), query_runner=AsyncMock()).answer(
            "q", USER
        )
        assert reply.answered is False
        assert reply.body["error"] is True
        assert reply.body["chartType"] == "none"

    @pytest.mark.asyncio
    async def test_unanswerable_question(self):
        llm = _llm(json.dumps({"sql": None, "explanation": "No revenue data", "error": True}))
        reply = await AnalyticsAssistant(llm, query_runner=AsyncMock()).answer("revenue?", USER)

        assert reply.body["summary"] == "No revenue data"
        assert reply.body["sql"] is None

    @pytest.mark.asyncio
    async def test_unsafe_sql_never_executes(self):
        llm = _llm(json.dumps({"sql": f"DROP TABLE ga_data -- {USER}"}))
        runner = AsyncMock()

        reply = await AnalyticsAssistant(llm, query_runner=runner).answer("q", USER)

        assert reply.body["error"] is True
        assert reply.body["summary"].startswith("Invalid query:")
        runner.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_error(self):
        llm = _llm(json.dumps({"sql": GOOD_SQL}))
        runner = AsyncMock(side_effect=ProgrammingError("SELECT", {}, Exception("no such column")))

        reply = await AnalyticsAssistant(llm, query_runner=runner).answer("q", USER)

        assert reply.body["error"] is True
        assert reply.body["sql"] == GOOD_SQL
        assert "no such column" in reply.body["summary"]

    @pytest.mark.asyncio
    async def test_summary_failure_falls_back_to_explanation(self):
        llm = _llm(
            json.dumps({"sql": GOOD_SQL, "explanation": "Views per page"}),
            LLMProviderError("rate limited"),
        )
        runner = AsyncMock(return_value=[{"views": 1}])

        reply = await AnalyticsAssistant(llm, query_runner=runner).answer("q", USER)

        assert reply.body["summary"] == "Views per page"
        assert reply.body["chartType"] == "table"
        assert reply.body["chartConfig"] == {}


class TestAnalyticsRoute:
    def test_missing_message(self, client):
        resp = client.post("/api/ai/analytics", json={"userId": USER})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Message is required"}

    def test_missing_user(self, client):
        resp = client.post("/api/ai/analytics", json={"message": "hi"})
        assert resp.status_code == 400

    def test_no_api_key(self, client, make_user):
        with patch("api.analytics.get_user", new_callable=AsyncMock, return_value=make_user()):
            resp = client.post("/api/ai/analytics", json={"message": "hi", "userId": USER})

        assert resp.status_code == 400
        assert "No API key configured" in resp.json()["error"]

    def test_undecryptable_key(self, client, make_user, encryption_key):
        user = make_user(llm_api_key_encrypted="iv:tag:ciphertext")
        with patch("api.analytics.get_user", new_callable=AsyncMock, return_value=user):
            resp = client.post("/api/ai/analytics", json={"message": "hi", "userId": USER})

        assert resp.status_code == 400
        assert "decrypt" in resp.json()["error"]

    def test_answer_is_saved(self, client, make_user, encryption_key):
        user = make_user(
            llm_provider="groq",
            llm_model="llama-3.3-70b-versatile",
            llm_api_key_encrypted=encrypt("gsk-test"),
        )
        body = {"summary": "ok", "data": [], "chartType": "table", "chartConfig": {}, "sql": GOOD_SQL, "rowCount": 0}
        reply = MagicMock(answered=True, body=body, sql=GOOD_SQL, chart_type="table")

        with patch("api.analytics.get_user", new_callable=AsyncMock, return_value=user), patch(
            "api.analytics.get_llm_provider"
        ) as mock_provider, patch.object(
            AnalyticsAssistant, "answer", new_callable=AsyncMock, return_value=reply
        ), patch(
            "api.analytics.save_conversation", new_callable=AsyncMock
        ) as mock_save:
            resp = client.post(
                "/api/ai/analytics",
                json={"message": "top pages?", "userId": USER, "sessionId": "s-1"},
            )

        assert resp.status_code == 200
        assert resp.json() == body
        mock_provider.assert_called_once_with(
            "groq", api_key="gsk-test", default_model="llama-3.3-70b-versatile"
        )
        saved = mock_save.await_args.kwargs
        assert saved["session_id"] == "s-1"
        assert saved["provider"] == "groq"
        assert saved["question"] == "top pages?"

    def test_missing_model_uses_the_provider_default(self, client, make_user, encryption_key):
        user = make_user(
            llm_provider="anthropic", llm_model=None, llm_api_key_encrypted=encrypt("sk-ant")
        )
        reply = MagicMock(answered=False, body={"summary": "x", "error": True})

        with patch("api.analytics.get_user", new_callable=AsyncMock, return_value=user), patch(
            "api.analytics.get_llm_provider"
        ) as mock_provider, patch.object(
            AnalyticsAssistant, "answer", new_callable=AsyncMock, return_value=reply
        ):
            client.post("/api/ai/analytics", json={"message": "q", "userId": USER})

        mock_provider.assert_called_once_with(
            "anthropic", api_key="sk-ant", default_model="claude-3-5-sonnet-20241022"
        )
