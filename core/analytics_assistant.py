"""
AI analytics assistant — turns a natural-language question into a
read-only SQL query over the user's GA4 / Search Console rows, runs it,
and asks the LLM to summarise the result.

Every generated query passes ``validate_sql`` before it reaches the
database, and runs inside a READ ONLY transaction against CTEs that hold only
the caller's rows.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from config.settings import config
from database.helpers import run_readonly_query
from database.models import Base
from utils.llm_providers import BaseLLMProvider, LLMProviderError
from utils.prompt_utils import ANALYTICS_SCHEMA, build_sql_system_prompt, build_summary_prompt
from utils.schemas import AnalyticsQueryPlan

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS = (
    "INSERT", "UPDATE", "DELETE", "DROP", "TRUNCATE",
    "ALTER", "CREATE", "GRANT", "REVOKE",
)

ALLOWED_TABLES = frozenset(ANALYTICS_SCHEMA)
PROTECTED_TABLES = frozenset(Base.metadata.tables) - ALLOWED_TABLES
USER_SCOPE_PARAM = "scope_user_id"

_FORBIDDEN_RE = re.compile(r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b", re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_CATALOG_RE = re.compile(r"\b(pg_\w+|information_schema)\b", re.IGNORECASE)
_WORD_RE = re.compile(r"\b[A-Za-z_]\w*\b")
_TABLE_REF_RE = re.compile(r'\b(?:FROM|JOIN)\s+("?[\w.]+"?)', re.IGNORECASE)
_QUALIFIED_RE = re.compile(r'\b([A-Za-z_]\w*)"?\s*\.\s*"?[A-Za-z_]')
_ALIAS_RE = re.compile(
    r"(?:\b(?:ga_data|gsc_data)|\))\s+(?:AS\s+)?([A-Za-z_]\w*)", re.IGNORECASE
)
_USER_FILTER_RE = re.compile(
    r"\buser_id\b\s*(<>|!=|<=|>=|=|<|>|~|NOT\b|IN\b|I?LIKE\b|IS\b|BETWEEN\b|SIMILAR\b)\s*('[^']*')?",
    re.IGNORECASE,
)
_STRING_RE = re.compile(r"'(?:[^']|'')*'")
_COLUMNS = frozenset(col for info in ANALYTICS_SCHEMA.values() for col in info["columns"])

QueryRunner = Callable[[str, int, Dict[str, Any]], Awaitable[List[Dict[str, Any]]]]


class UnsafeQueryError(ValueError):
    """Generated SQL is not a single read-only SELECT scoped to the user."""


def _check_tables(sql: str) -> None:
    match = _CATALOG_RE.search(sql)
    if match:
        raise UnsafeQueryError(f"System catalog '{match.group(1)}' cannot be queried.")

    for word in _WORD_RE.findall(sql):
        if word.lower() in PROTECTED_TABLES:
            raise UnsafeQueryError(f"Table '{word}' cannot be queried.")

    # EXTRACT(... FROM date) and SUBSTRING(... FROM 2) put columns and numbers after FROM
    for ref in _TABLE_REF_RE.findall(sql):
        name = ref.strip('"').lower()
        if name in ALLOWED_TABLES or name in _COLUMNS or name.isdigit():
            continue
        raise UnsafeQueryError(f"Table '{name}' cannot be queried.")

    aliases = {a.lower() for a in _ALIAS_RE.findall(sql)} | ALLOWED_TABLES
    for prefix in _QUALIFIED_RE.findall(sql):
        if prefix.lower() not in aliases:
            raise UnsafeQueryError(f"Schema-qualified reference '{prefix}.' is not allowed.")


def _check_user_filter(sql: str, user_id: str) -> None:
    own = f"'{user_id}'"
    filters = list(_USER_FILTER_RE.finditer(sql))
    if not filters:
        raise UnsafeQueryError("Query must be restricted to your own data.")
    for match in filters:
        if match.group(1) != "=" or match.group(2) != own:
            raise UnsafeQueryError("Query must be restricted to your own data.")


def validate_sql(sql: str, user_id: str) -> str:
    """
    Check a generated query and return it normalised (trimmed, without a
    trailing semicolon).

    Only ``ga_data`` and ``gsc_data`` may be referenced and every
    ``user_id`` comparison must be an equality with the caller's id.
    """
    cleaned = sql.strip().rstrip(";").strip()

    if not cleaned.upper().startswith("SELECT"):
        raise UnsafeQueryError("Only SELECT statements are allowed.")

    match = _FORBIDDEN_RE.search(cleaned)
    if match:
        raise UnsafeQueryError(f"{match.group(1).upper()} statements are not allowed.")

    if ";" in cleaned:
        raise UnsafeQueryError("Only a single statement is allowed.")

    _check_tables(_STRING_RE.sub("''", cleaned))
    _check_user_filter(cleaned, user_id)
    return cleaned


def scope_to_user(sql: str) -> str:
    """
    Prefix ``sql`` with CTEs that shadow the analytics tables with the
    caller's rows only, bound through ``:scope_user_id``.
    """
    ctes = ", ".join(
        f"{table} AS (SELECT * FROM public.{table} WHERE user_id = :{USER_SCOPE_PARAM})"
        for table in sorted(ALLOWED_TABLES)
    )
    return f"WITH {ctes} {sql}"


def parse_llm_json(text: str) -> Dict[str, Any]:
    """Parse the LLM's JSON answer, tolerating a markdown code fence."""
    payload = text.strip()
    fenced = _FENCE_RE.search(payload)
    if fenced:
        payload = fenced.group(1).strip()
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


@dataclass
class AssistantReply:
    """Response body plus what gets written to the conversation log."""

    body: Dict[str, Any]
    answered: bool = False
    sql: Optional[str] = None
    chart_type: Optional[str] = None


def _failure(summary: str, *, sql: str | None = None, error: bool = True) -> AssistantReply:
    body: Dict[str, Any] = {"summary": summary, "data": None, "chartType": "none", "sql": sql}
    if error:
        body["error"] = True
    return AssistantReply(body=body)


@dataclass
class AnalyticsAssistant:
    llm: BaseLLMProvider
    query_runner: QueryRunner = run_readonly_query
    max_rows: int = field(default_factory=lambda: config.ai_max_rows)
    summary_rows: int = field(default_factory=lambda: config.ai_summary_rows)

    async def answer(self, question: str, user_id: str) -> AssistantReply:
        """
        Run the full question → SQL → rows → summary flow.

        LLM failures on the first call raise ``LLMProviderError``; every
        other failure is reported inside the reply with ``error: true``.
        """
        raw = await self.llm.generate(
            question,
            system=build_sql_system_prompt(user_id, self.max_rows),
            temperature=0.1,
        )
        logger.debug("LLM response: %s", raw[:300])

        try:
            plan = AnalyticsQueryPlan.model_validate(parse_llm_json(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Failed to parse LLM response: %s", exc)
            return _failure(
                "I had trouble understanding that request. Please try rephrasing your question."
            )

        if not plan.sql or plan.error:
            return _failure(
                plan.explanation or "Unable to generate query for this request.",
                error=False,
            )

        try:
            sql = validate_sql(plan.sql, user_id)
        except UnsafeQueryError as exc:
            logger.warning("Refused generated SQL for user %s: %s", user_id, exc)
            return _failure(f"Invalid query: {exc}")

        logger.info("Executing generated SQL for user %s", user_id)
        try:
            rows = await self.query_runner(
                scope_to_user(sql), self.max_rows, {USER_SCOPE_PARAM: user_id}
            )
        except SQLAlchemyError as exc:
            logger.error("Query execution error: %s", exc)
            return _failure(
                f"Query error: {getattr(exc, 'orig', exc)}. Please try a different question.",
                sql=sql,
            )

        summary = await self._summarise(question, rows, plan.explanation)
        chart_type = plan.chart_type or "table"
        return AssistantReply(
            body={
                "summary": summary,
                "data": rows,
                "chartType": chart_type,
                "chartConfig": plan.chart_config or {},
                "sql": sql,
                "rowCount": len(rows),
            },
            answered=True,
            sql=sql,
            chart_type=chart_type,
        )

    async def _summarise(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        explanation: str | None,
    ) -> str:
        if not rows:
            return explanation or "No data found for this question."
        try:
            return await self.llm.generate(
                build_summary_prompt(question, rows[: self.summary_rows], len(rows)),
            )
        except LLMProviderError as exc:
            logger.error("Summary generation error: %s", exc)
            return explanation or f"Found {len(rows)} results."
