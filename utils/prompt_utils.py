"""
Shared prompt helpers for the AI analytics assistant.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

# Tables the assistant may query, with the columns it can use.
ANALYTICS_SCHEMA: Dict[str, Dict[str, Any]] = {
    "ga_data": {
        "description": "Google Analytics 4 traffic, one row per day / page / segment",
        "columns": [
            "id", "user_id", "date", "page_path", "device_category", "channel_group",
            "country", "views", "active_users", "new_users", "sessions",
            "views_per_user", "avg_engagement_time", "bounce_rate", "engagement_rate",
        ],
    },
    "gsc_data": {
        "description": "Google Search Console performance, one row per day / query / page",
        "columns": [
            "id", "user_id", "date", "query", "page", "country", "device",
            "clicks", "impressions", "ctr", "position",
        ],
    },
}


def format_schema(schema: Dict[str, Dict[str, Any]] = ANALYTICS_SCHEMA) -> str:
    """
    Render the table catalogue as plain text::

        - ga_data: Google Analytics 4 traffic …
          columns: id, user_id, date, …
    """
    lines: List[str] = []
    for table, info in schema.items():
        lines.append(f"- {table}: {info['description']}")
        lines.append(f"  columns: {', '.join(info['columns'])}")
    return "\n".join(lines)


def build_sql_system_prompt(user_id: str, max_rows: int) -> str:
    return f"""You are an AI analytics assistant. Generate PostgreSQL queries to answer user questions about their website analytics.

AVAILABLE SCHEMA:
{format_schema()}

CRITICAL RULES:
1. ALWAYS include "WHERE user_id = '{user_id}'" in every query
2. ONLY use a single SELECT statement
3. Use valid PostgreSQL syntax
4. For date ranges, use: date >= 'YYYY-MM-DD' AND date <= 'YYYY-MM-DD'
5. Default to last 7 days if no date specified: date >= CURRENT_DATE - INTERVAL '7 days'
6. Always use aggregate functions (SUM, COUNT, AVG) with GROUP BY for summaries
7. Limit results to {max_rows} rows max
8. Order results meaningfully (usually DESC by the main metric)
9. ONLY query the ga_data and gsc_data tables, without a schema prefix

RESPONSE FORMAT (JSON only, no markdown):
{{
  "sql": "SELECT ... FROM ... WHERE user_id = '{user_id}' ...",
  "explanation": "One sentence explaining what this query does",
  "chartType": "bar" | "line" | "pie" | "area" | "table",
  "chartConfig": {{"xAxis": "column_name", "yAxis": "column_name", "title": "Chart Title"}}
}}

If the question cannot be answered:
{{"sql": null, "explanation": "Reason why the question cannot be answered", "error": true}}"""


def build_summary_prompt(question: str, rows: List[Dict[str, Any]], total_rows: int) -> str:
    return f"""Analyze this data and provide a brief insight (2-3 sentences max):

Data ({total_rows} rows):
{json.dumps(rows, indent=2, default=str)}

Question asked: "{question}"

Provide:
1. Key finding from the data
2. One actionable insight or recommendation

Keep it concise and actionable."""
