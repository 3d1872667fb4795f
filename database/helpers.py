"""
Database helper functions — user rows, paginated integration data,
billing records and AI conversation history.

"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    AIConversation,
    Base,
    PaymentTransaction,
    Usage,
    User,
)
from database.session import readonly_session

logger = logging.getLogger(__name__)

FREE_PLAN_DEFAULTS: Dict[str, Any] = {
    "role": "user",
    "plan": "free",
    "website_limit": 1,
    "keyword_limit": 100,
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row: Base) -> Dict[str, Any]:
    """Serialise an ORM row into a JSON-ready dict keyed by column name."""
    return {
        col.name: _jsonable(getattr(row, col.key))
        for col in row.__table__.columns
    }


# ── Pagination ──────────────────────────────────────────────────────


def page_bounds(page: int, page_size: int) -> Tuple[int, int]:
    """Inclusive ``(from, to)`` row offsets for a 1-based page number."""
    start = (page - 1) * page_size
    return start, start + page_size - 1


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size else 0


async def fetch_page(
    session: AsyncSession,
    model: Type[Base],
    user_id: str,
    page: int,
    page_size: int,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Return one page of a user's integration rows (newest first) and the
    exact number of rows the user owns in that table.
    """
    start, end = page_bounds(page, page_size)

    count_result = await session.execute(
        select(func.count()).select_from(model).where(model.user_id == user_id)
    )
    total = count_result.scalar_one()

    result = await session.execute(
        select(model)
        .where(model.user_id == user_id)
        .order_by(model.created_at.desc())
        .offset(start)
        .limit(end - start + 1)
    )
    rows = [row_to_dict(r) for r in result.scalars().all()]
    return rows, total


# ── Users ───────────────────────────────────────────────────────────


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def find_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def find_user_by_subscription(
    session: AsyncSession,
    subscription_id: str,
) -> Optional[User]:
    result = await session.execute(
        select(User).where(User.subscription_id == subscription_id)
    )
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, **fields: Any) -> User:
    """Insert a ``User`` row. Integrity errors propagate to the caller."""
    now = datetime.now(timezone.utc)
    user = User(created_at=now, updated_at=now, **fields)
    session.add(user)
    await session.flush()
    logger.info("Created user %s", user.id)
    return user


async def ensure_user_exists(
    session: AsyncSession,
    user_id: str,
    email: str | None = None,
) -> None:
    """Create a ``User`` row with free-plan defaults if none exists (idempotent)."""
    now = datetime.now(timezone.utc)
    stmt = (
        pg_insert(User)
        .values(
            id=user_id,
            email=email,
            **FREE_PLAN_DEFAULTS,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["id"])
    )
    await session.execute(stmt)
    await session.flush()


async def update_user(
    session: AsyncSession,
    user_id: str,
    values: Dict[str, Any],
) -> Optional[User]:
    """
    Apply ``values`` to the user row and bump ``updated_at``.

    Returns the updated row, or ``None`` when the user does not exist.
    """
    user = await get_user(session, user_id)
    if user is None:
        return None
    for key, value in values.items():
        setattr(user, key, value)
    user.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return user


async def get_usage(session: AsyncSession, user_id: str) -> Optional[Usage]:
    result = await session.execute(select(Usage).where(Usage.user_id == user_id))
    return result.scalar_one_or_none()


# ── Billing ─────────────────────────────────────────────────────────


async def record_transaction(
    session: AsyncSession,
    *,
    reference_id: str,
    user_id: str,
    subscription_id: str | None,
    plan: str | None,
    amount: float,
    currency: str = "USD",
    status: str = "completed",
) -> None:
    """Insert a payment transaction, or refresh it if ``reference_id`` exists."""
    now = datetime.now(timezone.utc)
    stmt = pg_insert(PaymentTransaction).values(
        id=uuid.uuid4(),
        reference_id=reference_id,
        user_id=user_id,
        subscription_id=subscription_id,
        plan=plan,
        amount=amount,
        currency=currency,
        status=status,
        transaction_date=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["reference_id"],
        set_={
            "plan": stmt.excluded.plan,
            "amount": stmt.excluded.amount,
            "currency": stmt.excluded.currency,
            "status": stmt.excluded.status,
            "transaction_date": stmt.excluded.transaction_date,
        },
    )
    await session.execute(stmt)
    await session.flush()


async def find_transaction(
    session: AsyncSession,
    reference_id: str,
) -> Optional[PaymentTransaction]:
    result = await session.execute(
        select(PaymentTransaction).where(PaymentTransaction.reference_id == reference_id)
    )
    return result.scalar_one_or_none()


async def set_transactions_status(
    session: AsyncSession,
    subscription_id: str,
    status: str,
) -> None:
    await session.execute(
        update(PaymentTransaction)
        .where(PaymentTransaction.subscription_id == subscription_id)
        .values(status=status)
    )
    await session.flush()


# ── AI analytics ────────────────────────────────────────────────────


async def run_readonly_query(
    sql: str, max_rows: int, params: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """
    Execute ``sql`` with bound ``params`` inside a READ ONLY transaction
    on an independent session and return at most ``max_rows`` rows as dicts.

    The search path is narrowed to ``pg_catalog`` so unqualified names
    resolve only to CTEs and built-ins. The transaction is always rolled back.
    """
    async with readonly_session() as session:
        await session.execute(text("SET LOCAL search_path TO pg_catalog"))
        result = await session.execute(text(sql), params or {})
        rows = result.mappings().fetchmany(max_rows)
        return [{k: _jsonable(v) for k, v in row.items()} for row in rows]


async def save_conversation(
    session: AsyncSession,
    *,
    user_id: str,
    session_id: str,
    question: str,
    answer: str,
    sql: str | None,
    chart_type: str | None,
    model: str,
    provider: str,
) -> None:
    """Insert the *user* question and the *assistant* answer."""
    now = datetime.now(timezone.utc)
    session.add(
        AIConversation(
            user_id=user_id,
            session_id=session_id,
            role="user",
            content=question,
            created_at=now,
        )
    )
    session.add(
        AIConversation(
            user_id=user_id,
            session_id=session_id,
            role="assistant",
            content=answer,
            sql_generated=sql,
            chart_type=chart_type,
            model_used=model,
            provider=provider,
            created_at=now,
        )
    )
    await session.flush()
