"""
PayPal webhook event handlers.

Each handler receives the event's ``resource`` and mutates the user row
and payment ledger.  ``handle_event`` routes by ``event_type``; unknown
types are logged and acknowledged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.plans import DEFAULT_PLAN, PlanRegistry
from database.helpers import (
    find_user_by_email,
    find_user_by_subscription,
    record_transaction,
    set_transactions_status,
    update_user,
)

logger = logging.getLogger(__name__)

# Plan assumed when PayPal's plan id is not one of ours
FALLBACK_PAID_PLAN = "starter"

Handler = Callable[[AsyncSession, Dict[str, Any], PlanRegistry], Awaitable[None]]


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def _user_for_subscription(
    session: AsyncSession,
    resource: Dict[str, Any],
) -> Optional[str]:
    if resource.get("custom_id"):
        return resource["custom_id"]
    user = await find_user_by_subscription(session, resource["id"])
    return user.id if user else None


async def on_subscription_activated(
    session: AsyncSession,
    resource: Dict[str, Any],
    plans: PlanRegistry,
) -> None:
    subscription_id = resource["id"]
    user_id = resource.get("custom_id")

    if not user_id:
        email = (resource.get("subscriber") or {}).get("email_address")
        logger.warning("Subscription %s has no custom_id, matching by email", subscription_id)
        user = await find_user_by_email(session, email) if email else None
        if user is None:
            logger.warning("No user found for subscription %s", subscription_id)
            return
        user_id = user.id

    plan_name = plans.plan_for_paypal_id(resource.get("plan_id")) or FALLBACK_PAID_PLAN
    next_billing = _parse_time((resource.get("billing_info") or {}).get("next_billing_time"))

    updated = await update_user(
        session,
        user_id,
        {
            "plan": plan_name,
            "subscription_id": subscription_id,
            "subscription_status": "active",
            **plans.get_limits(plan_name),
            "member_start": _parse_time(resource.get("start_time")) or datetime.now(timezone.utc),
            "member_end": next_billing,
            "next_billing_date": next_billing,
        },
    )
    if updated is None:
        logger.warning("Subscription %s references unknown user %s", subscription_id, user_id)
        return

    await record_transaction(
        session,
        reference_id=subscription_id,
        user_id=user_id,
        subscription_id=subscription_id,
        plan=plan_name,
        amount=plans.get_plan(plan_name).get("price") or 0,
    )
    logger.info("Subscription activated for user %s, plan: %s", user_id, plan_name)


async def on_subscription_cancelled(
    session: AsyncSession,
    resource: Dict[str, Any],
    plans: PlanRegistry,
) -> None:
    subscription_id = resource["id"]
    user_id = await _user_for_subscription(session, resource)
    if not user_id:
        logger.warning("Could not find user for cancelled subscription %s", subscription_id)
        return

    # plan stays until the end of the paid period
    await update_user(session, user_id, {"subscription_status": "cancelled"})
    await set_transactions_status(session, subscription_id, "cancelled")
    logger.info("Subscription cancelled for user %s", user_id)


async def on_subscription_suspended(
    session: AsyncSession,
    resource: Dict[str, Any],
    plans: PlanRegistry,
) -> None:
    user = await find_user_by_subscription(session, resource["id"])
    if user is None:
        logger.warning("Could not find user for suspended subscription %s", resource["id"])
        return

    await update_user(session, user.id, {"subscription_status": "suspended"})
    logger.info("Subscription suspended for user %s", user.id)


async def on_subscription_expired(
    session: AsyncSession,
    resource: Dict[str, Any],
    plans: PlanRegistry,
) -> None:
    user = await find_user_by_subscription(session, resource["id"])
    if user is None:
        logger.warning("Could not find user for expired subscription %s", resource["id"])
        return

    await update_user(
        session,
        user.id,
        {
            "plan": DEFAULT_PLAN,
            **plans.get_limits(DEFAULT_PLAN),
            "subscription_status": "expired",
            "subscription_id": None,
            "member_end": datetime.now(timezone.utc),
        },
    )
    logger.info("Subscription expired, user %s downgraded to %s", user.id, DEFAULT_PLAN)


async def on_payment_completed(
    session: AsyncSession,
    resource: Dict[str, Any],
    plans: PlanRegistry,
) -> None:
    subscription_id = resource.get("billing_agreement_id")
    if not subscription_id:
        logger.info("Sale %s is not tied to a subscription", resource.get("id"))
        return

    user = await find_user_by_subscription(session, subscription_id)
    if user is None:
        logger.warning("Could not find user for subscription %s", subscription_id)
        return

    amount = resource.get("amount") or {}
    await record_transaction(
        session,
        reference_id=resource["id"],
        user_id=user.id,
        subscription_id=subscription_id,
        plan=user.plan,
        amount=float(amount.get("total") or 0),
        currency=amount.get("currency") or "USD",
    )
    logger.info(
        "Payment recorded: %s, amount: %s %s",
        resource["id"],
        amount.get("total"),
        amount.get("currency"),
    )


EVENT_HANDLERS: Dict[str, Handler] = {
    "BILLING.SUBSCRIPTION.ACTIVATED": on_subscription_activated,
    "BILLING.SUBSCRIPTION.CANCELLED": on_subscription_cancelled,
    "BILLING.SUBSCRIPTION.SUSPENDED": on_subscription_suspended,
    "BILLING.SUBSCRIPTION.EXPIRED": on_subscription_expired,
    "PAYMENT.SALE.COMPLETED": on_payment_completed,
}


async def handle_event(
    session: AsyncSession,
    event: Dict[str, Any],
    plans: PlanRegistry,
) -> bool:
    """
    Dispatch a verified webhook event.

    Returns False for event types that have no handler.
    """
    event_type = event.get("event_type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled event type: %s", event_type)
        return False

    logger.info("Processing %s (%s)", event_type, event.get("id"))
    await handler(session, event.get("resource") or {}, plans)
    return True
