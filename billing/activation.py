"""
Subscription activation — confirm a PayPal payment server-to-server, then
move the user onto the purchased plan.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from billing.paypal import PayPalClient
from config.plans import PlanRegistry
from database.helpers import (
    find_transaction,
    find_user_by_subscription,
    record_transaction,
    update_user,
)
from database.models import User

logger = logging.getLogger(__name__)

SUBSCRIPTION_OK_STATUSES = {"ACTIVE", "APPROVED"}
ORDER_OK_STATUSES = {"COMPLETED", "APPROVED"}
ORDER_CURRENCY = "USD"


class PaymentVerificationError(Exception):
    """PayPal does not confirm the payment the client claims to have made."""


def _as_amount(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


async def _check_subscription(
    session: AsyncSession,
    plans: PlanRegistry,
    subscription: Dict[str, Any],
    *,
    user_id: str,
    plan: str,
    subscription_id: str,
) -> None:
    status = subscription.get("status")
    if status not in SUBSCRIPTION_OK_STATUSES:
        raise PaymentVerificationError(f"Subscription is not active (status: {status})")

    custom_id = subscription.get("custom_id")
    if custom_id:
        if custom_id != user_id:
            raise PaymentVerificationError("Subscription belongs to another user")
    else:
        # unbound subscription: only claimable if nobody else holds it
        holder = await find_user_by_subscription(session, subscription_id)
        if holder is not None and holder.id != user_id:
            raise PaymentVerificationError("Subscription belongs to another user")

    paid_plan = plans.plan_for_paypal_id(subscription.get("plan_id"))
    if paid_plan is None:
        raise PaymentVerificationError("Subscription is not for a known plan")
    if paid_plan != plan:
        raise PaymentVerificationError(
            f"Subscription is for plan '{paid_plan}', not '{plan}'"
        )


async def _check_order(
    session: AsyncSession,
    plans: PlanRegistry,
    order: Dict[str, Any],
    *,
    user_id: str,
    plan: str,
    order_id: str,
) -> None:
    status = order.get("status")
    if status not in ORDER_OK_STATUSES:
        raise PaymentVerificationError(f"Order is not completed (status: {status})")

    units = order.get("purchase_units") or []
    if len(units) != 1:
        raise PaymentVerificationError("Order must contain exactly one purchase unit")
    unit = units[0]

    if unit.get("custom_id") != user_id:
        raise PaymentVerificationError("Order belongs to another user")

    amount = unit.get("amount") or {}
    expected = _as_amount(plans.get_plan(plan)["price"])
    if amount.get("currency_code") != ORDER_CURRENCY or _as_amount(amount.get("value")) != expected:
        raise PaymentVerificationError(
            f"Order amount does not match the price of plan '{plan}'"
        )

    if await find_transaction(session, order_id) is not None:
        raise PaymentVerificationError("Order has already been used")


async def verify_payment(
    session: AsyncSession,
    paypal: PayPalClient,
    plans: PlanRegistry,
    *,
    user_id: str,
    plan: str,
    subscription_id: str | None = None,
    order_id: str | None = None,
) -> Dict[str, Any]:
    """
    Look the payment up at PayPal and check it belongs to ``user_id`` and
    pays for ``plan``.

    Subscriptions must be active, bound to the user (or unclaimed) and on
    the PayPal plan configured for ``plan``. Orders must be completed,
    carry the user id as ``custom_id``, charge exactly the plan price and
    not have been redeemed before.

    Returns the PayPal resource. Raises ``PaymentVerificationError`` when
    the resource does not match, ``PayPalError`` when PayPal fails.
    """
    if subscription_id:
        subscription = await paypal.get_subscription(subscription_id)
        await _check_subscription(
            session, plans, subscription,
            user_id=user_id, plan=plan, subscription_id=subscription_id,
        )
        return subscription

    if order_id:
        order = await paypal.get_order(order_id)
        await _check_order(
            session, plans, order,
            user_id=user_id, plan=plan, order_id=order_id,
        )
        return order

    raise PaymentVerificationError("Missing subscriptionId or orderId")


async def activate_plan(
    session: AsyncSession,
    plans: PlanRegistry,
    *,
    user_id: str,
    plan: str,
    subscription_id: str | None,
    order_id: str | None = None,
) -> Optional[User]:
    """
    Overwrite the user's plan, subscription and limits. ``None`` if unknown user.

    A one-off order is recorded as a transaction so it cannot be redeemed twice.
    """
    values: Dict[str, Any] = {
        "plan": plan,
        "subscription_id": subscription_id,
        "subscription_status": "active",
        **plans.get_limits(plan),
    }
    user = await update_user(session, user_id, values)
    if user is None:
        return None

    if order_id and not subscription_id:
        await record_transaction(
            session,
            reference_id=order_id,
            user_id=user_id,
            subscription_id=None,
            plan=plan,
            amount=plans.get_plan(plan)["price"],
            currency=ORDER_CURRENCY,
        )
    logger.info("Activated plan %s for user %s", plan, user_id)
    return user
