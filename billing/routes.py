"""
Billing routes — PayPal subscription checkout, activation and webhooks.

Route prefix: /api
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session
from billing.activation import PaymentVerificationError, activate_plan, verify_payment
from billing.paypal import PayPalClient, PayPalError, get_paypal_client
from billing.webhooks import handle_event
from config.plans import PlanRegistry, get_plan_registry
from config.settings import config
from database.helpers import get_user, row_to_dict
from utils.schemas import ActivateSubscriptionRequest, CreateSubscriptionRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])


@router.post("/payment/paypal/create-subscription")
async def create_subscription(
    body: CreateSubscriptionRequest,
    session: AsyncSession = Depends(db_session),
    paypal: PayPalClient = Depends(get_paypal_client),
    plans: PlanRegistry = Depends(get_plan_registry),
) -> Dict[str, Any]:
    """Start a PayPal subscription and hand back the approval link."""
    if not body.plan_id or not body.user_id or not plans.is_purchasable(body.plan_id):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid plan or user ID")

    user = await get_user(session, body.user_id)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User profile not found")

    paypal_plan_id = plans.paypal_plan_id(body.plan_id)
    if not paypal_plan_id:
        logger.error("PAYPAL_PLAN_ID_%s is not configured", body.plan_id.upper())
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create subscription")

    try:
        subscription = await paypal.create_subscription(
            paypal_plan_id=paypal_plan_id,
            user_id=user.id,
            email=user.email,
            given_name=user.display_name,
        )
    except PayPalError as exc:
        logger.error("PayPal subscription error: %s", exc)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create subscription")

    if not subscription.get("id"):
        logger.error("PayPal returned no subscription id: %s", subscription)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create subscription")

    approval_link = next(
        (link.get("href") for link in subscription.get("links", []) if link.get("rel") == "approve"),
        None,
    )
    return {"subscriptionId": subscription["id"], "approvalLink": approval_link}


@router.post("/paypal/activate")
async def activate_subscription(
    body: ActivateSubscriptionRequest,
    session: AsyncSession = Depends(db_session),
    paypal: PayPalClient = Depends(get_paypal_client),
    plans: PlanRegistry = Depends(get_plan_registry),
) -> Dict[str, Any]:
    """
    Move a user onto a paid plan after checkout.

    The payment is looked up at PayPal first; the client's word alone
    never changes a plan.
    """
    if not body.user_id or not body.plan:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing required fields")
    if not plans.is_purchasable(body.plan):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Invalid plan: {body.plan}")
    if not body.subscription_id and not body.order_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing subscriptionId or orderId")

    logger.info("Activating plan %s for user %s", body.plan, body.user_id)

    try:
        await verify_payment(
            session,
            paypal,
            plans,
            user_id=body.user_id,
            plan=body.plan,
            subscription_id=body.subscription_id,
            order_id=body.order_id,
        )
    except PaymentVerificationError as exc:
        logger.warning("Payment verification failed for %s: %s", body.user_id, exc)
        raise HTTPException(status.HTTP_402_PAYMENT_REQUIRED, str(exc))
    except PayPalError as exc:
        logger.error("PayPal lookup failed during activation: %s", exc)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Failed to verify payment with PayPal")

    user = await activate_plan(
        session,
        plans,
        user_id=body.user_id,
        plan=body.plan,
        subscription_id=body.subscription_id,
        order_id=body.order_id,
    )
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    return {"success": True, "data": row_to_dict(user)}


@router.post("/payment/paypal/webhook")
async def paypal_webhook(
    request: Request,
    session: AsyncSession = Depends(db_session),
    paypal: PayPalClient = Depends(get_paypal_client),
    plans: PlanRegistry = Depends(get_plan_registry),
) -> Dict[str, Any]:
    """
    PayPal webhook receiver.

    Only events whose transmission signature PayPal confirms are
    processed.  Once verified, the event is always acknowledged with 200
    so PayPal stops redelivering it.
    """
    if not config.paypal_webhook_id:
        logger.error("PAYPAL_WEBHOOK_ID is not configured; refusing webhook")
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Webhook verification not configured",
        )

    try:
        event = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
    if not isinstance(event, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Webhook body must be a JSON object")

    try:
        verified = await paypal.verify_webhook_signature(
            request.headers, event, config.paypal_webhook_id
        )
    except PayPalError as exc:
        logger.error("Webhook signature verification error: %s", exc)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Signature verification failed")

    if not verified:
        logger.warning("Rejected PayPal webhook %s: invalid signature", event.get("id"))
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    event_type = event.get("event_type")
    try:
        await handle_event(session, event, plans)
    except Exception as exc:
        logger.exception("Webhook processing error for %s: %s", event_type, exc)
        await session.rollback()
        return {"received": True, "error": "Processing error logged"}

    return {"received": True, "event_type": event_type, "event_id": event.get("id")}
