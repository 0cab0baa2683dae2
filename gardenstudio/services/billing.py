"""
Stripe billing: Checkout for new subscriptions, the customer portal, and
the webhook that keeps the Supabase subscriptions table in sync.

Public functions return (data, error_message, http_status) so routes can
pass Stripe/Supabase failures straight through without try/except.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import stripe
from flask import current_app

from gardenstudio.services import supabase_client
from gardenstudio.services.entitlements import next_month_reset
from gardenstudio.utils.sanitize import mask_identifier

logger = logging.getLogger(__name__)

PAID_PLANS = ("basic", "pro", "max")

# Stripe subscription status -> stored status
STATUS_MAP = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "canceled": "canceled",
}

BillingResult = Tuple[Optional[Dict[str, Any]], Optional[str], int]


class WebhookWriteError(RuntimeError):
    """A subscription row could not be updated; Stripe should retry the event."""


def _require_write(ok: bool, what: str) -> None:
    if not ok:
        raise WebhookWriteError(f"Subscription update failed ({what})")


def is_configured() -> bool:
    return bool(current_app.config.get("STRIPE_SECRET_KEY"))


def _configure() -> None:
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")


def _site_url() -> str:
    return (current_app.config.get("SITE_URL") or "http://localhost:5173").rstrip("/")


def price_id_for_plan(plan: str) -> Optional[str]:
    key = {
        "basic": "STRIPE_BASIC_PRICE_ID",
        "pro": "STRIPE_PRICE_ID",
        "max": "STRIPE_MAX_PRICE_ID",
    }.get(plan)
    return current_app.config.get(key) if key else None


def plan_from_price_id(price_id: Optional[str]) -> str:
    """Map a Stripe price id back to a plan; unknown prices count as pro."""
    if price_id:
        for plan in PAID_PLANS:
            if price_id == price_id_for_plan(plan):
                return plan
    return "pro"


def _iso(timestamp: Optional[int]) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _plain(obj: Any) -> Dict[str, Any]:
    """Stripe objects as plain dicts so handlers can use .get()."""
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _price_id(subscription: Dict[str, Any]) -> Optional[str]:
    return (_first_item(subscription).get("price") or {}).get("id")


def _period_fields(subscription: Dict[str, Any]) -> Dict[str, str]:
    """Period start/end, read from the subscription or its first item."""
    item = _first_item(subscription)
    fields = {}
    start = subscription.get("current_period_start") or item.get("current_period_start")
    end = subscription.get("current_period_end") or item.get("current_period_end")
    if start:
        fields["current_period_start"] = _iso(start)
    if end:
        fields["current_period_end"] = _iso(end)
    return fields


def _monthly_counter_fields() -> Dict[str, Any]:
    return {
        "projects_this_month": 0,
        "vision_renders_this_month": 0,
        "exports_this_month": 0,
        "month_reset_date": next_month_reset().isoformat(),
    }


# ============================================================================
# Checkout & portal
# ============================================================================

def create_checkout_session(user_id: Optional[str], email: Optional[str], plan: str = "pro") -> BillingResult:
    """
    Start a subscription Checkout Session for a signed-in user.

    Args:
        user_id: Supabase user id
        email: Account email, used when creating the Stripe customer
        plan: basic, pro or max

    Returns:
        ({"sessionId", "url"}, None, 200) on success, else (None, message, status)
    """
    if not is_configured():
        return None, "Billing is not configured.", 503
    if not user_id or not email:
        return None, "userId and email are required", 400
    if plan not in PAID_PLANS:
        return None, "Unknown plan.", 400

    price_id = price_id_for_plan(plan)
    if not price_id:
        logger.error("Price id not configured for %s plan", plan)
        return None, f"Price ID not configured for {plan} plan", 500

    if not supabase_client.get_user_profile(user_id):
        return None, "User not found", 401

    _configure()
    try:
        customer_id = supabase_client.get_stripe_customer_id(user_id)
        if not customer_id:
            customer = stripe.Customer.create(email=email, metadata={"supabase_user_id": user_id})
            customer_id = customer.id
            saved, error = supabase_client.save_stripe_customer_id(user_id, customer_id)
            if not saved:
                logger.warning("Could not store Stripe customer %s: %s", mask_identifier(customer_id), error)

        site_url = _site_url()
        metadata = {"userId": user_id, "plan": plan}
        session = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{site_url}/studio?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{site_url}/?checkout=canceled",
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout creation failed: %s", e)
        return None, "Failed to create checkout session", 500

    logger.info("Checkout session created for customer %s (%s)", mask_identifier(customer_id), plan)
    return {"sessionId": session.id, "url": session.url}, None, 200


def create_portal_session(user_id: Optional[str]) -> BillingResult:
    """Open the Stripe customer portal for managing an existing subscription."""
    if not is_configured():
        return None, "Billing is not configured.", 503
    if not user_id:
        return None, "userId is required", 400

    customer_id = supabase_client.get_stripe_customer_id(user_id)
    if not customer_id:
        return None, "No subscription found for this user", 400

    _configure()
    try:
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=f"{_site_url()}/account",
        )
    except stripe.StripeError as e:
        logger.error("Stripe portal session failed: %s", e)
        return None, "Failed to create portal session", 500

    return {"url": session.url}, None, 200


# ============================================================================
# Webhook
# ============================================================================

def _handle_checkout_completed(session: Dict[str, Any]) -> None:
    metadata = session.get("metadata") or {}
    user_id = metadata.get("userId")
    customer_id = session.get("customer")
    subscription_id = session.get("subscription")

    if not subscription_id or not (user_id or customer_id):
        logger.warning("checkout.session.completed without subscription or owner; ignoring")
        return

    subscription = _plain(stripe.Subscription.retrieve(subscription_id))
    plan = metadata.get("plan") or plan_from_price_id(_price_id(subscription))

    fields: Dict[str, Any] = {
        "stripe_subscription_id": subscription_id,
        "status": "active",
        "plan": plan,
        "cancel_at_period_end": False,
    }
    fields.update(_period_fields(subscription))
    if plan == "basic":
        fields.update(_monthly_counter_fields())

    if user_id:
        fields["stripe_customer_id"] = customer_id
        _require_write(supabase_client.update_subscription_for_user(user_id, fields), "checkout")
        logger.info("Subscription activated for user with plan %s", plan)
    else:
        _require_write(supabase_client.update_subscription_for_customer(customer_id, fields), "checkout")
        logger.info("Subscription activated for customer %s with plan %s", mask_identifier(customer_id), plan)


def _handle_subscription_changed(subscription: Dict[str, Any], created: bool) -> None:
    customer_id = subscription.get("customer")
    status = STATUS_MAP.get(subscription.get("status"), "inactive")

    plan = "free"
    if status in ("active", "trialing"):
        plan = (subscription.get("metadata") or {}).get("plan") or plan_from_price_id(_price_id(subscription))

    fields: Dict[str, Any] = {
        "stripe_subscription_id": subscription.get("id"),
        "status": status,
        "plan": plan,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
    }
    fields.update(_period_fields(subscription))
    if plan == "basic" and created:
        fields.update(_monthly_counter_fields())

    _require_write(supabase_client.update_subscription_for_customer(customer_id, fields), "subscription")
    logger.info("Subscription for customer %s now %s (%s)", mask_identifier(customer_id), status, plan)


def handle_webhook(payload: bytes, signature: Optional[str]) -> BillingResult:
    """
    Verify and apply a Stripe webhook event.

    Returns:
        ({"received": True}, None, 200), (None, message, 400) for a bad
        signature, or (None, message, 500) when applying the event fails.
    """
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not is_configured() or not secret:
        return None, "Billing is not configured.", 503

    _configure()
    try:
        event = stripe.Webhook.construct_event(payload, signature or "", secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Stripe webhook verification failed: %s", e)
        return None, "Webhook signature verification failed", 400

    event = _plain(event)
    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info("Received Stripe event: %s", event_type)

    try:
        if event_type == "checkout.session.completed":
            _handle_checkout_completed(obj)
        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            _handle_subscription_changed(obj, created=event_type == "customer.subscription.created")
        elif event_type == "customer.subscription.deleted":
            _require_write(supabase_client.update_subscription_for_customer(
                obj.get("customer"),
                {"status": "canceled", "plan": "free", "cancel_at_period_end": False},
            ), event_type)
        elif event_type == "invoice.payment_failed":
            _require_write(
                supabase_client.update_subscription_for_customer(obj.get("customer"), {"status": "past_due"}),
                event_type,
            )
        elif event_type == "invoice.payment_succeeded":
            _require_write(supabase_client.update_subscription_for_customer(
                obj.get("customer"), {"status": "active"}, only_if_status="past_due"
            ), event_type)
        else:
            logger.info("Unhandled Stripe event type: %s", event_type)
    except Exception as e:
        logger.error("Webhook handler error for %s: %s", event_type, e)
        return None, "Webhook handler failed", 500

    return {"received": True}, None, 200
