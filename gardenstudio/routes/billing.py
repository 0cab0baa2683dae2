"""
Billing endpoints backed by Stripe.

- POST /checkout-session: Start Checkout for basic, pro or max
- POST /portal-session: Open the customer portal
- POST /webhook: Stripe events (signature-verified, no session or AJAX header)
"""

from flask import Blueprint, request, jsonify
from ..services import billing
from ..utils.auth import require_auth, get_current_user_id, get_current_user_email
from ..utils.errors import sanitize_error, json_error, log_info, log_warning
from ..utils.sanitize import mask_email
from ..extensions import limiter


billing_bp = Blueprint("billing", __name__)


@billing_bp.before_request
def _enforce_ajax_for_mutations():
    """Same AJAX-header check as the API blueprint, minus the webhook."""
    if request.endpoint == "billing.stripe_webhook":
        return None
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403
    return None


@billing_bp.route("/checkout-session", methods=["POST"])
@require_auth
@limiter.limit("10 per minute")
def checkout_session():
    """
    Create a Stripe Checkout Session for the signed-in user.

    Request body (JSON):
        {"plan": "basic" | "pro" | "max"}   (default "pro")

    Returns:
        {"success": true, "sessionId": "...", "url": "https://checkout.stripe.com/..."}
    """
    data = request.get_json(silent=True) or {}
    plan = str(data.get("plan") or "pro").strip().lower()
    email = get_current_user_email()

    try:
        result, error, status = billing.create_checkout_session(get_current_user_id(), email, plan)
    except Exception as e:
        return json_error(sanitize_error(e, "billing", "Checkout failed"), 500)

    if error:
        return json_error(error, status)

    log_info("Checkout session created", email=mask_email(email or ""), plan=plan)
    return jsonify(dict(result, success=True)), status


@billing_bp.route("/portal-session", methods=["POST"])
@require_auth
@limiter.limit("10 per minute")
def portal_session():
    try:
        result, error, status = billing.create_portal_session(get_current_user_id())
    except Exception as e:
        return json_error(sanitize_error(e, "billing", "Portal session failed"), 500)

    if error:
        return json_error(error, status)
    return jsonify(dict(result, success=True)), status


@billing_bp.route("/webhook", methods=["POST"])
@limiter.exempt
def stripe_webhook():
    """Receive Stripe webhook events. Authenticated by the Stripe-Signature header."""
    result, error, status = billing.handle_webhook(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
    )
    if error:
        log_warning("Stripe webhook rejected", status=status, reason=error)
        return jsonify({"error": error}), status
    return jsonify(result), status
