"""
Error handling helpers shared by the API blueprints.

Every JSON error goes out as ``{"success": false, "error": ...}``, with an
``upgrade`` prompt attached when a plan limit was hit. Raw exception text
is logged and replaced with a generic message before it reaches a client.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
from flask import current_app, jsonify

# Messages safe to show to a client, keyed by failure kind
GENERIC_MESSAGES = {
    "database": "We're experiencing technical difficulties. Please try again.",
    "validation": "The information provided is invalid. Please check and try again.",
    "not_found": "The requested item was not found.",
    "billing": "We couldn't reach the payment provider. Please try again in a moment.",
    "not_configured": "This feature is not available right now.",
}

# Kinds that come from the caller rather than from us
_EXPECTED = ("validation", "not_found")


def sanitize_error(error: Exception, error_type: str = "database", log_prefix: str = "") -> str:
    """
    Log an exception and return the generic message for its kind.

    Stripe request ids, Supabase schema names and API keys can all show up
    in exception text, so none of it is returned.

    Examples:
        >>> try:
        ...     data, error, status = billing.create_checkout_session(user_id, email, plan)
        ... except Exception as e:
        ...     return json_error(sanitize_error(e, "billing", "Checkout failed"), 500)
    """
    detail = f"{log_prefix}: {error}" if log_prefix else str(error)

    if error_type in _EXPECTED:
        current_app.logger.info(f"Expected error - {detail}")
    else:
        current_app.logger.error(f"Unexpected error - {detail}", exc_info=True)

    return GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["database"])


def handle_service_error(result: Tuple[Any, Optional[str]]) -> Tuple[Any, Optional[str]]:
    """
    Swap the error half of a ``(data, error)`` service result for a generic message.

    Examples:
        >>> designs, error = handle_service_error(supabase_client.list_designs(user_id))
        >>> if error:
        ...     return json_error(error, 500)
    """
    data, error = result[0], (result[1] if len(result) > 1 else None)
    if not error:
        return data, None

    current_app.logger.error(f"Service error: {error}")
    return data, GENERIC_MESSAGES["database"]


def json_error(message: str, status: int = 400, upgrade: Optional[Dict[str, Any]] = None):
    """Build the standard error response tuple."""
    body: Dict[str, Any] = {"success": False, "error": message}
    if upgrade:
        body["upgrade"] = upgrade
    return jsonify(body), status


def _with_context(message: str, context: Dict[str, Any]) -> str:
    if not context:
        return message
    pairs = ", ".join(f"{key}={value}" for key, value in context.items())
    return f"{message} | Context: {pairs}"


def log_warning(message: str, **context) -> None:
    """
    Log a warning with key=value context.

    Examples:
        >>> log_warning("Stripe webhook rejected", status=400, reason="Invalid signature")
    """
    current_app.logger.warning(_with_context(message, context))


def log_info(message: str, **context) -> None:
    """Log an info message with key=value context."""
    current_app.logger.info(_with_context(message, context))
