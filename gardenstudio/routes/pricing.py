"""
Public pricing endpoint.

Returns the plan table the landing page renders: display price and copy
for each tier plus the live limits from the entitlements service, so the
page can never advertise limits the API does not enforce.
"""

from __future__ import annotations
from flask import Blueprint, jsonify
from gardenstudio.services.entitlements import PLAN_LABELS, PLAN_LIMITS
from gardenstudio.utils.auth import optional_auth


pricing_bp = Blueprint("pricing", __name__)

PLAN_DISPLAY = {
    "free": {
        "name": "Demo",
        "price": "Free",
        "period": "",
        "description": "Try the basics",
        "checkout": False,
    },
    "basic": {
        "name": "Basic",
        "price": "$15",
        "period": "/month",
        "description": "For hobbyists",
        "checkout": True,
    },
    "pro": {
        "name": "Pro",
        "price": "$49",
        "period": "/month",
        "description": "For serious designers",
        "checkout": True,
        "highlighted": True,
    },
    "max": {
        "name": "Enterprise",
        "price": "Custom",
        "period": "",
        "description": "For teams & companies",
        "checkout": True,
    },
}


@pricing_bp.route("/pricing", methods=["GET"])
@optional_auth
def index():
    """Plan table, cheapest first."""
    plans = []
    for plan, display in PLAN_DISPLAY.items():
        plans.append(dict(
            display,
            id=plan,
            label=PLAN_LABELS[plan],
            highlighted=display.get("highlighted", False),
            limits=PLAN_LIMITS[plan],
        ))
    return jsonify({"success": True, "plans": plans})
