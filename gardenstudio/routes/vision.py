"""
Vision rendering endpoints.

- POST /jobs: Queue a photorealistic render of a design (202 + jobId)
- GET /jobs/<job_id>: Poll a render; finished results are returned once
- POST /sketch: Top-down PNG sketch of a design as a data URL
"""

from flask import Blueprint, request, jsonify
from ..services import designs, entitlements, image_jobs, sketch, vision
from ..utils.auth import require_auth, optional_auth, get_current_user_id
from ..utils.errors import json_error, log_info, GENERIC_MESSAGES
from ..utils.validation import is_valid_job_id, sanitize_prompt
from ..extensions import limiter
from .api import current_entitlements


vision_bp = Blueprint("vision", __name__)

SEASONS = ("spring", "summer", "fall")


@vision_bp.before_request
def _enforce_ajax_for_mutations():
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403


@vision_bp.route("/jobs", methods=["POST"])
@require_auth
@limiter.limit("5 per minute")
def create_job():
    """
    Queue an image generation.

    Request body (JSON), either form:
        {"design": {...}, "season": "spring" | "summer" | "fall"}
        {"prompt": "free text", "season": "summer"}

    Returns:
        202 {"success": true, "jobId": "<32 hex>", "status": "pending"}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return json_error("Invalid request body", 400)

    season = str(data.get("season") or "spring").lower()
    if season not in SEASONS:
        return json_error("Season must be spring, summer or fall.", 400)

    if data.get("design") is not None:
        design, error = designs.parse_design(data["design"])
        if error:
            return json_error(error, 400)
        if not design["placements"]:
            return json_error("Please add some plants to your design first.", 400)
        prompt = vision.build_plan_prompt(design)
    else:
        prompt = sanitize_prompt(str(data.get("prompt") or ""))
        if not prompt:
            return json_error("Prompt is required", 400)

    ent = current_entitlements()
    if not entitlements.can_use_vision(ent):
        return json_error(
            entitlements.blocked_feature_message("vision", ent),
            402,
            upgrade=entitlements.upgrade_prompt("vision"),
        )
    if not vision.is_configured():
        return json_error(GENERIC_MESSAGES["not_configured"], 503)

    user_id = get_current_user_id()
    job_id = image_jobs.submit(user_id, prompt, season)
    entitlements.record_usage(ent, user_id, "vision_renders_this_month")
    log_info("Vision job queued", job_id=job_id, season=season, plan=ent["plan"])
    return jsonify({"success": True, "jobId": job_id, "status": "pending"}), 202


@vision_bp.route("/jobs/<job_id>", methods=["GET"])
@limiter.limit("120 per minute")
def job_status(job_id):
    if not is_valid_job_id(job_id):
        return json_error("Invalid job id.", 400)
    return jsonify(image_jobs.status(job_id))


@vision_bp.route("/sketch", methods=["POST"])
@optional_auth
@limiter.limit("30 per minute")
def design_sketch():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return json_error("Invalid request body", 400)
    design, error = designs.parse_design(data.get("design", data))
    if error:
        return json_error(error, 400)

    ent = current_entitlements()
    watermark = bool(ent["limits"]["has_watermark"]) and not ent["has_full_access"]
    return jsonify({"success": True, "image": sketch.sketch_data_url(design, watermark=watermark)})
