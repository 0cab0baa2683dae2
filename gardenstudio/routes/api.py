"""
Defines the JSON endpoints used by the studio front end.

Endpoints:
- /plants, /plants/<id>: Plant catalog with filters and size math
- /bundles, /bundles/<id>, /bundles/<id>/apply: Theme bundles
- /designs/place, /designs/move, /designs/resize, /designs/remove: Canvas edits
- /designs/analyze, /designs/export: Scoring and blueprint download
- /beds/path: Turn a freehand stroke into a bed outline
- /session: Exchange a Supabase token pair for a cookie session (DELETE signs out)
- /projects: Start a new project (counts against monthly limits)
- /me/entitlements: Plan, limits, usage and status message
- /designs, /designs/<id>: Cloud save (Pro and Max)
- /admin/bundles/validate: Layer-ratio report for every bundle
"""

from flask import Blueprint, request, jsonify, g
from ..services import (
    bed_geometry,
    bundles,
    designs,
    entitlements,
    placement,
    plant_catalog,
    scoring,
    supabase_client,
)
from ..utils.auth import (
    optional_auth,
    require_admin,
    require_auth,
    get_current_user_id,
    get_current_user_email,
    set_session,
    clear_session,
)
from ..utils.errors import sanitize_error, handle_service_error, json_error, log_info, GENERIC_MESSAGES
from ..utils.sanitize import mask_email
from ..utils.validation import coerce_float, is_valid_uuid
from ..extensions import limiter


api_bp = Blueprint("api", __name__)


@api_bp.before_request
def _enforce_ajax_for_mutations():
    """Enforce X-Requested-With header on all state-changing API requests.

    Custom headers cannot be set by cross-origin requests without CORS and
    HTML forms cannot set them at all, so this stands in for CSRF tokens on
    the JSON API.
    """
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403


def current_entitlements():
    """Entitlements for this request's user, loaded once per request."""
    if not hasattr(g, "entitlements"):
        g.entitlements = entitlements.load_entitlements(get_current_user_id(), get_current_user_email())
    return g.entitlements


def _limit_error(feature: str, context: str, ent, status: int = 402):
    return json_error(
        entitlements.blocked_feature_message(feature, ent),
        status,
        upgrade=entitlements.upgrade_prompt(context),
    )


def _design_from_body(data):
    """Parse the design out of a request body ({"design": {...}} or the body itself)."""
    if not isinstance(data, dict):
        return None, "Invalid request body"
    return designs.parse_design(data.get("design", data))


_OVER_LIMIT_CONTEXTS = {"plants": "plant_limit", "bundles": "bundle_swaps"}


def _over_limit_error(ent, design):
    """402 when a posted design goes past what the tier could have built."""
    problem = entitlements.design_over_limit(ent, design)
    if problem:
        return _limit_error(problem, _OVER_LIMIT_CONTEXTS[problem], ent)
    return None


# ============================================================================
# Catalog
# ============================================================================

@api_bp.route("/plants", methods=["GET"])
def list_plants():
    plants = plant_catalog.filter_plants(
        category=request.args.get("category"),
        sun=request.args.get("sun"),
        search=request.args.get("search") or request.args.get("q"),
        color=request.args.get("color"),
        water=request.args.get("water"),
    )
    return jsonify({"success": True, "plants": plants, "count": len(plants)})


@api_bp.route("/plants/<plant_id>", methods=["GET"])
def get_plant(plant_id):
    plant = plant_catalog.get_plant(plant_id)
    if not plant:
        return json_error(GENERIC_MESSAGES["not_found"], 404)

    sizes = {
        size: plant_catalog.get_plant_sizes(plant_id, size)
        for size in plant_catalog.available_sizes(plant_id)
    }
    return jsonify({
        "success": True,
        "plant": plant,
        "sizes": sizes,
        "spread_inches": plant_catalog.parse_spread_to_inches(plant.get("spread")),
        "height_inches": plant_catalog.parse_height_to_inches(plant.get("height")),
        "form": plant_catalog.infer_form(plant),
        "texture": plant_catalog.infer_texture(plant),
        "invasive_warning": plant_catalog.invasive_warning(plant_id),
    })


@api_bp.route("/bundles", methods=["GET"])
@optional_auth
def list_bundles():
    ent = current_entitlements()
    matches = bundles.filter_bundles(
        light=request.args.get("light"),
        moisture=request.args.get("moisture"),
        maintenance=request.args.get("maintenance"),
    )
    return jsonify({
        "success": True,
        "bundles": [bundles.public_view(b, ent) for b in matches],
        "count": len(matches),
    })


@api_bp.route("/bundles/<bundle_id>", methods=["GET"])
@optional_auth
def get_bundle(bundle_id):
    bundle = bundles.get_bundle(bundle_id)
    if not bundle:
        return json_error(GENERIC_MESSAGES["not_found"], 404)

    area = coerce_float(request.args.get("area", bundle.get("base_size_sq_ft") or 200))
    density = coerce_float(request.args.get("density", 1.5))
    if area is None or not 1 <= area <= 250000:
        return json_error("area must be a number of square feet.", 400)
    if density is None or not 0.25 <= density <= 3:
        return json_error("density must be between 0.25 and 3.", 400)

    ent = current_entitlements()
    view = bundles.public_view(bundle, ent)
    view["ratios"] = bundles.validate_ratios(bundle)
    view["recommended_quantities"] = bundles.calculate_quantities(area)
    view["fill_estimate"] = {role: bundles.plants_from_spacing(area, role) for role in bundles.ROLES}
    if "plants" in view:
        view["density_plan"] = bundles.apply_density(bundle, density, area)
    return jsonify({"success": True, "bundle": view})


@api_bp.route("/bundles/<bundle_id>/apply", methods=["POST"])
@optional_auth
@limiter.limit("30 per minute")
def apply_bundle(bundle_id):
    """
    Lay a bundle out over the posted design.

    Request body (JSON):
        {"design": {...}, "scale": 1.0}

    Returns:
        {"success": true, "design": {...}, "added": [placement, ...]}
    """
    bundle = bundles.get_bundle(bundle_id)
    if not bundle:
        return json_error(GENERIC_MESSAGES["not_found"], 404)

    data = request.get_json(silent=True)
    design, error = _design_from_body(data)
    if error:
        return json_error(error, 400)

    scale = coerce_float(data.get("scale", 1.0))
    if scale is None or not 0.1 <= scale <= 5:
        return json_error("Scale must be between 0.1 and 5.", 400)

    ent = current_entitlements()
    if not (ent["has_full_access"] or ent["limits"]["can_use_bundles"]):
        return _limit_error("bundles", "bundles", ent)
    if not entitlements.can_apply_bundle(ent, design["bundles_applied"], len(design["placements"])):
        return _limit_error("bundles", "bundle_swaps", ent)
    if not entitlements.can_place_plant(ent, len(design["placements"])):
        return _limit_error("plants", "plant_limit", ent)

    added = placement.apply_bundle(design, bundle, scale=scale, ent=ent)
    log_info("Bundle applied", bundle=bundle_id, added=len(added), plan=ent["plan"])
    return jsonify({"success": True, "design": design, "added": added})


# ============================================================================
# Canvas operations
# ============================================================================

@api_bp.route("/designs/place", methods=["POST"])
@optional_auth
@limiter.limit("120 per minute")
def place_plant():
    """
    Validate and add one plant to the posted design.

    Request body (JSON):
        {"design": {...}, "plant_id": "lantana", "x": 40, "y": 22, "size": "3gal"}
    """
    data = request.get_json(silent=True)
    design, error = _design_from_body(data)
    if error:
        return json_error(error, 400)

    x, y = coerce_float(data.get("x")), coerce_float(data.get("y"))
    if x is None or y is None:
        return json_error("x and y must be numbers.", 400)

    ent = current_entitlements()
    placed, code = placement.place_plant(design, data.get("plant_id"), x, y, data.get("size"), ent)
    if code == "plant_limit":
        return _limit_error("plants", "plant_limit", ent)
    if code:
        return json_error(placement.PLACEMENT_ERRORS[code], 400)

    return jsonify({
        "success": True,
        "placement": placed,
        "design": design,
        "remaining_plants": entitlements.remaining_plants(ent, len(design["placements"])),
    })


def _edit_target(data):
    """Parse the design and placement id shared by the drag-edit endpoints."""
    design, error = _design_from_body(data)
    if error:
        return None, None, error
    placement_id = data.get("placement_id")
    if not isinstance(placement_id, str) or not placement_id:
        return None, None, "placement_id is required."
    return design, placement_id, None


@api_bp.route("/designs/move", methods=["POST"])
@limiter.limit("240 per minute")
def move_plant():
    """Drop a dragged plant; the point is clamped to the bed."""
    data = request.get_json(silent=True)
    design, placement_id, error = _edit_target(data)
    if error:
        return json_error(error, 400)

    x, y = coerce_float(data.get("x")), coerce_float(data.get("y"))
    if x is None or y is None:
        return json_error("x and y must be numbers.", 400)

    moved, code = placement.move_plant(design, placement_id, x, y)
    if code:
        return json_error(placement.PLACEMENT_ERRORS[code], 404)
    return jsonify({"success": True, "placement": moved, "design": design})


@api_bp.route("/designs/resize", methods=["POST"])
@limiter.limit("120 per minute")
def resize_plant():
    data = request.get_json(silent=True)
    design, placement_id, error = _edit_target(data)
    if error:
        return json_error(error, 400)

    resized, code = placement.resize_plant(design, placement_id, data.get("size"))
    if code:
        return json_error(placement.PLACEMENT_ERRORS[code], 404 if code == "not_found" else 400)
    return jsonify({"success": True, "placement": resized, "design": design})


@api_bp.route("/designs/remove", methods=["POST"])
@optional_auth
@limiter.limit("120 per minute")
def remove_plant():
    data = request.get_json(silent=True)
    design, placement_id, error = _edit_target(data)
    if error:
        return json_error(error, 400)

    if not placement.remove_plant(design, placement_id):
        return json_error(placement.PLACEMENT_ERRORS["not_found"], 404)
    return jsonify({
        "success": True,
        "design": design,
        "remaining_plants": entitlements.remaining_plants(current_entitlements(), len(design["placements"])),
    })


@api_bp.route("/designs/analyze", methods=["POST"])
@optional_auth
@limiter.limit("60 per minute")
def analyze_design():
    data = request.get_json(silent=True)
    design, error = _design_from_body(data)
    if error:
        return json_error(error, 400)

    return jsonify({"success": True, "analysis": scoring.analyze_design(design, current_entitlements())})


@api_bp.route("/designs/export", methods=["POST"])
@optional_auth
@limiter.limit("20 per minute")
def export_design():
    data = request.get_json(silent=True)
    design, error = _design_from_body(data)
    if error:
        return json_error(error, 400)

    ent = current_entitlements()
    if not entitlements.can_export(ent):
        return _limit_error("export", "export", ent)
    over_limit = _over_limit_error(ent, design)
    if over_limit:
        return over_limit

    blueprint = designs.export_blueprint(design, ent)
    entitlements.record_usage(ent, get_current_user_id(), "exports_this_month")
    return jsonify({
        "success": True,
        "blueprint": blueprint,
        "filename": designs.blueprint_filename(design["name"]),
    })


@api_bp.route("/beds/path", methods=["POST"])
@limiter.limit("60 per minute")
def finalize_bed_path():
    """
    Turn a raw freehand stroke into a closed, smoothed bed outline.

    Request body (JSON):
        {"points": [{"x": 1, "y": 2}, ...]}
    """
    data = request.get_json(silent=True) or {}
    raw_points = data.get("points")
    if not isinstance(raw_points, list) or len(raw_points) > designs.MAX_PATH_POINTS:
        return json_error("points must be a list of {x, y}.", 400)

    points = []
    for raw in raw_points:
        x = coerce_float(raw.get("x")) if isinstance(raw, dict) else None
        y = coerce_float(raw.get("y")) if isinstance(raw, dict) else None
        if x is None or y is None:
            return json_error("points must be a list of {x, y}.", 400)
        points.append({"x": x, "y": y})

    path = bed_geometry.finalize_drawn_path(points)
    if path is None:
        return json_error("Draw a longer outline to create a bed.", 400)

    return jsonify({
        "success": True,
        "path": path,
        "bounds": bed_geometry.path_bounds(path),
        "area_sq_ft": bed_geometry.polygon_area(path) / bed_geometry.SQ_IN_PER_SQ_FT,
        "svg": bed_geometry.path_to_svg(path),
    })


# ============================================================================
# Account
# ============================================================================

@api_bp.route("/session", methods=["POST"])
@limiter.limit("10 per minute")
def start_session():
    """
    Exchange a Supabase token pair for a cookie session.

    Request body (JSON):
        {"access_token": "...", "refresh_token": "..."}
    """
    data = request.get_json(silent=True) or {}
    access_token = data.get("access_token")
    refresh_token = data.get("refresh_token")
    if not isinstance(access_token, str) or not access_token:
        return json_error("access_token is required.", 400)

    user = supabase_client.verify_session(access_token, refresh_token if isinstance(refresh_token, str) else None)
    if not user:
        return json_error("Invalid or expired session.", 401)

    set_session(user, access_token, refresh_token if isinstance(refresh_token, str) else None)
    log_info("Session started", email=mask_email(user.get("email") or ""))
    return jsonify({"success": True, "user": {"id": user.get("id"), "email": user.get("email")}})


@api_bp.route("/session", methods=["DELETE"])
def end_session():
    clear_session()
    return jsonify({"success": True})


@api_bp.route("/me/entitlements", methods=["GET"])
@optional_auth
def my_entitlements():
    return jsonify({"success": True, "entitlements": current_entitlements()})


@api_bp.route("/projects", methods=["POST"])
@require_auth
@limiter.limit("10 per minute")
def start_project():
    ent = current_entitlements()
    if not entitlements.can_create_project(ent):
        return _limit_error("projects", "projects", ent)

    used = entitlements.record_usage(ent, get_current_user_id(), "projects_this_month")
    return jsonify({"success": True, "projects_this_month": used})


@api_bp.route("/designs", methods=["GET"])
@require_auth
def list_saved_designs():
    try:
        rows, error = handle_service_error(supabase_client.list_designs(get_current_user_id()))
        if error:
            return json_error(error, 500)
        return jsonify({"success": True, "designs": rows})
    except Exception as e:
        return json_error(sanitize_error(e, "database", "Listing designs failed"), 500)


@api_bp.route("/designs", methods=["POST"])
@require_auth
@limiter.limit("30 per minute")
def save_design():
    """
    Save (or overwrite, when "id" is given) a design to the cloud.

    Request body (JSON):
        {"id": optional uuid, "design": {...}}
    """
    ent = current_entitlements()
    if not entitlements.can_save(ent):
        return _limit_error("save", "save", ent)

    data = request.get_json(silent=True)
    design, error = _design_from_body(data)
    if error:
        return json_error(error, 400)

    design_id = data.get("id")
    if design_id is not None and not is_valid_uuid(design_id):
        return json_error("Invalid design id.", 400)

    user_id = get_current_user_id()
    if design_id is not None:
        # The stored copy keeps the bundle count; a client cannot lower it
        existing = supabase_client.get_design(design_id, user_id)
        if not existing:
            return json_error(GENERIC_MESSAGES["not_found"], 404)
        stored = (existing.get("data") or {}).get("bundles_applied")
        if isinstance(stored, int) and stored > design["bundles_applied"]:
            design["bundles_applied"] = stored

    over_limit = _over_limit_error(ent, design)
    if over_limit:
        return over_limit

    try:
        result = supabase_client.save_design(user_id, design, design_id)
        if result[1] == "Design not found":
            return json_error(GENERIC_MESSAGES["not_found"], 404)
        row, error = handle_service_error(result)
        if error:
            return json_error(error, 500)
        return jsonify({"success": True, "design": row}), 201 if design_id is None else 200
    except Exception as e:
        return json_error(sanitize_error(e, "database", "Design save failed"), 500)


@api_bp.route("/designs/<design_id>", methods=["GET"])
@require_auth
def get_saved_design(design_id):
    if not is_valid_uuid(design_id):
        return json_error("Invalid design id.", 400)
    row = supabase_client.get_design(design_id, get_current_user_id())
    if not row:
        return json_error(GENERIC_MESSAGES["not_found"], 404)
    return jsonify({"success": True, "design": row})


@api_bp.route("/designs/<design_id>", methods=["DELETE"])
@require_auth
def delete_saved_design(design_id):
    if not is_valid_uuid(design_id):
        return json_error("Invalid design id.", 400)
    if not supabase_client.delete_design(design_id, get_current_user_id()):
        return json_error(GENERIC_MESSAGES["not_found"], 404)
    return jsonify({"success": True})


# ============================================================================
# Admin
# ============================================================================

@api_bp.route("/admin/bundles/validate", methods=["GET"])
@require_admin
def validate_bundles():
    report = {b["id"]: bundles.validate_ratios(b) for b in bundles.all_bundles()}
    return jsonify({
        "success": True,
        "valid": all(r["valid"] for r in report.values()),
        "bundles": report,
    })
