"""
Design payload validation and blueprint export.

Clients send the whole design with every API call (the canvas owns the
working copy); this module turns that JSON into a trusted design dict.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from gardenstudio.services import bed_geometry, plant_catalog, scoring
from gardenstudio.utils.validation import coerce_float, soft_sanitize

DEFAULT_DESIGN_NAME = "Untitled Design"
BED_TYPES = ("rectangle", "custom")
MIN_BED_FT = 1
MAX_BED_FT = 500
MAX_PLACEMENTS = 2000
MAX_PATH_POINTS = 5000
MIN_PLACEMENT_SCALE = 0.1
MAX_PLACEMENT_SCALE = 5.0

_SLUG_SPACES = re.compile(r"\s+")


def _parse_point(raw: Any) -> Optional[Dict[str, float]]:
    if not isinstance(raw, dict):
        return None
    x, y = coerce_float(raw.get("x")), coerce_float(raw.get("y"))
    if x is None or y is None:
        return None
    return {"x": x, "y": y}


def parse_bed(raw: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    if not isinstance(raw, dict):
        return None, "Bed is required."

    bed_type = raw.get("type") or "rectangle"
    if bed_type not in BED_TYPES:
        return None, "Bed type must be rectangle or custom."

    width = coerce_float(raw.get("width_ft"))
    height = coerce_float(raw.get("height_ft"))
    if width is None or height is None:
        return None, "Bed width and height are required."
    if not (MIN_BED_FT <= width <= MAX_BED_FT and MIN_BED_FT <= height <= MAX_BED_FT):
        return None, f"Bed dimensions must be between {MIN_BED_FT} and {MAX_BED_FT} feet."

    bed: Dict[str, Any] = {"type": bed_type, "width_ft": width, "height_ft": height}
    if bed_type == "custom":
        raw_path = raw.get("path")
        if not isinstance(raw_path, list) or len(raw_path) < 3:
            return None, "Custom beds need a path of at least 3 points."
        if len(raw_path) > MAX_PATH_POINTS:
            return None, "Bed outline has too many points."
        path = [_parse_point(p) for p in raw_path]
        if any(p is None for p in path):
            return None, "Bed path points must have numeric x and y."
        bed["path"] = path
    return bed, None


def parse_placements(raw: Any) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    if raw is None:
        return [], None
    if not isinstance(raw, list):
        return None, "Placements must be a list."
    if len(raw) > MAX_PLACEMENTS:
        return None, "Too many plants in design."

    placements = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            return None, f"Placement {index + 1} is invalid."
        plant_id = item.get("plant_id") or item.get("plantId")
        if not plant_catalog.get_plant(plant_id):
            return None, f"Unknown plant: {soft_sanitize(str(plant_id or ''), 40) or 'missing'}"
        point = _parse_point(item)
        if point is None:
            return None, f"Placement {index + 1} needs numeric x and y."

        raw_scale = item.get("scale")
        scale = 1.0 if raw_scale is None else coerce_float(raw_scale)
        if scale is None or not MIN_PLACEMENT_SCALE <= scale <= MAX_PLACEMENT_SCALE:
            return None, f"Placement {index + 1} scale must be between {MIN_PLACEMENT_SCALE:g} and {MAX_PLACEMENT_SCALE:g}."

        size = item.get("size")
        placements.append({
            "id": str(item.get("id") or f"placed-{index}")[:64],
            "plant_id": plant_id,
            "x": point["x"],
            "y": point["y"],
            "rotation": coerce_float(item.get("rotation")) or 0.0,
            "scale": scale,
            "size": size if size in plant_catalog.SIZE_MULTIPLIERS else None,
        })
    return placements, None


def parse_design(payload: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Validate a design posted by the client.

    Args:
        payload: Decoded JSON body (or its "design" member)

    Returns:
        Tuple of (design, error_message)
    """
    if not isinstance(payload, dict):
        return None, "Design must be a JSON object."

    bed, error = parse_bed(payload.get("bed"))
    if error:
        return None, error

    placements, error = parse_placements(payload.get("placements"))
    if error:
        return None, error

    bundles_applied = payload.get("bundles_applied")
    design = {
        "name": soft_sanitize(str(payload.get("name") or "")) or DEFAULT_DESIGN_NAME,
        "bed": bed,
        "placements": placements,
        "bundle": soft_sanitize(str(payload.get("bundle") or "")) or None,
        "bundles_applied": (
            bundles_applied
            if isinstance(bundles_applied, int) and not isinstance(bundles_applied, bool) and bundles_applied >= 0
            else 0
        ),
    }
    return design, None


def blueprint_filename(name: str) -> str:
    """Download name for a blueprint, e.g. "Front Yard" -> "front-yard-blueprint.json"."""
    slug = _SLUG_SPACES.sub("-", (name or DEFAULT_DESIGN_NAME).strip()).lower()
    return f"{slug}-blueprint.json"


def export_blueprint(design: Dict[str, Any], ent: Dict[str, Any]) -> Dict[str, Any]:
    plants = []
    for placement in design.get("placements") or []:
        plant = plant_catalog.get_plant(placement["plant_id"]) or {}
        plants.append(dict(placement, species=plant.get("name"), category=plant.get("category")))

    bed = design["bed"]
    return {
        "name": design.get("name") or DEFAULT_DESIGN_NAME,
        "created": datetime.now(timezone.utc).isoformat(),
        "dimensions": {"width": bed["width_ft"], "height": bed["height_ft"]},
        "bed_type": bed["type"],
        "bed_path": bed.get("path") if bed_geometry.is_custom(bed) else None,
        "bed_area_sq_ft": round(bed_geometry.bed_area_sq_ft(bed), 1),
        "plants": plants,
        "coverage": scoring.coverage_percent(design),
        "color_harmony": scoring.color_harmony(design),
        "bundle": design.get("bundle"),
        "watermark": bool(ent["limits"]["has_watermark"]) and not ent["has_full_access"],
    }
