"""
Plant placement on a bed.

Handles single placements from the palette (validated against the bed and
the tier's plant limit), drag moves, removals and size changes, plus the
bundle placer that lays a whole themed package out over the bed.

A design is a plain dict:
    {"name": str, "bed": {...}, "placements": [placement, ...],
     "bundle": Optional[str], "bundles_applied": int}

A placement:
    {"id": "placed-ab12...", "plant_id": "lantana", "x": 40.0, "y": 22.5,
     "rotation": 0.0, "scale": 1.0, "size": "3gal" | None}
"""

from __future__ import annotations

import logging
import math
import random
import uuid
from typing import Any, Dict, List, Optional, Tuple

from gardenstudio.services import bed_geometry, entitlements, plant_catalog
from gardenstudio.services.bundles import bundle_plants, round_half_up

logger = logging.getLogger(__name__)

COLLISION_BUFFER_IN = 6
GOLDEN_ANGLE = 2.399963
SPIRAL_ATTEMPTS = 150
SPIRAL_STEP_IN = 8
GRID_PADDING_IN = 15
BUNDLE_GRID_SPACING_IN = 25
BUNDLE_JITTER_IN = 15

# Bundle roles placed into the zones of the legacy row categories
ROLE_ALIASES = {
    "hero": "focal",
    "structure": "back",
    "seasonal": "middle",
    "texture": "middle",
    "carpet": "groundcover",
}

# Larger plants claim their zones first
PLACEMENT_ORDER = [
    "focal", "hero", "back", "structure", "topiary", "middle",
    "seasonal", "texture", "front", "edge", "groundcover", "carpet",
]

PLACEMENT_ERRORS = {
    "unknown_plant": "That plant is not in the catalog.",
    "outside_bed": "Plants must be placed inside the bed.",
    "plant_limit": "You've reached the plant limit for your plan.",
    "not_found": "That plant is no longer in the design.",
    "invalid_size": "That container size is not available for this plant.",
}


def _new_id(prefix: str = "placed") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _find(design: Dict[str, Any], placement_id: str) -> Optional[Dict[str, Any]]:
    for placement in design.get("placements", []):
        if placement.get("id") == placement_id:
            return placement
    return None


def place_plant(
    design: Dict[str, Any],
    plant_id: str,
    x: float,
    y: float,
    size: Optional[str] = None,
    ent: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Drop one plant from the palette onto the bed.

    Args:
        design: Design dict; the placement is appended on success
        plant_id: Catalog id
        x, y: Position in inches
        size: Optional container size
        ent: Entitlements; defaults to the free tier

    Returns:
        Tuple of (placement, error_code). error_code is a PLACEMENT_ERRORS key.
    """
    ent = ent or entitlements.build_entitlements(None)

    if not plant_catalog.get_plant(plant_id):
        return None, "unknown_plant"
    if not bed_geometry.contains_point(design["bed"], x, y):
        return None, "outside_bed"
    if not entitlements.can_place_plant(ent, len(design.get("placements", []))):
        return None, "plant_limit"
    if size and size not in plant_catalog.available_sizes(plant_id):
        return None, "invalid_size"

    placement = {
        "id": _new_id(),
        "plant_id": plant_id,
        "x": x,
        "y": y,
        "rotation": 0.0,
        "scale": 1.0,
        "size": size,
        "size_multiplier": plant_catalog.get_size_multiplier(size) if size else None,
    }
    design.setdefault("placements", []).append(placement)
    return placement, None


def move_plant(design: Dict[str, Any], placement_id: str, x: float, y: float) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Drag a placed plant; the drop point is clamped to the bed bounds."""
    placement = _find(design, placement_id)
    if not placement:
        return None, "not_found"
    clamped = bed_geometry.clamp_to_bed(design["bed"], x, y)
    placement["x"], placement["y"] = clamped["x"], clamped["y"]
    return placement, None


def remove_plant(design: Dict[str, Any], placement_id: str) -> bool:
    before = len(design.get("placements", []))
    design["placements"] = [p for p in design.get("placements", []) if p.get("id") != placement_id]
    return len(design["placements"]) < before


def resize_plant(design: Dict[str, Any], placement_id: str, size: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    placement = _find(design, placement_id)
    if not placement:
        return None, "not_found"
    if size not in plant_catalog.available_sizes(placement["plant_id"]):
        return None, "invalid_size"
    placement["size"] = size
    placement["size_multiplier"] = plant_catalog.get_size_multiplier(size)
    return placement, None


def _radius(plant_id: str, size: Optional[str] = None) -> float:
    return plant_catalog.get_plant_sizes(plant_id, size)["mature_spread"] / 2


def check_collision(x: float, y: float, plant_id: str, existing: List[Dict[str, Any]]) -> bool:
    """True when a plant at (x, y) would overlap any existing placement."""
    new_radius = _radius(plant_id)
    for other in existing:
        min_distance = new_radius + _radius(other["plant_id"], other.get("size")) + COLLISION_BUFFER_IN
        if math.hypot(x - other["x"], y - other["y"]) < min_distance:
            return True
    return False


def find_valid_position(
    target_x: float,
    target_y: float,
    plant_id: str,
    existing: List[Dict[str, Any]],
    bounds: Dict[str, float],
    path: Optional[List[Dict[str, float]]] = None,
) -> Optional[Dict[str, float]]:
    """
    Nearest collision-free spot to a target, searched on a golden-angle spiral.

    The plant's canopy (plus buffer) must stay inside the bed bounds and, for
    custom beds, its center must sit inside the drawn outline.
    """
    padding = _radius(plant_id) + COLLISION_BUFFER_IN

    def is_valid(x: float, y: float) -> bool:
        if (x < bounds["min_x"] + padding or x > bounds["max_x"] - padding
                or y < bounds["min_y"] + padding or y > bounds["max_y"] - padding):
            return False
        if path and len(path) > 2 and not bed_geometry.point_in_polygon(x, y, path):
            return False
        return not check_collision(x, y, plant_id, existing)

    if is_valid(target_x, target_y):
        return {"x": target_x, "y": target_y}

    for attempt in range(SPIRAL_ATTEMPTS):
        angle = attempt * GOLDEN_ANGLE
        distance = math.sqrt(attempt) * SPIRAL_STEP_IN
        x = target_x + math.cos(angle) * distance
        y = target_y + math.sin(angle) * distance
        if is_valid(x, y):
            return {"x": x, "y": y}
    return None


def grid_points(
    bounds: Dict[str, float],
    path: Optional[List[Dict[str, float]]] = None,
    spacing: float = BUNDLE_GRID_SPACING_IN,
) -> List[Dict[str, float]]:
    """
    Candidate planting points on a regular grid inside the bed.

    Each point carries `dist_from_center`, its distance from the bed center
    normalized by half the larger bed dimension (0 at center, ~1 at edges).
    """
    points = []
    max_dist = max(bounds["width"], bounds["height"]) / 2 or 1
    x = bounds["min_x"] + GRID_PADDING_IN
    while x <= bounds["max_x"] - GRID_PADDING_IN:
        y = bounds["min_y"] + GRID_PADDING_IN
        while y <= bounds["max_y"] - GRID_PADDING_IN:
            if not path or len(path) < 3 or bed_geometry.point_in_polygon(x, y, path):
                dist = math.hypot(x - bounds["center_x"], y - bounds["center_y"])
                points.append({"x": x, "y": y, "dist_from_center": dist / max_dist})
            y += spacing
        x += spacing
    return points


def _zone_points(role: str, points: List[Dict[str, float]], rings: Dict[str, list], island: bool) -> List[Dict[str, float]]:
    """Candidate points for a role, best first."""
    role = ROLE_ALIASES.get(role, role)

    if island:
        # Island bed: tall plants in the middle, low plants toward the rim
        center, inner, middle, outer = rings["center"], rings["inner"], rings["middle"], rings["outer"]
        zones = {
            "focal": center,
            "back": center + inner,
            "topiary": inner + center,
            "middle": inner + middle,
            "front": middle + outer,
            "edge": outer + middle,
            "groundcover": outer + middle + inner,
        }
        return list(zones.get(role, middle))

    # Rectangle bed: larger y is the back of the bed
    n = len(points)
    back_first = sorted(points, key=lambda p: p["y"], reverse=True)
    front_first = sorted(points, key=lambda p: p["y"])
    zones = {
        "focal": back_first[:int(n * 0.2)],
        "back": back_first[:int(n * 0.3)],
        "topiary": back_first[:int(n * 0.4)],
        "middle": points[int(n * 0.3):int(n * 0.7)],
        "front": front_first[:int(n * 0.4)],
        "edge": front_first[:int(n * 0.3)],
        "groundcover": front_first[:int(n * 0.4)],
    }
    return list(zones.get(role, points))


def _order_key(item: Dict[str, Any]) -> int:
    role = ROLE_ALIASES.get(item.get("role"), item.get("role"))
    try:
        return PLACEMENT_ORDER.index(role)
    except ValueError:
        return len(PLACEMENT_ORDER)


def apply_bundle(
    design: Dict[str, Any],
    bundle: Dict[str, Any],
    scale: float = 1.0,
    ent: Optional[Dict[str, Any]] = None,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """
    Lay a bundle out over the whole bed.

    Grid points are split into zones (rings for island beds, back-to-front
    bands for rectangles); each bundle plant, largest role first, takes the
    first zone point that yields a collision-free spot, falling back to any
    unused grid point. Quantities scale with `scale`.

    Returns:
        The new placements (already appended to the design)
    """
    rng = rng or random.Random()
    ent = ent or entitlements.build_entitlements(None)
    bed = design["bed"]
    island = bed_geometry.is_custom(bed)
    path = bed["path"] if island else None
    bounds = bed_geometry.bed_bounds(bed)

    points = grid_points(bounds, path, BUNDLE_GRID_SPACING_IN)
    rings = {
        "center": [p for p in points if p["dist_from_center"] < 0.25],
        "inner": [p for p in points if 0.25 <= p["dist_from_center"] < 0.5],
        "middle": [p for p in points if 0.5 <= p["dist_from_center"] < 0.75],
        "outer": [p for p in points if p["dist_from_center"] >= 0.75],
    }
    for ring in rings.values():
        rng.shuffle(ring)

    slots = entitlements.remaining_plants(ent, len(design.get("placements", [])))
    used_keys: set = set()
    new_placements: List[Dict[str, Any]] = []

    def try_points(candidates: List[Dict[str, float]], plant_id: str) -> Optional[Dict[str, float]]:
        for point in candidates:
            key = (round(point["x"]), round(point["y"]))
            if key in used_keys:
                continue
            spot = find_valid_position(
                point["x"] + (rng.random() - 0.5) * BUNDLE_JITTER_IN,
                point["y"] + (rng.random() - 0.5) * BUNDLE_JITTER_IN,
                plant_id,
                new_placements,
                bounds,
                path,
            )
            if spot:
                used_keys.add(key)
                return spot
        return None

    for item in sorted(bundle_plants(bundle), key=_order_key):
        plant_id = item["plant_id"]
        if not plant_catalog.get_plant(plant_id):
            logger.warning("Bundle %s references unknown plant %s", bundle.get("id"), plant_id)
            continue

        zone = _zone_points(item["role"], points, rings, island)
        for _ in range(round_half_up(item["quantity"] * scale)):
            if slots is not None and len(new_placements) >= slots:
                break
            spot = try_points(zone, plant_id) or try_points(points, plant_id)
            if not spot:
                continue
            new_placements.append({
                "id": _new_id("bundle"),
                "plant_id": plant_id,
                "x": spot["x"],
                "y": spot["y"],
                "rotation": (rng.random() - 0.5) * 10,
                "scale": 0.95 + rng.random() * 0.1,
                "size": None,
                "size_multiplier": None,
            })

    design.setdefault("placements", []).extend(new_placements)
    design["bundle"] = bundle.get("name")
    design["bundles_applied"] = int(design.get("bundles_applied") or 0) + 1
    return new_placements
