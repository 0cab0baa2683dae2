"""
Themed plant bundles and the density rules used to size them.

A bundle groups catalog plants by role:
    hero       - canopy/focal plants (the "tall" layer)
    structure  - shrubs that hold the bed together  (medium layer)
    seasonal   - flowering color                    (medium layer)
    texture    - foliage contrast                   (low layer)
    carpet     - groundcover                        (low layer)

A well balanced bed is roughly 10% tall, 60% medium and 30% low by count.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from gardenstudio.utils.data import index_by_id, load_data_file

logger = logging.getLogger(__name__)

ROLES = ("hero", "structure", "seasonal", "texture", "carpet")

LAYER_RATIOS = {"tall": 0.10, "medium": 0.60, "low": 0.30}

# On-center spacing standards in inches
SPACING = {
    "LOW": {"min": 6, "max": 8, "label": '6-8" OC', "avg_spacing": 7},
    "MEDIUM": {"min": 10, "max": 12, "label": '10-12" OC', "avg_spacing": 11},
    "TALL": {"min": 18, "max": 24, "label": '18-24" OC', "avg_spacing": 21},
    "TREE": {"min": 72, "max": 180, "label": "6-15ft", "avg_spacing": 120},
}

ROLE_TO_SPACING = {
    "hero": "TREE",
    "structure": "TALL",
    "seasonal": "MEDIUM",
    "texture": "MEDIUM",
    "carpet": "LOW",
}

# Plants per square foot by install type
PLANTS_PER_SQ_FT = {"dense": 2, "standard": 1, "sparse": 0.5}

_AGE_DENSITY = {
    "young": "dense",
    "dense": "dense",
    "mature": "standard",
    "standard": "standard",
    "normal": "standard",
    "specimen": "sparse",
    "sparse": "sparse",
}

_bundles: Optional[List[Dict[str, Any]]] = None
_bundles_by_id: Dict[str, Dict[str, Any]] = {}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive counts (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


def _load() -> List[Dict[str, Any]]:
    global _bundles, _bundles_by_id
    if _bundles is None:
        _bundles = load_data_file("bundles.json")
        _bundles_by_id = index_by_id(_bundles)
    return _bundles


def all_bundles() -> List[Dict[str, Any]]:
    return list(_load())


def get_bundle(bundle_id: str | None) -> Optional[Dict[str, Any]]:
    _load()
    return _bundles_by_id.get(bundle_id) if isinstance(bundle_id, str) else None


def bundle_plants(bundle: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten a bundle's role groups into one list, in role order."""
    if not bundle or not bundle.get("plants"):
        return []
    plants = bundle["plants"]
    if isinstance(plants, list):
        return list(plants)
    flattened = []
    for role in ROLES:
        flattened.extend(plants.get(role) or [])
    return flattened


def filter_bundles(
    light: str | None = None,
    moisture: str | None = None,
    maintenance: str | None = None,
) -> List[Dict[str, Any]]:
    wanted = {"light": light, "moisture": moisture, "maintenance": maintenance}
    results = []
    for bundle in _load():
        filters = bundle.get("filters") or {}
        if all(not v or v == "all" or filters.get(k) == v for k, v in wanted.items()):
            results.append(bundle)
    return results


def calculate_quantities(bed_area_sq_ft: float, plant_age: str = "young") -> Dict[str, Any]:
    """
    Target plant counts per role for a bed of the given size.

    Args:
        bed_area_sq_ft: Bed area in square feet
        plant_age: "young" (dense install), "mature" or "specimen"

    Returns:
        Dict with total, a count per role, by_layer counts, plant_age and
        plants_per_sq_ft
    """
    per_sq_ft = PLANTS_PER_SQ_FT[_AGE_DENSITY.get(plant_age, "dense")]
    total = round_half_up(bed_area_sq_ft * per_sq_ft)

    tall = max(1, round_half_up(total * LAYER_RATIOS["tall"]))
    medium = round_half_up(total * LAYER_RATIOS["medium"])
    low = round_half_up(total * LAYER_RATIOS["low"])

    return {
        "total": total,
        "hero": max(1, round_half_up(tall * 0.5)),
        "structure": round_half_up(medium * 0.6),
        "seasonal": round_half_up(medium * 0.4),
        "texture": round_half_up(low * 0.6),
        "carpet": round_half_up(low * 0.4),
        "by_layer": {"tall": tall, "medium": medium, "low": low},
        "plant_age": plant_age,
        "plants_per_sq_ft": per_sq_ft,
    }


def plant_spacing(role: str) -> Dict[str, Any]:
    return SPACING[ROLE_TO_SPACING.get(role, "MEDIUM")]


def plants_from_spacing(area_sq_ft: float, role: str) -> int:
    """How many plants of a role fit in an area at standard spacing."""
    spacing_ft = plant_spacing(role)["avg_spacing"] / 12
    per_row = math.sqrt(area_sq_ft) / spacing_ft
    return round_half_up(per_row * per_row)


def apply_density(bundle: Dict[str, Any], multiplier: float = 1.5, bed_area_sq_ft: float = 200) -> List[Dict[str, Any]]:
    """
    Rescale a bundle's quantities to fill a bed at a density multiplier.

    2.0 is an instant-impact young install, 1.5 young with growing room,
    1.0 mature spacing, below that specimen planting.
    """
    if multiplier >= 1.25:
        plant_age = "young"
    elif multiplier >= 0.9:
        plant_age = "mature"
    else:
        plant_age = "specimen"

    targets = calculate_quantities(bed_area_sq_ft, plant_age)

    by_role: Dict[str, List[Dict[str, Any]]] = {}
    for item in bundle_plants(bundle):
        by_role.setdefault(item["role"], []).append(item)

    result = []
    for role, items in by_role.items():
        role_target = targets.get(role, 5)
        role_total = sum(i["quantity"] for i in items) or 1
        factor = (role_target * multiplier) / role_total
        for item in items:
            result.append(dict(
                item,
                quantity=max(1, round_half_up(item["quantity"] * factor)),
                spacing=plant_spacing(role),
                plant_age=plant_age,
            ))
    return result


def validate_ratios(bundle: Dict[str, Any]) -> Dict[str, Any]:
    """Check a bundle's tall/medium/low split against the layer ratios."""
    counts = {role: 0 for role in ROLES}
    for item in bundle_plants(bundle):
        if item.get("role") in counts:
            counts[item["role"]] += item["quantity"]
    total = sum(counts.values())
    counts["total"] = total

    if total == 0:
        return {"valid": True, "issues": [], "ratios": {"tall": 0, "medium": 0, "low": 0}, "counts": counts}

    tall = counts["hero"] / total
    medium = (counts["structure"] + counts["seasonal"]) / total
    low = (counts["texture"] + counts["carpet"]) / total

    issues = []
    if tall > 0.20:
        issues.append(f"Too many hero plants ({round_half_up(tall * 100)}%). Target: 10%")
    if medium < 0.40:
        issues.append(f"Not enough fillers ({round_half_up(medium * 100)}%). Target: 60%")
    elif medium > 0.80:
        issues.append(f"Too many fillers ({round_half_up(medium * 100)}%). Target: 60%")
    if low < 0.15:
        issues.append(f"Not enough groundcover ({round_half_up(low * 100)}%). Target: 30%")

    return {
        "valid": not issues,
        "issues": issues,
        "ratios": {
            "tall": round_half_up(tall * 100),
            "medium": round_half_up(medium * 100),
            "low": round_half_up(low * 100),
        },
        "counts": counts,
    }


def public_view(bundle: Dict[str, Any], ent: Dict[str, Any]) -> Dict[str, Any]:
    """Bundle as shown in the picker; plant lists are a Max-only preview."""
    view = {k: v for k, v in bundle.items() if k != "plants"}
    view["plant_count"] = sum(i["quantity"] for i in bundle_plants(bundle))
    view["locked"] = not (ent["has_full_access"] or ent["limits"]["can_use_bundles"])
    if ent["has_full_access"] or ent["limits"]["can_preview_bundle_plants"]:
        view["plants"] = bundle.get("plants")
    return view
