"""
Design scoring: living coverage, color harmony, the design-rules checklist
and the show-ready quality analysis (bloom sequence, height layering,
form/texture variety and mass planting).

Everything here is pure; callers pass a design dict (see placement.py) and
get plain JSON-serializable dicts back.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter, OrderedDict
from typing import Any, Dict, List, Optional

from gardenstudio.services import bed_geometry, plant_catalog
from gardenstudio.services.bundles import round_half_up

logger = logging.getLogger(__name__)

COVERAGE_TARGET = 95
MAX_HARMONY_HUES = 3
MAX_SWATCHES = 6

HEIGHT_TIERS = [
    {"id": 1, "name": "Ground Plane", "max_height": 6, "label": '0-6"'},
    {"id": 2, "name": "Ankle Height", "max_height": 12, "label": '6-12"'},
    {"id": 3, "name": "Knee Height", "max_height": 24, "label": '12-24"'},
    {"id": 4, "name": "Waist Height", "max_height": 36, "label": '24-36"'},
    {"id": 5, "name": "Chest Height", "max_height": 48, "label": '36-48"'},
    {"id": 6, "name": "Eye Level", "max_height": 72, "label": '48-72"'},
    {"id": 7, "name": "Canopy", "max_height": None, "label": "6ft+"},
]

MONTH_ABBRS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

MONTH_SEASONS = {
    1: "winter", 2: "winter", 3: "spring", 4: "spring", 5: "spring", 6: "summer",
    7: "summer", 8: "summer", 9: "fall", 10: "fall", 11: "fall", 12: "winter",
}

SEASONS = OrderedDict([
    ("spring", [3, 4, 5]),
    ("summer", [6, 7, 8]),
    ("fall", [9, 10, 11]),
    ("winter", [12, 1, 2]),
])

MONTH_NAMES = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7,
    "august": 8, "aug": 8, "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}

SEASON_PHRASES = {
    "early spring": [3, 4], "mid spring": [4, 5], "late spring": [5, 6],
    "spring": [3, 4, 5],
    "early summer": [6, 7], "mid summer": [7], "midsummer": [7], "late summer": [8],
    "summer": [6, 7, 8],
    "early fall": [9], "mid fall": [10], "late fall": [11],
    "fall": [9, 10, 11], "autumn": [9, 10, 11],
    "early winter": [12], "mid winter": [1], "late winter": [2],
    "winter": [12, 1, 2],
}
# Longest phrase first so "late summer" is seen before "summer"
_SEASONS_BY_LENGTH = sorted(SEASON_PHRASES.items(), key=lambda kv: len(kv[0]), reverse=True)

_RANGE_PATTERN = re.compile(r"(\w+)\s*[-–]\s*(\w+)")
_FIRST_NUMBER = re.compile(r"(\d+)")

MAX_SAME_FORM = 0.4
MIN_FORM_VARIETY = 3
MAX_SAME_TEXTURE = 0.5
MIN_REPETITION = 3

DRIFT_SIZES = {
    "groundcover": {"min": 5, "label": "Carpet in sweeps of 5-7+"},
    "perennial": {"min": 3, "label": "Group in drifts of 3-5"},
    "shrub": {"min": 3, "label": "Mass in groups of 3-5"},
    "tree": {"min": 1, "label": "Use as specimens or groves of 3"},
}

CATEGORY_KINDS = {
    "focal": "tree",
    "topiary": "shrub",
    "back": "shrub",
    "middle": "perennial",
    "front": "perennial",
    "groundcover": "groundcover",
}

SHOW_READY_WEIGHTS = OrderedDict([
    ("coverage", 20),
    ("bloom_sequence", 20),
    ("height_layering", 15),
    ("form_variety", 15),
    ("texture_variety", 10),
    ("mass_planting", 10),
    ("color_harmony", 10),
])

RATINGS = [
    (90, "Show Ready"),
    (75, "Near Ready"),
    (60, "Good Progress"),
    (40, "Needs Work"),
]

HOW_TOS = {
    "coverage": "Fill open mulch with groundcover or increase bundle density until coverage reaches 95%.",
    "height": "Add plants in the missing height tiers so the bed steps down smoothly from back to front.",
    "form": "Swap a few plants for contrasting shapes: upright grasses next to mounding shrubs read best.",
    "texture": "Pair fine foliage with coarse, bold leaves to create depth.",
    "mass": "Plant in odd-numbered drifts and repeat key plants at least three times across the bed.",
    "harmony": "Limit the palette to three flower colors; repeat them rather than adding new hues.",
}


def _placed_plants(design: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Catalog records for each placement, skipping unknown plant ids."""
    plants = []
    for placement in design.get("placements") or []:
        plant = plant_catalog.get_plant(placement.get("plant_id"))
        if plant:
            plants.append(plant)
    return plants


def spread_low_inches(spread: str | None) -> float:
    """Low end of a spread range in inches ("3-4ft" -> 36); 12 when unknown."""
    text = spread or ""
    match = _FIRST_NUMBER.search(text)
    inches = int(match.group(1)) if match else 12
    if "ft" in text.lower():
        inches *= 12
    return inches


def coverage_percent(design: Dict[str, Any]) -> float:
    """Planted area as a percentage of the bed, capped at 100."""
    bed_area = bed_geometry.bed_area_sq_in(design["bed"])
    if bed_area <= 0:
        return 0.0
    covered = sum(
        math.pi * (spread_low_inches(plant.get("spread")) / 2) ** 2
        for plant in _placed_plants(design)
    )
    return min(100.0, covered / bed_area * 100)


def color_harmony(design: Dict[str, Any]) -> Dict[str, Any]:
    colors: List[str] = []
    for plant in _placed_plants(design):
        if plant.get("color") and plant["color"] not in colors:
            colors.append(plant["color"])

    hues = len(colors)
    if hues <= 1:
        result = {"valid": True, "scheme": "Monochromatic"}
    elif hues <= 2:
        result = {"valid": True, "scheme": "Complementary"}
    elif hues <= MAX_HARMONY_HUES:
        result = {"valid": True, "scheme": "Analogous"}
    else:
        result = {"valid": False, "scheme": f"{hues} Hues (Too Many)"}
    result["hues"] = hues
    result["swatches"] = colors[:MAX_SWATCHES]
    return result


def category_breakdown(design: Dict[str, Any]) -> Dict[str, int]:
    counts = {category: 0 for category in plant_catalog.CATEGORIES}
    for plant in _placed_plants(design):
        category = plant.get("category")
        counts[category] = counts.get(category, 0) + 1
    return counts


def rules_checklist(design: Dict[str, Any], coverage: float, harmony: Dict[str, Any]) -> List[Dict[str, Any]]:
    """The five professional design rules shown beside the canvas."""
    breakdown = category_breakdown(design)
    return [
        {"rule": "95%+ Plant Coverage", "met": coverage >= COVERAGE_TARGET},
        {"rule": "Height Graduation", "met": len(design.get("placements") or []) >= 3},
        {"rule": "Color Harmony (≤3 hues)", "met": bool(harmony.get("valid"))},
        {"rule": "Edge Definition", "met": breakdown.get("groundcover", 0) > 0},
        {"rule": "Focal Point Present", "met": breakdown.get("focal", 0) > 0},
    ]


def parse_bloom_time(text: str | None) -> Dict[str, Any]:
    """
    Parse a bloom description into bloom and interest months (1-12).

    Examples:
        "Evergreen"              -> interest all year
        "Spring, Fall"           -> bloom Mar-May and Sep-Nov
        "June-September"         -> bloom 6..9
        "Winter berries"         -> interest Nov..Feb
    """
    if not text:
        return {"bloom_months": [], "interest_months": [], "is_evergreen": False, "interest_type": None}

    s = text.lower()

    if "evergreen" in s:
        return {"bloom_months": [], "interest_months": list(range(1, 13)), "is_evergreen": True, "interest_type": "foliage"}
    if s == "foliage":
        return {"bloom_months": [], "interest_months": list(range(4, 11)), "is_evergreen": False, "interest_type": "foliage"}
    if "fall color" in s or "fall foliage" in s:
        return {"bloom_months": [], "interest_months": [9, 10, 11], "is_evergreen": False, "interest_type": "fall-color"}
    if "year-round" in s:
        return {"bloom_months": [], "interest_months": list(range(1, 13)), "is_evergreen": False, "interest_type": "multi-season"}
    if "berries" in s:
        if "fall" in s:
            months = [9, 10, 11]
        elif "winter" in s:
            months = [11, 12, 1, 2]
        else:
            months = [9, 10, 11, 12]
        return {"bloom_months": [], "interest_months": months, "is_evergreen": False, "interest_type": "berries"}

    months = set()
    for name, number in MONTH_NAMES.items():
        if name in s:
            months.add(number)
    for phrase, numbers in _SEASONS_BY_LENGTH:
        if phrase in s:
            months.update(numbers)

    match = _RANGE_PATTERN.search(s)
    if match:
        start = MONTH_NAMES.get(match.group(1))
        end = MONTH_NAMES.get(match.group(2))
        if start and end:
            current = start
            while current != end:
                months.add(current)
                current = 1 if current == 12 else current + 1
            months.add(end)

    bloom = sorted(months)
    return {"bloom_months": bloom, "interest_months": list(bloom), "is_evergreen": False, "interest_type": "bloom"}


def bloom_sequence(design: Dict[str, Any]) -> Dict[str, Any]:
    """Month-by-month bloom and interest coverage across the year."""
    monthly_bloom = {m: [] for m in range(1, 13)}
    monthly_interest = {m: [] for m in range(1, 13)}

    for plant in _placed_plants(design):
        parsed = parse_bloom_time(plant.get("bloom_time"))
        for month in parsed["interest_months"]:
            monthly_interest[month].append(plant["id"])
        for month in parsed["bloom_months"]:
            monthly_bloom[month].append(plant["id"])

    bloom_gaps = [m for m in range(1, 13) if not monthly_bloom[m]]
    interest_gaps = [m for m in range(1, 13) if not monthly_interest[m]]

    seasonal = {}
    for season, months in SEASONS.items():
        with_bloom = sum(1 for m in months if monthly_bloom[m])
        with_interest = sum(1 for m in months if monthly_interest[m])
        seasonal[season] = {
            "bloom_coverage": with_bloom / len(months),
            "interest_coverage": with_interest / len(months),
            "bloom_months": with_bloom,
            "total_months": len(months),
        }

    recommendations = []
    gap_seasons: List[str] = []
    for month in bloom_gaps:
        if MONTH_SEASONS[month] not in gap_seasons:
            gap_seasons.append(MONTH_SEASONS[month])
    for season in gap_seasons:
        abbrs = ", ".join(MONTH_ABBRS[m - 1] for m in bloom_gaps if MONTH_SEASONS[m] == season)
        recommendations.append(f"Add {season} bloomers to fill color gaps in {abbrs}")

    return {
        "monthly_bloom": {MONTH_ABBRS[m - 1]: len(v) for m, v in monthly_bloom.items()},
        "monthly_interest": {MONTH_ABBRS[m - 1]: len(v) for m, v in monthly_interest.items()},
        "bloom_gaps": [MONTH_ABBRS[m - 1] for m in bloom_gaps],
        "interest_gaps": [MONTH_ABBRS[m - 1] for m in interest_gaps],
        "seasonal_coverage": seasonal,
        "bloom_score": (12 - len(bloom_gaps)) / 12 * 100,
        "interest_score": (12 - len(interest_gaps)) / 12 * 100,
        "recommendations": recommendations,
        "has_year_round_interest": not interest_gaps,
        "has_year_round_bloom": not bloom_gaps,
    }


def height_tier(height_inches: float) -> Dict[str, Any]:
    for tier in HEIGHT_TIERS:
        if tier["max_height"] is not None and height_inches <= tier["max_height"]:
            return tier
    return HEIGHT_TIERS[-1]


def height_layering(design: Dict[str, Any]) -> Dict[str, Any]:
    counts = {tier["id"]: 0 for tier in HEIGHT_TIERS}
    for plant in _placed_plants(design):
        tier = height_tier(plant_catalog.parse_height_to_inches(plant.get("height")))
        counts[tier["id"]] += 1

    active = [tier_id for tier_id, count in counts.items() if count > 0]
    issues = []
    if len(active) > 1:
        for tier in HEIGHT_TIERS:
            if min(active) < tier["id"] < max(active) and tier["id"] not in active:
                issues.append(f"Missing {tier['name']} plants ({tier['label']}). Add mid-height transitions.")

    placed = len(design.get("placements") or [])
    ideal = min(5, math.ceil(placed / 3))
    diversity = min(100.0, len(active) / ideal * 100) if ideal else 0.0

    return {
        "tier_counts": {str(k): v for k, v in counts.items()},
        "active_tiers": active,
        "tier_diversity": len(active),
        "diversity_score": diversity,
        "issues": issues,
        "has_ground_layer": counts[1] > 0 or counts[2] > 0,
        "has_middle_layer": counts[3] > 0 or counts[4] > 0,
        "has_upper_layer": counts[5] > 0 or counts[6] > 0,
        "has_focal_points": counts[7] > 0,
    }


def form_variety(plants: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not plants:
        return {"valid": True, "score": 100, "issues": [], "form_counts": {}, "unique_forms": 0}

    counts = Counter(plant_catalog.infer_form(p) for p in plants)
    issues = []
    if len(counts) < MIN_FORM_VARIETY and len(plants) >= 5:
        issues.append(f"Only {len(counts)} plant forms used. Add variety with different shapes.")
    for form, count in counts.items():
        share = count / len(plants)
        if share > MAX_SAME_FORM:
            issues.append(f"{round_half_up(share * 100)}% of plants are {form}. Mix in contrasting forms.")

    return {
        "valid": not issues,
        "score": max(0, 100 - len(issues) * 15),
        "issues": issues,
        "form_counts": dict(counts),
        "unique_forms": len(counts),
    }


def texture_variety(plants: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not plants:
        return {"valid": True, "score": 100, "issues": [], "texture_counts": {}}

    counts = Counter(plant_catalog.infer_texture(p) for p in plants)
    issues = []
    for texture, count in counts.items():
        share = count / len(plants)
        if share > MAX_SAME_TEXTURE:
            issues.append(f"{round_half_up(share * 100)}% of plants have {texture} texture. Add contrast.")

    return {
        "valid": not issues,
        "score": max(0, 100 - len(issues) * 15),
        "issues": issues,
        "texture_counts": dict(counts),
    }


def mass_planting(design: Dict[str, Any]) -> Dict[str, Any]:
    """Drift sizes, odd-number grouping and repetition rhythm."""
    counts = Counter(plant["id"] for plant in _placed_plants(design))
    issues: List[Dict[str, Any]] = []
    suggestions: List[Dict[str, Any]] = []

    for plant_id, count in counts.items():
        plant = plant_catalog.get_plant(plant_id)
        kind = CATEGORY_KINDS.get(plant.get("category"), "perennial")
        rules = DRIFT_SIZES[kind]
        if count < rules["min"]:
            issues.append({
                "plant_id": plant_id,
                "count": count,
                "min_needed": rules["min"],
                "message": f"{plant['name']}: Only {count} placed. {rules['label']}",
            })
        if count > 1 and count % 2 == 0 and count < 8:
            suggestions.append({
                "plant_id": plant_id,
                "count": count,
                "message": f"{plant['name']}: {count} is even. Add 1 more for natural grouping.",
            })

    repeated = [pid for pid, count in counts.items() if count >= MIN_REPETITION]
    if not repeated and len(counts) > 3:
        issues.append({"message": "No plants repeated 3+ times. Repeat key plants to create visual rhythm."})

    return {
        "valid": not issues,
        "score": max(0, 100 - len(issues) * 10 - len(suggestions) * 3),
        "issues": issues,
        "suggestions": suggestions,
        "plant_counts": dict(counts),
        "repeated_plants": len(repeated),
    }


def show_ready_score(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """Weighted 0-100 quality score from the individual analyses."""
    scores = {
        "coverage": min(100.0, analysis.get("coverage_percent", 0) / COVERAGE_TARGET * 100),
        "bloom_sequence": (analysis.get("bloom_sequence") or {}).get("interest_score", 0),
        "height_layering": (analysis.get("height_layering") or {}).get("diversity_score", 0),
        "form_variety": (analysis.get("form_variety") or {}).get("score", 0),
        "texture_variety": (analysis.get("texture_variety") or {}).get("score", 0),
        "mass_planting": (analysis.get("mass_planting") or {}).get("score", 0),
        "color_harmony": 100 if (analysis.get("color_harmony") or {"valid": True}).get("valid") else 50,
    }
    total = sum(scores[key] * weight / 100 for key, weight in SHOW_READY_WEIGHTS.items())

    rating = "Early Stage"
    for threshold, label in RATINGS:
        if total >= threshold:
            rating = label
            break

    return {
        "total_score": round_half_up(total),
        "scores": scores,
        "rating": rating,
        "is_show_ready": total >= 90,
    }


def _diagnosis(analysis: Dict[str, Any]) -> List[str]:
    issues: List[str] = []
    if analysis["coverage_percent"] < COVERAGE_TARGET:
        issues.append(f"Coverage is {analysis['coverage_percent']:.0f}%. Professional beds reach 95%+.")
    if not analysis["color_harmony"]["valid"]:
        issues.append(f"Color palette uses {analysis['color_harmony']['scheme']}.")
    issues.extend(analysis["height_layering"]["issues"])
    issues.extend(analysis["form_variety"]["issues"])
    issues.extend(analysis["texture_variety"]["issues"])
    issues.extend(i["message"] for i in analysis["mass_planting"]["issues"])
    return issues


def _how_tos(analysis: Dict[str, Any]) -> List[str]:
    tips: List[str] = []
    if analysis["coverage_percent"] < COVERAGE_TARGET:
        tips.append(HOW_TOS["coverage"])
    if analysis["height_layering"]["issues"]:
        tips.append(HOW_TOS["height"])
    if analysis["form_variety"]["issues"]:
        tips.append(HOW_TOS["form"])
    if analysis["texture_variety"]["issues"]:
        tips.append(HOW_TOS["texture"])
    if analysis["mass_planting"]["issues"] or analysis["mass_planting"]["suggestions"]:
        tips.append(HOW_TOS["mass"])
        tips.extend(s["message"] for s in analysis["mass_planting"]["suggestions"])
    if not analysis["color_harmony"]["valid"]:
        tips.append(HOW_TOS["harmony"])
    tips.extend(analysis["bloom_sequence"]["recommendations"])
    return tips


def analyze_design(design: Dict[str, Any], ent: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Full analysis of a design, trimmed to what the tier may see.

    Coverage, harmony, the rules checklist and the detailed breakdowns are
    always returned. The overall score, the diagnosis and the how-to list
    are gated by the can_view_design_score, can_view_analysis_diagnosis and
    can_view_analysis_howtos limits.

    Args:
        design: Design dict with bed and placements
        ent: Entitlements dict; None means no gated sections

    Returns:
        Analysis dict
    """
    plants = _placed_plants(design)
    coverage = coverage_percent(design)
    harmony = color_harmony(design)

    analysis: Dict[str, Any] = {
        "plant_count": len(design.get("placements") or []),
        "bed_area_sq_ft": bed_geometry.bed_area_sq_ft(design["bed"]),
        "coverage_percent": coverage,
        "color_harmony": harmony,
        "category_breakdown": category_breakdown(design),
        "rules": rules_checklist(design, coverage, harmony),
        "bloom_sequence": bloom_sequence(design),
        "height_layering": height_layering(design),
        "form_variety": form_variety(plants),
        "texture_variety": texture_variety(plants),
        "mass_planting": mass_planting(design),
    }

    limits = (ent or {}).get("limits") or {}
    full = bool((ent or {}).get("has_full_access"))

    show_diagnosis = full or bool(limits.get("can_view_analysis_diagnosis"))
    show_how_tos = full or bool(limits.get("can_view_analysis_howtos"))

    if full or limits.get("can_view_design_score"):
        analysis["show_ready"] = show_ready_score(analysis)
    if show_diagnosis:
        analysis["diagnosis"] = _diagnosis(analysis)
    if show_how_tos:
        analysis["how_tos"] = _how_tos(analysis)
    # Issue text lives in the breakdowns too
    if not show_diagnosis:
        _strip_diagnosis(analysis)
    if not show_how_tos:
        analysis["bloom_sequence"]["recommendations"] = []

    return analysis


def _strip_diagnosis(analysis: Dict[str, Any]) -> None:
    """Blank the issue lists inside the breakdowns; scores and counts stay."""
    for key in ("height_layering", "form_variety", "texture_variety", "mass_planting"):
        analysis[key]["issues"] = []
    analysis["mass_planting"]["suggestions"] = []
