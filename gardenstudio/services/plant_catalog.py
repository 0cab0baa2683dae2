"""
Plant catalog: static plant data plus the size math the canvas relies on.

Plants are loaded once from data/plants.json. Heights and spreads are stored
as nursery-style strings ("15-25ft", "12-18in", "spreading") and parsed to
inches here so every other module works in a single unit.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from gardenstudio.utils.data import index_by_id, load_data_file

logger = logging.getLogger(__name__)

CATEGORIES = ("focal", "topiary", "back", "middle", "front", "groundcover")

DEFAULT_SIZES = ["1gal", "3gal", "7gal"]

# Container size -> how much of the mature spread a fresh install covers,
# and how large its icon is drawn relative to that spread.
SIZE_MULTIPLIERS: Dict[str, Dict[str, float]] = {
    "1gal": {"spread_mult": 0.35, "icon_scale": 0.3},
    "3gal": {"spread_mult": 0.5, "icon_scale": 0.5},
    "7gal": {"spread_mult": 0.7, "icon_scale": 0.7},
    "15gal": {"spread_mult": 0.85, "icon_scale": 0.85},
    "b&b": {"spread_mult": 1.0, "icon_scale": 1.0},
}
DEFAULT_SIZE_MULTIPLIER = SIZE_MULTIPLIERS["3gal"]

INVASIVE_WARNINGS = {
    "vinca-minor": "Can escape cultivation and spread in woodlands.",
    "english-ivy": "Invasive in many regions. Can damage structures and trees.",
    "asiatic-jasmine": "Spreads quickly and can climb trees if not edged.",
    "butterfly-bush": "Invasive in some regions. Consider sterile cultivars.",
    "butterfly-bush-davidii": "Invasive in some regions. Consider sterile cultivars.",
    "burning-bush": "Invasive in eastern US. Birds spread seeds.",
    "privet": "Highly invasive. Consider native alternatives like inkberry.",
}

_SPREAD_PATTERN = re.compile(r"(\d+)[-–]?(\d+)?\s*(in|ft)?", re.IGNORECASE)
_NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")

# Max RGB distance for a color filter match
_COLOR_MATCH_DISTANCE = 120

_plants: Optional[List[Dict[str, Any]]] = None
_plants_by_id: Dict[str, Dict[str, Any]] = {}


def _load() -> List[Dict[str, Any]]:
    global _plants, _plants_by_id
    if _plants is None:
        _plants = load_data_file("plants.json")
        _plants_by_id = index_by_id(_plants)
        if not _plants:
            logger.warning("Plant catalog is empty; data/plants.json missing or unreadable")
    return _plants


def all_plants() -> List[Dict[str, Any]]:
    return list(_load())


def get_plant(plant_id: str | None) -> Optional[Dict[str, Any]]:
    _load()
    if not plant_id or not isinstance(plant_id, str):
        return None
    return _plants_by_id.get(plant_id)


def _hex_to_rgb(value: str) -> Optional[tuple]:
    v = (value or "").lstrip("#")
    if len(v) != 6:
        return None
    try:
        return tuple(int(v[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None


def colors_match(a: str, b: str, threshold: int = _COLOR_MATCH_DISTANCE) -> bool:
    """True when two hex colors are within `threshold` in RGB space."""
    rgb_a, rgb_b = _hex_to_rgb(a), _hex_to_rgb(b)
    if not rgb_a or not rgb_b:
        return False
    distance = sum((x - y) ** 2 for x, y in zip(rgb_a, rgb_b)) ** 0.5
    return distance <= threshold


def filter_plants(
    category: str | None = None,
    sun: str | None = None,
    search: str | None = None,
    color: str | None = None,
    water: str | None = None,
) -> List[Dict[str, Any]]:
    """
    Filter the catalog the way the plant palette does.

    Args:
        category: Exact category match ("all" or None disables)
        sun: Substring of the sun requirement ("Shade" matches "Part Shade")
        search: Case-insensitive substring of name or design use
        color: Hex color; matches plants with a nearby color
        water: Exact water requirement

    Returns:
        Matching plants in catalog order
    """
    results = []
    query = (search or "").strip().lower()
    for plant in _load():
        if category and category != "all" and plant.get("category") != category:
            continue
        if sun and sun != "all" and sun.lower() not in (plant.get("sun") or "").lower():
            continue
        if water and water != "all" and (plant.get("water") or "").lower() != water.lower():
            continue
        if query and query not in plant.get("name", "").lower() and query not in plant.get("use", "").lower():
            continue
        if color and color != "all" and not colors_match(plant.get("color", ""), color):
            continue
        results.append(plant)
    return results


def parse_spread_to_inches(spread: str | None) -> float:
    """Average a spread string to inches ("3-4ft" -> 42, "12-18in" -> 15)."""
    if not spread:
        return 12
    if spread.strip().lower() == "spreading":
        return 18

    match = _SPREAD_PATTERN.search(spread)
    if not match:
        return 12

    low = int(match.group(1))
    high = int(match.group(2)) if match.group(2) else low
    avg = (low + high) / 2
    unit = (match.group(3) or "in").lower()
    return avg * 12 if unit == "ft" else avg


def parse_height_to_inches(height: str | None) -> float:
    """Max value of a height string in inches; 24 when unknown."""
    if not height:
        return 24
    text = height.lower()
    numbers = [float(n) for n in _NUMBER_PATTERN.findall(text)]
    if not numbers:
        return 24
    tallest = max(numbers)
    return tallest * 12 if "ft" in text else tallest


def get_size_multiplier(size: str | None) -> Dict[str, float]:
    return SIZE_MULTIPLIERS.get((size or "").lower(), DEFAULT_SIZE_MULTIPLIER)


def get_plant_sizes(plant_id: str, size: str | None = None) -> Dict[str, float]:
    """
    Icon size and installed spread for a plant, both in inches.

    The spread is scaled by the container size (smaller containers cover less
    ground at install); the icon is a clamped fraction of that spread.
    """
    plant = get_plant(plant_id)
    if not plant:
        return {"icon_size": 20, "mature_spread": 12}

    multiplier = get_size_multiplier(size)
    adjusted = parse_spread_to_inches(plant.get("spread")) * multiplier["spread_mult"]
    icon_size = max(8.0, min(60.0, adjusted * 0.4 * (1 + multiplier["icon_scale"])))
    return {"icon_size": icon_size, "mature_spread": adjusted}


def available_sizes(plant_id: str) -> List[str]:
    plant = get_plant(plant_id)
    if not plant:
        return []
    return list(plant.get("sizes") or DEFAULT_SIZES)


def infer_form(plant: Dict[str, Any]) -> str:
    """Best-guess growth form from name and category."""
    if plant.get("form"):
        return plant["form"]

    name = plant.get("name", "").lower()
    category = plant.get("category")
    shape = plant.get("shape")

    if category == "topiary":
        if shape in ("cone", "spiral"):
            return "pyramidal"
        return "mounding"

    if category == "groundcover":
        if "creeping" in name or "prostrate" in name:
            return "prostrate"
        if "liriope" in name or "mondo" in name or "grass" in name:
            return "arching"
        return "spreading"

    if category == "focal":
        if "weeping" in name:
            return "weeping"
        if "columnar" in name:
            return "columnar"
        if "magnolia" in name or "pine" in name or "spruce" in name:
            return "pyramidal"
        return "vase"

    if category == "back":
        if "arborvitae" in name:
            return "columnar"
        if "holly" in name:
            return "pyramidal"
        return "mounding"

    if category in ("middle", "front"):
        if "daylily" in name:
            return "arching"
        if "salvia" in name or "black-eyed" in name or "rudbeckia" in name:
            return "upright"
        if "petunia" in name or "vinca" in name or "lantana" in name:
            return "spreading"
        return "mounding"

    return "mounding"


def infer_texture(plant: Dict[str, Any]) -> str:
    """Best-guess visual texture from name and category."""
    if plant.get("texture"):
        return plant["texture"]

    text = f"{plant.get('name', '')} {plant.get('use', '')}".lower()
    if any(word in text for word in ("fine", "feather", "delicate", "juniper", "mondo", "needle")):
        return "fine"
    if any(word in text for word in ("bold", "large", "magnolia", "hydrangea", "camellia", "hosta")):
        return "coarse"
    if plant.get("category") == "focal":
        return "coarse"
    return "medium"


def invasive_warning(plant_id: str) -> Optional[str]:
    return INVASIVE_WARNINGS.get(plant_id)
