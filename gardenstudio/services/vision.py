"""
Vision rendering: turn a design into an image-generation prompt and call the
image model through LiteLLM.

Prompts are kept under the DALL-E 2 limit of 1000 characters; the design
summary is capped at 500 before it is wrapped in the scene description.
"""

from __future__ import annotations

import logging
import os
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

from flask import current_app, has_app_context

from gardenstudio.services import bed_geometry, plant_catalog, scoring

SEASON_WORDS = {"spring": "spring", "summer": "summer", "fall": "autumn"}

MAX_USER_PROMPT = 500
MAX_FULL_PROMPT = 1000

# Category -> heading used in the plant list, in back-to-front order
CATEGORY_HEADINGS = OrderedDict([
    ("focal", "FOCAL/SPECIMEN TREES (tallest, back-center)"),
    ("topiary", "TOPIARIES (sculptural, accent positions)"),
    ("back", "BACK ROW (tall shrubs 4-8ft, along back edge)"),
    ("middle", "MIDDLE ROW (medium shrubs 2-4ft)"),
    ("front", "FRONT ROW (low plants 1-2ft, along front edge)"),
    ("groundcover", "GROUNDCOVER/EDGING (under 1ft, fills gaps)"),
])

logger = logging.getLogger(__name__)


def _config(key: str, default: Any) -> Any:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _api_key() -> Optional[str]:
    key = os.getenv("OPENAI_API_KEY")
    if not key and has_app_context():
        key = current_app.config.get("OPENAI_API_KEY")
    return key


def is_configured() -> bool:
    return bool(_api_key())


def build_plan_prompt(design: Dict[str, Any]) -> str:
    """
    Describe the bed and its planting for the image model.

    Plants are grouped by name with counts, then listed under their
    category heading from the back of the bed to the front.
    """
    details: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for placement in design.get("placements") or []:
        plant = plant_catalog.get_plant(placement.get("plant_id"))
        if not plant:
            continue
        entry = details.setdefault(plant["name"], {
            "count": 0,
            "height": plant.get("height"),
            "category": plant.get("category"),
            "bloom_time": plant.get("bloom_time"),
            "bloom_color": plant.get("bloom_color") or "green foliage",
        })
        entry["count"] += 1

    by_category: Dict[str, list] = {category: [] for category in CATEGORY_HEADINGS}
    for name, info in details.items():
        if info["category"] in by_category:
            by_category[info["category"]].append(
                f"{info['count']}x {name} ({info['height']} tall, {info['bloom_color']}, blooms {info['bloom_time']})"
            )

    bed = design["bed"]
    lines = [
        "GARDEN BED SPECIFICATIONS:",
        f"- Shape: {bed_geometry.describe_shape(bed)} mulch bed",
        f"- Size: {bed['width_ft']:g}ft x {bed['height_ft']:g}ft canvas area",
        f"- Total plants: {len(design.get('placements') or [])}",
        f"- Coverage: {scoring.coverage_percent(design):.0f}%",
        "",
        "EXACT PLANT LIST (show these specific plants):",
    ]
    for category, heading in CATEGORY_HEADINGS.items():
        if by_category[category]:
            lines.append(f"{heading}: {'; '.join(by_category[category])}")
    return "\n".join(lines)


def build_image_prompt(prompt: str, season: Optional[str] = "spring") -> str:
    season_word = SEASON_WORDS.get(season or "", "spring")
    if len(prompt) > MAX_USER_PROMPT:
        prompt = prompt[:MAX_USER_PROMPT] + "..."
    full = (
        f"Residential front yard garden bed, {season_word}. {prompt}. "
        "Photorealistic, suburban home background with lawn, mulch bed, natural daylight. Eye-level view."
    )
    return full[:MAX_FULL_PROMPT]


def generate_image(prompt: str, season: Optional[str] = "spring") -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Render one image for the prompt.

    Args:
        prompt: Design description (see build_plan_prompt)
        season: spring, summer or fall

    Returns:
        Tuple of ({"image_url", "revised_prompt"}, None) or (None, error_message)
    """
    api_key = _api_key()
    if not api_key:
        return None, "OpenAI API key not configured"

    try:
        from litellm import image_generation

        resp = image_generation(
            prompt=build_image_prompt(prompt, season),
            model=_config("VISION_MODEL", "dall-e-2"),
            n=1,
            size=_config("VISION_IMAGE_SIZE", "1024x1024"),
            api_key=api_key,
            timeout=_config("VISION_TIMEOUT_SECONDS", 55),
        )
        image = resp.data[0]
        url = getattr(image, "url", None)
        if not url:
            return None, "Image response had no URL"
        return {"image_url": url, "revised_prompt": getattr(image, "revised_prompt", None)}, None
    except Exception as e:
        # Provider detail goes to the log only; callers get the generic message
        logger.warning("Image generation failed: %s", str(e)[:300])
        return None, "Failed to generate image"
