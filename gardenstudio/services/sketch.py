"""
Top-down sketch of a design for image conditioning and previews.

Renders a 512x512 PNG: white background, the bed as brown mulch with a
black outline, and each plant as a circle colored by category. The bed is
scaled uniformly and centered.

Usage:
    from gardenstudio.services.sketch import sketch_data_url
    url = sketch_data_url(design, watermark=True)
"""

from __future__ import annotations

import base64
import io
import logging

from PIL import Image, ImageDraw, ImageFont

from gardenstudio.services import bed_geometry, plant_catalog
from gardenstudio.services.scoring import spread_low_inches

logger = logging.getLogger(__name__)

SIZE = 512
MARGIN = 8

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
MULCH = (139, 115, 85)  # #8B7355

CATEGORY_COLORS = {
    "focal": (46, 125, 50),         # #2E7D32
    "topiary": (27, 94, 32),        # #1B5E20
    "back": (76, 175, 80),          # #4CAF50
    "middle": (129, 199, 132),      # #81C784
    "front": (200, 230, 201),       # #C8E6C9
    "groundcover": (165, 214, 167), # #A5D6A7
}
DEFAULT_PLANT_COLOR = CATEGORY_COLORS["back"]

WATERMARK_TEXT = "Garden Studio"


def render_sketch(design: dict, watermark: bool = False) -> bytes:
    """Render the design as PNG bytes."""
    bed = design["bed"]
    width = bed["width_ft"] * 12
    height = bed["height_ft"] * 12
    scale = min(SIZE / width, SIZE / height)  # pixels per inch
    offset_x = (SIZE - width * scale) / 2
    offset_y = (SIZE - height * scale) / 2

    def px(x: float, y: float) -> tuple[float, float]:
        return offset_x + x * scale, offset_y + y * scale

    img = Image.new("RGB", (SIZE, SIZE), WHITE)
    draw = ImageDraw.Draw(img)

    if bed_geometry.is_custom(bed):
        draw.polygon([px(p["x"], p["y"]) for p in bed["path"]], fill=MULCH, outline=BLACK, width=3)
    else:
        x0, y0 = px(0, 0)
        x1, y1 = px(width, height)
        draw.rectangle([x0, y0, x1, y1], fill=MULCH, outline=BLACK, width=3)

    for placement in design.get("placements") or []:
        plant = plant_catalog.get_plant(placement.get("plant_id"))
        if not plant:
            continue
        cx, cy = px(placement["x"], placement["y"])
        radius = max(1.0, spread_low_inches(plant.get("spread")) / 2 * scale)
        color = CATEGORY_COLORS.get(plant.get("category"), DEFAULT_PLANT_COLOR)
        draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius], fill=color, outline=BLACK, width=2)

    if watermark:
        font = ImageFont.load_default()
        left, top, right, bottom = draw.textbbox((0, 0), WATERMARK_TEXT, font=font)
        position = (SIZE - MARGIN - (right - left), SIZE - MARGIN - (bottom - top))
        draw.text(position, WATERMARK_TEXT, fill=BLACK, font=font)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def sketch_data_url(design: dict, watermark: bool = False) -> str:
    encoded = base64.b64encode(render_sketch(design, watermark)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
