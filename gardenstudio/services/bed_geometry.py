"""
Garden bed geometry.

Bed dimensions are stored in feet, every coordinate (plant positions and
custom path points) in inches, with the origin at the top-left corner of
the canvas. A bed is either a plain rectangle or a freehand ("custom")
polygon drawn on a canvas of the given size.

Bed dict shape:
    {"type": "rectangle", "width_ft": 20, "height_ft": 10}
    {"type": "custom", "width_ft": 20, "height_ft": 10,
     "path": [{"x": 12.0, "y": 30.5}, ...]}
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional

Point = Dict[str, float]

SQ_IN_PER_SQ_FT = 144

# Freehand drawings need this many raw points before they become a bed
MIN_DRAWN_POINTS = 10


def polygon_area(path: List[Point]) -> float:
    """Shoelace area in square inches; 0 for fewer than three points."""
    if not path or len(path) < 3:
        return 0.0
    area = 0.0
    for i, p in enumerate(path):
        q = path[(i + 1) % len(path)]
        area += p["x"] * q["y"] - q["x"] * p["y"]
    return abs(area / 2)


def point_in_polygon(x: float, y: float, path: List[Point]) -> bool:
    """Ray-casting containment test. Degenerate paths accept every point."""
    if not path or len(path) < 3:
        return True
    inside = False
    j = len(path) - 1
    for i in range(len(path)):
        xi, yi = path[i]["x"], path[i]["y"]
        xj, yj = path[j]["x"], path[j]["y"]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def path_bounds(path: List[Point]) -> Optional[Dict[str, float]]:
    if not path:
        return None
    xs = [p["x"] for p in path]
    ys = [p["y"] for p in path]
    min_x, max_x, min_y, max_y = min(xs), max(xs), min(ys), max(ys)
    return {
        "min_x": min_x,
        "max_x": max_x,
        "min_y": min_y,
        "max_y": max_y,
        "width": max_x - min_x,
        "height": max_y - min_y,
        "center_x": (min_x + max_x) / 2,
        "center_y": (min_y + max_y) / 2,
    }


def simplify_path(points: List[Point], min_distance: float = 5) -> List[Point]:
    """Drop points closer than `min_distance` inches to the last kept point."""
    if len(points) < 2:
        return list(points)
    simplified = [points[0]]
    for point in points[1:]:
        last = simplified[-1]
        if math.hypot(point["x"] - last["x"], point["y"] - last["y"]) >= min_distance:
            simplified.append(point)
    return simplified


def _cut(p0: Point, p1: Point) -> List[Point]:
    return [
        {"x": 0.75 * p0["x"] + 0.25 * p1["x"], "y": 0.75 * p0["y"] + 0.25 * p1["y"]},
        {"x": 0.25 * p0["x"] + 0.75 * p1["x"], "y": 0.25 * p0["y"] + 0.75 * p1["y"]},
    ]


def smooth_path(points: List[Point], iterations: int = 3) -> List[Point]:
    """
    Chaikin corner cutting on a closed path.

    Each iteration replaces every edge (including the closing edge) with its
    1/4 and 3/4 points, so the point count doubles per pass.
    """
    if len(points) < 3:
        return list(points)

    smoothed = list(points)
    for _ in range(iterations):
        new_points: List[Point] = []
        for i in range(len(smoothed) - 1):
            new_points.extend(_cut(smoothed[i], smoothed[i + 1]))
        new_points.extend(_cut(smoothed[-1], smoothed[0]))
        smoothed = new_points
    return smoothed


def finalize_drawn_path(points: List[Point]) -> Optional[List[Point]]:
    """Turn a raw freehand stroke into a bed outline, or None if too short."""
    if len(points) <= MIN_DRAWN_POINTS:
        return None
    return smooth_path(simplify_path(points, 3), 3)


def is_custom(bed: Dict) -> bool:
    return bed.get("type") == "custom" and len(bed.get("path") or []) >= 3


def bed_bounds(bed: Dict) -> Dict[str, float]:
    if is_custom(bed):
        return path_bounds(bed["path"])
    width = bed["width_ft"] * 12
    height = bed["height_ft"] * 12
    return {
        "min_x": 0,
        "max_x": width,
        "min_y": 0,
        "max_y": height,
        "width": width,
        "height": height,
        "center_x": width / 2,
        "center_y": height / 2,
    }


def bed_area_sq_in(bed: Dict) -> float:
    if is_custom(bed):
        return polygon_area(bed["path"])
    return (bed["width_ft"] * 12) * (bed["height_ft"] * 12)


def bed_area_sq_ft(bed: Dict) -> float:
    return bed_area_sq_in(bed) / SQ_IN_PER_SQ_FT


def contains_point(bed: Dict, x: float, y: float) -> bool:
    """Whether a click/drop at (x, y) lands inside the planting area."""
    if is_custom(bed):
        return point_in_polygon(x, y, bed["path"])
    bounds = bed_bounds(bed)
    return bounds["min_x"] <= x <= bounds["max_x"] and bounds["min_y"] <= y <= bounds["max_y"]


def clamp_to_bed(bed: Dict, x: float, y: float) -> Point:
    """Clamp a dragged position into the bed's bounding box."""
    bounds = bed_bounds(bed)
    return {
        "x": max(bounds["min_x"], min(bounds["max_x"], x)),
        "y": max(bounds["min_y"], min(bounds["max_y"], y)),
    }


def describe_shape(bed: Dict) -> str:
    """Plain-language bed outline used in image prompts."""
    if not is_custom(bed):
        return "rectangular"

    path = bed["path"]
    bounds = path_bounds(path)
    count = len(path)
    if count <= 6:
        description = "organic curved kidney-bean shaped"
    elif count <= 12:
        description = "organic free-form curved"
    else:
        description = "natural organic curved with flowing edges"

    if bounds["height"] > 0:
        aspect = bounds["width"] / bounds["height"]
        if aspect > 2:
            description += ", elongated horizontal"
        elif aspect < 0.5:
            description += ", elongated vertical"
    return description


def path_to_svg(path: List[Point], scale: float = 1.0) -> str:
    """SVG path data for a closed outline; empty for fewer than two points."""
    if len(path) < 2:
        return ""
    parts = [f"M {path[0]['x'] * scale:g} {path[0]['y'] * scale:g}"]
    parts.extend(f"L {p['x'] * scale:g} {p['y'] * scale:g}" for p in path[1:])
    parts.append("Z")
    return " ".join(parts)
