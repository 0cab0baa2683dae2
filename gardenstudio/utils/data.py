"""
Shared utilities for loading the static JSON catalogs in gardenstudio/data/.
"""

from __future__ import annotations
import json
import os
from typing import Any, Dict

_DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")


def load_data_file(filename: str) -> list:
    """Load a JSON data file from gardenstudio/data/.

    Returns an empty list if the file is not found.
    """
    filepath = os.path.join(_DATA_DIR, filename)
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return []


def index_by_id(records: list) -> Dict[str, Dict[str, Any]]:
    """Map records to their "id" field, skipping entries without one."""
    return {r["id"]: r for r in records if isinstance(r, dict) and r.get("id")}
