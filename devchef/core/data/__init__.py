"""
Static data — catalogs and helper scripts shipped with devchef.

Catalogs are loaded once per process and cached::

    from devchef.core.data import plugin_type_paths, script_path

    plugin_type_paths()["local"]        # "/local/"
    script_path("create_category.php")  # Path inside the package
"""

from __future__ import annotations

import json
import logging
from functools import cache
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@cache
def plugin_type_paths() -> dict[str, str]:
    """Plugin type prefix → install path inside the application root."""
    data = _load_json("catalogs/plugin_types.json")
    logger.debug("Loaded %d plugin type mappings", len(data))
    return data


def script_path(name: str) -> Path:
    """Absolute path of a bundled helper script."""
    return _DATA_DIR / "scripts" / name
