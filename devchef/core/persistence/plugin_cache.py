"""
Plugin cache — the last resolved ``PluginsInfo`` for a recipe.

Stored as ``<recipe dir>/.devchef/pluginsinfo.json``. A missing or
unreadable file is just a cache miss. Each save replaces the previous
record wholesale.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from devchef.core.config.loader import CHEF_DIR
from devchef.core.models.plugin import PluginsInfo
from devchef.core.persistence.json_file import write_json_atomic

logger = logging.getLogger(__name__)

CACHE_FILE = "pluginsinfo.json"


def cache_path(recipe_dir: Path) -> Path:
    return recipe_dir / CHEF_DIR / CACHE_FILE


def load_cached(path: Path) -> PluginsInfo | None:
    """Return the cached PluginsInfo, or None on any miss."""
    if not path.is_file():
        return None
    try:
        return PluginsInfo.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Ignoring corrupt plugin cache %s: %s", path, e)
        return None


def save_cached(path: Path, info: PluginsInfo) -> None:
    write_json_atomic(path, info.to_dict())
    logger.debug("Plugin cache saved to %s (%d plugins)", path, len(info.plugins))


def clear_cached(path: Path) -> None:
    path.unlink(missing_ok=True)
