"""
Recipe loader — reads a recipe JSON file into a validated ``Recipe``.

Validation errors, unreadable files and bad restore-structure URLs all
surface as ``ConfigurationInvalid`` before any side effect happens.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import requests
from pydantic import ValidationError

from devchef.core.errors import ConfigurationInvalid
from devchef.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

# Per-project working directory, created beside the recipe
CHEF_DIR = ".devchef"

_DOWNLOAD_TIMEOUT = 30


def is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def find_chef_dir(start_dir: Path | None = None) -> Path | None:
    """Search for a ``.devchef`` directory starting from *start_dir*, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CHEF_DIR
        if candidate.is_dir():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_recipe(
    path: Path,
    session: requests.Session | None = None,
) -> Recipe:
    """Load and validate a recipe file.

    Args:
        path: Path to the recipe JSON.
        session: HTTP session for downloading a remote ``restoreStructure``.

    Raises:
        ConfigurationInvalid: missing file, bad JSON, or schema violation.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationInvalid(f"Recipe file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationInvalid(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationInvalid(f"Recipe must be a JSON object: {path}")

    raw = _expand_restore_structure(raw, session)

    try:
        recipe = Recipe.model_validate(raw)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'recipe'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationInvalid(f"Invalid recipe {path}: {errors}") from e

    recipe = recipe.model_copy(update={"recipe_path": path.resolve()})
    logger.debug("Loaded recipe %s (tag=%s, %d plugins)", path, recipe.moodle_tag, len(recipe.plugins))
    return recipe


def _expand_restore_structure(raw: dict[str, Any], session: requests.Session | None) -> dict[str, Any]:
    """Replace a URL-valued ``restoreStructure`` with the JSON it points to."""
    key = "restoreStructure" if "restoreStructure" in raw else "restore_structure"
    value = raw.get(key)
    if not isinstance(value, str):
        return raw
    if not is_url(value):
        raise ConfigurationInvalid(f"restoreStructure must be an object or a URL, got '{value}'")

    logger.info("Downloading restore structure from %s", value)
    http = session or requests.Session()
    try:
        resp = http.get(value, timeout=_DOWNLOAD_TIMEOUT)
    except requests.RequestException as e:
        raise ConfigurationInvalid(f"Cannot download restoreStructure {value}: {e}") from e
    if resp.status_code != 200:
        raise ConfigurationInvalid(
            f"Cannot download restoreStructure {value}: HTTP {resp.status_code}"
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise ConfigurationInvalid(f"restoreStructure at {value} is not valid JSON") from e

    return {**raw, key: data}


def resolve_recipe_file(recipe: Recipe, reference: str) -> Path | str:
    """Resolve a file reference from a recipe.

    URLs are returned unchanged. Absolute paths are used as-is; relative
    paths are resolved against the recipe's directory.

    Raises:
        ConfigurationInvalid: the local file does not exist.
    """
    if is_url(reference):
        return reference
    candidate = Path(reference)
    if not candidate.is_absolute():
        candidate = recipe.recipe_dir / candidate
    if not candidate.is_file():
        raise ConfigurationInvalid(f"File referenced by recipe not found: {candidate}")
    return candidate
