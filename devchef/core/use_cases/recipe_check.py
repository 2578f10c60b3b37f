"""
Recipe check use case — validate a recipe and report issues.

No containers are touched: this parses the recipe and looks at what
can be judged locally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from devchef.core.config.loader import is_url, load_recipe
from devchef.core.errors import ConfigurationInvalid
from devchef.core.models.recipe import Recipe
from devchef.core.services.restore_data import iter_backups


@dataclass
class RecipeCheckResult:
    """Result of recipe validation."""

    valid: bool = False
    recipe: Recipe | None = None
    recipe_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "recipe_path": str(self.recipe_path) if self.recipe_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "instance": self.recipe.instance_name if self.recipe else None,
            "moodle_tag": self.recipe.moodle_tag if self.recipe else None,
            "plugin_count": len(self.recipe.plugins) if self.recipe else 0,
            "www_root": self.recipe.www_root if self.recipe else None,
        }


def check_recipe(recipe_path: Path, online: bool = False) -> RecipeCheckResult:
    """Validate a recipe and report issues.

    Offline (the default), a remote ``restoreStructure`` is not downloaded
    and is reported as an error asking for ``online``.
    """
    result = RecipeCheckResult(recipe_path=recipe_path)

    try:
        recipe = load_recipe(recipe_path, session=None if online else _NoDownload())
        result.recipe = recipe
    except ConfigurationInvalid as e:
        result.errors.append(str(e))
        return result

    # Duplicate plugin declarations are harmless but probably a typo
    seen = set()
    for plugin in recipe.plugins:
        if plugin in seen:
            result.warnings.append(f"Plugin declared more than once: {plugin.repo} ({plugin.branch})")
        seen.add(plugin)

    if recipe.clone_repo_plugins is not None:
        result.warnings.append("cloneRepoPlugins is deprecated, use mountPlugins")

    if recipe.include_behat and recipe.host == "localhost":
        result.warnings.append("includeBehat with host 'localhost': no network aliases will be set")

    if not recipe.install_moodledb and (recipe.sample_data or recipe.restore_structure):
        result.warnings.append("sampleData/restoreStructure are ignored when installMoodledb is false")

    restore = recipe.restore_structure
    if restore is not None:
        references = [b for _, b in iter_backups(restore.course_categories)]
        if restore.users:
            references.append(restore.users)
        for ref in references:
            if is_url(ref):
                continue
            path = Path(ref)
            if not path.is_absolute():
                path = recipe.recipe_dir / path
            if not path.is_file():
                result.errors.append(f"Referenced file does not exist: {ref}")

    result.valid = len(result.errors) == 0
    return result


class _NoDownload:
    """Session stand-in that refuses to fetch a remote restoreStructure."""

    def get(self, url: str, **kwargs):
        raise ConfigurationInvalid(f"restoreStructure is remote ({url}); not downloaded offline, use --online")
