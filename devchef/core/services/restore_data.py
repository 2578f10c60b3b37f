"""
Restore data — users, a course category tree, and course backups.

The category tree comes from the recipe's ``restoreStructure``::

    {"courseCategories": {"A": {"B": ["course1.mbz"]}}}

A bundled PHP helper creates the categories inside the app container
(parents first, reusing existing same-name categories under the same
parent) and prints a JSON object mapping each category path to its id.
Backups are then restored into the id of the category that lists them.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from devchef.core.config.loader import resolve_recipe_file
from devchef.core.context import RunContext
from devchef.core.data import script_path
from devchef.core.errors import ConfigurationInvalid, ExternalProcessFailure
from devchef.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

USERS_CSV = "/tmp/users.csv"
CONTAINER_RECIPE = "/tmp/devchef-recipe.json"
CATEGORY_SCRIPT = "create_category.php"
CATEGORY_SCRIPT_DEST = "admin/cli/devchef_create_category.php"
UPLOADUSER_SCRIPT = "admin/tool/uploaduser/cli/uploaduser.php"
RESTORE_SCRIPT = "admin/cli/restore_backup.php"

_PHP_ERROR_RE = re.compile(
    r"^(PHP )?(Fatal error|Parse error|Warning|Notice|Deprecated):|^Stack trace:",
    re.MULTILINE,
)


@dataclass
class RestoreReport:
    users_imported: bool = False
    categories: dict[str, int] = field(default_factory=dict)
    restored: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users_imported": self.users_imported,
            "categories": self.categories,
            "restored": self.restored,
        }


def parse_category_map(command: list[str], returncode: int, stdout: str, stderr: str = "") -> dict[str, int]:
    """Validate the category helper's output and extract its path → id map.

    Raises:
        ExternalProcessFailure: non-zero exit, an ``ERROR:`` line, PHP
            errors in the output, or no parseable JSON object.
    """
    output = stdout.strip()
    if returncode != 0:
        raise ExternalProcessFailure(command, returncode, (stderr or stdout).strip())
    if output.startswith("ERROR:") or _PHP_ERROR_RE.search(output):
        raise ExternalProcessFailure(command, returncode, output)

    start, end = output.find("{"), output.rfind("}")
    if start == -1 or end < start:
        raise ExternalProcessFailure(command, returncode, f"No category map in output:\n{output}")
    try:
        data = json.loads(output[start:end + 1])
    except json.JSONDecodeError as e:
        raise ExternalProcessFailure(command, returncode, f"Unparseable category map: {e}\n{output}") from e

    try:
        return {str(path): int(cat_id) for path, cat_id in data.items()}
    except (AttributeError, TypeError, ValueError) as e:
        raise ExternalProcessFailure(command, returncode, f"Malformed category map: {output}") from e


def iter_backups(tree: dict[str, Any], parents: tuple[str, ...] = ()):
    """Yield ``(category path, backup reference)`` in declaration order."""
    for name, node in tree.items():
        path = (*parents, name)
        if isinstance(node, dict):
            yield from iter_backups(node, path)
        else:
            for backup in node:
                yield "/".join(path), backup


def _basename(reference: str) -> str:
    if reference.startswith(("http://", "https://")):
        name = PurePosixPath(urlparse(reference).path).name
    else:
        name = Path(reference).name
    return name or "backup.mbz"


class RestoreDataService:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def restore(self, recipe: Recipe) -> RestoreReport:
        report = RestoreReport()
        structure = recipe.restore_structure
        if structure is None:
            return report

        if structure.users:
            self.import_users(recipe, structure.users)
            report.users_imported = True

        if structure.course_categories:
            report.categories = self.create_categories(recipe, structure.course_categories)
            for path, backup in iter_backups(structure.course_categories):
                category_id = report.categories.get(path)
                if category_id is None:
                    raise ConfigurationInvalid(f"Category '{path}' was not created; cannot restore {backup}")
                self.restore_backup(recipe, backup, category_id)
                report.restored.append({"category": path, "category_id": category_id, "backup": backup})

        return report

    # ── Steps ───────────────────────────────────────────────────

    def _place_file(self, recipe: Recipe, reference: str, dest: str) -> bool:
        """Put a recipe-referenced file at *dest* in the app container.

        Returns True if it was downloaded (rather than copied).
        """
        source = resolve_recipe_file(recipe, reference)
        if isinstance(source, str):
            self.ctx.docker.download_in_container(recipe.app_container, source, dest)
            return True
        self.ctx.docker.copy_to(recipe.app_container, source, dest)
        return False

    def import_users(self, recipe: Recipe, reference: str) -> None:
        self.ctx.say(f"Importing users from {reference}")
        if self._place_file(recipe, reference, USERS_CSV):
            self.ctx.docker.normalize_csv(recipe.app_container, USERS_CSV)
        self.ctx.docker.exec(
            recipe.app_container,
            [
                "php", self.ctx.layout.web_path(recipe.moodle_tag, UPLOADUSER_SCRIPT),
                "--mode=createnew",
                f"--file={USERS_CSV}",
                "--delimiter=comma",
            ],
            user="www-data",
        )

    def create_categories(self, recipe: Recipe, tree: dict[str, Any]) -> dict[str, int]:
        self.ctx.say("Creating course categories")
        app = recipe.app_container
        payload = {"restoreStructure": {"courseCategories": tree}}

        with tempfile.TemporaryDirectory(prefix="devchef-restore-") as tmp:
            local = Path(tmp) / "recipe.json"
            local.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            self.ctx.docker.copy_to(app, local, CONTAINER_RECIPE)

        script_dest = self.ctx.layout.cli_path(CATEGORY_SCRIPT_DEST)
        self.ctx.docker.copy_to(app, script_path(CATEGORY_SCRIPT), script_dest)

        command = ["php", script_dest]
        result = self.ctx.docker.exec(
            app, command, env={"DEVCHEF_RECIPE_PATH": CONTAINER_RECIPE}, check=False, user="www-data",
        )
        mapping = parse_category_map(command, result.returncode, result.stdout, result.stderr)
        logger.info("Category map: %s", mapping)
        return mapping

    def restore_backup(self, recipe: Recipe, reference: str, category_id: int) -> None:
        dest = f"/tmp/{_basename(reference)}"
        self.ctx.say(f"Restoring {reference} into category {category_id}")
        self._place_file(recipe, reference, dest)
        self.ctx.docker.exec(
            recipe.app_container,
            [
                "php", self.ctx.layout.cli_path(RESTORE_SCRIPT),
                f"--file={dest}",
                f"--categoryid={category_id}",
            ],
            user="www-data",
            timeout=None,
        )
