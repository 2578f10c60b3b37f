"""
Recipe model — the declarative description of one sandbox.

Recipes are JSON files with camelCase keys (``moodleTag``, ``phpVersion``,
``includeBehat``). snake_case keys are accepted too. A parsed recipe is
frozen; CI mode derives a modified copy instead of mutating it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

SUPPORTED_PHP_VERSIONS = ("7.4", "8.0", "8.1", "8.2", "8.3", "8.4")
SUPPORTED_DB_TYPES = ("pgsql", "mysqli", "mariadb")
SAMPLE_DATA_SIZES = ("XS", "S", "M", "L", "XL", "XXL")

DEFAULT_PORT = 80


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class PluginDeclaration(_CamelModel):
    """One plugin entry from a recipe.

    Accepted forms::

        "https://github.com/org/moodle-local_x.git"
        "https://github.com/org/moodle-local_x.git~MOODLE_405_STABLE"
        {"repo": "...", "branch": "...", "upstream": "..."}

    All three normalize to the same ``(repo, branch, upstream)`` shape.
    Frozen, so declarations are hashable and comparable as a set.
    """

    repo: str
    branch: str = "main"
    upstream: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            repo, sep, branch = value.partition("~")
            data: dict[str, Any] = {"repo": repo.strip()}
            if sep and branch.strip():
                data["branch"] = branch.strip()
            return data
        return value

    @field_validator("repo")
    @classmethod
    def _repo_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("plugin repo must not be empty")
        return value.strip()


class SampleDataSpec(_CamelModel):
    """Generated test content to seed after install."""

    mode: Literal["site", "course"] | None = None
    size: str = "M"
    fixeddataset: bool = False
    filesizelimit: int | None = None
    additionalmodules: list[str] = Field(default_factory=list)
    courses: int | None = None

    @field_validator("size", mode="before")
    @classmethod
    def _normalize_size(cls, value: Any) -> str:
        size = str(value or "M").strip().upper()
        if size not in SAMPLE_DATA_SIZES:
            logger.warning(
                "Invalid sample data size '%s', using M (valid: %s)",
                value, ", ".join(SAMPLE_DATA_SIZES),
            )
            return "M"
        return size

    @field_validator("additionalmodules", mode="before")
    @classmethod
    def _split_modules(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [m.strip() for m in value.split(",") if m.strip()]
        return value

    @field_validator("courses")
    @classmethod
    def _positive_courses(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("courses must be at least 1")
        return value

    @property
    def effective_mode(self) -> str:
        if self.mode:
            return self.mode
        return "course" if self.courses is not None else "site"

    @property
    def course_count(self) -> int:
        return self.courses if self.courses is not None else 10


class RestoreStructure(_CamelModel):
    """Users and a category tree (with course backups) to restore.

    ``course_categories`` maps a category name to either a nested dict
    of sub-categories or a list of backup files/URLs for that category.
    """

    users: str | None = None
    course_categories: dict[str, Any] = Field(default_factory=dict)

    @field_validator("course_categories")
    @classmethod
    def _check_tree(cls, value: dict[str, Any]) -> dict[str, Any]:
        _check_category_tree(value, [])
        return value


def _check_category_tree(tree: dict[str, Any], parents: list[str]) -> None:
    for name, node in tree.items():
        where = "/".join([*parents, name])
        if not name.strip() or "/" in name:
            raise ValueError(f"invalid category name '{where}'")
        if isinstance(node, dict):
            _check_category_tree(node, [*parents, name])
        elif isinstance(node, list):
            if not all(isinstance(item, str) for item in node):
                raise ValueError(f"category '{where}' backups must be strings")
        else:
            raise ValueError(f"category '{where}' must be an object or a list of backups")


class Recipe(_CamelModel):
    """A parsed sandbox recipe."""

    name: str | None = None
    moodle_tag: str
    php_version: str

    container_prefix: str = "mc"
    host: str = "localhost"
    host_protocol: Literal["http", "https"] = "http"
    port: int | None = None

    db_type: str = "pgsql"
    db_version: str | None = None
    db_user: str = "moodle"
    db_password: str = "moodle"
    db_name: str | None = None
    db_host_port: int | None = None

    plugins: list[PluginDeclaration] = Field(default_factory=list)
    mount_plugins: bool | None = None
    clone_repo_plugins: bool | None = None
    moodle_directory: str = "moodle"

    developer: bool = False
    include_behat: bool = False
    behat_host: str | None = None
    include_xdebug: bool = False
    xdebug_mode: str = "debug"
    include_php_unit: bool = False

    install_moodledb: bool = True
    admin_password: str | None = None
    sample_data: SampleDataSpec | None = None
    restore_structure: RestoreStructure | None = None
    publish_tag_prefix: str | None = None

    # Set by the loader, not read from JSON
    recipe_path: Path | None = Field(default=None, exclude=True)

    @field_validator("php_version", mode="before")
    @classmethod
    def _check_php(cls, value: Any) -> str:
        version = str(value).strip()
        if version not in SUPPORTED_PHP_VERSIONS:
            raise ValueError(
                f"unsupported PHP version '{version}' (supported: {', '.join(SUPPORTED_PHP_VERSIONS)})"
            )
        return version

    @field_validator("db_type")
    @classmethod
    def _check_db(cls, value: str) -> str:
        if value not in SUPPORTED_DB_TYPES:
            raise ValueError(
                f"unsupported dbType '{value}' (supported: {', '.join(SUPPORTED_DB_TYPES)})"
            )
        return value

    @field_validator("port", "db_host_port")
    @classmethod
    def _check_port(cls, value: int | None) -> int | None:
        if value is not None and not 1 <= value <= 65535:
            raise ValueError(f"port {value} out of range")
        return value

    @field_validator("container_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value or not all(c.isalnum() or c in "-_" for c in value):
            raise ValueError("containerPrefix may only contain letters, digits, '-' and '_'")
        return value

    @model_validator(mode="after")
    def _deprecated_clone(self) -> Recipe:
        if self.clone_repo_plugins is not None:
            logger.warning("cloneRepoPlugins is deprecated, use mountPlugins instead")
        return self

    # ── Derived values ──────────────────────────────────────────

    @property
    def effective_port(self) -> int:
        return self.port if self.port is not None else DEFAULT_PORT

    @property
    def effective_db_name(self) -> str:
        return self.db_name or f"{self.container_prefix}-moodle"

    @property
    def effective_behat_host(self) -> str | None:
        if not self.include_behat:
            return None
        return self.behat_host or f"{self.host}.behat"

    @property
    def mounts_plugins(self) -> bool:
        # The deprecated flag only applies when mountPlugins is unset
        if self.mount_plugins is not None:
            return self.mount_plugins
        return bool(self.clone_repo_plugins)

    @property
    def www_root(self) -> str:
        return _www_root(self.host_protocol, self.host, self.effective_port)

    @property
    def behat_www_root(self) -> str | None:
        host = self.effective_behat_host
        return _www_root(self.host_protocol, host, self.effective_port) if host else None

    @property
    def recipe_dir(self) -> Path:
        return self.recipe_path.parent if self.recipe_path else Path.cwd()

    @property
    def instance_name(self) -> str:
        return self.container_prefix

    @property
    def app_container(self) -> str:
        return f"{self.container_prefix}-moodle"

    @property
    def db_container(self) -> str:
        return f"{self.container_prefix}-db"

    def declaration_set(self) -> frozenset[PluginDeclaration]:
        return frozenset(self.plugins)


def _www_root(protocol: str, host: str, port: int) -> str:
    suffix = "" if port == DEFAULT_PORT else f":{port}"
    return f"{protocol}://{host}{suffix}"
