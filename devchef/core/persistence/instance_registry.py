"""
Instance registry — named sandboxes and their proxy ports.

Stored as JSON in ``$DEVCHEF_HOME/registry.json``. An instance is created
the first time its recipe is provisioned, reused on every later run
(same uuid, same proxy port), and only removed by ``deregister``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from devchef.core.errors import ConfigurationInvalid, ResourceConflict
from devchef.core.models.instance import Instance, InstanceRegistryData
from devchef.core.models.recipe import Recipe
from devchef.core.persistence.json_file import write_json_atomic

logger = logging.getLogger(__name__)

REGISTRY_FILE = "registry.json"


class InstanceRegistry:
    """Load, query and update the instance registry file."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def in_home(cls, home: Path) -> InstanceRegistry:
        return cls(home / REGISTRY_FILE)

    def load(self) -> InstanceRegistryData:
        """Read the registry; a missing file is an empty registry.

        Raises:
            ConfigurationInvalid: the file exists but cannot be parsed.
        """
        if not self.path.is_file():
            return InstanceRegistryData()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return InstanceRegistryData.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            # Losing the registry would reassign ports, so refuse instead of resetting
            raise ConfigurationInvalid(f"Corrupt instance registry {self.path}: {e}") from e

    def save(self, data: InstanceRegistryData) -> None:
        data.touch()
        write_json_atomic(self.path, data.model_dump(mode="json"))

    def instances(self) -> list[Instance]:
        return list(self.load().instances)

    def get(self, name: str) -> Instance | None:
        return self.load().get(name)

    def find_by_recipe(self, recipe_path: Path) -> Instance | None:
        target = str(Path(recipe_path).resolve())
        for inst in self.load().instances:
            if inst.recipe_path == target:
                return inst
        return None

    def register(self, recipe: Recipe, use_proxy: bool = False, base_port: int = 8100) -> Instance:
        """Look up or create the instance for *recipe*.

        A new instance in proxy mode gets the next free proxy port at or
        above *base_port*. An existing instance keeps its port; one
        registered before proxy mode was switched on gets a port now.

        Raises:
            ResourceConflict: the name is registered to a different recipe.
        """
        data = self.load()
        recipe_path = str(recipe.recipe_path.resolve()) if recipe.recipe_path else ""
        name = recipe.instance_name
        existing = data.get(name)

        if existing is not None:
            if existing.recipe_path and recipe_path and existing.recipe_path != recipe_path:
                if Path(existing.recipe_path).exists():
                    raise ResourceConflict(
                        f"Instance '{name}' is already registered to {existing.recipe_path}; "
                        "change containerPrefix or destroy the other instance"
                    )
                logger.info("Instance '%s' moved from %s to %s", name, existing.recipe_path, recipe_path)
                existing.recipe_path = recipe_path
            if use_proxy and existing.proxy_port is None:
                existing.proxy_port = _next_port(data, base_port)
            self.save(data)
            return existing

        instance = Instance(
            name=name,
            recipe_path=recipe_path,
            container_prefix=recipe.container_prefix,
            proxy_port=_next_port(data, base_port) if use_proxy else None,
        )
        data.instances.append(instance)
        self.save(data)
        logger.info("Registered instance '%s' (proxy_port=%s)", name, instance.proxy_port)
        return instance

    def deregister(self, name: str) -> bool:
        data = self.load()
        before = len(data.instances)
        data.instances = [i for i in data.instances if i.name != name]
        if len(data.instances) == before:
            return False
        self.save(data)
        logger.info("Deregistered instance '%s'", name)
        return True


def _next_port(data: InstanceRegistryData, base_port: int) -> int:
    used = {i.proxy_port for i in data.instances if i.proxy_port is not None}
    if not used:
        return base_port
    return max(max(used) + 1, base_port)
