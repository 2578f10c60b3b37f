"""
CI image build — bake a recipe into a production image and publish it.

Development toggles are forced off (no live mounts, no behat, no xdebug,
no phpunit, no developer mode) so the image carries its plugins inside.
Publishing needs registry settings; without them the image is built
and tagged locally only.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from devchef.core.config.loader import CHEF_DIR, load_recipe
from devchef.core.context import RunContext
from devchef.core.models.recipe import Recipe
from devchef.core.services.descriptor_builder import build_descriptor
from devchef.core.services.descriptor_render import compose_dict, write_descriptors
from devchef.core.services.plugin_resolver import PluginResolver

logger = logging.getLogger(__name__)

CI_DIR = "ci"
FALLBACK_IMAGE = "devchef-app"

_PRODUCTION_OVERRIDES = {
    "mount_plugins": False,
    "clone_repo_plugins": None,
    "developer": False,
    "include_behat": False,
    "include_xdebug": False,
    "include_php_unit": False,
}


def sanitize_image_name(name: str | None) -> str:
    """Docker-safe repository name: lowercase, ``[a-z0-9._-]``, single hyphens."""
    cleaned = re.sub(r"[^a-z0-9\-_.]", "-", (name or "").lower())
    cleaned = re.sub(r"-+", "-", cleaned).strip("-._")
    return cleaned or FALLBACK_IMAGE


def production_recipe(recipe: Recipe) -> Recipe:
    return recipe.model_copy(update=_PRODUCTION_OVERRIDES)


@dataclass
class CiResult:
    image: str
    tag: str
    local_image: str
    published: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "tag": self.tag,
            "local_image": self.local_image,
            "published": self.published,
        }


class CiBuilder:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def build(self, recipe_path: Path, tag: str, publish: bool = True) -> CiResult:
        ctx = self.ctx
        recipe = production_recipe(load_recipe(recipe_path, session=ctx.session))
        image = sanitize_image_name(recipe.publish_tag_prefix or recipe.name)

        plugins = PluginResolver(ctx).resolve(recipe, skip_cache=ctx.no_cache)
        public = ctx.layout.uses_public_folder(recipe.moodle_tag)
        descriptor = build_descriptor(recipe, plugins, host_port=recipe.effective_port, public=public)

        build_dir = recipe.recipe_dir / CHEF_DIR / CI_DIR
        write_descriptors(descriptor, build_dir)
        ctx.say(f"Building production image {image}:{tag}")
        ctx.docker.compose_build(build_dir)

        built = compose_dict(descriptor)["services"]["moodle"]["image"]
        local_image = f"{image}:{tag}"
        ctx.docker.tag(built, local_image)
        result = CiResult(image=image, tag=tag, local_image=local_image)

        if publish:
            result.published = self.publish(local_image, image, tag)
        return result

    def publish(self, local_image: str, image: str, tag: str) -> str | None:
        settings = self.ctx.settings
        if not settings.has_registry():
            logger.warning(
                "No registry configured (DEVCHEF_REGISTRY_URL / _USERNAME / _PASSWORD or _TOKEN); "
                "image built locally only"
            )
            return None

        registry = re.sub(r"^https?://", "", settings.registry_url or "").rstrip("/")
        target = f"{registry}/{settings.registry_username}/{image}:{tag}"
        self.ctx.docker.login(registry, settings.registry_username, settings.registry_secret)
        self.ctx.docker.tag(local_image, target)
        self.ctx.say(f"Pushing {target}")
        self.ctx.docker.push(target)
        return target
