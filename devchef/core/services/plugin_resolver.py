"""
Plugin resolver — turn a recipe's plugin declarations into ``PluginsInfo``.

Resolution is cached per recipe directory. The cache is reused only
when the recipe declares exactly the same set of plugins (order and
duplicates do not matter); any difference re-resolves everything and
replaces the cache record.

For each declaration the resolver reads the plugin's ``version.php``
remotely to learn its component name, maps that to an install path,
and makes sure the source exists under ``<recipe dir>/<moodleDirectory>``.
Existing source is never overwritten.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from devchef.core.context import RunContext
from devchef.core.errors import ConfigurationInvalid, ResourceConflict
from devchef.core.models.plugin import PluginsInfo, ResolvedPlugin, Volume
from devchef.core.models.recipe import PluginDeclaration, Recipe
from devchef.core.persistence.plugin_cache import cache_path, load_cached, save_cached
from devchef.core.services.plugin_paths import parse_component, plugin_mount_path

logger = logging.getLogger(__name__)

MANIFEST_FILE = "version.php"


class PluginResolver:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def resolve(self, recipe: Recipe, skip_cache: bool = False) -> PluginsInfo:
        """Resolve every plugin in *recipe*, using the cache when it matches.

        Raises:
            ConfigurationInvalid: a plugin has no readable manifest, an
                unknown type, or two declarations name the same component.
        """
        path = cache_path(recipe.recipe_dir)
        wanted = recipe.declaration_set()

        if not skip_cache:
            cached = load_cached(path)
            if cached is not None and cached.declarations() == wanted:
                logger.info("Plugin cache hit (%d plugins), skipping remote lookups", len(cached.plugins))
                return cached
            if cached is not None:
                logger.info("Plugin declarations changed, re-resolving")

        info = PluginsInfo()
        if recipe.plugins:
            public = self.ctx.layout.uses_public_folder(recipe.moodle_tag)
            seen: set[PluginDeclaration] = set()
            for declaration in recipe.plugins:
                if declaration in seen:
                    logger.warning("Ignoring duplicate plugin declaration %s", declaration.repo)
                    continue
                seen.add(declaration)

                plugin = self._resolve_one(recipe, declaration, public)
                if plugin.component in info.plugins:
                    other = info.plugins[plugin.component].declaration
                    raise ConfigurationInvalid(
                        f"Plugin {plugin.component} is declared twice "
                        f"({other.repo}@{other.branch} and {declaration.repo}@{declaration.branch})"
                    )
                info.plugins[plugin.component] = plugin
                info.volumes.append(plugin.volume)

        # Only reached when every plugin resolved; partial sets are never cached
        save_cached(path, info)
        return info

    def _resolve_one(self, recipe: Recipe, declaration: PluginDeclaration, public: bool) -> ResolvedPlugin:
        self.ctx.say(f"Resolving plugin {declaration.repo} ({declaration.branch})")
        manifest = self.ctx.fetcher.fetch_file(declaration.repo, declaration.branch, MANIFEST_FILE)
        if manifest is None:
            raise ConfigurationInvalid(
                f"No {MANIFEST_FILE} found in {declaration.repo} at {declaration.branch}"
            )
        component = parse_component(manifest)
        if not component:
            raise ConfigurationInvalid(
                f"{MANIFEST_FILE} in {declaration.repo} does not declare $plugin->component"
            )

        mount_path = plugin_mount_path(component, public)
        target = recipe.recipe_dir / recipe.moodle_directory / mount_path.lstrip("/")

        if (target / MANIFEST_FILE).is_file():
            logger.info("Keeping existing source for %s at %s", component, target)
        else:
            self._checkout(declaration, target)

        return ResolvedPlugin(
            component=component,
            path=mount_path,
            target_path=str(target),
            volume=Volume(path=mount_path, host_path=str(target.resolve())),
            declaration=declaration,
        )

    def _checkout(self, declaration: PluginDeclaration, target: Path) -> None:
        """Clone *declaration* into a temp dir, then move it to *target*."""
        if target.exists() and any(target.iterdir()):
            raise ResourceConflict(
                f"{target} exists without {MANIFEST_FILE}; refusing to overwrite local files"
            )

        tmp = Path(tempfile.mkdtemp(prefix="devchef-plugin-"))
        try:
            work = tmp / "src"
            self.ctx.git.clone(declaration.repo, work)
            self.ctx.git.checkout_branch_or_tag(work, declaration.branch)
            if declaration.upstream:
                self.ctx.git.add_remote(work, "upstream", declaration.upstream)

            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                target.rmdir()
            shutil.move(str(work), str(target))
            self.ctx.say(f"Plugin source placed at {target}")
        finally:
            shutil.rmtree(tmp, ignore_errors=True)


def select_plugins(info: PluginsInfo, components: list[str]) -> PluginsInfo:
    """Subset of *info* limited to *components*.

    Raises:
        ConfigurationInvalid: a requested component is not in *info*.
    """
    unknown = [c for c in components if c not in info.plugins]
    if unknown:
        raise ConfigurationInvalid(f"Unknown plugin(s): {', '.join(unknown)}")
    plugins = {c: info.plugins[c] for c in components}
    return PluginsInfo(plugins=plugins, volumes=[p.volume for p in plugins.values()])
