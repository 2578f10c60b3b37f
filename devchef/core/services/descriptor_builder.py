"""
Descriptor builder — recipe + resolved plugins + ports → descriptor.

Pure function, no I/O. Plugins go either into ``volumes`` (live mounts
for development) or into ``plugins_for_docker`` (cloned into the image),
never both.
"""

from __future__ import annotations

from devchef.core.models.descriptor import BakedPlugin, InfrastructureDescriptor
from devchef.core.models.plugin import PluginsInfo
from devchef.core.models.recipe import Recipe
from devchef.core.services.app_layout import APP_ROOT
from devchef.core.services.database import dialect_for

NETWORK_NAME = "mc-network"


def build_descriptor(
    recipe: Recipe,
    plugins: PluginsInfo,
    host_port: int,
    proxy_port: int | None = None,
    public: bool = False,
) -> InfrastructureDescriptor:
    dialect = dialect_for(recipe.db_type)

    if recipe.mounts_plugins:
        volumes = [v for v in plugins.volumes if v.host_path]
        baked: list[BakedPlugin] = []
    else:
        volumes = []
        baked = [
            BakedPlugin(repo=p.declaration.repo, branch=p.declaration.branch, path=p.path)
            for p in plugins.plugins.values()
        ]

    return InfrastructureDescriptor(
        name=recipe.name or recipe.container_prefix,
        project=recipe.container_prefix.lower(),
        app_container=recipe.app_container,
        db_container=recipe.db_container,
        network=NETWORK_NAME,
        php_version=recipe.php_version,
        moodle_tag=recipe.moodle_tag,
        app_root=APP_ROOT,
        uses_public_folder=public,
        host=recipe.host,
        behat_host=recipe.effective_behat_host,
        www_root=recipe.www_root,
        host_port=host_port,
        proxy_port=proxy_port,
        db_type=recipe.db_type,
        db_image=dialect.image(recipe.db_version),
        db_user=recipe.db_user,
        db_password=recipe.db_password,
        db_name=recipe.effective_db_name,
        db_host_port=recipe.db_host_port,
        db_environment=dialect.environment(recipe),
        db_container_port=dialect.port,
        db_data_dir=dialect.data_dir,
        developer=recipe.developer,
        include_behat=recipe.include_behat,
        include_xdebug=recipe.include_xdebug,
        xdebug_mode=recipe.xdebug_mode,
        include_phpunit=recipe.include_php_unit,
        volumes=volumes,
        plugins_for_docker=baked,
    )
