"""
Provisioning pipeline — bring one sandbox from recipe to running site.

Stages (linear; a failure stops the run where it is, no rollback):

    IDLE → STOP_EXISTING → BUILD_DESCRIPTOR → RENDER_DESCRIPTOR
         → START_CONTAINERS → ATTACH_NETWORK → INSTALL_AND_SEED → READY

Everything that can be rejected as bad configuration (recipe schema,
database engine, plugin manifests and types) is checked while still
IDLE, before any container is touched.

Also here: stop / start / destroy for an existing instance, and the
lookup of "the current instance" from the working directory.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from devchef.core.config.loader import CHEF_DIR, find_chef_dir, load_recipe
from devchef.core.config.settings import save_settings
from devchef.core.context import RunContext
from devchef.core.errors import ConfigurationInvalid, DevchefError, ResourceConflict
from devchef.core.models.descriptor import InfrastructureDescriptor
from devchef.core.models.instance import Instance
from devchef.core.models.recipe import Recipe
from devchef.core.services.database import dialect_for
from devchef.core.services.descriptor_builder import NETWORK_NAME, build_descriptor
from devchef.core.services.descriptor_render import write_descriptors
from devchef.core.services.installer import PostProvisionInstaller
from devchef.core.services.plugin_resolver import PluginResolver

logger = logging.getLogger(__name__)

DOCKER_DIR = "docker"
RECIPE_COPY = "recipe.json"


class ProvisionStage(str, Enum):
    IDLE = "idle"
    STOP_EXISTING = "stop_existing"
    BUILD_DESCRIPTOR = "build_descriptor"
    RENDER_DESCRIPTOR = "render_descriptor"
    START_CONTAINERS = "start_containers"
    ATTACH_NETWORK = "attach_network"
    INSTALL_AND_SEED = "install_and_seed"
    READY = "ready"


@dataclass
class ProvisionReport:
    """Progress of one ``up`` run; partial when a stage failed."""

    recipe_path: str
    instance: str = ""
    stage: ProvisionStage = ProvisionStage.IDLE
    completed: list[ProvisionStage] = field(default_factory=list)
    failed_stage: ProvisionStage | None = None
    error: str = ""
    host_port: int | None = None
    proxy_port: int | None = None
    www_root: str = ""
    plugins: list[str] = field(default_factory=list)
    descriptor_dir: str = ""
    install: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.stage is ProvisionStage.READY

    def enter(self, stage: ProvisionStage) -> None:
        if self.stage is not ProvisionStage.IDLE:
            self.completed.append(self.stage)
        self.stage = stage
        logger.debug("Stage → %s", stage.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipe_path": self.recipe_path,
            "instance": self.instance,
            "ok": self.ok,
            "stage": self.stage.value,
            "completed": [s.value for s in self.completed],
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error": self.error,
            "host_port": self.host_port,
            "proxy_port": self.proxy_port,
            "www_root": self.www_root,
            "plugins": self.plugins,
            "descriptor_dir": self.descriptor_dir,
            "install": self.install,
        }


def instance_containers(prefix: str) -> list[str]:
    return [f"{prefix}-moodle", f"{prefix}-db", f"{prefix}-moodle-selenium"]


class ProvisioningPipeline:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx
        self.report: ProvisionReport | None = None
        self.descriptor: InfrastructureDescriptor | None = None

    # ── up ──────────────────────────────────────────────────────

    def up(self, recipe_path: Path) -> ProvisionReport:
        """Provision (or re-provision) the sandbox described by *recipe_path*.

        Raises:
            DevchefError: any stage failed; ``self.report`` shows how far it got.
        """
        report = ProvisionReport(recipe_path=str(recipe_path))
        self.report = report
        try:
            self._up(Path(recipe_path), report)
        except DevchefError as e:
            report.failed_stage = report.stage
            report.error = str(e)
            logger.error("Provisioning failed during %s: %s", report.stage.value, e)
            raise
        return report

    def _up(self, recipe_path: Path, report: ProvisionReport) -> None:
        ctx = self.ctx

        recipe = load_recipe(recipe_path, session=ctx.session)
        dialect_for(recipe.db_type)
        report.instance = recipe.instance_name
        report.www_root = recipe.www_root
        plugins = PluginResolver(ctx).resolve(recipe, skip_cache=ctx.no_cache)
        report.plugins = sorted(plugins.plugins)
        public = ctx.layout.uses_public_folder(recipe.moodle_tag)

        report.enter(ProvisionStage.STOP_EXISTING)
        chef_dir = recipe.recipe_dir / CHEF_DIR
        chef_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(recipe_path, chef_dir / RECIPE_COPY)
        instance = ctx.registry.register(
            recipe, use_proxy=ctx.settings.use_proxy, base_port=ctx.settings.proxy_base_port,
        )
        self.remove_containers(recipe.container_prefix)

        report.enter(ProvisionStage.BUILD_DESCRIPTOR)
        host_port = self.host_port(recipe, instance)
        report.host_port = host_port
        report.proxy_port = instance.proxy_port
        self.descriptor = build_descriptor(
            recipe, plugins, host_port=host_port, proxy_port=instance.proxy_port, public=public,
        )

        report.enter(ProvisionStage.RENDER_DESCRIPTOR)
        docker_dir = chef_dir / DOCKER_DIR
        write_descriptors(self.descriptor, docker_dir)
        report.descriptor_dir = str(docker_dir)

        report.enter(ProvisionStage.START_CONTAINERS)
        self.check_port(host_port)
        ctx.say(f"Starting containers for {recipe.instance_name}")
        ctx.docker.compose_up(docker_dir)

        report.enter(ProvisionStage.ATTACH_NETWORK)
        self.attach_network(recipe)

        report.enter(ProvisionStage.INSTALL_AND_SEED)
        if recipe.install_moodledb:
            report.install = PostProvisionInstaller(ctx).install(recipe).to_dict()
        else:
            logger.info("installMoodledb is off, skipping install")

        ctx.settings.active_instance = recipe.instance_name
        save_settings(ctx.settings, ctx.home)

        report.enter(ProvisionStage.READY)
        ctx.say(f"{recipe.instance_name} is ready at {recipe.www_root}")

    # ── Stage helpers ───────────────────────────────────────────

    def host_port(self, recipe: Recipe, instance: Instance) -> int:
        if self.ctx.settings.use_proxy and instance.proxy_port is not None:
            return instance.proxy_port
        return recipe.effective_port

    def check_port(self, port: int) -> None:
        """Raises ResourceConflict if a running container publishes *port*."""
        owner = self.ctx.docker.find_port_owner(port)
        if owner:
            raise ResourceConflict(
                f"Port {port} is already in use by container '{owner}'; "
                "stop it or change the recipe's port"
            )

    def remove_containers(self, prefix: str) -> list[str]:
        existing = set(self.ctx.docker.container_names(all=True))
        removed = []
        for name in instance_containers(prefix):
            if name in existing:
                self.ctx.docker.remove(name)
                removed.append(name)
        return removed

    def attach_network(self, recipe: Recipe) -> None:
        docker = self.ctx.docker
        if not docker.network_exists(NETWORK_NAME):
            docker.create_network(NETWORK_NAME)
        docker.connect(NETWORK_NAME, recipe.db_container)

        aliases: list[str] = []
        if recipe.include_behat and recipe.host != "localhost":
            aliases = [recipe.host, recipe.effective_behat_host or f"{recipe.host}.behat"]
        docker.connect(NETWORK_NAME, recipe.app_container, aliases=aliases)

    # ── Lifecycle of an existing instance ───────────────────────

    def stop(self, instance: Instance) -> list[str]:
        stopped = []
        running = set(self.ctx.docker.container_names())
        for name in instance_containers(instance.container_prefix):
            if name in running:
                self.ctx.docker.stop(name)
                stopped.append(name)
        return stopped

    def start(self, instance: Instance) -> list[str]:
        existing = set(self.ctx.docker.container_names(all=True))
        started = []
        # Database first so the app finds it on boot
        for name in (instance.db_container, instance.app_container, f"{instance.app_container}-selenium"):
            if name in existing:
                self.ctx.docker.start(name)
                started.append(name)
        if not started:
            raise ConfigurationInvalid(
                f"No containers found for '{instance.name}'; run `devchef up` first"
            )
        return started

    def destroy(self, instance: Instance, remove_volumes: bool = False) -> dict[str, Any]:
        """Explicit teardown: containers, optionally volumes, and the registry entry."""
        volumes: list[str] = []
        if remove_volumes:
            existing = set(self.ctx.docker.container_names(all=True))
            for name in instance_containers(instance.container_prefix):
                if name in existing:
                    volumes += self.ctx.docker.container_volumes(name)

        removed = self.remove_containers(instance.container_prefix)
        for volume in volumes:
            self.ctx.docker.remove_volume(volume)
        self.ctx.registry.deregister(instance.name)

        if self.ctx.settings.active_instance == instance.name:
            self.ctx.settings.active_instance = None
            save_settings(self.ctx.settings, self.ctx.home)

        return {"instance": instance.name, "containers": removed, "volumes": volumes}


def resolve_instance(ctx: RunContext, name: str | None = None, cwd: Path | None = None) -> Instance:
    """Find the instance to act on.

    Order: explicit *name*, the recipe whose ``.devchef`` directory
    encloses *cwd*, then the last instance brought up.

    Raises:
        ConfigurationInvalid: nothing matches.
    """
    if name:
        instance = ctx.registry.get(name)
        if instance is None:
            raise ConfigurationInvalid(f"No instance named '{name}'")
        return instance

    chef_dir = find_chef_dir(cwd)
    if chef_dir is not None:
        project_dir = chef_dir.parent.resolve()
        for inst in ctx.registry.instances():
            if inst.recipe_path and Path(inst.recipe_path).parent == project_dir:
                return inst

    active = ctx.settings.active_instance
    if active:
        instance = ctx.registry.get(active)
        if instance is not None:
            return instance

    raise ConfigurationInvalid("No instance found here; pass a name or run `devchef up` first")
