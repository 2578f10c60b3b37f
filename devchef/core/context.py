"""
Run context — everything one devchef invocation shares.

Built once at startup by the CLI (or by a test) and passed explicitly
to every service. Nothing in devchef reaches for module-level state.

    ctx = RunContext.create(home=Path("~/.devchef").expanduser())
    ProvisioningPipeline(ctx).up(Path("recipe.json"))
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import requests

from devchef.adapters.containers.docker import DockerRuntime
from devchef.adapters.shell.command import CommandRunner
from devchef.adapters.vcs.git import GitClient
from devchef.core.config.settings import Settings, devchef_home, load_settings
from devchef.core.persistence.instance_registry import InstanceRegistry
from devchef.core.reliability.retry import RetryPolicy
from devchef.core.services.app_layout import AppLayout
from devchef.core.services.remote_fetch import RemoteFetcher

logger = logging.getLogger(__name__)


class InstallConflictPolicy(str, Enum):
    """What to do when the install script fails on a non-empty database."""

    ABORT = "abort"
    SKIP = "skip"
    DROP_AND_RETRY = "drop"


@dataclass
class RunContext:
    home: Path
    settings: Settings
    registry: InstanceRegistry
    runner: CommandRunner
    docker: DockerRuntime
    git: GitClient
    fetcher: RemoteFetcher
    layout: AppLayout
    session: requests.Session
    no_cache: bool = False
    install_conflict: InstallConflictPolicy = InstallConflictPolicy.SKIP
    db_wait: RetryPolicy = field(default_factory=RetryPolicy)
    echo: Callable[[str], None] | None = None

    @classmethod
    def create(
        cls,
        home: Path | None = None,
        *,
        runner: CommandRunner | None = None,
        session: requests.Session | None = None,
        settings: Settings | None = None,
        token: str | None = None,
        echo: Callable[[str], None] | None = None,
        **options,
    ) -> RunContext:
        """Wire up the default adapters; any of them can be overridden."""
        home = home or devchef_home()
        runner = runner or CommandRunner(echo=echo)
        session = session or requests.Session()
        git = GitClient(runner)
        fetcher = RemoteFetcher(git, session=session, token=token or os.environ.get("GITHUB_TOKEN"))
        return cls(
            home=home,
            settings=settings or load_settings(home),
            registry=InstanceRegistry.in_home(home),
            runner=runner,
            docker=DockerRuntime(runner),
            git=git,
            fetcher=fetcher,
            layout=AppLayout(fetcher),
            session=session,
            echo=echo,
            **options,
        )

    def say(self, message: str) -> None:
        """User-facing progress line (falls back to the log)."""
        if self.echo:
            self.echo(message)
        else:
            logger.info(message)
