"""
Post-provision installer — runs once the containers are up.

Steps, in order, each blocking:

    1. wait for the database to answer ``SELECT 1`` (bounded)
    2. install the Moodle schema unless ``mdl_course`` already exists
    3. generate sample data (if the recipe asks for it)
    4. restore users, categories and course backups (if declared)

A failing install script is handled by the run's
``InstallConflictPolicy`` instead of a prompt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from devchef.core.context import InstallConflictPolicy, RunContext
from devchef.core.errors import DatabaseNotReady, ExternalProcessFailure
from devchef.core.models.recipe import Recipe
from devchef.core.services.database import DatabaseDialect, dialect_for
from devchef.core.services.restore_data import RestoreDataService
from devchef.core.services.sample_data import SampleDataSeeder

logger = logging.getLogger(__name__)

READY_QUERY = "SELECT 1"
SCHEMA_PROBE = "SELECT * FROM mdl_course LIMIT 1"
INSTALL_SCRIPT = "admin/cli/install_database.php"
DEFAULT_ADMIN_PASSWORD = "123456"


@dataclass
class InstallReport:
    """What the installer did."""

    db_probes: int = 0
    already_installed: bool = False
    installed: bool = False
    install_skipped: bool = False
    dropped_tables: bool = False
    sample_data_runs: int = 0
    restore: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "db_probes": self.db_probes,
            "already_installed": self.already_installed,
            "installed": self.installed,
            "install_skipped": self.install_skipped,
            "dropped_tables": self.dropped_tables,
            "sample_data_runs": self.sample_data_runs,
            "restore": self.restore,
        }


class PostProvisionInstaller:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def install(self, recipe: Recipe) -> InstallReport:
        dialect = dialect_for(recipe.db_type)
        report = InstallReport()

        self.wait_for_database(recipe, dialect, report)

        if self.schema_installed(recipe, dialect):
            logger.info("Moodle schema already present in %s", recipe.effective_db_name)
            report.already_installed = True
        else:
            self.install_schema(recipe, dialect, report)

        if recipe.sample_data:
            report.sample_data_runs = SampleDataSeeder(self.ctx).seed(recipe)
        if recipe.restore_structure:
            report.restore = RestoreDataService(self.ctx).restore(recipe).to_dict()
        return report

    # ── Database ────────────────────────────────────────────────

    def _query(self, recipe: Recipe, dialect: DatabaseDialect, sql: str, check: bool = False):
        return self.ctx.docker.exec(
            recipe.db_container,
            dialect.query_command(recipe, sql),
            env=dialect.exec_env(recipe),
            check=check,
            timeout=60,
        )

    def wait_for_database(self, recipe: Recipe, dialect: DatabaseDialect, report: InstallReport | None = None) -> int:
        """Block until the db answers; returns the number of probes.

        Raises:
            DatabaseNotReady: the retry policy ran out.
        """
        self.ctx.say(f"Waiting for database {recipe.db_container}")
        probes = 0

        def probe() -> bool:
            nonlocal probes
            probes += 1
            return self._query(recipe, dialect, READY_QUERY).returncode == 0

        ready = self.ctx.db_wait.poll(probe, what=f"database {recipe.db_container}")
        if report is not None:
            report.db_probes = probes
        if not ready:
            raise DatabaseNotReady(
                f"Database {recipe.db_container} not ready after {probes} attempts"
            )
        return probes

    def schema_installed(self, recipe: Recipe, dialect: DatabaseDialect) -> bool:
        return self._query(recipe, dialect, SCHEMA_PROBE).returncode == 0

    def drop_all_tables(self, recipe: Recipe, dialect: DatabaseDialect) -> None:
        self.ctx.say(f"Dropping all tables in {recipe.effective_db_name}")
        self.ctx.docker.exec(
            recipe.db_container,
            dialect.drop_all_tables_command(recipe),
            env=dialect.exec_env(recipe),
            timeout=300,
        )

    # ── Install ─────────────────────────────────────────────────

    def install_command(self, recipe: Recipe) -> list[str]:
        password = recipe.admin_password or self.ctx.settings.admin_password or DEFAULT_ADMIN_PASSWORD
        return [
            "php", self.ctx.layout.cli_path(INSTALL_SCRIPT),
            f"--lang={self.ctx.settings.lang or 'en'}",
            f"--adminpass={password}",
            "--adminemail=admin@example.com",
            "--agree-license",
            f"--fullname=devchef-{recipe.container_prefix}",
            f"--shortname=devchef{recipe.container_prefix}",
        ]

    def _run_install(self, recipe: Recipe) -> None:
        self.ctx.say("Installing Moodle database")
        self.ctx.docker.exec(recipe.app_container, self.install_command(recipe), user="www-data", timeout=None)

    def install_schema(self, recipe: Recipe, dialect: DatabaseDialect, report: InstallReport) -> None:
        try:
            self._run_install(recipe)
        except ExternalProcessFailure as e:
            policy = self.ctx.install_conflict
            if policy is InstallConflictPolicy.ABORT:
                raise
            if policy is InstallConflictPolicy.SKIP:
                logger.warning("Moodle install failed, keeping the existing database: %s", e)
                report.install_skipped = True
                return
            logger.warning("Moodle install failed, dropping all tables and retrying once")
            self.drop_all_tables(recipe, dialect)
            report.dropped_tables = True
            self._run_install(recipe)
        report.installed = True
