"""
Sample data — seed a fresh site with Moodle's own test-data generator.

Two modes:
    site    one ``maketestsite.php`` run
    course  ``maketestcourse.php`` once per course (testcourse_1, _2, ...)
"""

from __future__ import annotations

import logging

from devchef.core.context import RunContext
from devchef.core.models.recipe import Recipe, SampleDataSpec
from devchef.core.services.app_layout import AppLayout

logger = logging.getLogger(__name__)

SITE_SCRIPT = "admin/tool/generator/cli/maketestsite.php"
COURSE_SCRIPT = "admin/tool/generator/cli/maketestcourse.php"


def sample_data_commands(spec: SampleDataSpec, layout: AppLayout, tag: str) -> list[list[str]]:
    """The php invocations that generate *spec*'s data, in order."""
    common: list[str] = [f"--size={spec.size}"]
    if spec.fixeddataset:
        common.append("--fixeddataset")
    if spec.filesizelimit:
        common.append(f"--filesizelimit={spec.filesizelimit}")

    if spec.effective_mode == "site":
        return [["php", layout.web_path(tag, SITE_SCRIPT), *common]]

    script = layout.web_path(tag, COURSE_SCRIPT)
    extra = []
    if spec.additionalmodules:
        extra.append(f"--additionalmodules={','.join(spec.additionalmodules)}")
    return [
        ["php", script, f"--shortname=testcourse_{i}", *common, *extra]
        for i in range(1, spec.course_count + 1)
    ]


class SampleDataSeeder:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def seed(self, recipe: Recipe) -> int:
        """Run every generator command; returns how many ran."""
        spec = recipe.sample_data
        if spec is None:
            return 0
        commands = sample_data_commands(spec, self.ctx.layout, recipe.moodle_tag)
        self.ctx.say(
            f"Generating sample data ({spec.effective_mode} mode, size {spec.size}, "
            f"{len(commands)} run(s))"
        )
        for command in commands:
            logger.info("Running %s", " ".join(command))
            self.ctx.docker.exec(recipe.app_container, command, user="www-data", timeout=None)
        return len(commands)
