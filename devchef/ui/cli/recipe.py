"""
CLI commands for recipes.

Thin wrappers over ``devchef.core.use_cases.recipe_check``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


@click.group()
def recipe() -> None:
    """Recipes — validate before provisioning."""


@recipe.command("check")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--online", is_flag=True, help="Download a remote restoreStructure to validate it.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def recipe_check(path: str, online: bool, as_json: bool) -> None:
    """Validate a recipe file."""
    from devchef.core.use_cases.recipe_check import check_recipe

    result = check_recipe(Path(path), online=online)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.recipe is not None
        click.secho("✅ Recipe is valid", fg="green", bold=True)
        click.echo(f"   Instance: {result.recipe.instance_name}")
        click.echo(f"   Moodle:   {result.recipe.moodle_tag} (PHP {result.recipe.php_version})")
        click.echo(f"   Plugins:  {len(result.recipe.plugins)}")
        click.echo(f"   URL:      {result.recipe.www_root}")
    else:
        click.secho("❌ Recipe errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()
