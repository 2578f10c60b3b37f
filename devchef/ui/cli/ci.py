"""
CLI commands for CI image builds.

Thin wrappers over ``devchef.core.services.ci_build``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from devchef.core.errors import DevchefError


@click.group()
def ci() -> None:
    """CI — build production images from a recipe and publish them."""


@ci.command("build")
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option("--tag", "-t", required=True, help="Image tag, e.g. v1.2.0.")
@click.option("--publish/--no-publish", default=True, show_default=True,
              help="Push to the configured registry after building.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def ci_build(ctx: click.Context, recipe: str, tag: str, publish: bool, as_json: bool) -> None:
    """Build (and optionally publish) a production image for RECIPE."""
    from devchef.core.services.ci_build import CiBuilder
    from devchef.main import run_context

    try:
        result = CiBuilder(run_context(ctx)).build(Path(recipe), tag, publish=publish)
    except DevchefError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"✅ Built {result.local_image}", fg="green", bold=True)
    if result.published:
        click.echo(f"   📦 Published {result.published}")
    elif publish:
        click.secho("   ⚠️  No registry configured, not published", fg="yellow")
