"""
devchef — CLI entrypoint.

Usage:
    devchef --help
    devchef up recipe.json
    devchef stop
    devchef recipe check recipe.json
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from devchef import __version__
from devchef.core.errors import DevchefError
from devchef.core.observability.logging_config import setup_cli_logging

_CONFLICT_CHOICES = ("abort", "skip", "drop", "ask")


@click.group()
@click.version_option(version=__version__, prog_name="devchef")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--home",
    "home",
    type=click.Path(file_okay=False),
    default=None,
    help="State directory (default: $DEVCHEF_HOME or ~/.devchef).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    home: str | None,
) -> None:
    """devchef — recipe-driven Moodle development sandboxes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["home"] = Path(home).expanduser() if home else None

    setup_cli_logging(debug=debug, verbose=verbose, quiet=quiet)


def run_context(ctx: click.Context, **options):
    """Build the RunContext for this invocation."""
    from devchef.core.context import RunContext

    echo = None if ctx.obj.get("quiet") else click.echo
    return RunContext.create(ctx.obj.get("home"), echo=echo, **options)


def fail(message: str) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(1)


# ── up ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option("--no-cache", is_flag=True, help="Re-resolve plugins even if the cache matches.")
@click.option(
    "--on-install-conflict",
    type=click.Choice(_CONFLICT_CHOICES),
    default="skip",
    show_default=True,
    help="What to do if the Moodle install script fails.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.pass_context
def up(ctx: click.Context, recipe: str, no_cache: bool, on_install_conflict: str, as_json: bool) -> None:
    """Provision (or re-provision) the sandbox described by RECIPE."""
    from devchef.core.context import InstallConflictPolicy
    from devchef.core.services.provisioning import ProvisioningPipeline

    if on_install_conflict == "ask":
        # Decided once, up front, so the pipeline itself never prompts
        drop = click.confirm(
            "If the Moodle install fails, drop all tables and retry?", default=False
        )
        on_install_conflict = "drop" if drop else "skip"

    try:
        run_ctx = run_context(
            ctx,
            no_cache=no_cache,
            install_conflict=InstallConflictPolicy(on_install_conflict),
        )
    except DevchefError as e:
        fail(str(e))
        return

    pipeline = ProvisioningPipeline(run_ctx)
    try:
        report = pipeline.up(Path(recipe))
    except DevchefError as e:
        partial = pipeline.report
        if as_json and partial is not None:
            click.echo(json.dumps(partial.to_dict(), indent=2))
            sys.exit(1)
        if partial is not None and partial.completed:
            click.echo(f"   Completed: {', '.join(s.value for s in partial.completed)}", err=True)
        fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.secho(f"\n✅ {report.instance} is ready", fg="green", bold=True)
    click.echo(f"   URL:     {report.www_root}")
    click.echo(f"   Port:    {report.host_port}")
    if report.plugins:
        click.echo(f"   Plugins: {', '.join(report.plugins)}")
    click.echo()


# ── Lifecycle ───────────────────────────────────────────────────


@cli.command()
@click.argument("name", required=False)
@click.pass_context
def stop(ctx: click.Context, name: str | None) -> None:
    """Stop the containers of an instance (default: the current one)."""
    from devchef.core.services.provisioning import ProvisioningPipeline, resolve_instance

    try:
        run_ctx = run_context(ctx)
        instance = resolve_instance(run_ctx, name)
        stopped = ProvisioningPipeline(run_ctx).stop(instance)
    except DevchefError as e:
        fail(str(e))
        return

    if stopped:
        click.secho(f"⏹  Stopped {', '.join(stopped)}", fg="green")
    else:
        click.echo(f"Nothing running for {instance.name}")


@cli.command()
@click.argument("name", required=False)
@click.pass_context
def start(ctx: click.Context, name: str | None) -> None:
    """Start the containers of an existing instance."""
    from devchef.core.services.provisioning import ProvisioningPipeline, resolve_instance

    try:
        run_ctx = run_context(ctx)
        instance = resolve_instance(run_ctx, name)
        started = ProvisioningPipeline(run_ctx).start(instance)
    except DevchefError as e:
        fail(str(e))
        return

    click.secho(f"▶  Started {', '.join(started)}", fg="green")


@cli.command()
@click.argument("name")
@click.option("--volumes", is_flag=True, help="Also remove the instance's named volumes (database data).")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def destroy(ctx: click.Context, name: str, volumes: bool, yes: bool) -> None:
    """Remove an instance's containers and forget it."""
    from devchef.core.services.provisioning import ProvisioningPipeline, resolve_instance

    if not yes:
        what = "containers and volumes" if volumes else "containers"
        click.confirm(f"Remove {what} of '{name}'?", abort=True)

    try:
        run_ctx = run_context(ctx)
        instance = resolve_instance(run_ctx, name)
        result = ProvisioningPipeline(run_ctx).destroy(instance, remove_volumes=volumes)
    except DevchefError as e:
        fail(str(e))
        return

    click.secho(f"🗑  Destroyed {result['instance']}", fg="green")
    for container in result["containers"]:
        click.echo(f"   • container {container}")
    for volume in result["volumes"]:
        click.echo(f"   • volume {volume}")


# ── Inspection ──────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def instances(ctx: click.Context, as_json: bool) -> None:
    """List registered instances."""
    try:
        run_ctx = run_context(ctx)
        registered = run_ctx.registry.instances()
    except DevchefError as e:
        fail(str(e))
        return

    active = run_ctx.settings.active_instance
    if as_json:
        click.echo(json.dumps(
            {"active": active, "instances": [i.model_dump(mode="json") for i in registered]},
            indent=2,
        ))
        return

    if not registered:
        click.echo("No instances registered.")
        return

    click.secho(f"📋 Instances ({len(registered)})", fg="cyan", bold=True)
    for inst in registered:
        marker = " ← active" if inst.name == active else ""
        port = f" proxy:{inst.proxy_port}" if inst.proxy_port else ""
        click.echo(f"   • {inst.name}{port}  → {inst.recipe_path}{marker}")


@cli.command()
@click.argument("recipe", type=click.Path(dir_okay=False))
@click.option("--no-cache", is_flag=True, help="Re-resolve plugins even if the cache matches.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plugins(ctx: click.Context, recipe: str, no_cache: bool, as_json: bool) -> None:
    """Resolve and list the plugins declared in RECIPE."""
    from devchef.core.config.loader import load_recipe
    from devchef.core.services.plugin_resolver import PluginResolver

    try:
        run_ctx = run_context(ctx)
        parsed = load_recipe(Path(recipe), session=run_ctx.session)
        info = PluginResolver(run_ctx).resolve(parsed, skip_cache=no_cache)
    except DevchefError as e:
        fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(info.to_dict(), indent=2))
        return

    if info.is_empty():
        click.echo("No plugins declared.")
        return

    click.secho(f"🔌 Plugins ({len(info.plugins)})", fg="cyan", bold=True)
    for component, plugin in sorted(info.plugins.items()):
        click.echo(f"   • {component}  {plugin.path}")
        click.echo(f"     {plugin.declaration.repo} ({plugin.declaration.branch})")


# ── Sub-groups ──────────────────────────────────────────────────

from devchef.ui.cli.ci import ci  # noqa: E402
from devchef.ui.cli.recipe import recipe  # noqa: E402

cli.add_command(recipe)
cli.add_command(ci)


if __name__ == "__main__":
    cli()
