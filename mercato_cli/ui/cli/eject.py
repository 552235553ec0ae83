"""
CLI command for ejecting package modules into the app.

Thin wrapper over ``mercato_cli.core.use_cases.eject``.
"""

from __future__ import annotations

import json
import sys

import click


def _show_ejectable(ctx: click.Context, as_json: bool) -> None:
    from mercato_cli.core.use_cases.eject import run_list_ejectable

    result = run_list_ejectable(cwd=ctx.obj.get("cwd"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.modules:
        click.echo("No ejectable modules found.")
        return

    click.secho("📤 Ejectable modules:", fg="cyan", bold=True)
    for mod in result.modules:
        title = f" — {mod.title}" if mod.title else ""
        click.echo(f"   • {mod.id}{title}  ({mod.from_})")
        if mod.description:
            click.echo(f"       {mod.description}")
    click.echo()
    click.echo("Run `mercato eject <module_id>` to copy one into your app.")


@click.command("eject")
@click.argument("module_id", required=False)
@click.option("--list", "list_only", is_flag=True, help="List ejectable modules.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def eject(ctx: click.Context, module_id: str | None, list_only: bool, as_json: bool) -> None:
    """Copy a package module into the app so it can be customised.

    Without MODULE_ID (or with --list, or ``eject list``) the ejectable
    modules are listed instead.
    """
    if list_only or module_id in (None, "list"):
        _show_ejectable(ctx, as_json)
        return

    from mercato_cli.core.use_cases.eject import run_eject

    result = run_eject(module_id, cwd=ctx.obj.get("cwd"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Ejected {module_id}", fg="green", bold=True)
    click.echo(f"   → {result.destination}")
    click.echo(f"   {result.files_copied} file(s) copied")
    rewritten = sum(result.imports_rewritten.values())
    if rewritten:
        click.echo(f"   {rewritten} cross-module import(s) rewritten")
    click.echo(f"   Config updated: {result.config_path}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Review these manually:", fg="yellow")
        for warning in result.warnings:
            click.echo(f"   • {warning}")

    click.echo()
    click.echo("Run `mercato generate` to refresh the registries.")
