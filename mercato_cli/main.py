"""
Mercato — module registry generator CLI.

Usage:
    mercato --help
    mercato generate
    mercato modules
    mercato eject --list
    mercato eject <module_id>
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from mercato_cli import __version__
from mercato_cli.core.observability.logging_config import resolve_level, setup_logging


def _display_path(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


@click.group()
@click.version_option(version=__version__, prog_name="mercato")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--cwd",
    "cwd",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory to resolve the workspace from (default: current).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    cwd: Path | None,
) -> None:
    """Mercato — discover modules and generate their registries."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["cwd"] = cwd

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get("MERCATO_LOG_LEVEL")),
        log_file=os.environ.get("MERCATO_LOG_FILE"),
        log_file_level=os.environ.get("MERCATO_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Generate ────────────────────────────────────────────────────


def _print_dependency_help(problems: dict[str, list[str]]) -> None:
    click.secho("\n❌ Module dependency check failed:", fg="red", bold=True)
    for module_id, missing in problems.items():
        click.echo(f'   - Module "{module_id}" requires: {", ".join(missing)}')

    missing_ids = list(dict.fromkeys(m for ms in problems.values() for m in ms))
    click.echo()
    click.secho("   Fix: enable the required module(s) in src/modules.yml, e.g.:", fg="yellow")
    click.echo("     modules:")
    for module_id in missing_ids:
        click.echo(f"       - id: {module_id}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--quiet", "-q", "quiet_cmd", is_flag=True, help="Only report errors.")
@click.pass_context
def generate(ctx: click.Context, as_json: bool, quiet_cmd: bool) -> None:
    """Scan enabled modules and (re)write the generated registries."""
    from mercato_cli.core.use_cases.generate import run_generate

    result = run_generate(cwd=ctx.obj.get("cwd"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        if result.dependency_problems:
            _print_dependency_help(result.dependency_problems)
        else:
            click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    quiet = quiet_cmd or ctx.obj.get("quiet", False)
    if not quiet:
        for artifact in result.artifacts:
            if artifact.changed:
                click.secho(f"   changed    {_display_path(artifact.path)}", fg="green")
            else:
                click.echo(f"   unchanged  {_display_path(artifact.path)}")

    for marker in result.scan_errors:
        click.secho(f"⚠️  {marker}", fg="yellow", err=True)

    if not quiet:
        written = sum(1 for a in result.artifacts if a.changed)
        click.secho(
            f"\n✅ {len(result.modules)} module(s), {written} file(s) written",
            fg="green", bold=True,
        )


# ── Modules ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def modules(ctx: click.Context, as_json: bool) -> None:
    """List enabled modules with their origin and resolved paths."""
    from mercato_cli.core.use_cases.modules import list_modules

    result = list_modules(cwd=ctx.obj.get("cwd"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n📦 Modules ({result.mode} mode)", fg="cyan", bold=True)
    click.echo(f"   App:    {result.app_dir}")
    click.echo(f"   Config: {result.config_path}")
    click.echo()
    if not result.modules:
        click.echo("   (no modules enabled)")
    for row in result.modules:
        marker = "" if row.source_dir.is_dir() else "  ⚠️ missing"
        click.echo(f"   • {row.id} [{row.origin}]  → {row.source_dir}{marker}")
    click.echo()


# ── Clean ───────────────────────────────────────────────────────


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clean(ctx: click.Context, yes: bool) -> None:
    """Remove the generated output directory."""
    from mercato_cli.core.resolver import PathResolver
    from mercato_cli.core.use_cases.modules import clean_generated

    output_dir = PathResolver(cwd=ctx.obj.get("cwd")).get_output_dir()
    if not yes:
        click.confirm(f"Delete {output_dir}?", abort=True)

    result = clean_generated(cwd=ctx.obj.get("cwd"))
    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.deleted:
        click.secho(f"🗑️  Deleted {_display_path(output_dir)}", fg="green")
    else:
        click.echo(f"Nothing to clean ({_display_path(output_dir)} does not exist)")


# ── Sub-groups ──────────────────────────────────────────────────

from mercato_cli.ui.cli.eject import eject  # noqa: E402

cli.add_command(eject)


if __name__ == "__main__":
    cli()
