"""
blueprint — CLI entrypoint.

Usage:
    python -m blueprint --help
    python -m blueprint plan setup.bp
    python -m blueprint apply setup.bp
    python -m blueprint status
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from blueprint import __version__
from blueprint.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="blueprint")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: ~/.blueprint/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """blueprint — declare what a machine should have, then make it so."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(verbose, quiet, debug, os.environ.get("BLUEPRINT_LOG_LEVEL")),
        log_file=os.environ.get("BLUEPRINT_LOG_FILE"),
        log_file_level=os.environ.get("BLUEPRINT_LOG_FILE_LEVEL"),
    )

    from blueprint.core.config.loader import ConfigError, load_config
    from blueprint.core.context import set_blueprint_home

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    set_blueprint_home(config.state_dir)
    ctx.obj["config"] = config


def _session(ctx: click.Context, interactive: bool):
    from blueprint.adapters.shell.command import ShellExecutor
    from blueprint.core.engine.session import Session

    config = ctx.obj["config"]

    def prompt(key: str, label: str) -> str:
        return click.prompt(label, hide_input=True, err=True)

    return Session(
        ShellExecutor(),
        prompt=prompt if interactive else None,
        os_name=config.os_name,
        extra_sudo_commands=config.extra_sudo_commands,
    )


_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}

_SKIP_OPTIONS = [
    click.option(
        "--skip-group", "skip_groups", multiple=True, help="Do not run rules in this group."
    ),
    click.option("--skip-id", "skip_ids", multiple=True, help="Do not run the rule with this id."),
]


def _skip_options(func):
    for option in reversed(_SKIP_OPTIONS):
        func = option(func)
    return func


# ── plan ────────────────────────────────────────────────────────


@cli.command()
@click.argument("file")
@_skip_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(
    ctx: click.Context,
    file: str,
    skip_groups: tuple[str, ...],
    skip_ids: tuple[str, ...],
    as_json: bool,
) -> None:
    """Show what applying FILE would do, without running anything.

    FILE is a blueprint path or a git reference url[@branch][:path].

    Examples:

        blueprint plan setup.bp

        blueprint plan setup.bp --skip-group work --json
    """
    from blueprint.core.use_cases.apply import plan_blueprint

    result = plan_blueprint(
        file,
        _session(ctx, interactive=False),
        config=ctx.obj["config"],
        skip_groups=skip_groups,
        skip_ids=skip_ids,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    click.secho(f"\n📋 {result.blueprint} ({result.os_name})", fg="cyan", bold=True)
    if not result.steps:
        click.secho("   Nothing to do.", fg="green")
        return

    for i, step in enumerate(result.steps, start=1):
        if step["excluded"]:
            click.secho(f"   {i:>3}. ⊘ {step['details']} (excluded)", fg="yellow")
        elif step["uninstall"]:
            click.secho(f"   {i:>3}. − {step['details']}", fg="red")
        else:
            click.secho(f"   {i:>3}. + {step['details']}", fg="green")
        for line in step["info"]:
            click.echo(f"          {line}")
        if "error" in step:
            click.secho(f"          ✗ {step['error']}", fg="red")
        elif ctx.obj.get("verbose"):
            click.echo(f"          $ {step['command']}")
    click.echo()


# ── apply ───────────────────────────────────────────────────────


@cli.command()
@click.argument("file")
@_skip_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--no-input", is_flag=True, help="Never prompt; rules that need a password fail."
)
@click.pass_context
def apply(
    ctx: click.Context,
    file: str,
    skip_groups: tuple[str, ...],
    skip_ids: tuple[str, ...],
    as_json: bool,
    no_input: bool,
) -> None:
    """Reconcile this machine with FILE (a path or url[@branch][:path]).

    Exit codes: 0 all rules ok, 1 invalid blueprint or config,
    2 one or more rules failed.

    Examples:

        blueprint apply setup.bp

        blueprint apply setup.bp --skip-id dotfiles

        blueprint apply https://github.com/me/setup.git@main:laptop.bp
    """
    from blueprint.core.use_cases.apply import apply_blueprint

    quiet = ctx.obj.get("quiet", False)

    def progress(index: int, total: int, handler) -> None:
        if not as_json and not quiet:
            click.secho(
                f"   [{index}/{total}] {handler.display_details(handler.is_uninstall)}",
                dim=True,
            )

    if not as_json and not quiet:
        click.secho(f"\n⚡ Applying {file}", fg="cyan", bold=True)

    result = apply_blueprint(
        file,
        _session(ctx, interactive=not no_input),
        config=ctx.obj["config"],
        skip_groups=skip_groups,
        skip_ids=skip_ids,
        progress=progress,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    report = result.report
    assert report is not None

    click.echo()
    for record in report.records:
        if record.ok:
            click.secho(f"   ✓ {record.rule}", fg="green", nl=False)
            click.echo(f"  {record.output}" if record.output else "")
        elif record.failed:
            click.secho(f"   ✗ {record.rule}", fg="red")
            for line in record.error.split("\n")[:5]:
                click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {record.rule} ", fg="yellow", nl=False)
            click.echo(f"({record.error})")

    click.echo()
    status_color = _STATUS_COLORS.get(report.status, "white")
    click.secho(
        f"   Result: {report.status.upper()} "
        f"({report.succeeded} ok, {report.failed} failed, {report.skipped} skipped)",
        fg=status_color,
        bold=True,
    )
    click.echo()
    sys.exit(result.exit_code)


# ── status ──────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--blueprint",
    "-b",
    "blueprint_file",
    default=None,
    help="Only show resources applied from this file.",
)
@click.option("--os", "os_name", default=None, help="Only show resources for this OS.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(
    ctx: click.Context,
    blueprint_file: str | None,
    os_name: str | None,
    as_json: bool,
) -> None:
    """Show the resources blueprint has applied."""
    from blueprint.core.use_cases.status import get_status

    result = get_status(ctx.obj["config"], blueprint=blueprint_file, os_name=os_name)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.groups:
        click.echo("No resources recorded.")
        return

    click.secho(f"\n📋 {result.status_path}", fg="cyan", bold=True)
    for name, records in result.groups.items():
        click.secho(f"\n   {name} ({len(records)})", bold=True)
        for record in records:
            click.echo(f"     • {record.key()}  [{record.os}]  {record.blueprint}")
    click.echo()


# ── encrypt ─────────────────────────────────────────────────────


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Destination (default: FILE.enc).",
)
@click.password_option("--password", "-p", help="Encryption password (prompted if omitted).")
def encrypt(file: Path, output: Path | None, password: str) -> None:
    """Encrypt FILE for use with a decrypt rule."""
    from blueprint.core.services.crypto import encrypt_file

    try:
        dest = encrypt_file(file, password, output)
    except OSError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    click.secho(f"🔒 Encrypted → {dest}", fg="green")


# ── history ─────────────────────────────────────────────────────


_RECORD_MARKERS = {"success": ("✓", "green"), "error": ("✗", "red"), "skipped": ("⊘", "yellow")}


@cli.command()
@click.argument("run", required=False)
@click.argument("step", type=click.IntRange(min=1), required=False)
@click.option("--limit", "-n", default=10, show_default=True, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(
    ctx: click.Context,
    run: str | None,
    step: int | None,
    limit: int,
    as_json: bool,
) -> None:
    """Show recent runs, newest first, or the steps of one RUN.

    RUN is a run id or a position (1 = latest run). STEP narrows the
    output to one step of that run, with its full output.

    Examples:

        blueprint history

        blueprint history 1

        blueprint history run-20250101-120000-abc123 3
    """
    from blueprint.core.persistence.history import HistoryWriter

    writer = HistoryWriter(ctx.obj["config"].history_path)

    if run is None:
        entries = list(reversed(writer.read_recent(limit)))
        if as_json:
            click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
            return
        if not entries:
            click.echo("No runs recorded yet.")
            return
        for entry in entries:
            color = _STATUS_COLORS.get(entry.status, "white")
            click.secho(f"   {entry.run_id}  {entry.status:<8}", fg=color, nl=False)
            click.echo(f" {entry.succeeded}/{entry.total} ok  {entry.os}  {entry.blueprint}")
        return

    entry = writer.find(run)
    if entry is None:
        click.secho(f"❌ No run matching '{run}'", fg="red", err=True)
        sys.exit(1)

    if step is not None:
        if step > len(entry.records):
            click.secho(
                f"❌ Run {entry.run_id} has {len(entry.records)} step(s), no step {step}",
                fg="red",
                err=True,
            )
            sys.exit(1)
        record = entry.records[step - 1]
        if as_json:
            click.echo(json.dumps(record.model_dump(mode="json"), indent=2))
            return
        marker, color = _RECORD_MARKERS.get(record.status, ("?", "white"))
        click.secho(f"\n{marker} {entry.run_id} step {step}: {record.rule}", fg=color, bold=True)
        click.echo(f"   Status:  {record.status}")
        click.echo(f"   Command: {record.command}")
        click.echo(f"   Time:    {record.timestamp}")
        if record.output:
            click.echo("   Output:")
            for line in record.output.splitlines():
                click.echo(f"     │ {line}")
        if record.error:
            click.echo("   Error:")
            for line in record.error.splitlines():
                click.echo(f"     │ {line}")
        click.echo()
        return

    if as_json:
        click.echo(json.dumps(entry.model_dump(mode="json"), indent=2))
        return

    click.secho(
        f"\n📋 {entry.run_id}  {entry.status.upper()}  {entry.os}  {entry.blueprint}",
        fg=_STATUS_COLORS.get(entry.status, "white"),
        bold=True,
    )
    click.echo(f"   {entry.timestamp}")
    for i, record in enumerate(entry.records, start=1):
        marker, color = _RECORD_MARKERS.get(record.status, ("?", "white"))
        click.secho(f"   {i:>3}. {marker} {record.rule}", fg=color, nl=False)
        click.echo(f"  $ {record.command}" if record.command else "")
    click.echo()


if __name__ == "__main__":
    cli()
