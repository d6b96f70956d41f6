# -*- coding: utf-8 -*-
"""
``machine-rites`` administration CLI.

Lists, prunes and restores backup sets and inspects or clears the saved run
state of the bootstrap.
"""

from pathlib import Path
from typing import Optional

import click

from bootstrap.backup_set import BackupSet
from bootstrap.run_state import RunState
from common.errors import BackupError, ConfigurationError, RollbackError
from common.logging_config import setup_logging
from setup.config_loader import load_settings
from setup.config_models import BootstrapSettings


def _settings(ctx: click.Context) -> BootstrapSettings:
    return ctx.obj["settings"]


def _resolve_backup(settings: BootstrapSettings, which: str) -> Path:
    sets = BackupSet.list_sets(settings.backup_root)
    if not sets:
        raise click.ClickException(f"No backups found in {settings.backup_root}")
    if which == "latest":
        return sets[-1]
    if which == "previous":
        if len(sets) < 2:
            raise click.ClickException("There is no previous backup")
        return sets[-2]
    for candidate in sets:
        if candidate.name == which:
            return candidate
    raise click.ClickException(f"Backup not found: {which}")


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], verbose: bool):
    """Administer machine-rites backups and bootstrap state."""
    logger = setup_logging(verbose=verbose)
    try:
        settings = load_settings(config_file_path=config_file, current_logger=logger)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["logger"] = logger


@cli.group()
def backups():
    """Backup sets created by bootstrap runs."""


@backups.command(name="list")
@click.pass_context
def list_backups(ctx: click.Context):
    """List backup sets, newest last."""
    settings = _settings(ctx)
    sets = BackupSet.list_sets(settings.backup_root)
    if not sets:
        click.echo(f"No backups found in {settings.backup_root}")
        return
    latest = sets[-1]
    for path in sets:
        try:
            count = len(BackupSet.open(path).entries)
        except BackupError:
            click.echo(f"{path.name}  (no manifest)")
            continue
        marker = "  <- latest" if path == latest else ""
        click.echo(f"{path.name}  {count} entries{marker}")


@backups.command(name="prune")
@click.option("--keep", type=int, default=None, help="Number of backup sets to keep.")
@click.pass_context
def prune_backups(ctx: click.Context, keep: Optional[int]):
    """Delete all but the newest backup sets."""
    settings = _settings(ctx)
    keep = keep if keep is not None else settings.backup_retention
    if keep < 1:
        raise click.BadParameter("must be at least 1", param_hint="--keep")
    removed = BackupSet.prune(settings.backup_root, keep, ctx.obj["logger"])
    click.echo(f"Removed {len(removed)} backup(s); kept the newest {keep}.")


@backups.command(name="restore")
@click.argument("which", default="latest")
@click.option("--dry-run", is_flag=True, help="Show what would be restored.")
@click.option("--force", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def restore_backup(ctx: click.Context, which: str, dry_run: bool, force: bool):
    """
    Restore a backup set: WHICH is 'latest', 'previous' or a set name.
    """
    settings = _settings(ctx)
    path = _resolve_backup(settings, which)
    try:
        backup_set = BackupSet.open(path, ctx.obj["logger"])
    except BackupError as e:
        raise click.ClickException(str(e))

    click.echo(f"Backup: {backup_set.name} ({len(backup_set.entries)} entries)")
    for entry in reversed(backup_set.entries):
        action = "restore" if entry.existed else "remove"
        click.echo(f"  {action:<8} {entry.path}")
    if dry_run:
        click.echo("Dry run: nothing changed.")
        return
    if not force and not click.confirm("Restore these paths?", default=False):
        click.echo("Aborted.")
        return
    try:
        done = backup_set.restore()
    except RollbackError as e:
        raise click.ClickException(str(e))
    click.echo(f"Restored {len(done)} path(s) from {backup_set.name}.")


@cli.group()
def state():
    """The saved bootstrap run state."""


@state.command(name="show")
@click.pass_context
def show_state(ctx: click.Context):
    """Print the saved run state."""
    settings = _settings(ctx)
    run_state = RunState.load(settings.state_file, persist=False, logger=ctx.obj["logger"])
    if not run_state.has_record:
        click.echo(f"No saved state at {settings.state_file}")
        return
    record = run_state.record
    click.echo(f"Run {record.run_id} started {record.started_at}")
    click.echo(f"Completed: {'yes' if record.completed else 'no'}")
    click.echo(f"Backup: {record.backup_dir or '-'}")
    for module_id, module_record in sorted(record.modules.items()):
        message = f"  {module_record.message}" if module_record.message else ""
        click.echo(f"  {module_id:<22} {module_record.status.value:<12}{message}")


@state.command(name="reset")
@click.option("--force", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def reset_state(ctx: click.Context, force: bool):
    """Forget the saved run state so the next run starts fresh."""
    settings = _settings(ctx)
    if not force and not click.confirm(f"Delete {settings.state_file}?", default=False):
        click.echo("Aborted.")
        return
    run_state = RunState(settings.state_file, logger=ctx.obj["logger"])
    if run_state.reset():
        click.echo(f"Removed {settings.state_file}")
    else:
        click.echo("No saved state to remove.")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
