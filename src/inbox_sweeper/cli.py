"""CLI entry point for Inbox Sweeper."""

from __future__ import annotations

import logging

import click
from rich.logging import RichHandler
from rich.markup import escape

from . import constants
from .audit_log import AuditLog
from .auth import check_auth, get_auth_state
from .classifier import keyword_hits, matches
from .constants import KEY_SYNC_PROGRESS, KEY_TASK_STATE
from .display import (
    console,
    create_progress,
    display_deleted_log,
    display_keyword_hits,
    display_preset_detail,
    display_presets,
    display_status,
)
from .engine import SyncEngine, SyncPreconditionError
from .export import export_deleted
from .models import ExecutionMode, SyncProgress, SyncStatus, TaskState
from .notifications import ConsoleNotifier
from .presets import PresetError, PresetStore
from .state import SyncStateAccessor
from .storage import Storage


def _get_preset(store: PresetStore, preset_id: str):
    preset = store.get(preset_id)
    if preset is None:
        raise click.ClickException(f"Unknown preset: {preset_id}")
    return preset


@click.group()
@click.version_option(version="0.1.0", prog_name="inbox-sweeper")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Inbox Sweeper - delete unwanted Gmail messages using keyword presets."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@cli.command()
def auth() -> None:
    """Test Gmail authentication."""
    check_auth()


# --- presets ---


@cli.group(name="presets")
def presets_group() -> None:
    """List, select and edit presets."""


@presets_group.command(name="list")
def presets_list() -> None:
    """Show built-in and custom presets."""
    with Storage() as storage:
        store = PresetStore(storage)
        current = store.get_current()
        display_presets(
            store.all_presets(),
            current.id if current else None,
            {p.id for p in store.custom_presets()},
        )


@presets_group.command(name="show")
@click.argument("preset_id")
def presets_show(preset_id: str) -> None:
    """Show the keywords and thresholds of a preset."""
    with Storage() as storage:
        store = PresetStore(storage)
        preset = _get_preset(store, preset_id)
        display_preset_detail(preset, store.summary(preset))


@presets_group.command(name="select")
@click.argument("preset_id")
def presets_select(preset_id: str) -> None:
    """Make PRESET_ID the preset used by 'run'."""
    with Storage() as storage:
        try:
            preset = PresetStore(storage).set_current(preset_id)
        except PresetError as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[green]Selected preset:[/green] {escape(preset.name)}")


@presets_group.command(name="create")
@click.option("--name", required=True, help="Preset name.")
@click.option("-k", "--keyword", "keywords", multiple=True, help="Keyword (repeatable).")
@click.option("--description", default="", help="Short description.")
@click.option("--min-subject", default=1, type=int, show_default=True, help="Minimum subject/sender matches.")
@click.option("--min-body", default=2, type=int, show_default=True, help="Minimum body matches.")
@click.option("--select", "select_it", is_flag=True, help="Select the new preset.")
def presets_create(
    name: str, keywords: tuple[str, ...], description: str, min_subject: int, min_body: int, select_it: bool
) -> None:
    """Create a custom preset."""
    with Storage() as storage:
        store = PresetStore(storage)
        try:
            preset = store.create(
                name,
                keywords,
                description=description,
                min_subject_or_sender_matches=min_subject,
                min_body_matches=min_body,
            )
        except PresetError as e:
            raise click.ClickException(str(e)) from e
        if select_it:
            store.set_current(preset.id)
    console.print(f"[green]Created preset[/green] {escape(preset.name)} [dim]({preset.id})[/dim]")


@presets_group.command(name="delete")
@click.argument("preset_id")
def presets_delete(preset_id: str) -> None:
    """Delete a custom preset."""
    with Storage() as storage:
        if not PresetStore(storage).delete_custom(preset_id):
            raise click.ClickException(f"No custom preset with id {preset_id}")
    console.print("[green]Preset deleted.[/green]")


@presets_group.command(name="test")
@click.argument("preset_id")
@click.option("--subject", default="", help="Message subject.")
@click.option("--sender", default="", help="Message From header.")
@click.option("--body", default="", help="Message body text.")
def presets_test(preset_id: str, subject: str, sender: str, body: str) -> None:
    """Check how a preset would treat a message."""
    with Storage() as storage:
        preset = _get_preset(PresetStore(storage), preset_id)
    hits = keyword_hits(subject, sender, body, preset.keywords)
    display_keyword_hits(hits, matches(subject, sender, body, preset))


# --- run ---


@cli.command()
@click.option("--preset", "preset_id", default=None, help="Preset id (defaults to the selected preset).")
@click.option("--background", is_flag=True, help="Report progress through notifications.")
def run(preset_id: str | None, background: bool) -> None:
    """Scan the mailbox and delete messages matching the preset."""
    with Storage() as storage:
        store = PresetStore(storage)
        preset = _get_preset(store, preset_id) if preset_id else store.get_current()
        if preset is None:
            raise click.ClickException("No preset selected. Use 'presets select ID' first.")

        try:
            auth_state = get_auth_state()
        except FileNotFoundError as e:
            raise click.ClickException(str(e)) from e

        engine = SyncEngine(storage, notifier=ConsoleNotifier(console))
        accessor = SyncStateAccessor(engine, poll_interval=0.5)
        mode = ExecutionMode.BACKGROUND if background else ExecutionMode.FOREGROUND

        with create_progress() as progress:
            task = progress.add_task(
                escape(preset.name), total=None, phase="Initializing", processed=0, deleted=0
            )

            def on_state(state) -> None:
                progress.update(
                    task,
                    phase=state.task_state.current_phase,
                    processed=state.progress.processed,
                    deleted=state.progress.deleted,
                )

            accessor.subscribe(on_state)
            try:
                engine.start(auth_state.access_token, preset, mode)
            except SyncPreconditionError as e:
                raise click.ClickException(str(e)) from e
            accessor.refresh()

            try:
                while not engine.wait(timeout=0.5).is_terminal:
                    pass
            except KeyboardInterrupt:
                console.print("[yellow]Stopping after the current message...[/yellow]")
                engine.cancel()
                engine.wait()
            finally:
                accessor.stop_polling()

        state = accessor.refresh()
        display_status(state.task_state, state.progress.processed, state.progress.deleted)
        if engine.status is SyncStatus.ERRORED:
            raise click.ClickException(engine.last_error or "Sync failed")


@cli.command()
def status() -> None:
    """Show the state of the current or last run."""
    with Storage() as storage:
        task_state = TaskState.from_dict(storage.get(KEY_TASK_STATE, {}))
        progress = SyncProgress.from_dict(storage.get(KEY_SYNC_PROGRESS, {}))

    if not task_state.started_at:
        console.print("[dim]No sync has been run yet.[/dim]")
        return
    display_status(task_state, progress.processed, progress.deleted)


# --- deletion log ---


@cli.group(name="log")
def log_group() -> None:
    """Inspect the log of deleted messages."""


@log_group.command(name="show")
@click.option("-n", "--limit", default=50, type=int, show_default=True, help="Entries to show (0 for all).")
def log_show(limit: int) -> None:
    """Show recently deleted messages."""
    with Storage() as storage:
        records = AuditLog(storage).get_all()
    display_deleted_log(records, limit=limit or None)


@log_group.command(name="clear")
@click.confirmation_option(prompt="Clear the deleted messages log?")
def log_clear() -> None:
    """Clear the deleted messages log."""
    with Storage() as storage:
        AuditLog(storage).clear()
    console.print("[green]Log cleared.[/green]")


@log_group.command(name="export")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Output format.",
)
@click.option("-o", "--output", required=True, help="Output file path.")
def log_export(fmt: str, output: str) -> None:
    """Export the deleted messages log to CSV or JSON."""
    with Storage() as storage:
        records = AuditLog(storage).get_all()

    if not records:
        raise click.ClickException("No deleted messages recorded.")

    count = export_deleted(records, format=fmt, output_path=output)
    console.print(f"Saved {count} records to {output}")


# --- storage ---


@cli.group(name="storage")
def storage_group() -> None:
    """Manage the local database."""


@storage_group.command(name="info")
def storage_info() -> None:
    """Show database statistics."""
    with Storage() as storage:
        info = storage.get_info()
        keys = storage.keys()

    if info["key_count"] == 0:
        console.print("[dim]Storage is empty.[/dim]")
        return

    console.print(f"[bold]Database:[/bold] {constants.STORAGE_DB_PATH}")
    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Keys:[/bold] {info['key_count']}")
    for key in keys:
        console.print(f"  [dim]{key}[/dim]")


@storage_group.command(name="clear")
@click.confirmation_option(prompt="Remove custom presets, the selection, run state and the deletion log?")
def storage_clear() -> None:
    """Clear all stored data."""
    with Storage() as storage:
        storage.clear()
    console.print("[green]Storage cleared.[/green]")
