"""Rich-based display functions for Inbox Sweeper."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import DeletedMessageRecord, RuleSet, TaskState

console = Console()

_PHASE_COLORS = {"Completed": "green", "Stopped": "yellow", "Error": "red", "Interrupted": "yellow"}


def format_eta(seconds: int | None) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(seconds), 60)
    if minutes >= 60:
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def display_presets(presets: list[RuleSet], current_id: str | None, custom_ids: set[str]) -> None:
    """Display all presets, marking the selected one."""
    table = Table(title="Presets")
    table.add_column("", width=1)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Keywords", justify="right")
    table.add_column("Min Subj", justify="right")
    table.add_column("Min Body", justify="right")

    for preset in presets:
        selected = preset.id == current_id
        table.add_row(
            "[green]*[/green]" if selected else "",
            f"[cyan]{preset.id}[/cyan]" if preset.id in custom_ids else preset.id,
            f"[bold]{escape(preset.name)}[/bold]" if selected else escape(preset.name),
            str(len(preset.keywords)),
            str(preset.min_subject_or_sender_matches),
            str(preset.min_body_matches),
        )

    console.print(table)


def display_preset_detail(preset: RuleSet, summary: str) -> None:
    lines = [
        f"[bold]ID:[/bold] {preset.id}",
        f"[bold]Description:[/bold] {escape(preset.description)}",
        f"[bold]Rules:[/bold] {summary}",
        "",
        "[bold]Keywords:[/bold]",
        escape(", ".join(preset.keywords)) or "[dim](none)[/dim]",
    ]
    console.print(Panel("\n".join(lines), title=escape(preset.name)))


def display_keyword_hits(hits: dict, matched: bool) -> None:
    """Show which keywords hit each field of a test message."""
    table = Table(title="Keyword Matches")
    table.add_column("Field")
    table.add_column("Count", justify="right")
    table.add_column("Keywords")
    for name in ("subject", "sender", "body"):
        table.add_row(name.capitalize(), str(hits[f"{name}_count"]), escape(", ".join(hits[name])))
    console.print(table)

    verdict = "[red]would be deleted[/red]" if matched else "[green]would be kept[/green]"
    console.print(f"Message {verdict}")


def display_status(task_state: TaskState, processed: int, deleted: int, mode: str | None = None) -> None:
    """Display the state of the current or most recent run."""
    phase = task_state.current_phase or "Idle"
    color = _PHASE_COLORS.get(phase, "white")

    lines = [
        f"[bold]Running:[/bold] {'yes' if task_state.is_running else 'no'}",
        f"[bold]Phase:[/bold] [{color}]{phase}[/{color}]",
        f"[bold]Processed:[/bold] {processed}",
        f"[bold]Deleted:[/bold] {deleted}",
    ]
    if task_state.started_at:
        lines.append(f"[bold]Started:[/bold] {task_state.started_at}")
    if task_state.is_running:
        lines.append(f"[bold]Mode:[/bold] {mode or task_state.mode}")
        lines.append(f"[bold]Estimated remaining:[/bold] {format_eta(task_state.estimated_time_remaining)}")
    if task_state.last_error:
        lines.append(f"[bold red]Last error:[/bold red] {escape(task_state.last_error)}")

    console.print(Panel("\n".join(lines), title="Sync Status"))


def display_deleted_log(records: list[DeletedMessageRecord], limit: int | None = None) -> None:
    """Display deleted messages, newest first."""
    if not records:
        console.print("[dim]No deleted messages recorded.[/dim]")
        return

    shown = list(reversed(records))
    if limit:
        shown = shown[:limit]

    table = Table(title="Deleted Messages")
    table.add_column("Deleted At", style="dim")
    table.add_column("Sender")
    table.add_column("Subject")
    table.add_column("Preset")
    for record in shown:
        table.add_row(
            record.deleted_at,
            escape(record.sender),
            escape(record.subject),
            escape(record.rule_set_used),
        )

    console.print(table)
    console.print(
        Panel(f"Shown: {len(shown)}  |  Total recorded: {len(records)}", title="Summary")
    )


def create_progress() -> Progress:
    """Create a configured Rich Progress display for a running sync.

    The task description is rendered as markup, so callers escape user text.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        TextColumn("{task.fields[phase]}"),
        TextColumn("processed [bold]{task.fields[processed]}[/bold]"),
        TextColumn("deleted [bold red]{task.fields[deleted]}[/bold red]"),
        TimeElapsedColumn(),
        console=console,
    )
