"""Main CLI interface for TimeTracker."""

import os
import queue
import sys
import threading
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from timetracker.config import load_settings, save_settings
from timetracker.core.aggregation import format_hms
from timetracker.core.engine import SessionEngine
from timetracker.core.reports import (
    ReportVariant,
    export_path,
    write_csv,
)
from timetracker.core.store import JsonStore
from timetracker.hooks.activity import SignalActivityGate
from timetracker.hooks.prompt import ConsoleResumePrompt
from timetracker.logging_config import setup_logger
from timetracker.models.project import Project

console = Console()


def open_engine(ctx: click.Context, **kwargs) -> SessionEngine:
    """Load the engine for the data directory chosen on the command line."""
    settings = ctx.obj["settings"]
    return SessionEngine(JsonStore(settings.data_dir), settings=settings, **kwargs)


def resolve_project(engine: SessionEngine, ref: str) -> Project:
    """Find a project by id, unique id prefix, or case-insensitive name; abort if none."""
    for project in engine.projects:
        if project.id == ref:
            return project

    by_prefix = [p for p in engine.projects if p.id.startswith(ref)]
    if len(by_prefix) == 1:
        return by_prefix[0]

    by_name = [p for p in engine.projects if p.name.casefold() == ref.strip().casefold()]
    if len(by_name) == 1:
        return by_name[0]

    if len(by_prefix) > 1 or len(by_name) > 1:
        console.print(f"[red]Error: '{ref}' matches more than one project[/red]")
    else:
        console.print(f"[red]Error: No project matches '{ref}'[/red]")
    raise click.Abort()


@click.group()
@click.version_option(package_name="timetracker")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding projects, entries and config (default: ~/.timetracker)",
)
@click.pass_context
def main(ctx: click.Context, data_dir: Optional[Path]):
    """TimeTracker - track working time against projects."""
    settings = load_settings(data_dir)
    setup_logger("timetracker", data_dir=settings.data_dir, level=settings.log_level)
    ctx.obj = {"settings": settings}


@main.command()
@click.pass_context
def init(ctx: click.Context):
    """Create the data directory, empty collections and a config file."""
    settings = ctx.obj["settings"]
    store = JsonStore(settings.data_dir)
    already = store.exists()

    open_engine(ctx)
    if not settings.config_file.exists():
        save_settings(settings)

    if already:
        console.print(f"[yellow]TimeTracker already initialized in {settings.data_dir}[/yellow]")
    else:
        console.print(f"[green]✅ Initialized TimeTracker in {settings.data_dir}[/green]")


@main.command("add-project")
@click.argument("name")
@click.pass_context
def add_project(ctx: click.Context, name: str):
    """Create a project and select it."""
    engine = open_engine(ctx)
    project = engine.add_project(name)
    if project is None:
        console.print("[red]Error: Project name cannot be empty[/red]")
        raise click.Abort()
    console.print(f"[green]Added project[/green] {project.name} [dim]({project.id[:8]})[/dim]")


@main.command()
@click.pass_context
def projects(ctx: click.Context):
    """List projects with today's and all-time totals."""
    engine = open_engine(ctx)

    if not engine.projects:
        console.print("[yellow]No projects yet. Add one with 'timetracker add-project'.[/yellow]")
        return

    now = engine.clock.now()
    running = engine.running_entry

    table = Table(title="Projects")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Today", style="magenta")
    table.add_column("All time", style="blue")
    table.add_column("Status", style="red")

    for project in engine.projects:
        if running and running.project_id == project.id:
            status = "🟢 Running"
        elif project.id == engine.selected_project_id:
            status = "Selected"
        else:
            status = ""
        table.add_row(
            project.id[:8],
            project.name,
            format_hms(engine.today_seconds(project.id, now)),
            format_hms(engine.all_time_seconds(project.id, now)),
            status,
        )

    console.print(table)


def _explain_refused_start(engine: SessionEngine) -> None:
    if engine.selected_project is None:
        console.print("[red]Error: Select or add a project first[/red]")
    else:
        console.print("[red]Error: Say what you are working on with --note[/red]")


@main.command()
@click.option("--project", "-p", help="Project id, id prefix or name")
@click.option("--note", "-n", default=None, help="What you are working on")
@click.pass_context
def start(ctx: click.Context, project: Optional[str], note: Optional[str]):
    """Start tracking time."""
    engine = open_engine(ctx)

    if engine.running_entry is not None:
        running = engine.running_entry
        console.print(
            f"[yellow]Already tracking {engine.project_name(running.project_id)}. "
            "Use 'switch' or 'stop'.[/yellow]"
        )
        return

    project_id = resolve_project(engine, project).id if project else None
    entry = engine.start_session(project_id, note)
    if entry is None:
        _explain_refused_start(engine)
        raise click.Abort()

    console.print(
        f"[green]Started[/green] {engine.project_name(entry.project_id)}"
        + (f": {entry.note}" if entry.note else "")
    )


@main.command()
@click.pass_context
def stop(ctx: click.Context):
    """Stop tracking time."""
    engine = open_engine(ctx)
    stopped = engine.stop_session()
    if stopped is None:
        console.print("[yellow]Nothing is running[/yellow]")
        return

    seconds = int(stopped.duration(stopped.end_at))
    console.print(
        f"[green]Stopped[/green] {engine.project_name(stopped.project_id)} "
        f"after {format_hms(seconds)}"
    )


@main.command()
@click.argument("note")
@click.pass_context
def switch(ctx: click.Context, note: str):
    """Close the running entry and continue on the same project with a new note."""
    engine = open_engine(ctx)
    if engine.running_entry is None:
        console.print("[red]Error: Nothing is running[/red]")
        raise click.Abort()

    entry = engine.switch_task(note)
    if entry is None:
        console.print("[yellow]The new note must be non-empty and different[/yellow]")
        return
    console.print(f"[green]Switched to[/green] {entry.note}")


@main.command()
@click.option("--project", "-p", help="Project to start on when nothing is running")
@click.option("--note", "-n", default=None, help="Note for a start or a switch")
@click.pass_context
def toggle(ctx: click.Context, project: Optional[str], note: Optional[str]):
    """Start, switch or stop, whichever applies."""
    engine = open_engine(ctx)
    if project is not None and engine.running_entry is None:
        engine.select_project(resolve_project(engine, project).id)
    if note is not None:
        engine.set_note(note)

    action = engine.primary_action_label
    entry = engine.primary_action()
    if entry is None:
        if action == "Start":
            _explain_refused_start(engine)
            raise click.Abort()
        console.print("[yellow]Nothing changed[/yellow]")
        return

    verb = {"Start": "Started", "Switch": "Switched", "Stop": "Stopped"}[action]
    console.print(f"[green]{verb}[/green] {engine.project_name(entry.project_id)}")


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show what is being tracked."""
    engine = open_engine(ctx)
    now = engine.clock.now()

    console.print(f"[bold]Data directory:[/bold] {engine.store.data_dir}")
    selected = engine.selected_project
    console.print(f"[bold]Selected project:[/bold] {selected.name if selected else 'None'}")

    running = engine.running_entry
    if running is None:
        console.print("[bold]Running:[/bold] No")
    else:
        console.print(
            f"[bold]Running:[/bold] {engine.project_name(running.project_id)}"
            + (f" - {running.note}" if running.note else "")
        )
        console.print(f"[bold]Session:[/bold] {format_hms(engine.running_seconds(now))}")

    if selected is not None:
        console.print(f"[bold]Today:[/bold] {format_hms(engine.today_seconds(now=now))}")
    console.print(f"[bold]Title:[/bold] {engine.title(now)}")


@main.command()
@click.option("--limit", default=20, help="Number of entries to show")
@click.pass_context
def entries(ctx: click.Context, limit: int):
    """List recent time entries."""
    engine = open_engine(ctx)
    if not engine.entries:
        console.print("[yellow]No entries found[/yellow]")
        return

    now = engine.clock.now()
    recent = sorted(engine.entries, key=lambda e: e.start_at, reverse=True)[:limit]

    table = Table(title="Time Entries")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Project", style="green")
    table.add_column("Task")
    table.add_column("Start", style="magenta")
    table.add_column("Duration", style="blue")
    table.add_column("Ended", style="red")

    for entry in recent:
        if entry.is_running:
            ended = "🟢 Running"
        else:
            ended = entry.ended_reason.value if entry.ended_reason else "-"
        table.add_row(
            entry.id[:8],
            engine.project_name(entry.project_id),
            entry.note or "",
            entry.start_at.strftime("%Y-%m-%d %H:%M"),
            format_hms(int(entry.duration(now))),
            ended,
        )

    console.print(table)


@main.command()
@click.option(
    "--variant",
    "-v",
    type=click.Choice([v.value for v in ReportVariant]),
    default=ReportVariant.PROJECT_DAY_TASK.value,
    show_default=True,
    help="Grouping of the summary",
)
@click.option("--project", "-p", help="Only include this project")
@click.option("--out", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file")
@click.pass_context
def report(ctx: click.Context, variant: str, project: Optional[str], out: Optional[Path]):
    """Print a grouped hours summary as CSV."""
    engine = open_engine(ctx)
    project_id = resolve_project(engine, project).id if project else None
    text = engine.summary_csv(ReportVariant(variant), project_id=project_id)

    if out is None:
        click.echo(text, nl=False)
        return

    try:
        write_csv(out, text)
    except OSError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort() from e
    console.print(f"[green]Wrote report to {out}[/green]")


@main.command()
@click.option("--project", "-p", help="Only export this project")
@click.option("--out", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output file")
@click.pass_context
def export(ctx: click.Context, project: Optional[str], out: Optional[Path]):
    """Export completed entries as CSV (default: timestamped file in the data directory)."""
    engine = open_engine(ctx)
    project_id = resolve_project(engine, project).id if project else None

    if out is None:
        prefix = "time_entries"
        if project_id:
            prefix = f"time_entries-{project_id[:8]}"
        out = export_path(engine.store.data_dir, prefix, engine.clock.now())

    written = engine.export_entries(project_id, out)
    if written is None:
        console.print("[red]Error: Export failed, see the log for details[/red]")
        raise click.Abort()
    console.print(f"[green]Exported entries to {written}[/green]")


def _watch_line(engine: SessionEngine) -> Text:
    selected = engine.selected_project
    running = engine.running_entry
    line = Text()
    line.append(f"⏱  {engine.title()}  ", style="bold")
    line.append(selected.name if selected else "no project", style="green")
    note = running.note if running else engine.current_note
    if note:
        line.append(f"  {note}")
    line.append(f"   [{engine.primary_action_label}: t]  [resume: r]  [quit: q]", style="dim")
    return line


def _read_commands(commands: "queue.SimpleQueue") -> None:
    for line in sys.stdin:
        commands.put(line.strip())
    commands.put("q")


@main.command()
@click.pass_context
def watch(ctx: click.Context):
    """Keep running: live timer, auto-stop on pause signals, resume prompts.

    Type t to start/switch/stop, r to accept a resume prompt, q to quit;
    any other line becomes the note for the next start or switch.
    """
    commands: "queue.SimpleQueue" = queue.SimpleQueue()
    gate = SignalActivityGate(marshal=commands.put)
    prompt = ConsoleResumePrompt(console)
    engine = open_engine(ctx, gate=gate, prompt=prompt)

    if gate.is_supported():
        gate.install()
        console.print(
            f"[dim]pid {os.getpid()}: send SIGUSR1 when the screen locks or the "
            "machine sleeps, SIGUSR2 when it unlocks[/dim]"
        )

    threading.Thread(target=_read_commands, args=(commands,), daemon=True).start()

    try:
        with Live(_watch_line(engine), console=console, auto_refresh=False) as live:
            while True:
                try:
                    command = commands.get(timeout=1.0)
                except queue.Empty:
                    engine.tick()
                    live.update(_watch_line(engine), refresh=True)
                    continue

                if callable(command):
                    command()
                elif command.lower() == "q":
                    break
                elif command.lower() == "r":
                    prompt.accept()
                elif command.lower() == "t":
                    engine.primary_action()
                elif command:
                    engine.set_note(command)
                live.update(_watch_line(engine), refresh=True)
    except KeyboardInterrupt:
        pass
    finally:
        engine.shutdown()
        gate.uninstall()
        console.print("[green]Stopped watching[/green]")


if __name__ == "__main__":
    main()
