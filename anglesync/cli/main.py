"""Main CLI entry point for anglesync."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from anglesync.config import EngineConfig
from anglesync.engine import SyncEngine
from anglesync.models.state import EndPolicy
from anglesync.persistence.backends import JsonFileKeyValueStore
from anglesync.persistence.store import SyncStateStore
from anglesync.session import Session, SourceEntry, read_capture_metadata, sidecar_for

app = typer.Typer(
    name="anglesync",
    help="Multi-angle sync - align camera streams on operator marks",
    add_completion=False,
)
console = Console()

_OFFSET_STYLES = {
    "in_sync": "green",
    "ahead": "yellow",
    "behind": "blue",
    "unknown": "dim",
}


def configure_logging(verbose: bool = False) -> None:
    """Route structlog output through a level filter."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
    )


@app.callback()
def main(
    ctx: typer.Context,
    state_file: Optional[Path] = typer.Option(
        None,
        "--state-file", "-s",
        help="JSON file holding the saved sync state",
    ),
    session_file: Optional[Path] = typer.Option(
        None,
        "--session-file",
        help="JSON file listing the session's stream sources",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Align several camera streams on manually placed marks."""
    configure_logging(verbose)

    config = EngineConfig.from_env()
    updates = {}
    if state_file is not None:
        updates["state_file"] = state_file
    if session_file is not None:
        updates["session_file"] = session_file
    ctx.obj = config.model_copy(update=updates)


@contextmanager
def _engine(ctx: typer.Context) -> Iterator[tuple[Session, SyncEngine]]:
    """Rebuild the engine from the session and store, persist playheads after."""
    config: EngineConfig = ctx.obj
    try:
        session = Session.load(config.session_file)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    players = session.build_players()
    store = SyncStateStore(
        JsonFileKeyValueStore(config.state_file),
        autosave_key=config.autosave_key,
        manual_key=config.manual_key,
    )
    engine = SyncEngine(players, store=store, config=config)
    try:
        yield session, engine
    finally:
        engine.close()
        session.capture_positions(players)
        session.save(config.session_file)


def _index(camera: int) -> int:
    # Cameras are numbered from 1 on the command line
    return camera - 1


def _check_camera(engine: SyncEngine, camera: int) -> None:
    if not 1 <= camera <= engine.stream_count:
        console.print(f"[red]No camera {camera} (session has {engine.stream_count})[/red]")
        raise typer.Exit(1)


def _time_label(seconds: Optional[float]) -> str:
    return f"{seconds:.2f}s" if isinstance(seconds, (int, float)) else "—"


def _display_status(session: Session, engine: SyncEngine) -> None:
    table = Table(title="Cameras")
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Current", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Mark", justify="right")
    table.add_column("Offset vs reference", justify="right")

    offsets = engine.offsets()
    for index, (source, player) in enumerate(zip(session.sources, engine.players)):
        name = source.path
        if index == engine.reference_index:
            name += " [bold]• Reference[/bold]"
        offset = offsets[index]
        table.add_row(
            str(index + 1),
            name,
            _time_label(player.current_time),
            _time_label(engine.durations[index] or None),
            _time_label(engine.marks[index]),
            f"[{_OFFSET_STYLES[offset.status.value]}]{offset.label}[/]",
        )

    console.print(table)
    console.print(f"End policy: [cyan]{engine.end_policy.value}[/cyan]")

    window = engine.overlap()
    if window is not None:
        console.print(f"Common window: {_time_label(window.overlap)}")

    console.print(engine.status_line())


@app.command()
def add(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Video file of the new camera"),
    duration: Optional[float] = typer.Option(
        None,
        "--duration", "-d",
        min=0.0,
        help="Length in seconds (read from the capture sidecar when omitted)",
    ),
):
    """Add a camera to the session."""
    if duration is None:
        sidecar = sidecar_for(source)
        if sidecar.exists():
            duration = read_capture_metadata(sidecar)

    with _engine(ctx) as (session, engine):
        session.sources.append(SourceEntry(path=str(source), duration=duration or 0.0))
        players = session.build_players()
        engine.set_players(players)

    console.print(f"[green]Added camera {len(session.sources)}: {source}[/green]")
    if not duration:
        console.print("[yellow]Duration unknown; overlap selection ignores this camera[/yellow]")


@app.command()
def status(ctx: typer.Context):
    """Show marks, offsets and the best reference."""
    with _engine(ctx) as (session, engine):
        _display_status(session, engine)


@app.command()
def seek(
    ctx: typer.Context,
    camera: int = typer.Argument(..., help="Camera number"),
    seconds: float = typer.Argument(..., help="New playhead position"),
):
    """Move a camera's playhead."""
    with _engine(ctx) as (session, engine):
        _check_camera(engine, camera)
        engine.players[_index(camera)].current_time = seconds


@app.command()
def mark(
    ctx: typer.Context,
    camera: int = typer.Argument(..., help="Camera number"),
    at: Optional[float] = typer.Option(
        None,
        "--at", "-t",
        help="Mark this instant instead of the current playhead",
    ),
):
    """Mark a camera at its playhead."""
    with _engine(ctx) as (session, engine):
        _check_camera(engine, camera)
        if at is None:
            engine.mark(_index(camera))
        else:
            engine.set_mark(_index(camera), at)
        console.print(f"Camera {camera} marked at {_time_label(engine.marks[_index(camera)])}")


@app.command()
def nudge(
    ctx: typer.Context,
    camera: int = typer.Argument(..., help="Camera number"),
    delta: Optional[float] = typer.Option(
        None,
        "--delta", "-d",
        help="Seconds to move (default: the configured nudge step)",
    ),
):
    """Move a camera's playhead and its mark by a small step."""
    with _engine(ctx) as (session, engine):
        _check_camera(engine, camera)
        engine.nudge(_index(camera), delta)
        console.print(f"Camera {camera} mark: {_time_label(engine.marks[_index(camera)])}")


@app.command()
def reference(
    ctx: typer.Context,
    camera: int = typer.Argument(..., help="Camera number"),
):
    """Use a camera as the alignment reference."""
    with _engine(ctx) as (session, engine):
        _check_camera(engine, camera)
        engine.set_reference(_index(camera))
        console.print(engine.status_line())


@app.command()
def sync(ctx: typer.Context):
    """Align every marked camera on the best reference."""
    with _engine(ctx) as (session, engine):
        plan = engine.start_alignment()
        if plan is None:
            console.print(f"[yellow]{engine.status}[/yellow]")
            console.print(engine.sync_tip)
            raise typer.Exit(1)

        if plan.reference_changed:
            console.print(
                f"Reference moved from camera {plan.previous_reference_index + 1} "
                f"to camera {plan.reference_index + 1}"
            )
        for seek_instruction in plan.seeks:
            console.print(
                f"  Camera {seek_instruction.stream_index + 1} -> "
                f"{_time_label(seek_instruction.target)}"
            )
        console.print(f"[green]{engine.status}[/green]")


@app.command()
def policy(
    ctx: typer.Context,
    end_policy: EndPolicy = typer.Argument(..., help="What to do when a camera ends"),
):
    """Set the end-of-clip policy."""
    with _engine(ctx) as (session, engine):
        engine.set_end_policy(end_policy)
        console.print(f"End policy: [cyan]{engine.end_policy.value}[/cyan]")


@app.command()
def save(ctx: typer.Context):
    """Save the sync state so it is restored next time."""
    with _engine(ctx) as (session, engine):
        if not engine.save():
            console.print(f"[red]{engine.status}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]{engine.status}[/green]")


@app.command()
def clear(ctx: typer.Context):
    """Remove the saved sync state."""
    with _engine(ctx) as (session, engine):
        engine.clear_saved()
        console.print(engine.status)


@app.command()
def reset(ctx: typer.Context):
    """Rewind every camera and clear all marks."""
    with _engine(ctx) as (session, engine):
        engine.reset()
        console.print("All cameras rewound, marks cleared")


@app.command()
def validate(ctx: typer.Context):
    """Print playhead, duration and mark of every camera."""
    with _engine(ctx) as (session, engine):
        rows = engine.validate_timestamps()

    table = Table(title="Timestamps")
    for column in ("index", "current", "duration", "mark"):
        table.add_column(column, justify="right")
    for row in rows:
        table.add_row(*("—" if row[k] is None else str(row[k]) for k in ("index", "current", "duration", "mark")))
    console.print(table)


@app.command()
def simulate(
    ctx: typer.Context,
    seconds: float = typer.Argument(..., help="How long to play the group"),
    step: float = typer.Option(0.1, "--step", help="Simulation tick in seconds"),
):
    """
    Play the whole group for a while under the current end policy.

    Playheads are kept, so a simulation continues where the last one left
    off.
    """
    if step <= 0:
        console.print("[red]--step must be positive[/red]")
        raise typer.Exit(1)

    with _engine(ctx) as (session, engine):
        events: list[tuple[float, int]] = []
        clock = [0.0]
        subscriptions = [
            player.ended.subscribe(lambda i=index: events.append((clock[0], i)))
            for index, player in enumerate(engine.players)
        ]

        engine.play_all()
        while clock[0] < seconds:
            tick = min(step, seconds - clock[0])
            clock[0] += tick
            for player in engine.players:
                player.advance(tick)
        engine.pause_all()

        for subscription in subscriptions:
            subscription.unsubscribe()

        console.print(Panel.fit(
            f"Played {seconds:.2f}s with policy [cyan]{engine.end_policy.value}[/cyan]",
            border_style="blue",
        ))
        for at, index in events:
            console.print(f"  {_time_label(at)}: camera {index + 1} ended")

        _display_status(session, engine)


@app.command()
def version():
    """Show version information."""
    from anglesync import __version__

    console.print(f"anglesync v{__version__}")


if __name__ == "__main__":
    app()
