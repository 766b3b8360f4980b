"""CLI for imusync."""

import logging
import pathlib
from typing import Optional

import typer
from rich import console, table

from imusync.core import computations, config, exceptions, models, orchestrator
from imusync.io.readers import readers
from imusync.io.storage import storage as kv_storage
from imusync.processing import synchronizer as sync

logger = config.get_logger()
app = typer.Typer(
    help="Synchronize sensor recordings with video and manage annotated projects.",
)


def version_check(version: bool) -> None:
    """Print the current version of imusync and exit."""
    if version:
        typer.echo(f"imusync version: {config.get_version()}")
        raise typer.Exit()


def _session() -> orchestrator.Session:
    """A session that keeps projects in memory instead of the user's storage."""
    return orchestrator.Session(storage=kv_storage.MemoryStorage())


@app.callback()
def main(
    verbosity: bool = typer.Option(
        False,
        "-v",
        "--verbosity",
        help="Determines the level of verbosity. Use -v for DEBUG. "
        "Defaults to INFO if not included.",
    ),
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        help="Print the current version of imusync and exit.",
        is_eager=True,
        callback=version_check,
    ),
) -> None:
    """Synchronize sensor recordings with video."""
    log_level = logging.INFO
    if verbosity:
        log_level = logging.DEBUG
    logger.setLevel(log_level)


@app.command()
def report(
    bundle: pathlib.Path = typer.Argument(
        ..., help="Path to an exported project archive.", exists=True
    ),
    output: Optional[pathlib.Path] = typer.Option(
        None,
        "-o",
        "--output",
        help="Path of the .txt report. Defaults to the archive name with a "
        "'_report.txt' suffix.",
    ),
    summary: bool = typer.Option(
        False,
        "-s",
        "--summary",
        help="Append the mean and peak of every sensor channel.",
    ),
) -> None:
    """Write the text report of a project archive."""
    if output is None:
        output = bundle.with_name(f"{bundle.stem}_report.txt")

    session = _session()
    try:
        session.import_project(bundle)
        session.generate_report(output, include_summary=summary)
    except (
        exceptions.FormatError,
        exceptions.NoDataError,
        exceptions.InvalidFileTypeError,
    ) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Report saved in: {output}")


@app.command()
def export(
    output: pathlib.Path = typer.Option(
        ...,
        "-o",
        "--output",
        help="Path of the project archive. '.zip' is appended when missing.",
    ),
    video: Optional[pathlib.Path] = typer.Option(
        None, "--video", help="Path to the video file.", exists=True
    ),
    csv: Optional[pathlib.Path] = typer.Option(
        None, "--csv", help="Path to the sensor recording.", exists=True
    ),
    offset: float = typer.Option(
        0.0,
        "--offset",
        help="Sync offset in seconds: video time minus sensor time of the same "
        "event.",
    ),
) -> None:
    """Bundle a video and a sensor recording into a project archive."""
    if video is None and csv is None:
        typer.echo("Error: provide --video, --csv or both.", err=True)
        raise typer.Exit(1)

    session = _session()
    if video is not None:
        session.load_media(models.MediaFile.from_path(video))
    if csv is not None:
        session.load_samples(csv)
    session.synchronizer.restore(offset)

    written = session.export_bundle(output)
    typer.echo(f"Project exported to: {written}")


@app.command()
def inspect(
    bundle: pathlib.Path = typer.Argument(
        ..., help="Path to an exported project archive.", exists=True
    ),
) -> None:
    """Show the sync offset, notes and annotations of a project archive."""
    try:
        contents = readers.read_bundle(bundle)
    except exceptions.FormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    project = contents.project
    out = console.Console()
    out.print(f"Offset: {project.sync_offset:.3f} s")
    out.print(f"Sample rate: {project.sample_rate:g} Hz")
    out.print(f"Created: {project.created_at}")
    out.print(f"Video: {contents.media.name if contents.media else '-'}")
    out.print(f"Sensor data: {contents.sample_name or '-'}")
    if project.notes:
        out.print(f"Notes: {project.notes}")

    events = table.Table(title=f"Events ({len(project.timestamps)})")
    events.add_column("#", justify="right")
    events.add_column("Time")
    events.add_column("Label")
    events.add_column("Type")
    events.add_column("Notes")
    for position, annotation in enumerate(project.timestamps, start=1):
        events.add_row(
            str(position),
            computations.format_time(annotation.time),
            annotation.label,
            annotation.event_type,
            annotation.notes,
        )
    out.print(events)


@app.command(name="sync")
def sync_offset(
    video_mark: float = typer.Argument(
        ..., help="Video time of the sync event in seconds."
    ),
    data_mark: float = typer.Argument(
        ..., help="Sensor time of the same event in seconds."
    ),
) -> None:
    """Print the offset that aligns a video mark with a sensor mark."""
    synchronizer = sync.StreamSynchronizer()
    synchronizer.mark_video(video_mark)
    synchronizer.mark_data(data_mark)
    typer.echo(f"{synchronizer.apply():.3f}")


if __name__ == "__main__":
    app()
