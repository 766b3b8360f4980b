"""Functions to read sensor recordings and project bundles."""

import json
import pathlib
import re
import zipfile
from typing import Dict, List, Optional, Union

import polars as pl

from imusync.core import config, exceptions, models
from imusync.processing import project_store

logger = config.get_logger()

PROJECT_ENTRY = "project.json"
VIDEO_FOLDER = "video/"
DATA_FOLDER = "data/"


def parse_samples(
    text: str,
    sample_rate_hz: float,
    source_name: Optional[str] = None,
) -> models.TimeSeries:
    """Parse comma separated sensor samples.

    The first non-blank line holds the channel names. Every following non-blank
    line is one sample. A field that is missing or not a finite number becomes 0;
    the row itself is always kept.

    Args:
        text: The raw delimited text.
        sample_rate_hz: The sampling frequency used to derive sample times.
        source_name: Name of the file the text was read from.

    Returns:
        The time series. Without any non-blank line it has no samples and no
        channels.
    """
    lines = [line for line in re.split(r"\r?\n", text) if line.strip()]
    if not lines:
        logger.warning("Sample source %s contains no data.", source_name or "")
        return models.TimeSeries.from_samples(
            pl.DataFrame(), sample_rate_hz, source_name=source_name, raw_text=text
        )

    headers = [header.strip() for header in lines[0].split(",")]
    rows = [line.split(",") for line in lines[1:]]

    raw_columns: Dict[str, List[Optional[str]]] = {}
    for position, header in enumerate(headers):
        raw_columns[header] = [
            row[position] if position < len(row) else None for row in rows
        ]

    samples = pl.DataFrame(
        raw_columns, schema={header: pl.String for header in raw_columns}
    ).select(
        [_to_finite_float(pl.col(header)).alias(header) for header in raw_columns]
    )

    return models.TimeSeries.from_samples(
        samples, sample_rate_hz, source_name=source_name, raw_text=text
    )


def _to_finite_float(column: pl.Expr) -> pl.Expr:
    """Cast text to float, replacing unparseable and non-finite values with 0."""
    value = column.str.strip_chars().cast(pl.Float64, strict=False)
    return pl.when(value.is_finite()).then(value).otherwise(0.0)


def read_samples(
    file_name: Union[pathlib.Path, str], sample_rate_hz: float
) -> models.TimeSeries:
    """Read a sensor recording from a delimited text file.

    Args:
        file_name: The file to read.
        sample_rate_hz: The sampling frequency of the recording.

    Returns:
        The time series.

    Raises:
        IOError: If the file cannot be read.
    """
    path = pathlib.Path(file_name)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise IOError(f"Error reading file: {e}.") from e
    return parse_samples(text, sample_rate_hz, source_name=path.name)


def read_bundle(
    file_name: Union[pathlib.Path, str], default_sample_rate: float = 104.0
) -> models.ProjectBundle:
    """Read an exported project archive.

    The archive holds 'project.json', one media file under 'video/' and at most one
    '.csv' file under 'data/'. When a folder holds several candidates the first
    one in archive order is used.

    Args:
        file_name: The archive to read.
        default_sample_rate: Sample rate assumed if the metadata has none.

    Returns:
        The bundle contents. Media and samples are None when absent.

    Raises:
        FormatError: If the file is not an archive or the metadata entry is missing
            or invalid.
    """
    path = pathlib.Path(file_name)
    try:
        archive = zipfile.ZipFile(path, "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise exceptions.FormatError(f"Could not open project archive {path}: {e}")

    with archive:
        names = archive.namelist()
        if PROJECT_ENTRY not in names:
            raise exceptions.FormatError(f"{PROJECT_ENTRY} not found in {path.name}.")

        project = _decode_project(archive.read(PROJECT_ENTRY), default_sample_rate)

        media = None
        video_entry = _first_entry(names, VIDEO_FOLDER)
        if video_entry is not None:
            media = models.MediaFile(
                name=video_entry.rsplit("/", 1)[-1], data=archive.read(video_entry)
            )
        else:
            logger.warning("No video found in %s.", path.name)

        sample_name = None
        sample_text = None
        data_entry = _first_entry(names, DATA_FOLDER, suffix=".csv")
        if data_entry is not None:
            sample_name = data_entry.rsplit("/", 1)[-1]
            raw_samples = archive.read(data_entry)
            try:
                sample_text = raw_samples.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.warning("Sensor data in %s is not valid UTF-8: %s", path.name, e)
                sample_text = raw_samples.decode("utf-8", errors="replace")
        else:
            logger.warning("No sensor data found in %s.", path.name)

    return models.ProjectBundle(
        project=project,
        media=media,
        sample_name=sample_name,
        sample_text=sample_text,
    )


def read_project_json(
    file_name: Union[pathlib.Path, str], default_sample_rate: float = 104.0
) -> models.Project:
    """Read a project saved as a bare JSON file, without media or samples.

    Args:
        file_name: The JSON file to read.
        default_sample_rate: Sample rate assumed if the metadata has none.

    Returns:
        The project.

    Raises:
        FormatError: If the file does not hold a valid project.
    """
    path = pathlib.Path(file_name)
    return _decode_project(path.read_bytes(), default_sample_rate)


def _decode_project(raw: bytes, default_sample_rate: float) -> models.Project:
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise exceptions.FormatError(f"Could not parse project metadata: {e}") from e
    return project_store.parse_project(data, default_sample_rate=default_sample_rate)


def _first_entry(
    names: List[str], folder: str, suffix: Optional[str] = None
) -> Optional[str]:
    """First file directly or indirectly inside folder, optionally by suffix."""
    for name in names:
        if not name.startswith(folder) or name.endswith("/"):
            continue
        if suffix is not None and not name.lower().endswith(suffix):
            continue
        return name
    return None
