"""Module containing the functions for writing projects and reports to files."""

import json
import pathlib
import zipfile
from typing import List, Optional, Sequence

from imusync.core import computations, config, exceptions, models
from imusync.io.readers import readers

REPORT_TITLE = "Movesense IMU Report :)"
DEFAULT_SAMPLE_NAME = "imu_data.csv"
DEFAULT_MEDIA_NAME = "video_from_project.mp4"

logger = config.get_logger()


def bundle_path(output: pathlib.Path) -> pathlib.Path:
    """Appends the '.zip' extension if the output name does not carry it."""
    if output.name.lower().endswith(".zip"):
        return output
    return output.with_name(output.name + ".zip")


def sample_entry_name(time_series: models.TimeSeries) -> str:
    """File name of the sample source inside a bundle; always ends in '.csv'."""
    name = time_series.source_name or DEFAULT_SAMPLE_NAME
    if not name.lower().endswith(".csv"):
        name = pathlib.PurePath(name).stem + ".csv"
    return name


def samples_to_csv(time_series: models.TimeSeries) -> str:
    """Regenerates comma separated text from parsed samples.

    Args:
        time_series: The samples to write.

    Returns:
        A header line with the channel names followed by one line per sample.
    """
    return time_series.samples.write_csv(separator=",")


def export_bundle(
    output: pathlib.Path,
    project: models.Project,
    media: Optional[models.MediaFile] = None,
    time_series: Optional[models.TimeSeries] = None,
) -> pathlib.Path:
    """Write a project archive holding metadata, media and sensor samples.

    The archive contains 'project.json', 'video/<media name>' if media is given,
    and 'data/<sample name>' if samples are loaded. The original sample text is
    stored when it is known, otherwise the text is regenerated from the samples.

    Args:
        output: The archive path. '.zip' is appended when missing.
        project: The project metadata. The export file names are filled in.
        media: The media bytes, if known.
        time_series: The sensor samples, if loaded.

    Returns:
        The path the archive was written to.
    """
    output = bundle_path(output)
    output.parent.mkdir(parents=True, exist_ok=True)

    has_samples = time_series is not None and len(time_series) > 0
    sample_name = sample_entry_name(time_series) if has_samples else None
    media_name = media.name if media is not None else DEFAULT_MEDIA_NAME

    project = project.model_copy(
        update={"video_file_name": media_name, "csv_file_name": sample_name}
    )

    logger.debug("Writing project archive %s.", output)
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(
            readers.PROJECT_ENTRY, json.dumps(project.to_json_dict(), indent=2)
        )

        if media is not None:
            archive.writestr(f"{readers.VIDEO_FOLDER}{media.name}", media.data)
        else:
            logger.warning("No media loaded, exporting without video.")

        if has_samples and time_series is not None and sample_name is not None:
            text = time_series.raw_text
            if text is None:
                text = samples_to_csv(time_series)
            archive.writestr(f"{readers.DATA_FOLDER}{sample_name}", text)

    logger.info("Project exported to: %s", output)
    return output


def build_report(
    time_series: Optional[models.TimeSeries],
    annotations: Sequence[models.Annotation],
    include_summary: bool = False,
) -> str:
    """Build the plain-text report of a recording and its annotated events.

    Args:
        time_series: The sensor samples.
        annotations: The annotated events in display order.
        include_summary: Whether to append mean and peak of every channel.

    Returns:
        The report text, ending with an empty line.

    Raises:
        NoDataError: If no samples are loaded.
    """
    if time_series is None or len(time_series) == 0:
        raise exceptions.NoDataError("No sensor data loaded, cannot create report.")

    lines: List[str] = [
        REPORT_TITLE,
        "",
        "",
        f"Total movement time: {time_series.last_time:.2f} s",
        f"Number of events: {len(annotations)}",
        "",
        "Events:",
    ]

    if not annotations:
        lines.append("  (no events stored)")
    for position, annotation in enumerate(annotations, start=1):
        line = (
            f"  [{position}] {annotation.label} @ "
            f"{computations.format_time(annotation.time)} [{annotation.event_type}]"
        )
        if annotation.notes:
            line += f" - {annotation.notes}"
        lines.append(line)

    if include_summary:
        lines.extend(["", "Channels (mean / peak):"])
        for channel, (mean, peak) in computations.channel_summary(
            time_series
        ).items():
            lines.append(f"  {channel}: {mean:.3f} / {peak:.3f}")

    lines.append("")
    return "\n".join(lines)


def write_report(
    output: pathlib.Path,
    time_series: Optional[models.TimeSeries],
    annotations: Sequence[models.Annotation],
    include_summary: bool = False,
) -> pathlib.Path:
    """Write the plain-text report to a file.

    Args:
        output: Where to save the report.
        time_series: The sensor samples.
        annotations: The annotated events.
        include_summary: Whether to append mean and peak of every channel.

    Returns:
        The path the report was written to.

    Raises:
        NoDataError: If no samples are loaded.
        InvalidFileTypeError: If the output does not end in '.txt'.
    """
    if output.suffix.lower() != ".txt":
        raise exceptions.InvalidFileTypeError(
            f"The extension: {output.suffix} is not supported. "
            "Please save the report as .txt"
        )
    report = build_report(time_series, annotations, include_summary=include_summary)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(report, encoding="utf-8")
    logger.info("Report saved in: %s", output)
    return output
