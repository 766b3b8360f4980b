"""This module contains functions to compute positions and statistics on the data."""

import math
from typing import Dict, Tuple

import polars as pl

from imusync.core import exceptions, models


def format_time(seconds: float) -> str:
    """Format seconds as 'm:ss.xx'.

    Fractions are truncated, not rounded: 65.129 becomes '1:05.12'.

    Args:
        seconds: The time to format.

    Returns:
        The formatted time.
    """
    minutes = math.floor(seconds / 60)
    whole_seconds = math.floor(seconds % 60)
    hundredths = math.floor((seconds % 1) * 100)
    return f"{minutes}:{whole_seconds:02d}.{hundredths:02d}"


def total_video_steps(duration: float, fps: float) -> int:
    """Number of logical frames of a video with the given duration.

    Args:
        duration: The duration of the video in seconds.
        fps: The logical frame rate.

    Returns:
        At least 1 for a video with a positive duration, otherwise 0.
    """
    if duration <= 0:
        return 0
    return max(1, _round_half_up(duration * fps))


def video_step_index(time: float, fps: float, total_steps: int = 0) -> int:
    """Logical frame index of a video time.

    Args:
        time: The video time in seconds.
        fps: The logical frame rate.
        total_steps: The number of logical frames of the video. When 0, the index
            is not capped.

    Returns:
        The non-negative frame index, capped at total_steps when it is known.
    """
    step = max(0, _round_half_up(time * fps))
    if total_steps > 0:
        return min(step, total_steps)
    return step


def snap_to_sample(time_series: models.TimeSeries, time: float) -> float:
    """Finds the time of the first sample at or after the given time.

    Args:
        time_series: The sensor samples.
        time: The requested sensor time in seconds.

    Returns:
        The time of the first sample whose time is >= time, or the time of the
        last sample if no such sample exists.

    Raises:
        NoDataError: If the time series is empty.
    """
    if len(time_series) == 0:
        raise exceptions.NoDataError("No samples loaded to snap to.")

    index = time_series.time.search_sorted(time, side="left")
    index = min(int(index), len(time_series) - 1)
    return float(time_series.time[index])


def channel_summary(time_series: models.TimeSeries) -> Dict[str, Tuple[float, float]]:
    """Mean and peak of every channel.

    Args:
        time_series: The sensor samples.

    Returns:
        A mapping of channel name to (mean, peak).

    Raises:
        NoDataError: If the time series is empty.
    """
    if len(time_series) == 0:
        raise exceptions.NoDataError("No samples loaded to summarize.")

    channels = time_series.channels
    stats = time_series.samples.select(
        [pl.col(channel).mean().alias(f"{channel}_mean") for channel in channels]
        + [pl.col(channel).max().alias(f"{channel}_peak") for channel in channels]
    ).row(0, named=True)

    return {
        channel: (float(stats[f"{channel}_mean"]), float(stats[f"{channel}_peak"]))
        for channel in time_series.channels
    }


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return int(math.floor(value + 0.5))
