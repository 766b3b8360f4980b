"""Compute the visible window of the sensor timeline for a video time."""

from typing import Optional, Protocol

import polars as pl

from imusync.core import models
from imusync.processing import series_store
from imusync.processing import synchronizer as sync

DEFAULT_WINDOW_SIZE = 5.0


def compute_window(
    video_time: float,
    offset: float,
    window_size: float = DEFAULT_WINDOW_SIZE,
) -> models.WindowView:
    """Window of fixed duration centered on the adjusted time.

    The window start is clamped at 0, the end is not clamped to the last sample.
    The marker fraction is the position of the adjusted time inside the window,
    clamped to [0, 1], and is 0 for a window without extent.

    Args:
        video_time: The current video time in seconds.
        offset: The sync offset in seconds.
        window_size: The duration of the window in seconds.

    Returns:
        The visible range and the marker position.
    """
    adjusted_time = video_time - offset
    visible_start = max(0.0, adjusted_time - window_size / 2)
    visible_end = adjusted_time + window_size / 2

    extent = visible_end - visible_start
    if extent <= 0:
        marker_fraction = 0.0
    else:
        marker_fraction = min(max((adjusted_time - visible_start) / extent, 0.0), 1.0)

    return models.WindowView(
        adjusted_time=adjusted_time,
        visible_start=visible_start,
        visible_end=visible_end,
        marker_fraction=marker_fraction,
    )


def compute_full_view(
    time_series: models.TimeSeries,
    window_size: float = DEFAULT_WINDOW_SIZE,
) -> models.WindowView:
    """View spanning the whole recording, used right after the samples are loaded.

    Args:
        time_series: The sensor samples.
        window_size: The minimum duration of the view in seconds.

    Returns:
        A view from 0 to the larger of window_size and the last sample time, with
        the marker at the start.
    """
    return models.WindowView(
        adjusted_time=0.0,
        visible_start=0.0,
        visible_end=max(window_size, time_series.last_time),
        marker_fraction=0.0,
    )


def visible_samples(
    time_series: models.TimeSeries, view: models.WindowView
) -> pl.DataFrame:
    """Samples that fall inside the view, with their 'time' column.

    Args:
        time_series: The sensor samples.
        view: The window to cut out.

    Returns:
        The rows whose time lies within [visible_start, visible_end].
    """
    return (
        time_series.lazy_frame()
        .filter(pl.col("time").is_between(view.visible_start, view.visible_end))
        .collect()
    )


class ViewSink(Protocol):
    """Receives the viewport and the samples to plot."""

    def show_window(self, view: models.WindowView, samples: pl.DataFrame) -> None:
        """Display the given part of the sensor timeline."""
        ...


class WindowedView:
    """Keeps a view sink in step with the video clock and the sync offset."""

    def __init__(
        self,
        store: series_store.TimeSeriesStore,
        synchronizer: sync.StreamSynchronizer,
        sink: Optional[ViewSink] = None,
        window_size: float = DEFAULT_WINDOW_SIZE,
    ) -> None:
        """Initialize the view.

        Args:
            store: Source of the sensor samples.
            synchronizer: Source of the current offset.
            sink: Where views are sent. Views are only computed when omitted.
            window_size: The duration of the window in seconds.
        """
        self.store = store
        self.synchronizer = synchronizer
        self.sink = sink
        self.window_size = window_size
        self.last_view: Optional[models.WindowView] = None

    @property
    def has_data(self) -> bool:
        """Whether there is anything to show."""
        return self.store.has_data

    def update(self, video_time: float) -> Optional[models.WindowView]:
        """Show the window around the sensor time matching video_time.

        Args:
            video_time: The current video time in seconds.

        Returns:
            The computed view, or None if no samples are loaded.
        """
        if not self.store.has_data:
            return None

        view = compute_window(video_time, self.synchronizer.offset, self.window_size)
        if self.sink is not None:
            self.sink.show_window(view, visible_samples(self.store.series, view))
        self.last_view = view
        return view

    def show_full(self) -> Optional[models.WindowView]:
        """Show the whole recording, as done right after loading it."""
        if not self.store.has_data:
            return None

        series = self.store.series
        view = compute_full_view(series, self.window_size)
        if self.sink is not None:
            self.sink.show_window(view, series.lazy_frame().collect())
        self.last_view = view
        return view
