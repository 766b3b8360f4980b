"""Tests for the windowed view of the sensor timeline."""

import fakes
import polars as pl
import pytest

from imusync.core import models
from imusync.processing import series_store, windows
from imusync.processing import synchronizer as sync


def test_compute_window_centered() -> None:
    """Test a window centered on the adjusted time."""
    view = windows.compute_window(video_time=10.0, offset=4.2, window_size=5.0)

    assert view.adjusted_time == pytest.approx(5.8)
    assert view.visible_start == pytest.approx(3.3)
    assert view.visible_end == pytest.approx(8.3)
    assert view.marker_fraction == pytest.approx(0.5)


def test_compute_window_clamped_start() -> None:
    """Test that the window start is clamped at 0 and the marker moves left."""
    view = windows.compute_window(video_time=1.0, offset=0.0, window_size=5.0)

    assert view.visible_start == 0.0
    assert view.visible_end == pytest.approx(3.5)
    assert view.marker_fraction == pytest.approx(1.0 / 3.5)


def test_compute_window_negative_adjusted_time() -> None:
    """Test a video time before the sensor recording starts."""
    view = windows.compute_window(video_time=0.0, offset=10.0, window_size=5.0)

    assert view.visible_start == 0.0
    assert view.visible_end == pytest.approx(-7.5)
    assert view.marker_fraction == 0.0


@pytest.mark.parametrize("window_size", [0.0, -2.0])
def test_compute_window_degenerate(window_size: float) -> None:
    """Test that a window without extent does not divide by zero."""
    view = windows.compute_window(
        video_time=3.0, offset=0.0, window_size=window_size
    )

    assert view.marker_fraction == 0.0


def test_compute_window_idempotent() -> None:
    """Test that identical inputs give identical views."""
    first = windows.compute_window(12.0, 1.0, 5.0)
    second = windows.compute_window(12.0, 1.0, 5.0)

    assert first == second


def test_compute_full_view(time_series: models.TimeSeries) -> None:
    """Test the initial view spanning the whole recording."""
    view = windows.compute_full_view(time_series, window_size=5.0)

    assert view.visible_start == 0.0
    assert view.visible_end == pytest.approx(time_series.last_time)
    assert view.marker_fraction == 0.0


def test_compute_full_view_short_recording() -> None:
    """Test that a recording shorter than the window shows the whole window."""
    series = models.TimeSeries.from_samples(
        pl.DataFrame({"ax": [0.0, 1.0]}), sample_rate_hz=104.0
    )

    view = windows.compute_full_view(series, window_size=5.0)

    assert view.visible_end == 5.0


def test_visible_samples(time_series: models.TimeSeries) -> None:
    """Test that only samples inside the window are returned."""
    view = windows.compute_window(video_time=5.0, offset=0.0, window_size=2.0)

    visible = windows.visible_samples(time_series, view)

    assert visible["time"].min() >= 4.0
    assert visible["time"].max() <= 6.0
    assert visible.height == pytest.approx(2 * 104, abs=1)
    assert set(visible.columns) == {"ax", "ay", "az", "time"}


def test_windowed_view_update(
    windowed_view: windows.WindowedView, view_sink: fakes.RecordingViewSink
) -> None:
    """Test that updates use the synchronizer offset and reach the sink."""
    windowed_view.synchronizer.restore(2.0)

    view = windowed_view.update(6.0)

    assert view is not None
    assert view.adjusted_time == 4.0
    assert windowed_view.last_view == view
    assert len(view_sink.views) == 1
    assert view_sink.views[0][0] == view


def test_windowed_view_without_data(view_sink: fakes.RecordingViewSink) -> None:
    """Test that nothing is shown before samples are loaded."""
    view = windows.WindowedView(
        series_store.TimeSeriesStore(), sync.StreamSynchronizer(), view_sink
    )

    assert view.update(1.0) is None
    assert view.show_full() is None
    assert view_sink.views == []


def test_windowed_view_show_full(
    windowed_view: windows.WindowedView,
    view_sink: fakes.RecordingViewSink,
    time_series: models.TimeSeries,
) -> None:
    """Test that the full view sends every sample."""
    view = windowed_view.show_full()

    assert view is not None
    assert view.visible_start == 0.0
    assert view_sink.views[0][1].height == len(time_series)
