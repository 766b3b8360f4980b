"""Fixtures used by pytest."""

import pathlib
from typing import List

import fakes
import numpy as np
import polars as pl
import pytest

from imusync.core import config, models
from imusync.io.storage import storage
from imusync.processing import series_store, windows
from imusync.processing import synchronizer as sync

SAMPLE_RATE = 104.0


@pytest.fixture
def sample_csv_text() -> str:
    """Three seconds of sensor samples as comma separated text."""
    n_samples = int(3 * SAMPLE_RATE)
    lines = ["ax,ay,az,gx,gy,gz,mx,my,mz"]
    for i in range(n_samples):
        lines.append(",".join(str(float(i % 10 + channel)) for channel in range(9)))
    return "\n".join(lines) + "\n"


@pytest.fixture
def sample_csv_file(tmp_path: pathlib.Path, sample_csv_text: str) -> pathlib.Path:
    """Sensor samples written to a .csv file."""
    path = tmp_path / "recording.csv"
    path.write_text(sample_csv_text)
    return path


@pytest.fixture
def media_file() -> models.MediaFile:
    """A small media file."""
    return models.MediaFile(name="walk.mp4", data=b"\x00\x01\x02" * 100)


@pytest.fixture
def time_series() -> models.TimeSeries:
    """Ten seconds of samples on three channels."""
    n_samples = int(10 * SAMPLE_RATE)
    samples = pl.DataFrame(
        {
            "ax": np.linspace(-1.0, 1.0, n_samples),
            "ay": np.zeros(n_samples),
            "az": np.ones(n_samples),
        }
    )
    return models.TimeSeries.from_samples(samples, SAMPLE_RATE, source_name="imu.csv")


@pytest.fixture
def loaded_store(time_series: models.TimeSeries) -> series_store.TimeSeriesStore:
    """A store holding the ten second recording."""
    store = series_store.TimeSeriesStore()
    store.replace(time_series)
    return store


@pytest.fixture
def view_sink() -> fakes.RecordingViewSink:
    """A view sink recording every window."""
    return fakes.RecordingViewSink()


@pytest.fixture
def windowed_view(
    loaded_store: series_store.TimeSeriesStore, view_sink: fakes.RecordingViewSink
) -> windows.WindowedView:
    """A windowed view over the loaded recording with offset 0."""
    return windows.WindowedView(loaded_store, sync.StreamSynchronizer(), view_sink)


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> config.Settings:
    """Default settings that persist into a temporary directory."""
    return config.Settings(storage_dir=tmp_path / "projects")


@pytest.fixture
def memory_storage() -> storage.MemoryStorage:
    """Storage kept in memory."""
    return storage.MemoryStorage()


@pytest.fixture
def keypoints() -> List[models.Keypoint]:
    """A confident pose of seventeen keypoints."""
    return fakes.make_keypoints()


@pytest.fixture
def player() -> fakes.FakePlayer:
    """A ready video player at time 0."""
    return fakes.FakePlayer()


@pytest.fixture
def estimator() -> fakes.FakeEstimator:
    """An estimator that always returns a confident pose."""
    return fakes.FakeEstimator()


@pytest.fixture
def pose_sink() -> fakes.RecordingPoseSink:
    """A pose sink recording every drawn pose."""
    return fakes.RecordingPoseSink()
