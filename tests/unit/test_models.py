"""Testing the data models."""

import numpy as np
import polars as pl
import pydantic
import pytest
from polars import testing

from imusync.core import models


def test_time_series_time_axis() -> None:
    """Test that sample times are derived from position and sample rate."""
    samples = pl.DataFrame({"ax": [1.0, 2.0, 3.0, 4.0]})

    series = models.TimeSeries.from_samples(samples, sample_rate_hz=4.0)

    assert len(series) == 4
    assert series.channels == ["ax"]
    assert series.time.to_list() == [0.0, 0.25, 0.5, 0.75]
    assert series.last_time == 0.75


def test_time_series_mismatched_time() -> None:
    """Test the error when time and samples differ in length."""
    with pytest.raises(pydantic.ValidationError):
        models.TimeSeries(
            samples=pl.DataFrame({"ax": [1.0, 2.0]}),
            time=pl.Series("time", [0.0]),
            sample_rate_hz=104.0,
        )


def test_time_series_invalid_rate() -> None:
    """Test the error when the sample rate is not positive."""
    with pytest.raises(pydantic.ValidationError):
        models.TimeSeries.from_samples(pl.DataFrame({"ax": [1.0]}), sample_rate_hz=0)


def test_time_series_empty() -> None:
    """Test an empty series has no samples and ends at time 0."""
    series = models.TimeSeries.from_samples(pl.DataFrame(), sample_rate_hz=104.0)

    assert len(series) == 0
    assert series.last_time == 0.0


def test_time_series_lazy_frame_replaces_source_time() -> None:
    """Test that a 'time' channel of the source is replaced by the derived axis."""
    samples = pl.DataFrame({"time": [100.0, 200.0], "ax": [1.0, 2.0]})
    series = models.TimeSeries.from_samples(samples, sample_rate_hz=2.0)

    frame = series.lazy_frame().collect()

    assert frame.columns == ["ax", "time"]
    testing.assert_series_equal(frame["time"], pl.Series("time", [0.0, 0.5]))


def test_sample_times() -> None:
    """Test that element i equals i / rate."""
    times = models.sample_times(5, 104.0)

    assert np.allclose(times.to_numpy(), np.arange(5) / 104.0)


def test_annotation_aliases() -> None:
    """Test that annotations accept and emit the camelCase event type."""
    annotation = models.Annotation.model_validate(
        {"time": 1.5, "label": "jump", "eventType": "jump"}
    )

    assert annotation.event_type == "jump"
    assert annotation.notes == ""
    assert annotation.model_dump(by_alias=True)["eventType"] == "jump"


def test_project_defaults_and_coercion() -> None:
    """Test that missing or malformed optional fields fall back to defaults."""
    project = models.Project.model_validate(
        {"sampleRate": 104, "syncOffset": "abc", "timestamps": None, "notes": None}
    )

    assert project.sync_offset == 0.0
    assert project.timestamps == []
    assert project.notes == ""
    assert project.created_at.endswith("Z")


def test_project_json_dict_leaves_out_export_fields() -> None:
    """Test that the export-only fields are not serialized when unset."""
    project = models.Project(sample_rate=104.0, sync_offset=1.25)

    data = project.to_json_dict()

    assert data["syncOffset"] == 1.25
    assert data["sampleRate"] == 104.0
    assert "videoFileName" not in data
    assert "csvFileName" not in data


def test_media_identity_key() -> None:
    """Test the persistence key derived from media name and byte size."""
    media = models.MediaFile(name="walk.mp4", data=b"12345")

    assert media.identity.key == "project_walk.mp4_5"


def test_media_identity_collision() -> None:
    """Test that different media with equal name and size share an identity."""
    first = models.MediaFile(name="a.mp4", data=b"aaaa")
    second = models.MediaFile(name="a.mp4", data=b"bbbb")

    assert first.identity == second.identity


def test_keypoint_missing_score() -> None:
    """Test that a keypoint without score has zero confidence."""
    keypoint = models.Keypoint(x=1.0, y=2.0, score=None)

    assert keypoint.score == 0.0


def test_tracking_state_reset() -> None:
    """Test that reset clears the counter and the cached pose but not running."""
    state = models.TrackingLoopState(
        running=True,
        frame_index=7,
        last_keypoints=[models.Keypoint(x=0, y=0, score=1)],
    )

    state.reset()

    assert state.running
    assert state.frame_index == 0
    assert state.last_keypoints is None
