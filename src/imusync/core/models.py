"""Internal data model."""

import datetime
import pathlib
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import polars as pl
import pydantic
from pydantic import BaseModel, field_validator, model_validator

from imusync.core import config

logger = config.get_logger()

SENSOR_GROUPS: Dict[str, Tuple[str, str, str]] = {
    "accelerometer": ("ax", "ay", "az"),
    "gyroscope": ("gx", "gy", "gz"),
    "magnetometer": ("mx", "my", "mz"),
}

CHANNELS: Tuple[str, ...] = tuple(
    channel for group in SENSOR_GROUPS.values() for channel in group
)


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string in UTC with millisecond precision."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TimeSeries(BaseModel):
    """Parsed sensor samples and their derived, zero-based time axis.

    Each row of `samples` is one Sample: a mapping from channel name to value.
    The time of row i is always i / sample_rate_hz.
    """

    samples: pl.DataFrame
    time: pl.Series
    sample_rate_hz: float
    source_name: Optional[str] = None
    raw_text: Optional[str] = None

    class Config:
        """Config to allow for polars frames as input."""

        arbitrary_types_allowed = True

    @classmethod
    def from_samples(
        cls,
        samples: pl.DataFrame,
        sample_rate_hz: float,
        source_name: Optional[str] = None,
        raw_text: Optional[str] = None,
    ) -> "TimeSeries":
        """Creates a time series and derives the time axis from the sample count.

        Args:
            samples: One row per sample, one column per channel.
            sample_rate_hz: The sampling frequency of the recording.
            source_name: Name of the file the samples were read from, if any.
            raw_text: The unparsed sample source, kept for bundle export.

        Returns:
            The time series.
        """
        return TimeSeries(
            samples=samples,
            time=sample_times(samples.height, sample_rate_hz),
            sample_rate_hz=sample_rate_hz,
            source_name=source_name,
            raw_text=raw_text,
        )

    @field_validator("sample_rate_hz")
    def validate_sample_rate(cls, v: float) -> float:
        """Validate that the sample rate is positive.

        Args:
            cls: The class.
            v: The sample rate to validate.

        Returns:
            v: The sample rate if it is positive.

        Raises:
            ValueError: If the sample rate is zero or negative.
        """
        if v <= 0:
            raise ValueError("sample_rate_hz must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_time_axis(self) -> "TimeSeries":
        """Validate that there is exactly one time per sample."""
        if self.time.len() != self.samples.height:
            raise ValueError("time and samples must have the same length")
        return self

    def __len__(self) -> int:
        """Number of samples."""
        return self.samples.height

    @property
    def channels(self) -> List[str]:
        """Channel names in source order."""
        return self.samples.columns

    @property
    def last_time(self) -> float:
        """Time of the last sample, or 0 for an empty series."""
        if self.time.is_empty():
            return 0.0
        return float(self.time[-1])

    def sample(self, index: int) -> Dict[str, Any]:
        """Returns the sample at index as a channel to value mapping."""
        return self.samples.row(index, named=True)

    def lazy_frame(self) -> pl.LazyFrame:
        """Converts the series to a LazyFrame with a sorted 'time' column.

        A 'time' channel from the source is replaced by the derived time axis.
        """
        return pl.concat(
            [
                self.samples.lazy().drop("time", strict=False),
                pl.LazyFrame({"time": self.time}).set_sorted("time"),
            ],
            how="horizontal",
        )


def sample_times(n_samples: int, sample_rate_hz: float) -> pl.Series:
    """Time in seconds of each sample position.

    Args:
        n_samples: The number of samples.
        sample_rate_hz: The sampling frequency.

    Returns:
        A float series where element i equals i / sample_rate_hz.
    """
    return pl.Series("time", np.arange(n_samples, dtype=np.float64) / sample_rate_hz)


class SyncState(BaseModel):
    """Offset between the video clock and the sensor clock plus pending marks.

    The sensor time that belongs to a video time is video_time - offset_seconds.
    """

    offset_seconds: float = 0.0
    video_mark: Optional[float] = None
    data_mark: Optional[float] = None


class Annotation(BaseModel):
    """A labelled event at a point of the video timeline."""

    model_config = pydantic.ConfigDict(populate_by_name=True)

    time: float
    label: str
    event_type: str = pydantic.Field("other", alias="eventType")
    notes: str = ""


class Project(BaseModel):
    """The persisted aggregate for one media file.

    Serializes with the camelCase field names used on disk and in bundles.
    video_file_name and csv_file_name are only filled for bundle exports.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    sync_offset: float = pydantic.Field(0.0, alias="syncOffset")
    timestamps: List[Annotation] = pydantic.Field(default_factory=list)
    sample_rate: float = pydantic.Field(alias="sampleRate")
    created_at: str = pydantic.Field(default_factory=utc_timestamp, alias="createdAt")
    notes: str = ""
    video_file_name: Optional[str] = pydantic.Field(None, alias="videoFileName")
    csv_file_name: Optional[str] = pydantic.Field(None, alias="csvFileName")

    @field_validator("sync_offset", mode="before")
    def coerce_sync_offset(cls, v: Any) -> float:
        """Treat a missing or non-numeric offset as no offset."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0.0
        return float(v)

    @field_validator("timestamps", mode="before")
    def coerce_timestamps(cls, v: Any) -> List[Any]:
        """Treat a missing or non-list timestamps entry as empty."""
        if not isinstance(v, list):
            return []
        return v

    @field_validator("notes", mode="before")
    def coerce_notes(cls, v: Any) -> str:
        """Treat a missing notes entry as empty."""
        return v or ""

    def to_json_dict(self) -> Dict[str, Any]:
        """Serializable form with camelCase keys; unset export fields are left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


class MediaIdentity(BaseModel):
    """Name and byte size of a media file.

    This is a cheap fingerprint, not a content hash: two different files with the
    same name and size share an identity.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    name: str
    size: int

    @property
    def key(self) -> str:
        """The persistence key of projects for this media."""
        return f"project_{self.name}_{self.size}"


class MediaFile(BaseModel):
    """Raw bytes of a media file together with its file name."""

    name: str
    data: bytes

    @classmethod
    def from_path(cls, path: Union[pathlib.Path, str]) -> "MediaFile":
        """Reads a media file from disk."""
        path = pathlib.Path(path)
        logger.debug("Reading media file: %s", path)
        return MediaFile(name=path.name, data=path.read_bytes())

    @property
    def identity(self) -> MediaIdentity:
        """The identity derived from name and byte size."""
        return MediaIdentity(name=self.name, size=len(self.data))


class Keypoint(BaseModel):
    """A single body landmark produced by the pose estimator."""

    model_config = pydantic.ConfigDict(frozen=True)

    name: Optional[str] = None
    x: float
    y: float
    score: float = 0.0

    @field_validator("score", mode="before")
    def coerce_score(cls, v: Any) -> float:
        """A missing score counts as zero confidence."""
        return 0.0 if v is None else v


class PoseFrame(BaseModel):
    """What gets drawn for one tick: keypoints, skeleton lines and mean score."""

    keypoints: List[Keypoint]
    lines: List[Tuple[Keypoint, Keypoint]]
    score: float


class WindowView(BaseModel):
    """Visible range of the sensor timeline and the playhead position inside it."""

    model_config = pydantic.ConfigDict(frozen=True)

    adjusted_time: float
    visible_start: float
    visible_end: float
    marker_fraction: float


class TrackingLoopState(BaseModel):
    """Mutable state of the tracking loop."""

    running: bool = False
    frame_index: int = 0
    last_keypoints: Optional[List[Keypoint]] = None

    def reset(self) -> None:
        """Return the frame counter and the cached pose to their initial values."""
        self.frame_index = 0
        self.last_keypoints = None


class ProjectBundle(BaseModel):
    """Contents of an exported project archive.

    The project metadata is always present. Media and sample source are optional:
    a bundle missing either still imports, leaving that part unset.
    """

    project: Project
    media: Optional[MediaFile] = None
    sample_name: Optional[str] = None
    sample_text: Optional[str] = None
