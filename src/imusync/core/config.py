"""Configuration module for imusync."""

import logging
import pathlib
from importlib import metadata

import pydantic


def get_version() -> str:
    """Return imusync version."""
    try:
        return metadata.version("imusync")
    except metadata.PackageNotFoundError:
        return "Version unknown"


def get_logger() -> logging.Logger:
    """Gets the imusync logger."""
    logger = logging.getLogger("imusync")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)s - %(funcName)s - %(message)s",  # noqa: E501
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


class Settings(pydantic.BaseModel):
    """Runtime settings of a session.

    Attributes:
        sample_rate_hz: Fixed sampling frequency of the sensor recording. The time
            of each sample is derived from its position as index / sample_rate_hz.
        window_size_s: Duration of the sensor window shown during playback.
        skip_interval: Number of ticks between pose estimations for uploaded video.
        live_skip_interval: Number of ticks between pose estimations for a camera.
        throttle_interval_ms: Minimum wall-clock spacing of windowed view updates
            driven by the tracking loop.
        min_part_confidence: Keypoint score needed for a skeleton line endpoint.
        min_draw_confidence: Keypoint score below which a keypoint is not drawn.
        mirror_live: Whether camera frames are mirrored before estimation.
        mirror_upload: Whether uploaded frames are mirrored before estimation.
        video_timestep_fps: Logical frame rate used for the video step counter.
        upload_playback_rate: Playback rate applied when tracking uploaded video.
        storage_dir: Directory holding persisted projects.
    """

    sample_rate_hz: float = pydantic.Field(104.0, gt=0)
    window_size_s: float = 5.0
    skip_interval: int = pydantic.Field(2, ge=1)
    live_skip_interval: int = pydantic.Field(1, ge=1)
    throttle_interval_ms: float = pydantic.Field(33.0, ge=0)
    min_part_confidence: float = 0.2
    min_draw_confidence: float = 0.02
    mirror_live: bool = True
    mirror_upload: bool = True
    video_timestep_fps: float = pydantic.Field(30.0, gt=0)
    upload_playback_rate: float = pydantic.Field(0.75, gt=0)
    storage_dir: pathlib.Path = pathlib.Path.home() / ".imusync" / "projects"
