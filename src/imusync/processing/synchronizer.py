"""Two-point alignment of the video clock and the sensor clock."""

import enum
from typing import Optional

from imusync.core import config, exceptions, models

logger = config.get_logger()


class SyncPhase(str, enum.Enum):
    """Marking progress of the synchronizer."""

    idle = "idle"
    video_marked = "video_marked"
    data_marked = "data_marked"
    both_marked = "both_marked"


class StreamSynchronizer:
    """Owns the sync offset and the mark-video / mark-data / apply workflow.

    The user marks the same event once on the video timeline and once on the sensor
    timeline. Applying the marks sets offset = video_mark - data_mark, so that
    data_time_for(video_mark) == data_mark. Marks are not range checked.
    """

    def __init__(self, state: Optional[models.SyncState] = None) -> None:
        """Initialize the synchronizer.

        Args:
            state: The state to operate on. A fresh state with offset 0 is created
                when omitted.
        """
        self.state = state if state is not None else models.SyncState()

    @property
    def offset(self) -> float:
        """The current offset in seconds."""
        return self.state.offset_seconds

    @property
    def phase(self) -> SyncPhase:
        """Which marks are currently set."""
        has_video = self.state.video_mark is not None
        has_data = self.state.data_mark is not None
        if has_video and has_data:
            return SyncPhase.both_marked
        if has_video:
            return SyncPhase.video_marked
        if has_data:
            return SyncPhase.data_marked
        return SyncPhase.idle

    def mark_video(self, time: float) -> None:
        """Mark a video time, replacing an earlier video mark."""
        self.state.video_mark = float(time)
        logger.debug("Video mark set at %s s.", time)

    def mark_data(self, time: float) -> None:
        """Mark a sensor time, replacing an earlier data mark."""
        self.state.data_mark = float(time)
        logger.debug("Data mark set at %s s.", time)

    def can_apply(self) -> bool:
        """Whether both marks are present."""
        return self.phase is SyncPhase.both_marked

    def apply(self) -> float:
        """Set the offset from both marks and clear the marks.

        Returns:
            The new offset in seconds.

        Raises:
            PreconditionError: If either mark is missing.
        """
        if self.state.video_mark is None or self.state.data_mark is None:
            raise exceptions.PreconditionError(
                "Both a video mark and a data mark are required to apply sync."
            )

        offset = self.state.video_mark - self.state.data_mark
        self.state.offset_seconds = offset
        self.state.video_mark = None
        self.state.data_mark = None
        logger.info("Synced: offset %.3f s", offset)
        return offset

    def reset(self) -> None:
        """Clear both marks; the offset is kept."""
        self.state.video_mark = None
        self.state.data_mark = None

    def restore(self, offset: float) -> None:
        """Replace the offset with one loaded from a stored or imported project."""
        self.state.offset_seconds = float(offset)
        self.reset()

    def clear(self) -> None:
        """Return to offset 0 with no marks."""
        self.restore(0.0)

    def data_time_for(self, video_time: float) -> float:
        """Sensor time corresponding to a video time."""
        return video_time - self.state.offset_seconds

    def video_time_for(self, data_time: float) -> float:
        """Video time corresponding to a sensor time."""
        return data_time + self.state.offset_seconds
