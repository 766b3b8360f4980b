"""Holder of the currently loaded sensor recording."""

from typing import Optional

from imusync.core import config, exceptions, models

logger = config.get_logger()


class TimeSeriesStore:
    """Owns the parsed samples; replaced wholesale on every new parse."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._series: Optional[models.TimeSeries] = None

    @property
    def has_data(self) -> bool:
        """Whether a non-empty recording is loaded."""
        return self._series is not None and len(self._series) > 0

    @property
    def series(self) -> models.TimeSeries:
        """The loaded recording.

        Raises:
            NoDataError: If nothing is loaded.
        """
        if self._series is None:
            raise exceptions.NoDataError("No sensor data loaded.")
        return self._series

    def get(self) -> Optional[models.TimeSeries]:
        """The loaded recording, or None."""
        return self._series

    def replace(self, series: models.TimeSeries) -> None:
        """Swap in a newly parsed recording."""
        self._series = series
        logger.info(
            "Sensor data loaded: %d samples, total %.2f s",
            len(series),
            series.last_time,
        )

    def reset(self) -> None:
        """Drop the loaded recording."""
        self._series = None
