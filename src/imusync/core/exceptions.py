"""Custom exceptions for imusync."""

from imusync.core import config

logger = config.get_logger()


class LoggedException(Exception):
    """Base class that automatically logs messages."""

    def __init__(self, message: str) -> None:
        """Initialize a new instance of the LoggedException class.

        Args:
            message: The message to display.
        """
        logger.exception(message)
        super().__init__(message)


class PreconditionError(LoggedException):
    """An operation was called in a state that does not allow it."""

    pass


class AnnotationIndexError(LoggedException, IndexError):
    """No annotation exists at the requested position."""

    pass


class FormatError(LoggedException, ValueError):
    """Input data did not follow the expected layout."""

    pass


class StorageError(LoggedException):
    """A project could not be written to persistent storage."""

    pass


class NoDataError(LoggedException):
    """No sensor samples are loaded."""

    pass


class InvalidFileTypeError(LoggedException):
    """imusync did not expect this file extension."""

    pass


class MediaError(LoggedException):
    """The media source failed and cannot deliver further frames."""

    pass
