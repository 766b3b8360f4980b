"""Session that wires media, sensor data, sync, tracking and persistence together."""

import pathlib
import time
from typing import Callable, Dict, Optional, Protocol, Union

from imusync.core import computations, config, exceptions, models
from imusync.io.readers import readers
from imusync.io.storage import storage as kv_storage
from imusync.io.writers import writers
from imusync.processing import project_store, series_store, tracking, windows
from imusync.processing import synchronizer as sync

logger = config.get_logger()

IMPORT_FILE_TYPES = (".zip", ".json")


class Player(tracking.MediaSource, Protocol):
    """A video player for uploaded media."""

    def seek(self, time: float) -> None:
        """Move the playback position to time in seconds."""
        ...

    def set_playback_rate(self, rate: float) -> None:
        """Change the playback speed."""
        ...

    def duration(self) -> float:
        """Length of the media in seconds, or 0 if unknown."""
        ...


class Session:
    """One working session on a video and its sensor recording.

    The session owns every component and is the single place the components are
    created, so that reset() can return all of them to their initial state in a
    fixed order. Operations that need the current video time read it from the
    attached player unless a time is given.
    """

    def __init__(
        self,
        settings: Optional[config.Settings] = None,
        storage: Optional[kv_storage.KeyValueStorage] = None,
        scheduler: Optional[tracking.Scheduler] = None,
        pose_sink: Optional[tracking.PoseSink] = None,
        view_sink: Optional[windows.ViewSink] = None,
        estimators: Optional[
            Dict[tracking.TrackingMode, tracking.PoseEstimator]
        ] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an empty session.

        Args:
            settings: Runtime settings. Defaults when omitted.
            storage: Where projects are persisted. Defaults to one JSON file per
                media in settings.storage_dir.
            scheduler: Runs the tracking ticks. Defaults to the asyncio scheduler.
            pose_sink: Where poses are drawn.
            view_sink: Where the sensor window is displayed.
            estimators: The pose estimator to use in each tracking mode.
            clock: Wall clock in seconds, used to throttle view updates.
        """
        self.settings = settings if settings is not None else config.Settings()
        if storage is None:
            storage = kv_storage.JsonDirectoryStorage(self.settings.storage_dir)

        self.synchronizer = sync.StreamSynchronizer()
        self.series = series_store.TimeSeriesStore()
        self.view = windows.WindowedView(
            self.series,
            self.synchronizer,
            sink=view_sink,
            window_size=self.settings.window_size_s,
        )
        self.project = project_store.ProjectStore(
            storage, self.synchronizer, sample_rate_hz=self.settings.sample_rate_hz
        )
        self.tracker = tracking.TrackingLoopController(
            self.view,
            scheduler if scheduler is not None else tracking.AsyncioFrameScheduler(),
            pose_sink=pose_sink,
            settings=self.settings,
            clock=clock,
        )
        self.estimators: Dict[tracking.TrackingMode, tracking.PoseEstimator] = dict(
            estimators or {}
        )

        self.media: Optional[models.MediaFile] = None
        self.player: Optional[Player] = None
        self.camera: Optional[tracking.MediaSource] = None
        self.data_cursor: Optional[float] = None
        self._sync_tracker_sources()

    @property
    def mode(self) -> tracking.TrackingMode:
        """The current tracking mode."""
        return self.tracker.mode

    def _sync_tracker_sources(self) -> None:
        """Hand the frame source and estimator of the current mode to the tracker."""
        if self.tracker.mode is tracking.TrackingMode.live:
            self.tracker.media = self.camera
        else:
            self.tracker.media = self.player
        self.tracker.estimator = self.estimators.get(self.tracker.mode)

    def _current_video_time(self, time: Optional[float]) -> float:
        if time is not None:
            return time
        if self.player is None:
            raise exceptions.PreconditionError("No video loaded.")
        return self.player.current_time()

    def load_media(
        self, media: models.MediaFile, player: Optional[Player] = None
    ) -> Optional[models.Project]:
        """Load a video and the project stored for it.

        Tracking is stopped. When a project is stored under the media identity, its
        offset, annotations and notes replace the live ones, otherwise the session
        starts a fresh project for the media.

        Args:
            media: The media file.
            player: Plays the media. Required for upload tracking and for operations
                that read the current video time.

        Returns:
            The stored project, or None if the media has none.
        """
        self.tracker.stop()
        self.media = media
        self.player = player
        self._sync_tracker_sources()

        self.project.set_identity(media.identity)
        loaded = self.project.load()
        if loaded is None:
            self.synchronizer.clear()
            self.project.annotations = []
            self.project.notes = ""
            logger.info("No stored project for %s, starting fresh.", media.name)
        return loaded

    def attach_camera(self, camera: Optional[tracking.MediaSource]) -> None:
        """Set the frame source used in live mode."""
        self.camera = camera
        self._sync_tracker_sources()

    def load_samples_text(
        self,
        text: str,
        source_name: Optional[str] = None,
        sample_rate_hz: Optional[float] = None,
    ) -> models.TimeSeries:
        """Parse sensor samples and show the whole recording.

        Args:
            text: The comma separated sample source.
            source_name: The file name of the source.
            sample_rate_hz: Rate the samples were recorded at. Defaults to
                settings.sample_rate_hz. Saved projects record this rate.

        Returns:
            The parsed recording.
        """
        rate = sample_rate_hz or self.settings.sample_rate_hz
        series = readers.parse_samples(text, rate, source_name=source_name)
        self.series.replace(series)
        self.project.sample_rate_hz = rate
        self.data_cursor = None
        self.view.show_full()
        return series

    def load_samples(self, path: Union[pathlib.Path, str]) -> models.TimeSeries:
        """Read sensor samples from a file and show the whole recording."""
        path = pathlib.Path(path)
        text = path.read_text(encoding="utf-8")
        return self.load_samples_text(text, source_name=path.name)

    def on_video_time(self, video_time: float) -> Optional[models.WindowView]:
        """Follow the video position while the tracking loop is not driving the view.

        Args:
            video_time: The new playback position in seconds.

        Returns:
            The updated view, or None if the tracking loop owns the view or no
            samples are loaded.
        """
        if self.tracker.running:
            return None
        return self.view.update(video_time)

    def video_position(self) -> int:
        """Logical frame index of the current playback position."""
        if self.player is None:
            return 0
        total = computations.total_video_steps(
            self.player.duration(), self.settings.video_timestep_fps
        )
        return computations.video_step_index(
            self.player.current_time(), self.settings.video_timestep_fps, total
        )

    def mark_video(self, time: Optional[float] = None) -> float:
        """Mark the sync event on the video timeline.

        Args:
            time: The video time. Defaults to the current playback position.

        Returns:
            The marked time.
        """
        time = self._current_video_time(time)
        self.synchronizer.mark_video(time)
        return time

    def scrub_data(self, time: float) -> float:
        """Move the sensor cursor to the first sample at or after time.

        The window is redrawn around the cursor, mapped to video time through the
        current offset.

        Args:
            time: The requested sensor time in seconds.

        Returns:
            The time of the selected sample.

        Raises:
            NoDataError: If no samples are loaded.
        """
        snapped = computations.snap_to_sample(self.series.series, time)
        self.data_cursor = snapped
        self.view.update(self.synchronizer.video_time_for(snapped))
        return snapped

    def mark_data(self, time: Optional[float] = None) -> float:
        """Mark the sync event on the sensor timeline.

        Args:
            time: The sensor time. Defaults to the scrub cursor, or 0 when the
                sensor timeline was never scrubbed.

        Returns:
            The marked time.
        """
        if time is None:
            time = self.data_cursor if self.data_cursor is not None else 0.0
        self.synchronizer.mark_data(time)
        return time

    def apply_sync(self) -> float:
        """Apply both marks, save, and redraw the window at the current video time.

        Returns:
            The new offset in seconds.

        Raises:
            PreconditionError: If either mark is missing.
        """
        offset = self.project.apply_sync()
        if self.player is not None:
            self.on_video_time(self.player.current_time())
        return offset

    def add_annotation(
        self,
        label: str = "",
        event_type: str = "other",
        notes: str = "",
        time: Optional[float] = None,
    ) -> models.Annotation:
        """Annotate an event at the current or the given video time."""
        return self.project.add_annotation(
            self._current_video_time(time),
            label=label,
            event_type=event_type,
            notes=notes,
        )

    def delete_annotation(self, index: int) -> models.Annotation:
        """Delete the annotation at index.

        Raises:
            AnnotationIndexError: If index is out of range.
        """
        return self.project.delete_annotation(index)

    def select_annotation(self, index: int) -> Optional[models.Annotation]:
        """Jump to an annotation.

        The player seeks to the annotation time and the window follows.

        Args:
            index: Position of the annotation.

        Returns:
            The annotation, or None if index is out of range.
        """
        if index < 0 or index >= len(self.project.annotations):
            return None
        annotation = self.project.annotations[index]
        if self.player is not None:
            self.player.seek(annotation.time)
        self.view.update(annotation.time)
        return annotation

    def set_notes(self, notes: str) -> None:
        """Replace the project notes."""
        self.project.set_notes(notes)

    def select_mode(self, mode: tracking.TrackingMode) -> None:
        """Switch between camera and uploaded video tracking.

        A running loop is stopped first. Selecting the current mode does nothing.
        """
        if mode is self.tracker.mode:
            return
        self.tracker.stop()
        self.tracker.switch_mode(mode)
        self._sync_tracker_sources()

    def start(self) -> bool:
        """Start tracking in the current mode.

        The start is refused, with a logged message, when the mode has no frame
        source or no estimator.

        Returns:
            True if the loop was started.
        """
        if self.tracker.running:
            return False

        self._sync_tracker_sources()
        if self.tracker.media is None:
            if self.tracker.mode is tracking.TrackingMode.upload:
                logger.warning("Please load a video first.")
            else:
                logger.warning("No camera attached.")
            return False
        if self.tracker.estimator is None:
            logger.warning("No pose estimator for %s mode.", self.tracker.mode.value)
            return False

        upload = self.tracker.mode is tracking.TrackingMode.upload
        if upload and self.player is not None:
            self.player.set_playback_rate(self.settings.upload_playback_rate)
        try:
            return self.tracker.start()
        except RuntimeError as e:
            logger.warning("Could not start tracking: %s", e)
            return False

    def stop(self) -> None:
        """Stop tracking."""
        self.tracker.stop()

    def export_bundle(self, output: Union[pathlib.Path, str]) -> pathlib.Path:
        """Write the project with its media and samples to an archive.

        Args:
            output: The archive path. '.zip' is appended when missing.

        Returns:
            The path the archive was written to.
        """
        return writers.export_bundle(
            pathlib.Path(output),
            self.project.snapshot(),
            media=self.media,
            time_series=self.series.get(),
        )

    def import_project(self, path: Union[pathlib.Path, str]) -> models.Project:
        """Restore a project from an archive or from a bare JSON file.

        An archive also restores its media and samples, and the media identity is
        taken from the archived media. A JSON file only restores offset,
        annotations and notes. The imported project is then saved locally.

        Args:
            path: The file to import.

        Returns:
            The imported project.

        Raises:
            InvalidFileTypeError: If the file is neither '.zip' nor '.json'.
            FormatError: If the file content is not a valid project.
        """
        path = pathlib.Path(path)
        suffix = path.suffix.lower()
        if suffix not in IMPORT_FILE_TYPES:
            raise exceptions.InvalidFileTypeError(
                f"The extension: {path.suffix} is not supported. "
                "Please import a .zip or .json project."
            )

        self.tracker.stop()
        if suffix == ".json":
            imported = readers.read_project_json(
                path, default_sample_rate=self.settings.sample_rate_hz
            )
        else:
            bundle = readers.read_bundle(
                path, default_sample_rate=self.settings.sample_rate_hz
            )
            imported = bundle.project
            if bundle.media is not None:
                self.media = bundle.media
                self.player = None
                self._sync_tracker_sources()
                self.project.set_identity(bundle.media.identity)
            if bundle.sample_text is not None:
                rate = imported.sample_rate
                if rate <= 0:
                    logger.warning(
                        "Invalid sample rate %s in %s, using %s Hz.",
                        rate,
                        path.name,
                        self.settings.sample_rate_hz,
                    )
                    rate = self.settings.sample_rate_hz
                self.load_samples_text(
                    bundle.sample_text,
                    source_name=bundle.sample_name,
                    sample_rate_hz=rate,
                )

        self.project.apply(imported)
        self.project.save(
            extra={
                "video_file_name": imported.video_file_name,
                "csv_file_name": imported.csv_file_name,
            }
        )
        logger.info(
            "Project imported from %s: offset %.3f s, %d annotation(s).",
            path.name,
            imported.sync_offset,
            len(imported.timestamps),
        )
        return imported

    def generate_report(
        self,
        output: Optional[Union[pathlib.Path, str]] = None,
        include_summary: bool = False,
    ) -> str:
        """Build the text report and optionally save it.

        Args:
            output: Where to write the report. Not written when omitted.
            include_summary: Whether to append mean and peak of every channel.

        Returns:
            The report text.

        Raises:
            NoDataError: If no samples are loaded.
        """
        report = writers.build_report(
            self.series.get(), self.project.annotations, include_summary
        )
        if output is not None:
            writers.write_report(
                pathlib.Path(output),
                self.series.get(),
                self.project.annotations,
                include_summary,
            )
        return report

    def reset(self) -> None:
        """Return every component to its initial state.

        Order: stop tracking, drop the media, drop the samples, clear offset and
        marks, clear annotations and notes, then reset the tracking state.
        """
        self.tracker.stop()

        self.media = None
        self.player = None
        self.camera = None
        self._sync_tracker_sources()

        self.series.reset()
        self.data_cursor = None
        self.view.last_view = None

        self.synchronizer.clear()
        self.project.reset()
        self.tracker.reset()
        logger.debug("Session reset.")
