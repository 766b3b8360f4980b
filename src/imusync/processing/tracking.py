"""Tracking loop: throttled pose estimation and view updates during playback.

The loop runs one tick per displayed frame. A tick estimates the pose on every
skip_interval-th frame only, draws the latest available pose, and refreshes the
sensor window at most once per throttle interval. Ticks are scheduled through a
Scheduler so the loop can run on an asyncio event loop or be stepped by hand.
"""

import asyncio
import enum
import functools
import time
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from imusync.core import config, exceptions, models
from imusync.processing import pose, windows

logger = config.get_logger()


class TickOutcome(str, enum.Enum):
    """Whether the scheduler should run another tick."""

    proceed = "continue"
    stop = "stop"


TickCallback = Callable[[], Awaitable[TickOutcome]]


class TrackingMode(str, enum.Enum):
    """Source of the frames being tracked."""

    live = "live"
    upload = "upload"


class MediaSource(Protocol):
    """A playing video or camera stream."""

    def is_ready(self) -> bool:
        """Whether a frame is available for the current tick."""
        ...

    def current_time(self) -> float:
        """Playback position in seconds."""
        ...

    def current_frame(self) -> Any:
        """The frame to hand to the pose estimator."""
        ...

    def has_ended(self) -> bool:
        """Whether playback reached the end."""
        ...

    def pause(self) -> None:
        """Pause playback."""
        ...


class PoseEstimator(Protocol):
    """Pose estimation model, treated as a black box."""

    async def estimate(
        self, frame: Any, *, max_results: int = 1, mirror: bool = False
    ) -> List[models.Keypoint]:
        """Keypoints of the most prominent person, or an empty list."""
        ...


class PoseSink(Protocol):
    """Receives the pose to draw over the video."""

    def draw_pose(self, pose_frame: models.PoseFrame, video_time: float) -> None:
        """Draw the pose for the frame at video_time."""
        ...


class Scheduler(Protocol):
    """Runs a tick once per displayed frame until it returns stop."""

    def schedule(self, tick: TickCallback) -> None:
        """Run tick on the next frame, and again after each proceed outcome."""
        ...

    def cancel(self) -> None:
        """Run no further ticks. A tick already running is allowed to finish."""
        ...


class ManualScheduler:
    """Scheduler that runs ticks only when asked to.

    Used to drive the tracking loop without a display clock, one tick at a time.
    """

    def __init__(self) -> None:
        """Initialize with nothing scheduled."""
        self._pending: Optional[TickCallback] = None
        self._token = 0
        self.ticks_run = 0

    @property
    def pending(self) -> bool:
        """Whether a tick is waiting to run."""
        return self._pending is not None

    def schedule(self, tick: TickCallback) -> None:
        """Queue tick as the next one to run."""
        self._token += 1
        self._pending = tick

    def cancel(self) -> None:
        """Drop the queued tick."""
        self._token += 1
        self._pending = None

    async def run_next(self) -> Optional[TickOutcome]:
        """Run the queued tick, re-queueing it if it asks to proceed.

        Returns:
            The outcome of the tick, or None when nothing was queued.
        """
        tick = self._pending
        if tick is None:
            return None

        self._pending = None
        token = self._token
        outcome = await tick()
        self.ticks_run += 1

        if outcome is TickOutcome.proceed and token == self._token:
            self._pending = tick
        return outcome

    async def run(self, max_ticks: int) -> int:
        """Run queued ticks until the loop stops or max_ticks ran.

        Returns:
            The number of ticks that ran.
        """
        count = 0
        while count < max_ticks and self.pending:
            await self.run_next()
            count += 1
        return count

    def run_ticks(self, max_ticks: int) -> int:
        """Blocking version of run for callers without an event loop."""
        return asyncio.run(self.run(max_ticks))


class AsyncioFrameScheduler:
    """Scheduler that runs ticks on the asyncio event loop at a fixed frame rate.

    A tick is scheduled only after the previous one completed, so ticks never
    overlap. Must be used from within a running event loop.
    """

    def __init__(self, frame_interval: float = 1 / 60) -> None:
        """Initialize the scheduler.

        Args:
            frame_interval: Delay in seconds between the end of one tick and the
                start of the next.
        """
        self.frame_interval = frame_interval
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional["asyncio.Task[TickOutcome]"] = None
        self._token = 0
        self._stopped = asyncio.Event()
        self._stopped.set()

    def schedule(self, tick: TickCallback) -> None:
        """Run tick after one frame interval."""
        self._token += 1
        self._call_later(tick, self._token)
        self._stopped.clear()

    def cancel(self) -> None:
        """Stop scheduling; a running tick finishes but is not rescheduled."""
        self._token += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._stopped.set()

    async def wait_stopped(self) -> None:
        """Wait until the loop stops or is cancelled."""
        await self._stopped.wait()

    def _call_later(self, tick: TickCallback, token: int) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.frame_interval, self._run, tick, token)

    def _run(self, tick: TickCallback, token: int) -> None:
        self._handle = None
        if token != self._token:
            return
        self._task = asyncio.ensure_future(tick())
        self._task.add_done_callback(functools.partial(self._finished, tick, token))

    def _finished(
        self, tick: TickCallback, token: int, task: "asyncio.Task[TickOutcome]"
    ) -> None:
        self._task = None
        if token != self._token:
            return

        if task.cancelled():
            outcome = TickOutcome.stop
        elif task.exception() is not None:
            logger.error("Tracking tick failed: %s", task.exception())
            outcome = TickOutcome.stop
        else:
            outcome = task.result()

        if outcome is TickOutcome.proceed:
            self._call_later(tick, token)
        else:
            self._stopped.set()


class Throttle:
    """Lets an action through at most once per interval of wall-clock time."""

    def __init__(self, interval_ms: float) -> None:
        """Initialize the throttle.

        Args:
            interval_ms: Minimum spacing of two accepted calls in milliseconds.
        """
        self.interval_ms = interval_ms
        self._last_ms: Optional[float] = None

    def ready(self, now_ms: float) -> bool:
        """Whether the action may run at now_ms; records the time if so."""
        if self._last_ms is None or now_ms - self._last_ms >= self.interval_ms:
            self._last_ms = now_ms
            return True
        return False

    def reset(self) -> None:
        """Forget the last accepted call."""
        self._last_ms = None


def should_estimate(frame_index: int, skip_interval: int, has_result: bool) -> bool:
    """Frame-skip policy for pose estimation.

    Args:
        frame_index: The 1-based index of the current tick.
        skip_interval: Estimate on every skip_interval-th tick.
        has_result: Whether an earlier estimate is available to reuse.

    Returns:
        True on every skip_interval-th tick, and on any tick without a result yet.
    """
    return frame_index % skip_interval == 0 or not has_result


class TrackingLoopController:
    """Drives pose estimation, pose drawing and the sensor window during playback.

    The controller is either stopped or running, and only one loop runs at a time.
    Stopping takes effect at the next tick boundary: an estimate still in flight
    completes, but its result is discarded.
    """

    def __init__(
        self,
        view: windows.WindowedView,
        scheduler: Scheduler,
        pose_sink: Optional[PoseSink] = None,
        settings: Optional[config.Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize a stopped controller in upload mode.

        Args:
            view: The sensor window kept in step with the video.
            scheduler: Runs the ticks.
            pose_sink: Where poses are drawn.
            settings: Skip intervals, throttle interval and confidence thresholds.
            clock: Wall clock in seconds, used for throttling.
        """
        self.settings = settings if settings is not None else config.Settings()
        self.view = view
        self.scheduler = scheduler
        self.pose_sink = pose_sink
        self.clock = clock

        self.state = models.TrackingLoopState()
        self.mode = TrackingMode.upload
        self.media: Optional[MediaSource] = None
        self.estimator: Optional[PoseEstimator] = None
        self.throttle = Throttle(self.settings.throttle_interval_ms)
        self.estimate_calls = 0

        self._generation = 0
        self._estimate_in_flight = False

    @property
    def running(self) -> bool:
        """Whether the loop is running."""
        return self.state.running

    @property
    def skip_interval(self) -> int:
        """Ticks between pose estimates in the current mode."""
        if self.mode is TrackingMode.live:
            return self.settings.live_skip_interval
        return self.settings.skip_interval

    @property
    def mirror(self) -> bool:
        """Whether frames are mirrored in the current mode."""
        if self.mode is TrackingMode.live:
            return self.settings.mirror_live
        return self.settings.mirror_upload

    def switch_mode(
        self,
        mode: TrackingMode,
        media: Optional[MediaSource] = None,
        estimator: Optional[PoseEstimator] = None,
    ) -> None:
        """Select the frame source and the estimator.

        Args:
            mode: The tracking mode.
            media: The frame source for the mode.
            estimator: The pose estimator for the mode.

        Raises:
            PreconditionError: If the loop is running.
        """
        if self.state.running:
            raise exceptions.PreconditionError(
                "Tracking must be stopped before switching mode."
            )
        self.mode = mode
        self.media = media
        self.estimator = estimator
        self.state.reset()
        logger.debug("Tracking mode set to %s.", mode.value)

    def start(self) -> bool:
        """Start the loop.

        Returns:
            False if the loop was already running, True otherwise.

        Raises:
            PreconditionError: If no media or no estimator is set.
            RuntimeError: If the scheduler cannot run ticks, e.g. the asyncio
                scheduler outside a running event loop. The loop stays stopped.
        """
        if self.state.running:
            return False
        if self.media is None or self.estimator is None:
            raise exceptions.PreconditionError(
                "A media source and a pose estimator are required to track."
            )

        self.state.reset()
        self.state.running = True
        self._generation += 1
        try:
            self.scheduler.schedule(self.tick)
        except Exception:
            self.state.running = False
            self._generation += 1
            raise
        logger.info("Tracking started in %s mode.", self.mode.value)
        return True

    def stop(self) -> None:
        """Stop the loop; the current tick's estimate, if any, is discarded."""
        if not self.state.running:
            return

        self.state.running = False
        self._generation += 1
        self.scheduler.cancel()
        if self.mode is TrackingMode.upload and self.media is not None:
            self.media.pause()
        logger.info("Tracking stopped.")

    def reset(self) -> None:
        """Stop the loop and forget the cached pose and throttle state."""
        self.stop()
        self.state.reset()
        self.throttle.reset()

    async def tick(self) -> TickOutcome:
        """Process one displayed frame.

        Returns:
            Whether another tick should be scheduled.
        """
        if not self.state.running or self.media is None:
            return TickOutcome.stop

        generation = self._generation
        media = self.media

        try:
            if not media.is_ready():
                return TickOutcome.proceed

            if self.mode is TrackingMode.upload and media.has_ended():
                media.pause()

            self.state.frame_index += 1

            has_result = self.state.last_keypoints is not None
            if not self._estimate_in_flight and should_estimate(
                self.state.frame_index, self.skip_interval, has_result
            ):
                keypoints = await self._estimate(media.current_frame())
                if generation != self._generation:
                    logger.debug("Discarding pose estimate of a stopped loop.")
                    return TickOutcome.stop
                if keypoints is not None:
                    self.state.last_keypoints = keypoints or None

            if self.state.last_keypoints is None:
                return TickOutcome.proceed

            video_time = media.current_time()
        except exceptions.MediaError:
            self.stop()
            return TickOutcome.stop

        if self.pose_sink is not None:
            self.pose_sink.draw_pose(
                pose.build_pose_frame(
                    self.state.last_keypoints,
                    min_part_confidence=self.settings.min_part_confidence,
                    min_draw_confidence=self.settings.min_draw_confidence,
                ),
                video_time,
            )

        if (
            self.mode is TrackingMode.upload
            and self.view.has_data
            and self.throttle.ready(self.clock() * 1000)
        ):
            self.view.update(video_time)

        if generation != self._generation:
            return TickOutcome.stop
        return TickOutcome.proceed

    async def _estimate(self, frame: Any) -> Optional[List[models.Keypoint]]:
        """Run the estimator.

        Returns:
            The keypoints, or None if the estimator failed. A failure is logged and
            the previous pose stays on display.
        """
        if self.estimator is None:
            raise exceptions.PreconditionError("No pose estimator is set.")
        self._estimate_in_flight = True
        self.estimate_calls += 1
        try:
            return await self.estimator.estimate(
                frame, max_results=1, mirror=self.mirror
            )
        except exceptions.MediaError:
            raise
        except Exception as e:
            logger.error("Pose estimation failed: %s", e)
            return None
        finally:
            self._estimate_in_flight = False
