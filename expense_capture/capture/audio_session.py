"""
Audio capture session.

State machine::

    IDLE -> REQUESTING_PERMISSION -> RECORDING -> PROCESSING -> IDLE
                      \\                  \\            \\
                       +------------------+------------+--> ERROR

The elapsed-time timer is a cancellable asyncio task. Recording stops on
its own when the elapsed time reaches the configured ceiling. The device is
released on every exit path.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from expense_capture.capture.backends import AudioCaptureBackend
from expense_capture.config import Settings, settings
from expense_capture.errors import CaptureError, DeviceBusy, EmptyRecording, ExpenseCaptureError
from expense_capture.logging_config import get_logger
from expense_capture.schemas.media import MediaHandle

logger = get_logger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    RECORDING = "recording"
    PROCESSING = "processing"
    ERROR = "error"


AutoStopCallback = Callable[[MediaHandle], Awaitable[None] | None]


class AudioCaptureSession:
    """
    Record one bounded-duration clip at a time.

    Example:
        >>> session = AudioCaptureSession(NativeAudioBackend(driver))
        >>> await session.start()
        >>> handle = await session.stop()
    """

    def __init__(
        self,
        backend: AudioCaptureBackend,
        config: Settings | None = None,
        max_duration_ms: int | None = None,
        tick_ms: int | None = None,
        on_auto_stop: AutoStopCallback | None = None,
    ):
        config = config or settings
        self.backend = backend
        self.max_duration_ms = max_duration_ms if max_duration_ms is not None else config.recording_max_ms
        self.tick_ms = tick_ms if tick_ms is not None else config.recording_tick_ms
        self.on_auto_stop = on_auto_stop

        self.state = RecordingState.IDLE
        self.elapsed_ms = 0
        self.last_handle: MediaHandle | None = None
        self.last_error: ExpenseCaptureError | None = None
        self.auto_stopped = False

        self._timer: asyncio.Task | None = None
        self._finished: asyncio.Future | None = None

    @property
    def is_recording(self) -> bool:
        return self.state == RecordingState.RECORDING

    @property
    def elapsed_seconds(self) -> int:
        return self.elapsed_ms // 1000

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """
        Acquire the microphone and begin recording.

        Returns:
            True if recording started; False if the transition was rejected
            because a recording is already in progress.

        Raises:
            DeviceBusy: Another session still holds the device
            PermissionDenied: Device unsupported, missing or refused
            CaptureError: The device failed to start
        """
        if self.state not in (RecordingState.IDLE, RecordingState.ERROR):
            logger.warning("recording_start_rejected", state=self.state.value)
            return False
        if self.backend.held:
            logger.warning("capture_device_busy", backend=self.backend.name)
            raise DeviceBusy("Capture device held by another session")

        self.state = RecordingState.REQUESTING_PERMISSION
        self.last_error = None
        self.last_handle = None
        self.auto_stopped = False
        logger.info("requesting_microphone", backend=self.backend.name)

        try:
            await self.backend.acquire()
            await self.backend.begin()
        except ExpenseCaptureError as e:
            await self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(f"Failed to start recording: {e}")
            await self._fail(error)
            raise error from e

        self.elapsed_ms = 0
        self._finished = asyncio.get_running_loop().create_future()
        self.state = RecordingState.RECORDING
        self._timer = asyncio.create_task(self._run_timer())
        logger.info(
            "recording_started",
            backend=self.backend.name,
            max_duration_ms=self.max_duration_ms,
        )
        return True

    async def stop(self) -> MediaHandle | None:
        """
        Stop recording and produce the media handle.

        Returns:
            The recorded clip, or None when no recording is in progress.

        Raises:
            EmptyRecording: Nothing was captured
            CaptureError: The device failed while finalizing
        """
        if self.state != RecordingState.RECORDING:
            logger.warning("recording_stop_ignored", state=self.state.value)
            return None
        return await self._finish(auto=False)

    async def abort(self) -> None:
        """Discard any in-progress recording and release the device."""
        if self.state == RecordingState.RECORDING:
            self.state = RecordingState.PROCESSING
            await self._cancel_timer()
            try:
                await self.backend.release()
            except Exception as e:
                logger.warning("capture_device_release_failed", error=str(e))
            self.state = RecordingState.IDLE
            self._resolve(None)
            logger.info("recording_aborted", elapsed_ms=self.elapsed_ms)

    async def wait_for_handle(self) -> MediaHandle | None:
        """Wait until the current recording ends (by stop or auto-stop)."""
        if self._finished is None:
            return self.last_handle
        return await asyncio.shield(self._finished)

    async def __aenter__(self) -> "AudioCaptureSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.abort()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _run_timer(self) -> None:
        interval = self.tick_ms / 1000
        while self.state == RecordingState.RECORDING:
            await asyncio.sleep(interval)
            if self.state != RecordingState.RECORDING:
                return

            try:
                reported = await self.backend.recorded_ms()
            except Exception as e:
                logger.warning("recording_status_check_failed", error=str(e))
                reported = None
            self.elapsed_ms = reported if reported is not None else self.elapsed_ms + self.tick_ms

            if self.elapsed_ms >= self.max_duration_ms:
                logger.info("recording_max_duration_reached", elapsed_ms=self.elapsed_ms)
                await self._auto_stop()
                return

    async def _auto_stop(self) -> None:
        try:
            handle = await self._finish(auto=True)
        except ExpenseCaptureError:
            # Already recorded in last_error and delivered through wait_for_handle
            return
        if self.on_auto_stop is not None:
            outcome = self.on_auto_stop(handle)
            if asyncio.iscoroutine(outcome):
                await outcome

    async def _finish(self, auto: bool) -> MediaHandle:
        self.state = RecordingState.PROCESSING
        self.auto_stopped = auto
        await self._cancel_timer()

        try:
            handle = await self.backend.finalize()
        except ExpenseCaptureError as e:
            await self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(f"Failed to stop recording: {e}")
            await self._fail(error)
            raise error from e

        try:
            await self.backend.release()
        except Exception as e:
            logger.warning("capture_device_release_failed", error=str(e))

        if handle is None or handle.is_empty():
            if handle is not None:
                handle.release()
            error = EmptyRecording("No audio data captured")
            await self._fail(error, release=False)
            raise error

        self.last_handle = handle
        self.state = RecordingState.IDLE
        self._resolve(handle)
        logger.info(
            "recording_stopped",
            auto=auto,
            elapsed_ms=self.elapsed_ms,
            size=handle.size,
            mime_type=handle.mime_type,
        )
        return handle

    async def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None or timer is asyncio.current_task():
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def _fail(self, error: ExpenseCaptureError, release: bool = True) -> None:
        self.state = RecordingState.ERROR
        self.last_error = error
        if release:
            try:
                await self.backend.release()
            except Exception as e:
                logger.warning("capture_device_release_failed", error=str(e))
        self._resolve_error(error)
        logger.error(
            "recording_failed",
            error=str(error),
            error_type=type(error).__name__,
            backend=self.backend.name,
        )

    def _resolve(self, handle: MediaHandle | None) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(handle)

    def _resolve_error(self, error: ExpenseCaptureError) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_exception(error)
            # Retrieved by wait_for_handle; avoid "exception never retrieved"
            self._finished.exception()
