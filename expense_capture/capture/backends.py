"""
Audio capture backends.

``AudioCaptureBackend`` is the interface the capture session depends on.
Two variants wrap the platform drivers:

- ``NativeAudioBackend``: device recorder writing to a file, reports its
  own recorded duration.
- ``BrowserMediaBackend``: get-user-media stream plus media recorder,
  collecting chunks into an in-memory blob.

The variant is picked once at startup with ``select_audio_backend``.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal, Protocol

from expense_capture.errors import (
    CaptureDevice,
    CaptureError,
    PermissionDenied,
    PermissionReason,
)
from expense_capture.logging_config import get_logger
from expense_capture.schemas.media import MediaHandle, MediaKind

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Platform Drivers
# ─────────────────────────────────────────────────────────────────────────────


class NativeRecorderDriver(Protocol):
    """Device audio recorder (file based)."""

    async def request_permission(self) -> str:
        """Return "granted", "denied" or "unavailable"."""
        ...

    async def set_audio_mode(self, recording: bool) -> None: ...

    async def prepare(self) -> None: ...

    async def start(self) -> None: ...

    async def duration_ms(self) -> int: ...

    async def stop_and_unload(self) -> str | None:
        """Stop recording and return the recording file path."""
        ...


class BrowserMediaError(Exception):
    """DOM-style media error raised by browser drivers (``name`` as in the DOM)."""

    def __init__(self, name: str, message: str = ""):
        super().__init__(message or name)
        self.name = name


class BrowserMediaDriver(Protocol):
    """get-user-media and media recorder bindings."""

    def supports_user_media(self) -> bool: ...

    def supports_media_recorder(self) -> bool: ...

    def is_type_supported(self, mime_type: str) -> bool: ...

    async def get_user_media(self) -> Any:
        """Open a microphone stream; raises BrowserMediaError."""
        ...

    async def start_recorder(self, stream: Any, mime_type: str) -> None: ...

    async def stop_recorder(self) -> list[bytes]:
        """Stop the recorder and return the collected data chunks."""
        ...

    def stop_tracks(self, stream: Any) -> None: ...


# ─────────────────────────────────────────────────────────────────────────────
# Backend Interface
# ─────────────────────────────────────────────────────────────────────────────


class AudioCaptureBackend(ABC):
    """Platform-independent capture operations used by AudioCaptureSession."""

    name: str = "abstract"
    _held: bool = False

    @property
    def held(self) -> bool:
        """True between a successful acquire and the matching release."""
        return self._held

    @abstractmethod
    async def acquire(self) -> None:
        """Obtain permission and the device. Raises PermissionDenied."""

    @abstractmethod
    async def begin(self) -> None:
        """Start capturing."""

    @abstractmethod
    async def recorded_ms(self) -> int | None:
        """Duration reported by the device, or None if it does not report one."""

    @abstractmethod
    async def finalize(self) -> MediaHandle | None:
        """Stop capturing and flush buffers; None if nothing was produced."""

    @abstractmethod
    async def release(self) -> None:
        """Give the device back. Must be safe to call more than once."""


# ─────────────────────────────────────────────────────────────────────────────
# Native Variant
# ─────────────────────────────────────────────────────────────────────────────


class NativeAudioBackend(AudioCaptureBackend):
    """File-based device recorder."""

    name = "native"

    def __init__(self, driver: NativeRecorderDriver):
        self.driver = driver
        self._mode_set = False
        self._recording = False

    async def acquire(self) -> None:
        status = await self.driver.request_permission()
        if status == "unavailable":
            raise PermissionDenied(CaptureDevice.MICROPHONE, PermissionReason.NO_DEVICE)
        if status != "granted":
            raise PermissionDenied(CaptureDevice.MICROPHONE, PermissionReason.DENIED)
        self._held = True

    async def begin(self) -> None:
        await self.driver.set_audio_mode(recording=True)
        self._mode_set = True
        await self.driver.prepare()
        await self.driver.start()
        self._recording = True

    async def recorded_ms(self) -> int | None:
        return await self.driver.duration_ms()

    async def finalize(self) -> MediaHandle | None:
        if not self._recording:
            return None
        self._recording = False
        path = await self.driver.stop_and_unload()
        if not path:
            return None
        return MediaHandle.from_path(path)

    async def release(self) -> None:
        if self._recording:
            self._recording = False
            try:
                await self.driver.stop_and_unload()
            except Exception as e:
                logger.warning("native_recorder_unload_failed", error=str(e))
        self._held = False
        if self._mode_set:
            self._mode_set = False
            await self.driver.set_audio_mode(recording=False)


# ─────────────────────────────────────────────────────────────────────────────
# Browser Variant
# ─────────────────────────────────────────────────────────────────────────────

PREFERRED_MIME_TYPES = ("audio/webm;codecs=opus", "audio/webm", "audio/mp4")

BROWSER_ERROR_REASONS = {
    "NotAllowedError": PermissionReason.DENIED,
    "NotFoundError": PermissionReason.NO_DEVICE,
    "NotSupportedError": PermissionReason.NOT_SUPPORTED,
}


class BrowserMediaBackend(AudioCaptureBackend):
    """In-memory recording through the browser media APIs."""

    name = "browser"

    def __init__(self, driver: BrowserMediaDriver):
        self.driver = driver
        self.mime_type: str | None = None
        self._stream: Any = None
        self._recording = False

    def _negotiate_mime_type(self) -> str:
        for mime_type in PREFERRED_MIME_TYPES:
            if self.driver.is_type_supported(mime_type):
                return mime_type
        raise PermissionDenied(
            CaptureDevice.MICROPHONE,
            PermissionReason.NOT_SUPPORTED,
            "No supported audio recording format",
        )

    async def acquire(self) -> None:
        if not self.driver.supports_user_media() or not self.driver.supports_media_recorder():
            raise PermissionDenied(CaptureDevice.MICROPHONE, PermissionReason.NOT_SUPPORTED)

        try:
            self._stream = await self.driver.get_user_media()
        except BrowserMediaError as e:
            reason = BROWSER_ERROR_REASONS.get(e.name)
            if reason is None:
                raise CaptureError(
                    f"Failed to access microphone: {e.name}",
                    user_message="Failed to access microphone. Please check your permissions and try again.",
                ) from e
            raise PermissionDenied(CaptureDevice.MICROPHONE, reason, str(e)) from e
        self._held = True

    async def begin(self) -> None:
        if self._stream is None:
            raise CaptureError("No microphone stream available")
        self.mime_type = self._negotiate_mime_type()
        await self.driver.start_recorder(self._stream, self.mime_type)
        self._recording = True

    async def recorded_ms(self) -> int | None:
        return None

    async def finalize(self) -> MediaHandle | None:
        if not self._recording:
            return None
        self._recording = False
        chunks = await self.driver.stop_recorder()
        data = b"".join(chunk for chunk in chunks if chunk)
        if not data:
            return None
        return MediaHandle.from_blob(data, self.mime_type or "audio/webm", kind=MediaKind.AUDIO)

    async def release(self) -> None:
        if self._recording:
            self._recording = False
            try:
                await self.driver.stop_recorder()
            except Exception as e:
                logger.warning("browser_recorder_stop_failed", error=str(e))
        self._held = False
        if self._stream is not None:
            stream, self._stream = self._stream, None
            self.driver.stop_tracks(stream)


def select_audio_backend(
    runtime: Literal["native", "browser"],
    driver: NativeRecorderDriver | BrowserMediaDriver,
) -> AudioCaptureBackend:
    """Pick the backend variant for the runtime environment."""
    if runtime == "native":
        return NativeAudioBackend(driver)
    if runtime == "browser":
        return BrowserMediaBackend(driver)
    raise ValueError(f"Unsupported capture runtime: {runtime}. Supported: native, browser")
