"""
Pytest configuration and fixtures for the expense capture test suite.

Provides:
- Settings tuned for tests
- Fake platform drivers (native recorder, browser media, image picker)
- Record store / identity fixtures
- Sample media
"""

import io
import os

import pytest
from PIL import Image

# Set test environment before importing package modules
os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "console")

from expense_capture.capture.backends import BrowserMediaError
from expense_capture.capture.image_session import PickedImage
from expense_capture.config import Settings
from expense_capture.integrations.identity import StaticIdentityProvider
from expense_capture.schemas.media import MediaHandle, MediaKind
from expense_capture.storage.expense_store import InMemoryExpenseStore


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def test_settings() -> Settings:
    """Settings with deterministic values for tests."""
    return Settings(
        openai_api_key="test-key",
        receipt_parse_url="http://receipts.test/api/v1/receipts/parse",
        rate_limit_enabled=True,
        rate_limit_window_ms=60_000,
        rate_limit_max_requests=50,
        recording_max_ms=60_000,
        recording_tick_ms=100,
        confidence_threshold=0.7,
        default_currency="USD",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Fake Drivers
# ─────────────────────────────────────────────────────────────────────────────

class FakeNativeRecorder:
    """Native recorder double writing a real file on stop."""

    def __init__(self, tmp_path, permission="granted", content=b"\x00\x01" * 256, suffix=".m4a"):
        self.tmp_path = tmp_path
        self.permission = permission
        self.content = content
        self.suffix = suffix
        self.reported_ms = 0
        self.step_ms = 100
        self.audio_mode_calls: list[bool] = []
        self.started = False
        self.unloaded = 0
        self.fail_on_start = False

    async def request_permission(self) -> str:
        return self.permission

    async def set_audio_mode(self, recording: bool) -> None:
        self.audio_mode_calls.append(recording)

    async def prepare(self) -> None:
        pass

    async def start(self) -> None:
        if self.fail_on_start:
            raise RuntimeError("device busy")
        self.started = True

    async def duration_ms(self) -> int:
        self.reported_ms += self.step_ms
        return self.reported_ms

    async def stop_and_unload(self) -> str | None:
        self.unloaded += 1
        self.started = False
        if not self.content:
            return None
        path = self.tmp_path / f"recording{self.suffix}"
        path.write_bytes(self.content)
        return str(path)


class FakeBrowserMedia:
    """Browser media double collecting configured chunks."""

    def __init__(self, chunks=None, supported=("audio/webm;codecs=opus", "audio/webm"), error_name=None):
        self.chunks = [b"chunk-1", b"chunk-2"] if chunks is None else chunks
        self.supported = supported
        self.error_name = error_name
        self.user_media = True
        self.media_recorder = True
        self.tracks_stopped = 0
        self.recorder_mime_type = None

    def supports_user_media(self) -> bool:
        return self.user_media

    def supports_media_recorder(self) -> bool:
        return self.media_recorder

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported

    async def get_user_media(self):
        if self.error_name:
            raise BrowserMediaError(self.error_name)
        return object()

    async def start_recorder(self, stream, mime_type: str) -> None:
        self.recorder_mime_type = mime_type

    async def stop_recorder(self) -> list[bytes]:
        return list(self.chunks)

    def stop_tracks(self, stream) -> None:
        self.tracks_stopped += 1


class FakeImagePicker:
    """Image picker double returning a prepared image."""

    def __init__(self, image: PickedImage | None, library_ok=True, camera_ok=True):
        self.image = image
        self.library_ok = library_ok
        self.camera_ok = camera_ok
        self.launched_with = None
        self.camera_released = 0

    async def request_library_permission(self) -> bool:
        return self.library_ok

    async def request_camera_permission(self) -> bool:
        return self.camera_ok

    async def launch_library(self, options):
        self.launched_with = options
        return self.image

    async def launch_camera(self, options):
        self.launched_with = options
        return self.image

    async def release_camera(self) -> None:
        self.camera_released += 1


@pytest.fixture
def native_recorder(tmp_path) -> FakeNativeRecorder:
    return FakeNativeRecorder(tmp_path)


@pytest.fixture
def browser_media() -> FakeBrowserMedia:
    return FakeBrowserMedia()


# ─────────────────────────────────────────────────────────────────────────────
# Media Fixtures
# ─────────────────────────────────────────────────────────────────────────────

def make_image_bytes(size=(800, 400), color=(240, 240, 240), fmt="PNG") -> bytes:
    """Render a plain image in memory."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def receipt_image() -> PickedImage:
    return PickedImage(data=make_image_bytes(), mime_type="image/png")


@pytest.fixture
def image_handle() -> MediaHandle:
    return MediaHandle.from_blob(make_image_bytes(fmt="JPEG"), "image/jpeg", kind=MediaKind.IMAGE)


@pytest.fixture
def audio_blob_handle() -> MediaHandle:
    return MediaHandle.from_blob(b"\x00\x01\x02\x03" * 100, "audio/webm;codecs=opus")


# ─────────────────────────────────────────────────────────────────────────────
# Store & Identity Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def store() -> InMemoryExpenseStore:
    return InMemoryExpenseStore()


@pytest.fixture
def identity() -> StaticIdentityProvider:
    return StaticIdentityProvider(user_id="user-123", token="session-token")
