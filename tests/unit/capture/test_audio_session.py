"""
Unit tests for audio capture sessions and backends.

Tests:
- State transitions (start, stop, abort, rejected transitions)
- Auto-stop at the duration ceiling
- Permission failure reasons per backend
- Empty recordings
- Device release on every exit path
"""

import asyncio

import pytest

from conftest import FakeBrowserMedia, FakeNativeRecorder
from expense_capture.capture.audio_session import AudioCaptureSession, RecordingState
from expense_capture.capture.backends import (
    BrowserMediaBackend,
    NativeAudioBackend,
    select_audio_backend,
)
from expense_capture.errors import (
    CaptureError,
    DeviceBusy,
    EmptyRecording,
    PermissionDenied,
    PermissionReason,
)
from expense_capture.schemas.media import MediaKind


class FailingModeResetRecorder(FakeNativeRecorder):
    """Recorder whose first audio mode reset fails."""

    def __init__(self, tmp_path):
        super().__init__(tmp_path)
        self.reset_failures = 1

    async def set_audio_mode(self, recording: bool) -> None:
        if not recording and self.reset_failures:
            self.reset_failures -= 1
            raise RuntimeError("audio session locked")
        await super().set_audio_mode(recording)


def _native_session(recorder, test_settings, **kwargs) -> AudioCaptureSession:
    return AudioCaptureSession(NativeAudioBackend(recorder), config=test_settings, **kwargs)


def _browser_session(media, test_settings, **kwargs) -> AudioCaptureSession:
    return AudioCaptureSession(BrowserMediaBackend(media), config=test_settings, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Native Recorder
# ─────────────────────────────────────────────────────────────────────────────


class TestNativeRecording:
    """Tests for the file-based recorder."""

    @pytest.mark.asyncio
    async def test_start_then_stop(self, native_recorder, test_settings):
        session = _native_session(native_recorder, test_settings)

        assert await session.start() is True
        assert session.state == RecordingState.RECORDING

        handle = await session.stop()

        assert session.state == RecordingState.IDLE
        assert handle.kind == MediaKind.AUDIO
        assert handle.mime_type == "audio/m4a"
        assert handle.path.exists()
        assert session.last_handle is handle
        assert session.auto_stopped is False
        assert native_recorder.audio_mode_calls == [True, False]
        handle.release()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self, native_recorder, test_settings):
        session = _native_session(native_recorder, test_settings)

        assert await session.stop() is None
        assert session.state == RecordingState.IDLE

    @pytest.mark.asyncio
    async def test_start_while_recording_is_rejected(self, native_recorder, test_settings):
        session = _native_session(native_recorder, test_settings)
        await session.start()

        assert await session.start() is False
        assert session.state == RecordingState.RECORDING
        await session.abort()

    @pytest.mark.asyncio
    async def test_auto_stop_at_ceiling(self, native_recorder, test_settings):
        stopped = []
        session = _native_session(
            native_recorder,
            test_settings,
            max_duration_ms=300,
            tick_ms=1,
            on_auto_stop=stopped.append,
        )
        await session.start()

        handle = await asyncio.wait_for(session.wait_for_handle(), timeout=2)

        assert handle is not None
        assert session.auto_stopped is True
        assert session.elapsed_ms >= 300
        assert session.state == RecordingState.IDLE
        assert stopped == [handle]
        assert native_recorder.audio_mode_calls == [True, False]
        handle.release()

    @pytest.mark.asyncio
    async def test_stop_after_auto_stop_is_noop(self, native_recorder, test_settings):
        session = _native_session(native_recorder, test_settings, max_duration_ms=100, tick_ms=1)
        await session.start()
        handle = await asyncio.wait_for(session.wait_for_handle(), timeout=2)

        assert await session.stop() is None
        assert native_recorder.unloaded == 1
        handle.release()

    @pytest.mark.asyncio
    async def test_permission_unavailable_is_no_device(self, tmp_path, test_settings):
        recorder = FakeNativeRecorder(tmp_path, permission="unavailable")
        session = _native_session(recorder, test_settings)

        with pytest.raises(PermissionDenied) as exc_info:
            await session.start()

        assert exc_info.value.reason == PermissionReason.NO_DEVICE
        assert session.state == RecordingState.ERROR
        assert session.last_error is exc_info.value

    @pytest.mark.asyncio
    async def test_permission_denied(self, tmp_path, test_settings):
        recorder = FakeNativeRecorder(tmp_path, permission="denied")
        session = _native_session(recorder, test_settings)

        with pytest.raises(PermissionDenied) as exc_info:
            await session.start()

        assert exc_info.value.reason == PermissionReason.DENIED
        assert "allow microphone access" in exc_info.value.user_message
        assert recorder.audio_mode_calls == []

    @pytest.mark.asyncio
    async def test_start_failure_releases_device(self, native_recorder, test_settings):
        native_recorder.fail_on_start = True
        session = _native_session(native_recorder, test_settings)

        with pytest.raises(CaptureError, match="device busy"):
            await session.start()

        assert session.state == RecordingState.ERROR
        assert native_recorder.audio_mode_calls == [True, False]

    @pytest.mark.asyncio
    async def test_retry_after_error(self, tmp_path, test_settings):
        recorder = FakeNativeRecorder(tmp_path, permission="denied")
        session = _native_session(recorder, test_settings)
        with pytest.raises(PermissionDenied):
            await session.start()

        recorder.permission = "granted"
        assert await session.start() is True
        assert session.last_error is None
        await session.abort()

    @pytest.mark.asyncio
    async def test_empty_recording(self, tmp_path, test_settings):
        recorder = FakeNativeRecorder(tmp_path, content=b"")
        session = _native_session(recorder, test_settings)
        await session.start()

        with pytest.raises(EmptyRecording):
            await session.stop()

        assert session.state == RecordingState.ERROR
        assert recorder.audio_mode_calls == [True, False]

    @pytest.mark.asyncio
    async def test_wait_for_handle_surfaces_error(self, tmp_path, test_settings):
        recorder = FakeNativeRecorder(tmp_path, content=b"")
        session = _native_session(recorder, test_settings, max_duration_ms=100, tick_ms=1)
        await session.start()

        with pytest.raises(EmptyRecording):
            await asyncio.wait_for(session.wait_for_handle(), timeout=2)

    @pytest.mark.asyncio
    async def test_abort_releases_device(self, native_recorder, test_settings):
        session = _native_session(native_recorder, test_settings)
        await session.start()

        await session.abort()

        assert session.state == RecordingState.IDLE
        assert native_recorder.unloaded == 1
        assert native_recorder.audio_mode_calls == [True, False]
        assert await session.wait_for_handle() is None

    @pytest.mark.asyncio
    async def test_second_session_on_held_device_is_busy(self, native_recorder, test_settings):
        backend = NativeAudioBackend(native_recorder)
        first = AudioCaptureSession(backend, config=test_settings)
        second = AudioCaptureSession(backend, config=test_settings)
        await first.start()

        with pytest.raises(DeviceBusy):
            await second.start()

        assert first.state == RecordingState.RECORDING
        assert second.state == RecordingState.IDLE
        handle = await first.stop()
        assert await second.start() is True
        await second.abort()
        handle.release()

    @pytest.mark.asyncio
    async def test_abort_survives_release_failure(self, tmp_path, test_settings):
        recorder = FailingModeResetRecorder(tmp_path)
        session = _native_session(recorder, test_settings)
        await session.start()

        await session.abort()

        assert session.state == RecordingState.IDLE
        assert await asyncio.wait_for(session.wait_for_handle(), timeout=1) is None
        assert await session.start() is True
        await session.abort()

    @pytest.mark.asyncio
    async def test_context_manager_survives_release_failure(self, tmp_path, test_settings):
        recorder = FailingModeResetRecorder(tmp_path)

        async with _native_session(recorder, test_settings) as session:
            await session.start()

        assert session.state == RecordingState.IDLE

    @pytest.mark.asyncio
    async def test_context_manager_aborts(self, native_recorder, test_settings):
        async with _native_session(native_recorder, test_settings) as session:
            await session.start()

        assert session.state == RecordingState.IDLE
        assert native_recorder.started is False


# ─────────────────────────────────────────────────────────────────────────────
# Browser Recorder
# ─────────────────────────────────────────────────────────────────────────────


class TestBrowserRecording:
    """Tests for the in-memory browser recorder."""

    @pytest.mark.asyncio
    async def test_blob_recording(self, browser_media, test_settings):
        session = _browser_session(browser_media, test_settings)
        await session.start()

        handle = await session.stop()

        assert handle.data == b"chunk-1chunk-2"
        assert handle.mime_type == "audio/webm;codecs=opus"
        assert handle.filename == "recording.webm"
        assert browser_media.tracks_stopped == 1

    @pytest.mark.asyncio
    async def test_mime_type_negotiation(self, test_settings):
        media = FakeBrowserMedia(supported=("audio/mp4",))
        session = _browser_session(media, test_settings)
        await session.start()

        handle = await session.stop()

        assert media.recorder_mime_type == "audio/mp4"
        assert handle.filename == "recording.mp4"

    @pytest.mark.asyncio
    async def test_no_supported_format(self, test_settings):
        media = FakeBrowserMedia(supported=())
        session = _browser_session(media, test_settings)

        with pytest.raises(PermissionDenied) as exc_info:
            await session.start()

        assert exc_info.value.reason == PermissionReason.NOT_SUPPORTED
        assert media.tracks_stopped == 1

    @pytest.mark.asyncio
    async def test_missing_media_apis(self, test_settings):
        media = FakeBrowserMedia()
        media.media_recorder = False
        session = _browser_session(media, test_settings)

        with pytest.raises(PermissionDenied) as exc_info:
            await session.start()

        assert exc_info.value.reason == PermissionReason.NOT_SUPPORTED
        assert "modern browser" in exc_info.value.user_message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_name,reason", [
        ("NotAllowedError", PermissionReason.DENIED),
        ("NotFoundError", PermissionReason.NO_DEVICE),
        ("NotSupportedError", PermissionReason.NOT_SUPPORTED),
    ])
    async def test_dom_errors_map_to_reasons(self, test_settings, error_name, reason):
        session = _browser_session(FakeBrowserMedia(error_name=error_name), test_settings)

        with pytest.raises(PermissionDenied) as exc_info:
            await session.start()

        assert exc_info.value.reason == reason

    @pytest.mark.asyncio
    async def test_unknown_dom_error_is_capture_error(self, test_settings):
        session = _browser_session(FakeBrowserMedia(error_name="AbortError"), test_settings)

        with pytest.raises(CaptureError) as exc_info:
            await session.start()

        assert not isinstance(exc_info.value, PermissionDenied)

    @pytest.mark.asyncio
    async def test_no_chunks_is_empty_recording(self, test_settings):
        media = FakeBrowserMedia(chunks=[b"", b""])
        session = _browser_session(media, test_settings)
        await session.start()

        with pytest.raises(EmptyRecording):
            await session.stop()

        assert media.tracks_stopped == 1

    @pytest.mark.asyncio
    async def test_browser_elapsed_counts_ticks(self, test_settings):
        session = _browser_session(FakeBrowserMedia(), test_settings, max_duration_ms=5, tick_ms=1)
        await session.start()

        handle = await asyncio.wait_for(session.wait_for_handle(), timeout=2)

        assert handle is not None
        assert session.auto_stopped is True
        assert session.elapsed_ms == 5


# ─────────────────────────────────────────────────────────────────────────────
# Backend Selection
# ─────────────────────────────────────────────────────────────────────────────


class TestSelectAudioBackend:
    def test_native(self, native_recorder):
        assert isinstance(select_audio_backend("native", native_recorder), NativeAudioBackend)

    def test_browser(self, browser_media):
        assert isinstance(select_audio_backend("browser", browser_media), BrowserMediaBackend)

    def test_unknown_runtime(self, browser_media):
        with pytest.raises(ValueError, match="Unsupported capture runtime"):
            select_audio_backend("desktop", browser_media)
