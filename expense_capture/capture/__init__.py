"""
Audio and image capture sessions.
"""

from expense_capture.capture.audio_session import AudioCaptureSession, RecordingState
from expense_capture.capture.backends import (
    AudioCaptureBackend,
    BrowserMediaBackend,
    BrowserMediaError,
    NativeAudioBackend,
    select_audio_backend,
)
from expense_capture.capture.image_session import (
    ImageCaptureSession,
    PickedImage,
    PickerOptions,
)

__all__ = [
    "AudioCaptureBackend",
    "AudioCaptureSession",
    "BrowserMediaBackend",
    "BrowserMediaError",
    "ImageCaptureSession",
    "NativeAudioBackend",
    "PickedImage",
    "PickerOptions",
    "RecordingState",
    "select_audio_backend",
]
