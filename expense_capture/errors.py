"""
Error taxonomy for the capture and extraction pipeline.

Every error carries a ``user_message`` that is safe to show to the end user.
Internal detail (upstream bodies, stack traces) goes to the logs only.
"""

from enum import Enum


class ExpenseCaptureError(Exception):
    """Base exception for capture, transport and review errors."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, user_message: str | None = None):
        super().__init__(message or user_message or self.default_message)
        self.user_message = user_message or self.default_message


# ─────────────────────────────────────────────────────────────────────────────
# Permission Errors
# ─────────────────────────────────────────────────────────────────────────────


class PermissionReason(str, Enum):
    """Why a device could not be acquired."""

    NOT_SUPPORTED = "not_supported"
    NO_DEVICE = "no_device"
    DENIED = "denied"


class CaptureDevice(str, Enum):
    """Hardware or asset source a capture session asks permission for."""

    MICROPHONE = "microphone"
    CAMERA = "camera"
    LIBRARY = "library"


PERMISSION_MESSAGES: dict[tuple[CaptureDevice, PermissionReason], str] = {
    (CaptureDevice.MICROPHONE, PermissionReason.NOT_SUPPORTED): (
        "Microphone access not supported on this device. "
        "Please use a modern browser like Chrome, Firefox, or Safari."
    ),
    (CaptureDevice.MICROPHONE, PermissionReason.NO_DEVICE): (
        "No microphone found. Please connect a microphone and try again."
    ),
    (CaptureDevice.MICROPHONE, PermissionReason.DENIED): (
        "Microphone permission denied. Please allow microphone access in your settings and try again."
    ),
    (CaptureDevice.CAMERA, PermissionReason.DENIED): (
        "Please grant permission to access your camera to take receipt photos."
    ),
    (CaptureDevice.LIBRARY, PermissionReason.DENIED): (
        "Please grant permission to access your photo library to scan receipts."
    ),
}


class PermissionDenied(ExpenseCaptureError):
    """Raised when a capture device or the photo library cannot be used."""

    def __init__(
        self,
        device: CaptureDevice,
        reason: PermissionReason = PermissionReason.DENIED,
        message: str | None = None,
    ):
        self.device = device
        self.reason = reason
        user_message = PERMISSION_MESSAGES.get(
            (device, reason), PERMISSION_MESSAGES.get((device, PermissionReason.DENIED))
        )
        super().__init__(
            message or f"{device.value} unavailable: {reason.value}",
            user_message=user_message,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Capture Errors
# ─────────────────────────────────────────────────────────────────────────────


class CaptureError(ExpenseCaptureError):
    """Raised when the capture device fails while recording."""

    default_message = "Failed to record. Please try again."


class EmptyRecording(CaptureError):
    """Raised when a recording is stopped with no audio captured."""

    default_message = "Nothing was recorded. Please try again."


class DeviceBusy(CaptureError):
    """Raised when the capture device is held by another session."""

    default_message = "The microphone is in use by another recording."


# ─────────────────────────────────────────────────────────────────────────────
# Transport Errors
# ─────────────────────────────────────────────────────────────────────────────


class TransportError(ExpenseCaptureError):
    """Network-level failure; the user may retry explicitly."""

    retryable = True
    default_message = "Network error. Please check your connection and try again."


class NetworkError(TransportError):
    """Raised on timeouts and connection failures."""


class TranscriptionServiceError(TransportError):
    """Raised when the transcription service rejects or garbles a request."""

    default_message = "Failed to transcribe recording. Please try again."


class ReceiptParsingFailed(TransportError):
    """Raised when no model tier produced a valid receipt extraction."""

    code = "ReceiptParsingFailed"
    status_code = 500
    default_message = "Failed to parse receipt. Please try again."


# ─────────────────────────────────────────────────────────────────────────────
# Validation & Rate-Limit Errors
# ─────────────────────────────────────────────────────────────────────────────


class ReceiptValidationError(ExpenseCaptureError):
    """Raised when a receipt payload is rejected before any model call."""

    code = "ReceiptValidationError"
    status_code = 400


class InvalidImageFormat(ReceiptValidationError):
    """Image payload is not an image data URL."""

    code = "InvalidImageFormat"
    default_message = "Invalid image data. Expected base64 data URL."


class ImageTooLarge(ReceiptValidationError):
    """Estimated decoded image size exceeds the limit."""

    code = "ImageTooLarge"
    default_message = "Image too large. Maximum size is 10MB."


class RateLimitExceeded(ExpenseCaptureError):
    """Raised when a client exceeds its request window."""

    code = "RateLimitExceeded"
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────────────
# Review Errors
# ─────────────────────────────────────────────────────────────────────────────


class ReviewError(ExpenseCaptureError):
    """Base exception for review flow errors."""


class ReviewClosedError(ReviewError):
    """Raised when a confirmed or discarded review is used again."""

    default_message = "This expense has already been saved or discarded."


class IncompleteDraftError(ReviewError):
    """Raised when confirming a draft without an amount or description."""

    default_message = "Please fill in all required fields."
