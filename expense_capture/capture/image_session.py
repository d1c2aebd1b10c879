"""
Receipt image capture from the photo library or the camera.

Each source asks for its own permission. The picked image is cropped to
the configured aspect ratio and re-encoded as JPEG before it becomes a
media handle.
"""

import io
from dataclasses import dataclass
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from expense_capture.config import Settings, settings
from expense_capture.errors import CaptureDevice, CaptureError, PermissionDenied
from expense_capture.logging_config import get_logger
from expense_capture.schemas.media import MediaHandle, MediaKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class PickerOptions:
    """Constraints passed to the platform picker."""

    aspect: tuple[int, int]
    quality: float
    allows_editing: bool = True


@dataclass
class PickedImage:
    data: bytes
    mime_type: str | None = None


class ImagePickerDriver(Protocol):
    """Photo library / camera bindings."""

    async def request_library_permission(self) -> bool: ...

    async def request_camera_permission(self) -> bool: ...

    async def launch_library(self, options: PickerOptions) -> PickedImage | None:
        """Return the chosen image, or None if the user cancelled."""
        ...

    async def launch_camera(self, options: PickerOptions) -> PickedImage | None: ...

    async def release_camera(self) -> None: ...


def crop_to_aspect(image: Image.Image, aspect: tuple[int, int]) -> Image.Image:
    """Centre-crop ``image`` to ``aspect`` (width, height)."""
    width, height = image.size
    target_w, target_h = aspect
    if width * target_h > height * target_w:
        new_width = height * target_w // target_h
        left = (width - new_width) // 2
        return image.crop((left, 0, left + new_width, height))
    new_height = width * target_h // target_w
    top = (height - new_height) // 2
    return image.crop((0, top, width, top + new_height))


def normalize_image(data: bytes, aspect: tuple[int, int], quality: float) -> bytes:
    """
    Apply orientation, aspect crop and JPEG compression.

    Raises:
        CaptureError: The bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            image = ImageOps.exif_transpose(source)
            image = crop_to_aspect(image, aspect).convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise CaptureError(
            f"Unreadable image: {e}",
            user_message="Failed to read the image. Please try another photo.",
        ) from e

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=max(1, min(95, round(quality * 100))), optimize=True)
    return buffer.getvalue()


class ImageCaptureSession:
    """
    Acquire a single receipt image.

    No retry policy; callers re-invoke on failure or cancellation.
    """

    def __init__(self, driver: ImagePickerDriver, config: Settings | None = None):
        config = config or settings
        self.driver = driver
        self.options = PickerOptions(
            aspect=(config.image_aspect_width, config.image_aspect_height),
            quality=config.image_quality,
        )

    async def pick_from_library(self) -> MediaHandle | None:
        """
        Pick an existing photo.

        Returns:
            Image media handle, or None if the user cancelled

        Raises:
            PermissionDenied: Library access refused
            CaptureError: The picked file is not a readable image
        """
        if not await self.driver.request_library_permission():
            logger.info("library_permission_denied")
            raise PermissionDenied(CaptureDevice.LIBRARY)

        picked = await self.driver.launch_library(self.options)
        return self._to_handle(picked, source="library")

    async def capture_from_camera(self) -> MediaHandle | None:
        """
        Take a photo with the camera.

        Raises:
            PermissionDenied: Camera access refused
            CaptureError: The captured file is not a readable image
        """
        if not await self.driver.request_camera_permission():
            logger.info("camera_permission_denied")
            raise PermissionDenied(CaptureDevice.CAMERA)

        try:
            picked = await self.driver.launch_camera(self.options)
        finally:
            await self.driver.release_camera()
        return self._to_handle(picked, source="camera")

    def _to_handle(self, picked: PickedImage | None, source: str) -> MediaHandle | None:
        if picked is None or not picked.data:
            logger.info("image_capture_cancelled", source=source)
            return None

        data = normalize_image(picked.data, self.options.aspect, self.options.quality)
        logger.info(
            "image_captured",
            source=source,
            original_mime_type=picked.mime_type or "image/jpeg",
            original_size=len(picked.data),
            size=len(data),
        )
        return MediaHandle.from_blob(data, "image/jpeg", kind=MediaKind.IMAGE)
