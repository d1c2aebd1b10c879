"""
Media handles for captured audio and images.

A handle is owned by the capture session that created it until it is handed
to a client, and is released once the transmission finishes.
"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from expense_capture.logging_config import get_logger

logger = get_logger(__name__)


class MediaKind(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"


# Extension -> (filename, mimetype) for native recordings
AUDIO_TYPES: dict[str, tuple[str, str]] = {
    ".webm": ("audio.webm", "audio/webm"),
    ".wav": ("audio.wav", "audio/wav"),
    ".mp3": ("audio.mp3", "audio/mp3"),
    ".m4a": ("audio.m4a", "audio/m4a"),
}
DEFAULT_AUDIO_TYPE = AUDIO_TYPES[".m4a"]

# Mimetype -> filename for in-memory recordings
BLOB_FILENAMES: dict[str, str] = {
    "audio/webm": "recording.webm",
    "audio/mp4": "recording.mp4",
    "audio/wav": "recording.wav",
    "audio/mpeg": "recording.mp3",
}


@dataclass
class MediaHandle:
    """
    Opaque reference to captured media.

    Either ``path`` (native capture) or ``data`` (in-memory blob) is set.
    """

    kind: MediaKind
    mime_type: str
    path: Path | None = None
    data: bytes | None = None
    owns_file: bool = False
    released: bool = field(default=False, init=False)

    @classmethod
    def from_path(cls, path: str | Path, *, owns_file: bool = True) -> "MediaHandle":
        """Wrap a recording written to disk; mimetype comes from the extension."""
        path = Path(path)
        _, mime_type = AUDIO_TYPES.get(path.suffix.lower(), DEFAULT_AUDIO_TYPE)
        return cls(kind=MediaKind.AUDIO, mime_type=mime_type, path=path, owns_file=owns_file)

    @classmethod
    def from_blob(cls, data: bytes, mime_type: str, kind: MediaKind = MediaKind.AUDIO) -> "MediaHandle":
        return cls(kind=kind, mime_type=mime_type, data=data)

    @property
    def base_mime_type(self) -> str:
        """Mimetype without codec parameters."""
        return self.mime_type.split(";")[0].strip()

    @property
    def filename(self) -> str:
        if self.path is not None:
            name, _ = AUDIO_TYPES.get(self.path.suffix.lower(), DEFAULT_AUDIO_TYPE)
            return name
        if self.kind == MediaKind.IMAGE:
            return f"receipt.{self.base_mime_type.split('/')[-1]}"
        return BLOB_FILENAMES.get(self.base_mime_type, "recording.webm")

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        if self.path is not None and self.path.exists():
            return self.path.stat().st_size
        return 0

    def is_empty(self) -> bool:
        return self.size == 0

    def read_bytes(self) -> bytes:
        """Return the media content."""
        if self.released:
            raise ValueError("Media handle already released")
        if self.data is not None:
            return self.data
        if self.path is None:
            return b""
        return self.path.read_bytes()

    def as_data_url(self) -> str:
        """Encode as ``data:<mime>;base64,<payload>``."""
        payload = base64.b64encode(self.read_bytes()).decode("ascii")
        return f"data:{self.base_mime_type};base64,{payload}"

    def release(self) -> None:
        """Drop the in-memory payload and delete any owned file. Idempotent."""
        if self.released:
            return
        self.released = True
        self.data = None
        if self.path is not None and self.owns_file:
            try:
                self.path.unlink(missing_ok=True)
                logger.debug("media_file_removed", path=str(self.path))
            except OSError as e:
                logger.warning("failed_to_remove_media_file", path=str(self.path), error=str(e))
