"""
Utilities for reading attachments.

Every supported file is read as raw bytes and base64-encoded so it can be
sent inline to the API.  The MIME type is derived from the file extension.

Supported types
---------------
* **Images** (.jpg / .jpeg / .png / .gif / .webp / .heic)
* **Audio**  (.wav / .mp3 / .ogg / .flac / .aac / .m4a / .webm)
* **Video**  (.mp4 / .mov / .mpeg / .mpg / .avi / .webm / .wmv / .3gp)

Anything else is sent as ``application/octet-stream``.
"""

import base64
import os
from dataclasses import dataclass
from pathlib import Path

# ---------------------------------------------------------------------------
# MIME tables
# ---------------------------------------------------------------------------

IMAGE_MIME: dict[str, str] = {
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png":  "image/png",
    ".gif":  "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
}

AUDIO_MIME: dict[str, str] = {
    ".wav":  "audio/wav",
    ".mp3":  "audio/mp3",
    ".ogg":  "audio/ogg",
    ".flac": "audio/flac",
    ".aac":  "audio/aac",
    ".m4a":  "audio/mp4",
    ".webm": "audio/webm",
}

VIDEO_MIME: dict[str, str] = {
    ".mp4":  "video/mp4",
    ".mov":  "video/quicktime",
    ".mpeg": "video/mpeg",
    ".mpg":  "video/mpeg",
    ".avi":  "video/x-msvideo",
    ".webm": "video/webm",
    ".wmv":  "video/x-ms-wmv",
    ".3gp":  "video/3gpp",
}

FALLBACK_MIME = "application/octet-stream"

#: Extensions offered by each file dialog.
IMAGE_PATTERNS = " ".join(f"*{ext}" for ext in IMAGE_MIME)
AUDIO_PATTERNS = " ".join(f"*{ext}" for ext in AUDIO_MIME)
VIDEO_PATTERNS = " ".join(f"*{ext}" for ext in VIDEO_MIME)


@dataclass(frozen=True)
class Attachment:
    """A single binary payload ready to be sent inline."""

    data: str          # base64
    mime_type: str     # e.g. "image/png"
    name: str = ""     # original file name
    size: int = 0      # raw size in bytes

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str,
                   name: str = "") -> "Attachment":
        return cls(
            data=base64.b64encode(raw).decode("ascii"),
            mime_type=mime_type,
            name=name,
            size=len(raw),
        )


def guess_mime(file_path: str, prefer: str = "") -> str:
    """Return the MIME type for *file_path* based on its extension.

    *prefer* (``"audio"`` or ``"video"``) disambiguates extensions that are
    valid for both, such as ``.webm``.
    """
    ext = Path(file_path).suffix.lower()
    tables = [IMAGE_MIME, AUDIO_MIME, VIDEO_MIME]
    if prefer == "video":
        tables = [VIDEO_MIME, IMAGE_MIME, AUDIO_MIME]
    for table in tables:
        if ext in table:
            return table[ext]
    return FALLBACK_MIME


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def read_attachment(file_path: str, prefer: str = "") -> Attachment:
    """Read *file_path* and return it as an :class:`Attachment`.

    Raises
    ------
    OSError
        When the file cannot be read.  Callers show ``"Failed to read
        file."`` inline.
    """
    with open(file_path, "rb") as fh:
        raw = fh.read()
    return Attachment.from_bytes(raw, guess_mime(file_path, prefer),
                                 name=os.path.basename(file_path))


def decode_attachment(data: str) -> bytes:
    """Return the raw bytes of base64 *data*."""
    return base64.b64decode(data)
