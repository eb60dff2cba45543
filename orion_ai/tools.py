"""
Single-shot creative tools: image generation, image studio, video analysis
and text-to-speech.

Each function takes a :class:`~gemini_api.GeminiClient`, validates its input
and converts API failures into :class:`~errors.RequestFailed` carrying the
inline message the matching panel shows.
"""

import base64
import io
import logging
import re
import wave
from dataclasses import dataclass

from .errors import RequestFailed
from .file_handler import Attachment
from .gemini_api import GeminiAPIError, GeminiClient

log = logging.getLogger("orion_ai")

# ---------------------------------------------------------------------------
# Image generation
# ---------------------------------------------------------------------------

IMAGE_STYLES: dict[str, str] = {
    "Photorealistic": (
        "A photorealistic image with true-to-life textures, realistic "
        "colors, 8K detail"
    ),
    "Cinematic": (
        "A cinematic shot with deep contrast, dramatic lighting, "
        "realistic tones"
    ),
    "Cyberpunk": (
        "A cyberpunk scene with neon lights, futuristic mood, vibrant "
        "reflections"
    ),
    "Fantasy": (
        "A fantasy artwork with magical, soft lighting, ethereal atmosphere"
    ),
    "Illustration": (
        "An artistic illustration with a colorful, hand-drawn appearance"
    ),
    "Anime": (
        "An anime style art with vibrant colors, expressive faces, clean "
        "outlines, stylized lighting"
    ),
}

ASPECT_RATIOS: dict[str, str] = {
    "Square (1:1)":     "1:1",
    "Landscape (16:9)": "16:9",
    "Portrait (9:16)":  "9:16",
}


def styled_prompt(prompt: str, style: str) -> str:
    """Return *prompt* prefixed with the description of *style*."""
    return f"{IMAGE_STYLES[style]} of {prompt}"


def safe_filename(prompt: str) -> str:
    """Return a file-system-safe stem derived from *prompt*."""
    return re.sub(r"[^a-z0-9]", "_", prompt[:30], flags=re.IGNORECASE).lower() \
        or "image"


def generate_image(client: GeminiClient, prompt: str,
                   style: str = "Photorealistic",
                   aspect: str = "Square (1:1)") -> bytes:
    """Return JPEG bytes for *prompt* rendered in *style*."""
    try:
        b64 = client.generate_image(styled_prompt(prompt, style),
                                    ASPECT_RATIOS[aspect])
    except GeminiAPIError as exc:
        raise RequestFailed("Failed to generate image", exc) from exc
    return base64.b64decode(b64)


# ---------------------------------------------------------------------------
# Image studio
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StudioResult:
    """Text for ``analyze`` mode, PNG bytes for ``edit`` mode."""

    text: str | None = None
    image: bytes | None = None


STUDIO_MODES = ("analyze", "edit")


def run_image_studio(client: GeminiClient, mode: str, prompt: str,
                     image: Attachment) -> StudioResult:
    if mode not in STUDIO_MODES:
        raise ValueError(f"unknown studio mode {mode!r}")
    try:
        if mode == "analyze":
            return StudioResult(text=client.analyze_image(
                prompt, image.data, image.mime_type))
        edited = client.edit_image(prompt, image.data, image.mime_type)
    except GeminiAPIError as exc:
        raise RequestFailed("Request failed", exc) from exc
    return StudioResult(image=base64.b64decode(edited))


# ---------------------------------------------------------------------------
# Video analysis
# ---------------------------------------------------------------------------

MAX_VIDEO_BYTES = 50 * 1024 * 1024
VIDEO_TOO_LARGE = "File is too large. Please upload a video under 50MB."


def check_video_size(size: int) -> None:
    """Raise :class:`ValueError` when *size* exceeds the upload cap."""
    if size > MAX_VIDEO_BYTES:
        raise ValueError(VIDEO_TOO_LARGE)


def analyze_video(client: GeminiClient, prompt: str,
                  video: Attachment) -> str:
    try:
        return client.analyze_video(prompt, video.data, video.mime_type)
    except GeminiAPIError as exc:
        raise RequestFailed("Request failed", exc) from exc


# ---------------------------------------------------------------------------
# Text-to-speech
# ---------------------------------------------------------------------------

TTS_SAMPLE_RATE = 24_000
TTS_CHANNELS = 1
TTS_SAMPLE_WIDTH = 2  # 16-bit

NO_AUDIO = "API did not return audio data."


def pcm_to_wav(pcm: bytes, sample_rate: int = TTS_SAMPLE_RATE,
               channels: int = TTS_CHANNELS,
               sample_width: int = TTS_SAMPLE_WIDTH) -> bytes:
    """Wrap raw little-endian PCM samples in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def synthesize_speech(client: GeminiClient, text: str) -> bytes:
    """Return WAV bytes speaking *text*."""
    try:
        b64 = client.generate_speech(text)
        if not b64:
            raise GeminiAPIError(NO_AUDIO)
    except GeminiAPIError as exc:
        raise RequestFailed("Failed to generate speech", exc) from exc
    wav = pcm_to_wav(base64.b64decode(b64))
    log.debug("[TTS] %d chars → %d bytes of WAV", len(text), len(wav))
    return wav
