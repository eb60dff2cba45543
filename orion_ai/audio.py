"""
Microphone capture and speech-to-text.

Recording is delegated to a *capture backend*: any object with
``start()`` and ``stop() -> bytes`` plus a ``mime_type`` attribute.  The
default backend drives the ALSA ``arecord`` command-line tool.  A missing
tool or an inaccessible device surfaces as :class:`MicPermissionDenied`.
"""

import logging
import os
import subprocess
import tempfile

from .errors import MicPermissionDenied, TranscriptionFailed
from .gemini_api import GeminiAPIError, GeminiClient

log = logging.getLogger("orion_ai")


class ArecordBackend:
    """Record 16 kHz mono WAV through ``arecord`` into a temporary file."""

    mime_type = "audio/wav"

    def __init__(self, command: str = "arecord", rate: int = 16_000) -> None:
        self._command = command
        self._rate = rate
        self._proc: subprocess.Popen | None = None
        self._path: str | None = None

    def start(self) -> None:
        fd, self._path = tempfile.mkstemp(suffix=".wav")
        os.close(fd)
        try:
            self._proc = subprocess.Popen(
                [self._command, "-q", "-f", "S16_LE", "-c", "1",
                 "-r", str(self._rate), "-t", "wav", self._path],
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            self._cleanup()
            raise MicPermissionDenied() from exc
        # arecord exits immediately when the device cannot be opened
        try:
            self._proc.wait(timeout=0.3)
        except subprocess.TimeoutExpired:
            return
        err = self._proc.stderr.read().decode(errors="replace") \
            if self._proc.stderr else ""
        self._proc = None
        self._cleanup()
        log.warning("[MIC] %s exited early: %s", self._command, err.strip())
        raise MicPermissionDenied()

    def stop(self) -> bytes:
        if self._proc is None or self._path is None:
            return b""
        self._proc.terminate()
        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait()
        self._proc = None
        try:
            with open(self._path, "rb") as fh:
                return fh.read()
        finally:
            self._cleanup()

    def _cleanup(self) -> None:
        if self._path and os.path.exists(self._path):
            os.remove(self._path)
        self._path = None


class Recorder:
    """Start/stop wrapper that tracks whether a recording is running."""

    def __init__(self, backend=None) -> None:
        self._backend = backend or ArecordBackend()
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def mime_type(self) -> str:
        return self._backend.mime_type

    def start(self) -> None:
        """Begin capturing.

        Raises
        ------
        MicPermissionDenied
            When the device cannot be opened.
        """
        if self._recording:
            return
        try:
            self._backend.start()
        except MicPermissionDenied:
            raise
        except OSError as exc:
            raise MicPermissionDenied() from exc
        self._recording = True
        log.debug("[MIC] Recording started")

    def stop(self) -> bytes:
        """Stop capturing and return the recorded audio."""
        if not self._recording:
            return b""
        self._recording = False
        audio = self._backend.stop()
        log.debug("[MIC] Recording stopped (%d bytes)", len(audio))
        return audio


def transcribe(client: GeminiClient, data: str, mime_type: str) -> str:
    """Return the transcript of base64 audio *data*.

    Raises
    ------
    TranscriptionFailed
        Wrapping any API failure.
    """
    try:
        return client.transcribe_audio(data, mime_type).strip()
    except GeminiAPIError as exc:
        log.error("[MIC] Transcription failed: %s", exc)
        raise TranscriptionFailed(f"Transcription failed: {exc}") from exc


def append_transcript(current: str, transcript: str) -> str:
    """Append *transcript* to the text already typed in the chat input."""
    if not transcript:
        return current
    return f"{current} {transcript}" if current else transcript
