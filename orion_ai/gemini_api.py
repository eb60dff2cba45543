"""
Gemini REST API client.

Talks to the public ``generativelanguage`` v1beta endpoints with plain
:mod:`requests`:

* ``models/<model>:generateContent`` — chat, image analysis/editing, video
  analysis, transcription and speech synthesis.
* ``models/<model>:predict`` — Imagen image generation.

Every failure (HTTP status, network, malformed body, blocked prompt) is
raised as :class:`GeminiAPIError`, which keeps enough context to debug the
call from the log alone.
"""

import json
import logging
from dataclasses import dataclass

import requests

from .chat_store import GroundingSource
from .config import DEFAULT_API_BASE, DEFAULT_TIMEOUT

log = logging.getLogger("orion_ai")


# ---------------------------------------------------------------------------
# Error-handling helpers
# ---------------------------------------------------------------------------

class GeminiAPIError(Exception):
    """Rich API error that preserves diagnostic context for debugging.

    Attributes
    ----------
    status_code : int | None
        HTTP status code (``None`` for non-HTTP errors).
    endpoint : str
        The URL that was called.
    model : str
        Model identifier sent in the request.
    response_body : str
        First 500 chars of the response body (often contains the real error).
    payload_summary : dict | None
        Summarised payload (keys + a few values) for reproducing the issue.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        model: str = "",
        response_body: str = "",
        payload_summary: dict | None = None,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.model = model
        self.response_body = response_body
        self.payload_summary = payload_summary
        super().__init__(message)

    def __str__(self) -> str:  # noqa: D105
        parts = [super().__str__()]
        if self.status_code is not None:
            parts.append(f"  HTTP {self.status_code}")
        if self.model:
            parts.append(f"  Model: {self.model}")
        return "\n".join(parts)


def _extract_error_detail(response: requests.Response) -> str:
    """Extract a readable error description from an HTTP response.

    Google APIs answer with ``{"error": {"code": .., "message": ..,
    "status": ..}}``; anything else falls back to the raw text (truncated
    to 500 chars).
    """
    try:
        body = response.json()
        if isinstance(body, dict) and "error" in body:
            err = body["error"]
            if isinstance(err, dict):
                return (
                    f"[{err.get('status', 'error')}] "
                    f"{err.get('message', str(err))}"
                )
            return str(err)
        return response.text[:500]
    except ValueError:
        return response.text[:500] if response.text else "(empty body)"


def _summarise_payload(payload: dict) -> dict:
    """Return a compact summary of a request payload for diagnostics.

    Message lists are replaced with counts so that inline base64 data never
    reaches the log.
    """
    summary = {}
    for k, v in payload.items():
        if k in ("contents", "instances"):
            summary[k] = f"[{len(v)} entries]"
        elif k == "systemInstruction":
            summary[k] = "(set)"
        else:
            summary[k] = v
    return summary


# ---------------------------------------------------------------------------
# Models
# Keys are the labels shown in the model selector.
# Values are the model identifiers sent to the API.
# ---------------------------------------------------------------------------
MODELS: dict[str, str] = {
    "Flash Lite (Fast)": "gemini-flash-lite-latest",
    "Flash (Balanced)":  "gemini-2.5-flash",
    "Pro (Complex)":     "gemini-2.5-pro",
}
DEFAULT_MODEL = "gemini-2.5-flash"

#: Thinking budget granted to the Pro tier.
PRO_THINKING_BUDGET = 32_768

IMAGE_GEN_MODEL = "imagen-4.0-generate-001"
IMAGE_ANALYZE_MODEL = "gemini-2.5-flash"
IMAGE_EDIT_MODEL = "gemini-2.5-flash-image"
VIDEO_MODEL = "gemini-2.5-pro"
TRANSCRIBE_MODEL = "gemini-2.5-flash"
TTS_MODEL = "gemini-2.5-flash-preview-tts"
TTS_VOICE = "Kore"

TRANSCRIBE_PROMPT = "Transcribe the following audio recording."


@dataclass(frozen=True)
class LatLng:
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class ChatResponse:
    """Primary text plus any grounding citations of one chat reply."""

    text: str
    sources: tuple[GroundingSource, ...] = ()


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def text_part(text: str) -> dict:
    return {"text": text}


def inline_part(data: str, mime_type: str) -> dict:
    """Return an ``inlineData`` part for base64 *data*."""
    return {"inlineData": {"mimeType": mime_type, "data": data}}


def build_chat_payload(
    contents: list[dict],
    model: str,
    *,
    system_instruction: str = "",
    use_search: bool = False,
    use_maps: bool = False,
    location: LatLng | None = None,
) -> dict:
    """Build the ``generateContent`` body for one chat turn.

    * ``tools`` is present only when at least one grounding tool is on.
    * ``toolConfig`` is present only when maps grounding is on **and** a
      location is known.
    * The Pro tier gets a thinking budget.
    """
    payload: dict = {"contents": contents}
    if system_instruction:
        payload["systemInstruction"] = {"parts": [text_part(system_instruction)]}

    tools: list[dict] = []
    if use_search:
        tools.append({"googleSearch": {}})
    if use_maps:
        tools.append({"googleMaps": {}})
    if tools:
        payload["tools"] = tools

    if use_maps and location is not None:
        payload["toolConfig"] = {
            "retrievalConfig": {"latLng": location.to_dict()},
        }

    if model == MODELS["Pro (Complex)"]:
        payload["generationConfig"] = {
            "thinkingConfig": {"thinkingBudget": PRO_THINKING_BUDGET},
        }
    return payload


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _first_candidate(body: dict) -> dict:
    candidates = body.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _candidate_parts(body: dict) -> list[dict]:
    content = _first_candidate(body).get("content") or {}
    parts = content.get("parts") or []
    return [p for p in parts if isinstance(p, dict)]


def extract_text(body: dict) -> str:
    """Concatenate the text parts of the first candidate.

    Thought summaries (``"thought": true``) are not part of the answer.
    """
    return "".join(
        p["text"] for p in _candidate_parts(body)
        if isinstance(p.get("text"), str) and not p.get("thought")
    )


def extract_sources(body: dict) -> tuple[GroundingSource, ...]:
    """Return web and maps citations as uniform :class:`GroundingSource`.

    Chunks that are neither ``web`` nor ``maps``, or that carry no URI,
    are dropped.
    """
    metadata = _first_candidate(body).get("groundingMetadata") or {}
    sources: list[GroundingSource] = []
    for chunk in metadata.get("groundingChunks") or []:
        if not isinstance(chunk, dict):
            continue
        ref = chunk.get("web") or chunk.get("maps")
        if not isinstance(ref, dict):
            continue
        uri = ref.get("uri")
        if not isinstance(uri, str) or not uri.strip():
            continue
        title = ref.get("title")
        sources.append(GroundingSource(
            title=title if isinstance(title, str) else "",
            uri=uri,
        ))
    return tuple(sources)


def extract_inline_data(body: dict) -> str | None:
    """Return the base64 data of the first ``inlineData`` part, if any."""
    for part in _candidate_parts(body):
        inline = part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            return inline["data"]
    return None


class GeminiClient:
    """Thin wrapper around the Gemini REST endpoints."""

    def __init__(
        self,
        api_key: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _url(self, model: str, method: str) -> str:
        return f"{self._api_base}/models/{model}:{method}"

    def _post(self, model: str, method: str, payload: dict) -> dict:
        """POST *payload* and return the decoded JSON body."""
        url = self._url(model, method)
        summary = _summarise_payload(payload)
        log.debug("[API] POST %s  payload=%s", url, summary)

        try:
            response = requests.post(
                url,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self._api_key,
                },
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise GeminiAPIError(
                f"Network error: {type(exc).__name__}: {exc}",
                endpoint=url,
                model=model,
                payload_summary=summary,
            ) from exc

        log.debug("[API] %s → %d  (body len=%d)",
                  url, response.status_code, len(response.text or ""))

        if not response.ok:
            detail = _extract_error_detail(response)
            raise GeminiAPIError(
                f"Gemini API request failed (HTTP {response.status_code}). "
                f"{detail}",
                status_code=response.status_code,
                endpoint=url,
                model=model,
                response_body=response.text[:500] if response.text else "",
                payload_summary=summary,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GeminiAPIError(
                "Gemini returned a non-JSON response.",
                status_code=response.status_code,
                endpoint=url,
                model=model,
                response_body=response.text[:500],
            ) from exc
        if not isinstance(body, dict):
            raise GeminiAPIError(
                f"Unexpected response type {type(body).__name__}.",
                status_code=response.status_code,
                endpoint=url,
                model=model,
                response_body=json.dumps(body)[:500],
            )

        block = (body.get("promptFeedback") or {}).get("blockReason")
        if block:
            raise GeminiAPIError(
                f"The request was blocked ({block}).",
                status_code=response.status_code,
                endpoint=url,
                model=model,
            )
        return body

    def _generate(self, model: str, parts: list[dict],
                  generation_config: dict | None = None) -> dict:
        payload: dict = {"contents": [{"role": "user", "parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config
        return self._post(model, "generateContent", payload)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat(
        self,
        contents: list[dict],
        model: str = DEFAULT_MODEL,
        *,
        system_instruction: str = "",
        use_search: bool = False,
        use_maps: bool = False,
        location: LatLng | None = None,
    ) -> ChatResponse:
        """Send one chat turn and return its text and citations.

        Parameters
        ----------
        contents : Role-tagged transcript (``user`` / ``model``) ending with
                   the new user turn.
        model    : One of the :data:`MODELS` identifiers.
        """
        log.debug("[API] chat  model=%s  turns=%d  search=%s  maps=%s  "
                  "location=%s", model, len(contents), use_search, use_maps,
                  "yes" if location else "no")
        payload = build_chat_payload(
            contents, model,
            system_instruction=system_instruction,
            use_search=use_search,
            use_maps=use_maps,
            location=location,
        )
        body = self._post(model, "generateContent", payload)
        return ChatResponse(text=extract_text(body),
                            sources=extract_sources(body))

    # ------------------------------------------------------------------
    # Single-shot tools
    # ------------------------------------------------------------------

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> str:
        """Return a base64 JPEG generated from *prompt*."""
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "outputMimeType": "image/jpeg",
                "aspectRatio": aspect_ratio,
            },
        }
        body = self._post(IMAGE_GEN_MODEL, "predict", payload)
        for prediction in body.get("predictions") or []:
            if isinstance(prediction, dict) and prediction.get("bytesBase64Encoded"):
                return prediction["bytesBase64Encoded"]
        raise GeminiAPIError("No image data found in response",
                             model=IMAGE_GEN_MODEL)

    def analyze_image(self, prompt: str, data: str, mime_type: str) -> str:
        body = self._generate(IMAGE_ANALYZE_MODEL,
                              [inline_part(data, mime_type), text_part(prompt)])
        return extract_text(body)

    def edit_image(self, prompt: str, data: str, mime_type: str) -> str:
        """Return the base64 image produced by editing *data* per *prompt*."""
        body = self._generate(
            IMAGE_EDIT_MODEL,
            [inline_part(data, mime_type), text_part(prompt)],
            {"responseModalities": ["IMAGE"]},
        )
        image = extract_inline_data(body)
        if image is None:
            raise GeminiAPIError("No image data found in response",
                                 model=IMAGE_EDIT_MODEL)
        return image

    def analyze_video(self, prompt: str, data: str, mime_type: str) -> str:
        body = self._generate(VIDEO_MODEL,
                              [inline_part(data, mime_type), text_part(prompt)])
        return extract_text(body)

    def transcribe_audio(self, data: str, mime_type: str) -> str:
        body = self._generate(
            TRANSCRIBE_MODEL,
            [inline_part(data, mime_type), text_part(TRANSCRIBE_PROMPT)],
        )
        return extract_text(body)

    def generate_speech(self, text: str, voice: str = TTS_VOICE) -> str | None:
        """Return base64 16-bit PCM (24 kHz mono) speech, or *None*."""
        body = self._generate(
            TTS_MODEL,
            [text_part(text)],
            {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice},
                    },
                },
            },
        )
        return extract_inline_data(body)
