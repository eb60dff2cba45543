"""
Chat request dispatcher.

One user message becomes exactly one API call:

1. :meth:`ChatDispatcher.begin` (UI thread) appends the user message to the
   active session and snapshots everything the request needs.
2. :meth:`ChatDispatcher.execute` (worker thread) performs the call.
3. :meth:`ChatDispatcher.complete` or :meth:`ChatDispatcher.fail` (UI thread)
   folds the reply into the session, or removes the user message again.

There is no retry and no cancellation.  If the session was deleted while the
request was in flight, steps 3 are no-ops.

Maps grounding wants a location hint.  The location is looked up lazily in
the background the first time it is needed; the request that triggered the
lookup does not wait for it.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from .chat_store import ChatMessage, SessionStore
from .errors import RequestFailed
from .file_handler import Attachment
from .gemini_api import (
    DEFAULT_MODEL,
    ChatResponse,
    GeminiAPIError,
    LatLng,
    inline_part,
    text_part,
)
from .geolocation import LocationUnavailable, lookup_location
from .prompts import get_system_prompt

log = logging.getLogger("orion_ai")

LOCATION_ERROR = "Could not get location. Please enable location services."
RESPONSE_ERROR_PREFIX = "Failed to get response"


def build_contents(
    history: list[ChatMessage],
    message: str,
    attachment: Attachment | None = None,
) -> list[dict]:
    """Return the role-tagged transcript for one request.

    Prior turns carry text only; the new user turn carries the text and,
    when present, the attachment as an inline part.
    """
    contents = [
        {
            "role": "model" if m.role == "assistant" else "user",
            "parts": [text_part(m.content)],
        }
        for m in history
    ]
    parts = [text_part(message)]
    if attachment is not None:
        parts.append(inline_part(attachment.data, attachment.mime_type))
    contents.append({"role": "user", "parts": parts})
    return contents


class LocationCache:
    """Caches one location, resolving it on a background thread."""

    def __init__(
        self,
        lookup: Callable[[], LatLng] = lookup_location,
    ) -> None:
        self._lookup = lookup
        self._lock = threading.Lock()
        self._location: LatLng | None = None
        self._thread: threading.Thread | None = None

    @property
    def location(self) -> LatLng | None:
        with self._lock:
            return self._location

    def ensure(
        self,
        on_error: Callable[[str], None] | None = None,
    ) -> threading.Thread | None:
        """Start a lookup unless a location is cached or one is running.

        Returns the started thread (so tests can join it), else *None*.
        *on_error* is called from the worker thread.
        """
        with self._lock:
            if self._location is not None:
                return None
            if self._thread is not None and self._thread.is_alive():
                return None
            self._thread = threading.Thread(
                target=self._resolve, args=(on_error,), daemon=True,
            )
            thread = self._thread
        thread.start()
        return thread

    def _resolve(self, on_error: Callable[[str], None] | None) -> None:
        try:
            location = self._lookup()
        except LocationUnavailable:
            if on_error:
                on_error(LOCATION_ERROR)
            return
        with self._lock:
            self._location = location
        log.debug("[GEO] Location cached: %.3f, %.3f",
                  location.latitude, location.longitude)


@dataclass
class PendingRequest:
    """Everything needed to run and settle one chat request."""

    session_id: str
    contents: list[dict]
    model: str
    system_instruction: str
    use_search: bool = False
    use_maps: bool = False
    location: LatLng | None = None
    message: ChatMessage | None = None


@dataclass
class DispatchResult:
    """Outcome of a chat turn: exactly one of the two fields is set."""

    message: ChatMessage | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatDispatcher:
    """Assembles chat requests for the active session and settles replies."""

    def __init__(
        self,
        store: SessionStore,
        client,
        location_cache: LocationCache | None = None,
        on_location_error: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._locations = location_cache or LocationCache()
        self._on_location_error = on_location_error

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def begin(
        self,
        message: str,
        username: str,
        model: str = DEFAULT_MODEL,
        use_search: bool = False,
        use_maps: bool = False,
        attachment: Attachment | None = None,
    ) -> PendingRequest | None:
        """Append the user message and snapshot the request.

        Returns *None* when there is nothing to send or no active session.

        Raises
        ------
        StorageUnavailable
            When the message cannot be saved; the session is unchanged.
        """
        if not message.strip() and attachment is None:
            return None
        session = self._store.active()
        if session is None:
            return None

        # Snapshot history before the new message goes in
        history = list(session.messages)
        user_message = ChatMessage(role="user", content=message)
        self._store.append_user_message(session.id, user_message)

        if use_maps and self._locations.location is None:
            self._locations.ensure(self._on_location_error)

        pending = PendingRequest(
            session_id=session.id,
            contents=build_contents(history, message, attachment),
            model=model,
            system_instruction=get_system_prompt(username),
            use_search=use_search,
            use_maps=use_maps,
            location=self._locations.location if use_maps else None,
            message=user_message,
        )
        log.debug("[DISPATCH] session=%s  model=%s  history=%d  "
                  "attachment=%s", session.id, model, len(history),
                  attachment.mime_type if attachment else "none")
        return pending

    def execute(self, pending: PendingRequest) -> ChatResponse:
        """Run the API call.  Safe to call from a worker thread.

        Raises
        ------
        RequestFailed
            Wrapping whatever went wrong.
        """
        try:
            return self._client.chat(
                pending.contents,
                pending.model,
                system_instruction=pending.system_instruction,
                use_search=pending.use_search,
                use_maps=pending.use_maps,
                location=pending.location,
            )
        except GeminiAPIError as exc:
            log.error("[DISPATCH] API error for session %s: %s",
                      pending.session_id, exc)
            raise RequestFailed(RESPONSE_ERROR_PREFIX, exc) from exc
        except Exception as exc:  # noqa: BLE001
            log.error("[DISPATCH] Unexpected error for session %s",
                      pending.session_id, exc_info=True)
            raise RequestFailed(RESPONSE_ERROR_PREFIX, exc) from exc

    def complete(self, pending: PendingRequest,
                 response: ChatResponse) -> ChatMessage:
        """Append the assistant reply to the originating session."""
        reply = ChatMessage(role="assistant", content=response.text,
                            sources=tuple(response.sources))
        self._store.append_assistant_message(pending.session_id, reply)
        return reply

    def fail(self, pending: PendingRequest, error: Exception) -> str:
        """Roll back the user message and return the error text.

        Only the message this request appended is removed.
        """
        self._store.revert_last_user_message(pending.session_id,
                                             expected=pending.message)
        return str(error) or RESPONSE_ERROR_PREFIX

    # ------------------------------------------------------------------
    # Synchronous convenience
    # ------------------------------------------------------------------

    def send(
        self,
        message: str,
        username: str,
        model: str = DEFAULT_MODEL,
        use_search: bool = False,
        use_maps: bool = False,
        attachment: Attachment | None = None,
    ) -> DispatchResult | None:
        """Run all three phases on the calling thread."""
        pending = self.begin(message, username, model,
                             use_search, use_maps, attachment)
        if pending is None:
            return None
        try:
            response = self.execute(pending)
        except RequestFailed as exc:
            return DispatchResult(error=self.fail(pending, exc))
        reply = self.complete(pending, response)
        return DispatchResult(message=reply)
