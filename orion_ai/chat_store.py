"""
Per-user chat sessions.

Each user owns an ordered list of sessions (newest first) that is kept in
memory by :class:`SessionStore` and mirrored to the key-value store under
``history:<username>`` as a JSON array after every mutation.

Rules
-----
* Once loaded, the list is never empty.  An empty or missing persisted list,
  or deleting the last session, yields a fresh ``"New Chat"`` session.
* A session's title is taken from the first 40 characters of its first user
  message.
* Operations that name a session id which no longer exists (e.g. a reply
  arriving after its session was deleted) are silently ignored.
* Nothing is written until :meth:`SessionStore.load_for_user` has completed,
  so a half-loaded state can never clobber the stored history.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .errors import StorageUnavailable
from .storage import KeyValueStore, history_key

log = logging.getLogger("orion_ai")

DEFAULT_TITLE = "New Chat"

#: Title used when the first message has no text (attachment only).
ATTACHMENT_TITLE = "Image Query"

TITLE_LENGTH = 40

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class GroundingSource:
    """A citation returned with a search- or maps-grounded answer."""

    title: str
    uri: str

    def to_dict(self) -> dict:
        return {"title": self.title, "uri": self.uri}


@dataclass(frozen=True)
class ChatMessage:
    """One immutable chat turn."""

    role: str
    content: str
    sources: tuple[GroundingSource, ...] = ()

    def to_dict(self) -> dict:
        data: dict = {"role": self.role, "content": self.content}
        if self.sources:
            data["sources"] = [s.to_dict() for s in self.sources]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        role = data.get("role")
        content = data.get("content", "")
        if role not in ROLES or not isinstance(content, str):
            raise ValueError(f"not a chat message: {data!r}")
        sources = tuple(
            GroundingSource(title=str(s.get("title") or ""), uri=s["uri"])
            for s in data.get("sources") or []
            if isinstance(s, dict) and s.get("uri")
        )
        return cls(role=role, content=content, sources=sources)


@dataclass
class ChatSession:
    """A single conversation thread."""

    id: str
    title: str = DEFAULT_TITLE
    messages: list[ChatMessage] = field(default_factory=list)
    timestamp: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatSession":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError(f"not a chat session: {data!r}")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or DEFAULT_TITLE),
            messages=_parse_messages(data.get("messages")),
            timestamp=int(data.get("timestamp") or 0),
        )


def _parse_messages(raw) -> list[ChatMessage]:
    """Parse a persisted message list, skipping entries that are invalid."""
    if not isinstance(raw, list):
        return []
    messages: list[ChatMessage] = []
    for entry in raw:
        try:
            messages.append(ChatMessage.from_dict(entry))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            log.warning("[STORE] Skipping malformed message: %s", exc)
    return messages


def make_title(text: str) -> str:
    """Return the session title derived from a first message."""
    return text[:TITLE_LENGTH] or ATTACHMENT_TITLE


def to_json(sessions: list[ChatSession]) -> list[dict]:
    """Serialise *sessions* to the persisted (JSON-compatible) form."""
    return [s.to_dict() for s in sessions]


def from_json(raw) -> list[ChatSession]:
    """Parse a persisted session list, skipping entries that are invalid."""
    if not isinstance(raw, list):
        return []
    sessions: list[ChatSession] = []
    for entry in raw:
        try:
            sessions.append(ChatSession.from_dict(entry))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            log.warning("[STORE] Skipping malformed session entry: %s", exc)
    return sessions


class SessionStore:
    """Owns the in-memory session list of the logged-in user."""

    def __init__(
        self,
        kv: KeyValueStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self._clock = clock
        self._username: str | None = None
        self._sessions: list[ChatSession] = []
        self._active_id: str | None = None
        self._loaded = False
        self._last_id = 0

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_for_user(self, username: str) -> None:
        """Load *username*'s sessions and activate the most recent one."""
        self._loaded = False
        self._username = username
        sessions = from_json(self._kv.get_json(history_key(username), []))
        if not sessions:
            sessions = [self._new_session()]
        self._sessions = sessions
        self._active_id = sessions[0].id
        self._loaded = True
        log.debug("[STORE] Loaded %d session(s) for %r",
                  len(sessions), username)
        self._save()

    def unload(self) -> None:
        """Drop the in-memory list (on logout)."""
        self._loaded = False
        self._username = None
        self._sessions = []
        self._active_id = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def sessions(self) -> list[ChatSession]:
        """Sessions, newest first (a shallow copy)."""
        return list(self._sessions)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def get(self, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def active(self) -> ChatSession | None:
        """Return the currently active session."""
        if self._active_id:
            return self.get(self._active_id)
        return None

    def select(self, session_id: str) -> None:
        """Make an existing session active; unknown ids are ignored."""
        if self.get(session_id) is not None:
            self._active_id = session_id

    # ------------------------------------------------------------------
    # Session CRUD
    # ------------------------------------------------------------------

    def create_session(self) -> ChatSession:
        """Prepend a new empty session and make it active."""
        session = self._new_session()
        self._sessions.insert(0, session)
        self._active_id = session.id
        self._save()
        return session

    def delete_session(
        self,
        session_id: str,
        confirm: Callable[[], bool] | None = None,
    ) -> bool:
        """Delete *session_id* after *confirm* approves.

        Returns *True* when a session was removed.
        """
        if self.get(session_id) is None:
            return False
        if confirm is not None and not confirm():
            return False

        self._sessions = [s for s in self._sessions if s.id != session_id]
        # Always keep at least one session
        if not self._sessions:
            replacement = self._new_session()
            self._sessions = [replacement]
            self._active_id = replacement.id
        elif self._active_id == session_id:
            self._active_id = self._sessions[0].id
        log.debug("[STORE] Deleted session %s", session_id)
        self._save()
        return True

    # ------------------------------------------------------------------
    # Message operations
    # ------------------------------------------------------------------

    def append_user_message(self, session_id: str, message: ChatMessage) -> bool:
        """Append a user message; the first one also sets the title.

        When the save fails the session is left as it was.
        """
        session = self.get(session_id)
        if session is None:
            return False
        previous_title = session.title
        if not session.messages:
            session.title = make_title(message.content)
        session.messages.append(message)
        try:
            self._save()
        except StorageUnavailable:
            session.messages.pop()
            session.title = previous_title
            raise
        return True

    def append_assistant_message(
        self, session_id: str, message: ChatMessage,
    ) -> bool:
        session = self.get(session_id)
        if session is None:
            log.debug("[STORE] Reply for vanished session %s dropped",
                      session_id)
            return False
        session.messages.append(message)
        self._save()
        return True

    def revert_last_user_message(
        self,
        session_id: str,
        expected: ChatMessage | None = None,
    ) -> bool:
        """Remove the trailing user message of *session_id*, if any.

        With *expected*, only that exact message object is removed.
        """
        session = self.get(session_id)
        if session is None or not session.messages:
            return False
        last = session.messages[-1]
        if last.role != "user":
            return False
        if expected is not None and last is not expected:
            log.debug("[STORE] Rollback skipped, %s has a newer message",
                      session_id)
            return False
        session.messages.pop()
        self._save()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        now = int(self._clock() * 1000)
        # Two sessions created within the same millisecond need distinct ids
        self._last_id = max(now, self._last_id + 1)
        return self._last_id

    def _new_session(self) -> ChatSession:
        sid = self._next_id()
        return ChatSession(id=str(sid), title=DEFAULT_TITLE,
                           messages=[], timestamp=sid)

    def _save(self) -> None:
        """Write the full session list (no-op until a load has finished)."""
        if not self._loaded or self._username is None:
            return
        try:
            self._kv.set_json(history_key(self._username),
                              to_json(self._sessions))
        except StorageUnavailable:
            log.error("[STORE] Failed to save history for %r",
                      self._username, exc_info=True)
            raise
