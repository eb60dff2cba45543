"""
Local account gate.

Accounts are a single ``{username: password}`` mapping in the key-value
store; the logged-in user is remembered under ``current-user`` so the next
launch skips the login form.

Usernames are trimmed and lower-cased before every lookup.  Passwords are
trimmed and compared as plain text.  This is a client-side convenience
login, not a security boundary.
"""

import logging

from .errors import EmptyCredentials, InvalidCredentials, UsernameTaken
from .storage import KEY_CURRENT_USER, KEY_USERS, KeyValueStore

log = logging.getLogger("orion_ai")


def normalize_username(username: str) -> str:
    """Return the canonical (trimmed, lower-case) form of *username*."""
    return username.strip().lower()


class AuthGate:
    """Login / register / logout against a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._current_user: str | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> str | None:
        return self._current_user

    def restore(self) -> str | None:
        """Load the remembered user (if any) and return it."""
        user = self._store.get(KEY_CURRENT_USER)
        self._current_user = user or None
        if self._current_user:
            log.debug("[AUTH] Restored session for %r", self._current_user)
        return self._current_user

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _users(self) -> dict[str, str]:
        users = self._store.get_json(KEY_USERS, {})
        if not isinstance(users, dict):
            log.warning("[AUTH] Stored user mapping is not an object; ignored.")
            return {}
        return users

    @staticmethod
    def _clean(username: str, password: str) -> tuple[str, str]:
        name = normalize_username(username)
        pw = password.strip()
        if not name or not pw:
            raise EmptyCredentials()
        return name, pw

    def _set_current(self, username: str) -> None:
        self._store.set(KEY_CURRENT_USER, username)
        self._current_user = username

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> str:
        """Log in and return the canonical username.

        Raises
        ------
        InvalidCredentials
            When the user does not exist or the password does not match.
        """
        name, pw = self._clean(username, password)
        users = self._users()
        if name not in users or users[name] != pw:
            log.info("[AUTH] Login rejected for %r", name)
            raise InvalidCredentials()
        self._set_current(name)
        log.info("[AUTH] %r logged in", name)
        return name

    def register(self, username: str, password: str) -> str:
        """Create an account, log it in and return the canonical username.

        Raises
        ------
        UsernameTaken
            When the username already exists; the stored mapping is left
            untouched.
        """
        name, pw = self._clean(username, password)
        users = self._users()
        if name in users:
            log.info("[AUTH] Registration rejected, %r already exists", name)
            raise UsernameTaken()
        self._store.set_json(KEY_USERS, {**users, name: pw})
        log.info("[AUTH] Registered %r", name)
        self._set_current(name)
        return name

    def logout(self) -> None:
        """Forget the current user."""
        self._store.remove(KEY_CURRENT_USER)
        log.info("[AUTH] %r logged out", self._current_user)
        self._current_user = None
