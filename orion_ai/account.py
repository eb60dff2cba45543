"""
Login state plus the logged-in user's sessions.

:class:`Account` keeps :class:`~auth.AuthGate` and
:class:`~chat_store.SessionStore` in step: a user counts as logged in only
once their history has loaded.  If loading fails the login is undone, so the
next launch does not restore a user whose history could not be read.
"""

import logging

from .auth import AuthGate
from .chat_store import SessionStore
from .errors import OrionError

log = logging.getLogger("orion_ai")


class Account:

    def __init__(self, auth: AuthGate, sessions: SessionStore) -> None:
        self._auth = auth
        self._sessions = sessions

    @property
    def current_user(self) -> str | None:
        return self._auth.current_user

    def restore(self) -> str | None:
        """Re-enter the remembered user, if any."""
        user = self._auth.restore()
        if user:
            self._enter(user)
        return user

    def login(self, username: str, password: str) -> str:
        return self._enter(self._auth.login(username, password))

    def register(self, username: str, password: str) -> str:
        return self._enter(self._auth.register(username, password))

    def logout(self) -> None:
        """Log out and drop the sessions.

        If the marker cannot be removed the user stays logged in.
        """
        self._auth.logout()
        self._sessions.unload()

    def _enter(self, username: str) -> str:
        try:
            self._sessions.load_for_user(username)
        except OrionError:
            self._sessions.unload()
            try:
                self._auth.logout()
            except OrionError:
                log.warning("[AUTH] Could not clear the login of %r",
                            username, exc_info=True)
            raise
        return username
