"""
User-facing error taxonomy.

Every error below is caught at the boundary where it happens (a button
handler, a worker thread) and shown inline; none of them ends the process.
Nothing is retried; the user triggers the action again.
"""


class OrionError(Exception):
    """Base class for errors that are shown to the user as inline text."""


class InvalidCredentials(OrionError):
    """Unknown username or wrong password."""

    def __init__(self, message: str = "Invalid username or password.") -> None:
        super().__init__(message)


class EmptyCredentials(InvalidCredentials):
    """Username or password was blank after trimming."""

    def __init__(
        self, message: str = "Username and password cannot be empty.",
    ) -> None:
        super().__init__(message)


class UsernameTaken(OrionError):
    """Registration attempted with a username that already exists."""

    def __init__(self, message: str = "Username already exists.") -> None:
        super().__init__(message)


class StorageUnavailable(OrionError):
    """The persistent key-value store could not be read or written."""


class MicPermissionDenied(OrionError):
    """The microphone could not be opened."""

    def __init__(
        self,
        message: str = (
            "Could not access microphone. "
            "Please grant permission and try again."
        ),
    ) -> None:
        super().__init__(message)


class TranscriptionFailed(OrionError):
    """Audio could not be turned into text."""


class RequestFailed(OrionError):
    """Generic wrapper around any failed call to the generative-AI API.

    The message is interpolated from the underlying failure, e.g.
    ``"Failed to get response: HTTP 429 ..."``.
    """

    def __init__(self, action: str, cause: BaseException | str) -> None:
        self.action = action
        self.cause = cause
        super().__init__(f"{action}: {cause}")


class ConfigError(OrionError):
    """Required configuration (e.g. the API key) is missing or invalid."""
