"""
View selector.

:class:`AppView` enumerates every panel of the main layout.  The registry
maps each value to a factory; :func:`panel_for` is the only dispatch point,
so adding a view means adding one enum member and one registration.
"""

import enum
from dataclasses import dataclass
from typing import Callable


class AppView(enum.Enum):
    CHAT = "CHAT"
    IMAGE_GEN = "IMAGE_GEN"
    IMAGE_EDIT = "IMAGE_EDIT"
    VIDEO_ANALYSIS = "VIDEO_ANALYSIS"
    AUDIO_TRANSCRIPTION = "AUDIO_TRANSCRIPTION"
    TTS = "TTS"
    ABOUT = "ABOUT"
    CONTACT = "CONTACT"


@dataclass(frozen=True)
class ViewInfo:
    label: str
    section: str


VIEW_INFO: dict[AppView, ViewInfo] = {
    AppView.CHAT:                ViewInfo("Chat", "Tools"),
    AppView.IMAGE_GEN:           ViewInfo("Image Gen", "Tools"),
    AppView.IMAGE_EDIT:          ViewInfo("Image Studio", "Tools"),
    AppView.VIDEO_ANALYSIS:      ViewInfo("Video Analysis", "Tools"),
    AppView.AUDIO_TRANSCRIPTION: ViewInfo("Audio Transcription", "Tools"),
    AppView.TTS:                 ViewInfo("TTS", "Tools"),
    AppView.ABOUT:               ViewInfo("About", "Information"),
    AppView.CONTACT:             ViewInfo("Contact Us", "Information"),
}

SECTIONS = ("Tools", "Information")


def views_in(section: str) -> list[AppView]:
    """Return the views listed under *section*, in enum order."""
    return [v for v in AppView if VIEW_INFO[v].section == section]


class ViewRouter:
    """Holds the selected view and builds panels from registered factories."""

    def __init__(self, initial: AppView = AppView.CHAT) -> None:
        self._current = initial
        self._factories: dict[AppView, Callable] = {}

    @property
    def current(self) -> AppView:
        return self._current

    def register(self, view: AppView, factory: Callable) -> None:
        self._factories[view] = factory

    def select(self, view: AppView) -> None:
        self._current = AppView(view)

    def panel_for(self, view: AppView | None = None, *args, **kwargs):
        """Build the panel for *view* (default: the current one)."""
        target = self._current if view is None else view
        try:
            factory = self._factories[target]
        except KeyError:
            raise LookupError(f"no panel registered for {target}") from None
        return factory(*args, **kwargs)

    def missing(self) -> list[AppView]:
        """Views without a registered factory."""
        return [v for v in AppView if v not in self._factories]
