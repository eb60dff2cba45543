"""
Runtime configuration.

Values come from the process environment.  ``Asset/.env`` and a ``.env`` in
the working directory are loaded first with *python-dotenv*; neither ever
overrides a variable that is already set in the real environment.

Recognised variables
--------------------
``GEMINI_API_KEY`` (or ``API_KEY``)
    API key for the Gemini REST API.  Required to create a client.
``ORION_API_BASE``
    Base URL of the API (default: the public v1beta endpoint).
``ORION_TIMEOUT``
    Per-request timeout in seconds (default: 120).
``ORION_DATA_DIR``
    Data folder (see :mod:`orion_ai.paths`); must be set in the real
    environment.
``ORION_LOG_LEVEL``
    Console log level read by ``main.py`` (default: ``DEBUG``).
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .errors import ConfigError
from .paths import asset_path

log = logging.getLogger("orion_ai")

ENV_FILE = asset_path(".env")

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 120.0


@dataclass(frozen=True)
class Settings:
    api_key: str
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """Return :class:`Settings` built from *env* (defaults to ``os.environ``).

    Raises
    ------
    ConfigError
        When no API key is configured or ``ORION_TIMEOUT`` is not a number.
    """
    if env is None:
        load_dotenv(ENV_FILE, override=False)
        load_dotenv(override=False)
        env = dict(os.environ)

    api_key = (env.get("GEMINI_API_KEY") or env.get("API_KEY") or "").strip()
    if not api_key:
        raise ConfigError(
            "No API key configured. Set GEMINI_API_KEY in the environment "
            f"or in {ENV_FILE}."
        )

    raw_timeout = env.get("ORION_TIMEOUT", "").strip()
    try:
        timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError as exc:
        raise ConfigError(
            f"ORION_TIMEOUT must be a number of seconds, got {raw_timeout!r}."
        ) from exc

    api_base = (env.get("ORION_API_BASE") or DEFAULT_API_BASE).rstrip("/")
    log.debug("[CFG] api_base=%s  timeout=%.0fs  key=%s…",
              api_base, timeout, api_key[:4])
    return Settings(api_key=api_key, api_base=api_base, timeout=timeout)
