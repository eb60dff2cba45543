"""
Best-effort device location.

A desktop has no browser geolocation prompt, so the position is derived from
the public IP address.  The lookup is only used as a hint for maps-grounded
chat requests.
"""

import logging

import requests

from .gemini_api import LatLng

log = logging.getLogger("orion_ai")

GEO_URL = "https://ipapi.co/json/"


class LocationUnavailable(Exception):
    """The location lookup failed."""


def lookup_location(timeout: float = 10) -> LatLng:
    """Return the approximate :class:`LatLng` of this machine.

    Raises
    ------
    LocationUnavailable
        On network errors or when the service returns no coordinates.
    """
    log.debug("[GEO] GET %s", GEO_URL)
    try:
        response = requests.get(GEO_URL, timeout=timeout)
        response.raise_for_status()
        data = response.json()
        return LatLng(latitude=float(data["latitude"]),
                      longitude=float(data["longitude"]))
    except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
        log.warning("[GEO] Location lookup failed: %s", exc)
        raise LocationUnavailable(str(exc)) from exc
