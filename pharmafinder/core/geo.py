"""Geo providers that hand device coordinates to the search flows."""

import logging
from typing import Optional, Protocol

from pharmafinder.core.config import Settings
from pharmafinder.models import Coordinates

logger = logging.getLogger(__name__)


class LocationError(RuntimeError):
    """Raised when a provider cannot or will not supply a position."""


class GeoProvider(Protocol):
    def request_position(self) -> Coordinates:
        ...


class StaticGeoProvider:
    """Answers with a fixed position, or denies when it has none."""

    def __init__(self, coordinates: Optional[Coordinates]) -> None:
        self._coordinates = coordinates

    def request_position(self) -> Coordinates:
        if self._coordinates is None:
            raise LocationError("Location access denied")
        return self._coordinates


def default_provider(settings: Settings) -> Optional[GeoProvider]:
    if settings.default_location is None:
        logger.debug("No DEFAULT_LATITUDE/DEFAULT_LONGITUDE configured; geolocation unavailable.")
        return None
    return StaticGeoProvider(settings.default_location)
