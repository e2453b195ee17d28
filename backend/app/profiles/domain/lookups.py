"""Collaborators consulted while deriving geography and media fields."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

CLIMATE_TEMPERATE = "TEMPERATE"
CLIMATE_SUBTROPICAL = "SUBTROPICAL"
TEMPERATE_LATITUDE_THRESHOLD = 40.0

_MEDIA_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass(slots=True, frozen=True)
class Coordinates:
    latitude: float
    longitude: float


class Geocoder(Protocol):
    async def resolve(self, address: str, *, city: str, state: str | None, country: str) -> Coordinates | None:
        ...


class ClimateClassifier(Protocol):
    async def zone_for(self, latitude: float) -> str | None:
        ...


class AirportLookup(Protocol):
    async def airport_for(self, city: str) -> str | None:
        ...


class MediaResolver(Protocol):
    async def url_for(self, media_id: str) -> str | None:
        ...


class DeterministicGeocoder:
    """Offline geocoder producing stable coordinates from the city name."""

    base_latitude = 34.0
    base_longitude = -118.0
    step = 0.01

    async def resolve(self, address: str, *, city: str, state: str | None, country: str) -> Coordinates | None:
        if not city or not country:
            return None
        offset = len(city) * self.step
        return Coordinates(
            latitude=round(self.base_latitude + offset, 6),
            longitude=round(self.base_longitude + offset, 6),
        )


class ThresholdClimateClassifier:
    def __init__(self, threshold: float = TEMPERATE_LATITUDE_THRESHOLD) -> None:
        self._threshold = threshold

    async def zone_for(self, latitude: float) -> str | None:
        return CLIMATE_TEMPERATE if latitude > self._threshold else CLIMATE_SUBTROPICAL


class CityAirportLookup:
    """Fallback IATA-style code built from the first letters of the city."""

    def __init__(self, known: Mapping[str, str] | None = None) -> None:
        self._known = {key.lower(): value.upper() for key, value in (known or {}).items()}

    async def airport_for(self, city: str) -> str | None:
        cleaned = re.sub(r"[^A-Za-z]", "", city or "")
        if not cleaned:
            return None
        known = self._known.get(city.strip().lower())
        if known:
            return known
        return f"{cleaned.upper()[:3]}I"


class UrlMediaResolver:
    """Resolves uploaded media ids against the configured media base URL."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    async def url_for(self, media_id: str) -> str | None:
        if not media_id or not _MEDIA_ID_RE.match(media_id):
            return None
        return f"{self._base_url}/media/{media_id}"


class InMemoryMediaResolver:
    def __init__(self, urls: Optional[Mapping[str, str]] = None) -> None:
        self.urls: dict[str, str] = dict(urls or {})

    async def url_for(self, media_id: str) -> str | None:
        return self.urls.get(media_id)
