"""
Google Maps web-service client.

Sole responsibility: talk to the Directions / Places / Geocoding endpoints
over HTTP and hand back validated envelopes.  Callers decide how to degrade;
this module raises:

* ``MapsApiError``            -- the service answered with a non-OK status
* ``httpx.HTTPError``         -- transport failure or non-2xx response
* ``pydantic.ValidationError`` -- the body did not match the expected shape
"""

from __future__ import annotations

import logging
from typing import Optional, TypeVar

import httpx
from pydantic import BaseModel

from routeme.config import Settings
from routeme.domain.entities import Coordinate, Destination

from .schemas import (
    AutocompleteResponse,
    DirectionsResponse,
    GeocodeResponse,
    PlaceDetailsResponse,
    PlacePrediction,
)

logger = logging.getLogger(__name__)

MIN_AUTOCOMPLETE_CHARS = 3
EMPTY_STATUSES = {"ZERO_RESULTS"}

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class MapsApiError(Exception):
    def __init__(self, status: str, message: Optional[str] = None):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if message else status)


def format_latlng(point: Coordinate) -> str:
    return f"{point.latitude},{point.longitude}"


class GoogleMapsClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://maps.googleapis.com/maps/api",
        country: str = "na",
        mode: str = "driving",
        timeout: Optional[float] = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            logger.warning("GOOGLE_MAPS_API_KEY is not set; map requests will be rejected")
        self.api_key = api_key
        self.country = country
        self.mode = mode
        self.http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleMapsClient:
        return cls(
            settings.google_maps_api_key,
            base_url=settings.maps_base_url,
            country=settings.maps_country,
            mode=settings.travel_mode,
            timeout=settings.maps_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _get(self, path: str, params: dict, model: type[ResponseT]) -> ResponseT:
        response = await self.http.get(path, params={**params, "key": self.api_key})
        response.raise_for_status()
        return model.model_validate_json(response.text)

    # ── Directions ────────────────────────────────────────────────────

    async def directions(
        self, origin: Coordinate, destination: Coordinate
    ) -> DirectionsResponse:
        data = await self._get(
            "/directions/json",
            {
                "origin": format_latlng(origin),
                "destination": format_latlng(destination),
                "mode": self.mode,
            },
            DirectionsResponse,
        )
        if data.status != "OK" or not data.routes:
            raise MapsApiError(data.status, data.error_message)
        return data

    # ── Places ────────────────────────────────────────────────────────

    async def autocomplete(self, text: str) -> list[PlacePrediction]:
        if not text or len(text) < MIN_AUTOCOMPLETE_CHARS:
            return []
        data = await self._get(
            "/place/autocomplete/json",
            {"input": text, "components": f"country:{self.country}"},
            AutocompleteResponse,
        )
        if data.status in EMPTY_STATUSES:
            return []
        if data.status != "OK":
            raise MapsApiError(data.status, data.error_message)
        return data.predictions

    async def place_details(self, place_id: str) -> Destination:
        data = await self._get(
            "/place/details/json",
            {"place_id": place_id, "fields": "geometry,name,formatted_address"},
            PlaceDetailsResponse,
        )
        if data.status != "OK" or data.result is None:
            raise MapsApiError(data.status, data.error_message)
        place = data.result
        return Destination(
            latitude=place.geometry.location.lat,
            longitude=place.geometry.location.lng,
            name=place.name,
            address=place.formatted_address,
            place_id=place_id,
        )

    # ── Geocoding ─────────────────────────────────────────────────────

    async def reverse_geocode(self, point: Coordinate) -> str:
        data = await self._get(
            "/geocode/json",
            {"latlng": format_latlng(point), "components": f"country:{self.country.upper()}"},
            GeocodeResponse,
        )
        if data.status in EMPTY_STATUSES or (data.status == "OK" and not data.results):
            return ""
        if data.status != "OK":
            raise MapsApiError(data.status, data.error_message)
        return data.results[0].formatted_address
