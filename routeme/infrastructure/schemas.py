"""Pydantic schemas for persisted history and Google Maps web-service envelopes."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter


# ── Persisted search history ──────────────────────────────────────────


class HistoryEntry(BaseModel):
    """One visited / favorited place, stored in camelCase JSON."""

    place_id: Optional[str] = Field(None, alias="placeId")
    name: str = ""
    address: str = ""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    favorite: bool = False
    timestamp: int = 0  # epoch ms

    model_config = {"populate_by_name": True}


HistoryList = TypeAdapter(list[HistoryEntry])


# ── Directions ────────────────────────────────────────────────────────


class TextValue(BaseModel):
    text: str = ""
    value: float = 0


class DirectionsStep(BaseModel):
    html_instructions: str = ""
    distance: TextValue = TextValue()
    duration: TextValue = TextValue()


class DirectionsLeg(BaseModel):
    distance: TextValue
    duration: TextValue
    steps: list[DirectionsStep] = []


class EncodedPolyline(BaseModel):
    points: str = ""


class DirectionsRoute(BaseModel):
    legs: list[DirectionsLeg] = Field(..., min_length=1)
    overview_polyline: EncodedPolyline = EncodedPolyline()


class DirectionsResponse(BaseModel):
    status: str
    error_message: Optional[str] = None
    routes: list[DirectionsRoute] = []


# ── Places / geocoding ────────────────────────────────────────────────


class StructuredFormatting(BaseModel):
    main_text: str = ""
    secondary_text: str = ""


class PlacePrediction(BaseModel):
    place_id: str
    description: str = ""
    structured_formatting: StructuredFormatting = StructuredFormatting()


class AutocompleteResponse(BaseModel):
    status: str
    error_message: Optional[str] = None
    predictions: list[PlacePrediction] = []


class LatLng(BaseModel):
    lat: float
    lng: float


class PlaceGeometry(BaseModel):
    location: LatLng


class PlaceResult(BaseModel):
    name: str = ""
    formatted_address: str = ""
    geometry: PlaceGeometry


class PlaceDetailsResponse(BaseModel):
    status: str
    error_message: Optional[str] = None
    result: Optional[PlaceResult] = None


class GeocodeResult(BaseModel):
    formatted_address: str = ""


class GeocodeResponse(BaseModel):
    status: str
    error_message: Optional[str] = None
    results: list[GeocodeResult] = []
