"""Core data models shared by the pharmacy search flows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class LocationStatus(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True, slots=True)
class PharmacyResult:
    """Normalized snapshot of a pharmacy returned by a grounded search."""

    id: str
    name: str
    snippet: str
    maps_uri: str
    opening_hours: Optional[str] = None
    address: Optional[str] = None
    rating: Optional[str] = None
    distance: Optional[str] = None

    @property
    def is_open_24_7(self) -> bool:
        return "24" in self.name.lower() or "24" in (self.snippet or "").lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "snippet": self.snippet,
            "mapsUri": self.maps_uri,
            "openingHours": self.opening_hours,
            "address": self.address,
            "rating": self.rating,
            "distance": self.distance,
            "open24x7": self.is_open_24_7,
        }


@dataclass(frozen=True, slots=True)
class SearchResponse:
    """Summary text plus the raw grounding chunks of one search call."""

    summary: str
    chunks: Tuple[Dict[str, Any], ...] = field(default=(), repr=False)


@dataclass(frozen=True, slots=True)
class SearchState:
    """Single source of truth for the search view; replaced, never mutated."""

    query: str = ""
    results: Tuple[PharmacyResult, ...] = ()
    summary: str = ""
    is_loading: bool = False
    error: Optional[str] = None
    location: Optional[Coordinates] = None
    location_status: LocationStatus = LocationStatus.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary,
            "isLoading": self.is_loading,
            "error": self.error,
            "location": self.location.to_dict() if self.location else None,
            "locationStatus": self.location_status.value,
        }


@dataclass(frozen=True, slots=True)
class StockCheck:
    pharmacy_id: str
    pharmacy_name: str
    medicine: str = ""
    result: str = ""
    is_checking: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pharmacyId": self.pharmacy_id,
            "pharmacyName": self.pharmacy_name,
            "medicine": self.medicine,
            "result": self.result,
            "isChecking": self.is_checking,
        }


@dataclass(frozen=True, slots=True)
class PrescriptionScan:
    medicines: str = ""
    is_analyzing: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"medicines": self.medicines, "isAnalyzing": self.is_analyzing, "error": self.error}
