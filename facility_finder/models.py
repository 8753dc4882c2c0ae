"""Core data models shared by the facility search pipeline."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from facility_finder.core.errors import SearchError, ValidationError

_EXHAUSTED_MESSAGE = "No hospitals or clinics found nearby. Try a larger city or a different location."


def _check_coordinates(lat: float, lon: float) -> None:
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValidationError(f"non-finite coordinates: {lat!r}, {lon!r}")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"latitude out of range: {lat!r}")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError(f"longitude out of range: {lon!r}")


@dataclass(frozen=True, slots=True)
class Location:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        _check_coordinates(self.lat, self.lon)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """South/north/west/east extent of a geocoding match, in degrees."""

    south: float
    north: float
    west: float
    east: float

    @property
    def area(self) -> float:
        """Square degrees. A crude size proxy, not a geodesic area."""
        return abs(self.north - self.south) * abs(self.east - self.west)

    def to_list(self) -> List[float]:
        return [self.south, self.north, self.west, self.east]


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    location: Location
    bbox: Optional[BoundingBox] = None
    display_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PointElement:
    """Data source element carrying direct coordinates."""

    id: int
    lat: Optional[float]
    lon: Optional[float]
    tags: Optional[Dict[str, str]] = None
    kind: str = "node"


@dataclass(frozen=True, slots=True)
class AreaElement:
    """Non-point element (way or relation) resolved to a centroid by the data source."""

    id: int
    centroid: Optional[Tuple[float, float]]
    tags: Optional[Dict[str, str]] = None
    kind: str = "way"


RawElement = Union[PointElement, AreaElement]


@dataclass(frozen=True)
class Facility:
    """Canonical search result. Identity is ``id`` within one result set."""

    id: int
    lat: float
    lon: float
    tags: Mapping[str, str] = field(default_factory=dict, hash=False)
    kind: str = "node"

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags or {})))

    @property
    def name(self) -> Optional[str]:
        return self.tags.get("name")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "lat": self.lat,
            "lon": self.lon,
            "tags": dict(self.tags),
        }


class AttemptOutcome(str, enum.Enum):
    EMPTY = "empty"
    FOUND = "found"
    FAILED = "failed"


@dataclass(slots=True)
class SearchAttempt:
    radius: int
    outcome: AttemptOutcome
    count: int = 0
    error: Optional[SearchError] = None

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"radius": self.radius, "outcome": self.outcome.value, "count": self.count}
        if self.error is not None:
            entry["error"] = str(self.error)
        return entry


@dataclass(frozen=True)
class Success:
    origin: Location
    facilities: List[Facility]
    attempts: List[SearchAttempt] = field(default_factory=list)
    display_name: Optional[str] = None

    status = "success"

    @property
    def message(self) -> str:
        return f"Found {len(self.facilities)} facilities nearby."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "origin": self.origin.to_dict(),
            "display_name": self.display_name,
            "facilities": [facility.to_dict() for facility in self.facilities],
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


@dataclass(frozen=True)
class Exhausted:
    """Every rung answered and nothing was found. Not an error."""

    origin: Location
    attempts: List[SearchAttempt] = field(default_factory=list)
    display_name: Optional[str] = None

    status = "exhausted"

    @property
    def message(self) -> str:
        return _EXHAUSTED_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "origin": self.origin.to_dict(),
            "display_name": self.display_name,
            "facilities": [],
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


@dataclass(frozen=True)
class Failed:
    error: SearchError
    attempts: List[SearchAttempt] = field(default_factory=list)

    status = "failed"

    @property
    def message(self) -> str:
        return self.error.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "error": type(self.error).__name__,
            "detail": str(self.error),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


SearchOutcome = Union[Success, Exhausted, Failed]
