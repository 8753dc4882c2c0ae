"""Client for the OpenStreetMap Nominatim search API."""

import logging
from typing import Any, Dict, List, Optional

import requests

from facility_finder.core.config import Settings, get_settings
from facility_finder.core.deadline import remaining
from facility_finder.core.errors import NotFound, ServiceError, Timeout, ValidationError
from facility_finder.models import BoundingBox, GeocodeResult, Location

logger = logging.getLogger(__name__)
_SESSION = requests.Session()


class GeocodeResolver:
    """Resolves a free-text place name to a Location and an approximate bounding box."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.headers = {"User-Agent": self.settings.nominatim_user_agent}
        if self.settings.nominatim_referer:
            self.headers["Referer"] = self.settings.nominatim_referer

    def resolve(
        self,
        place_name: str,
        deadline: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ) -> GeocodeResult:
        query = (place_name or "").strip()
        if not query:
            raise NotFound(place_name)

        params = {"q": query, "format": "jsonv2", "limit": 1}
        timeout = remaining(deadline, self.settings.geocode_timeout)
        session = http or _SESSION
        try:
            response = session.get(
                f"{self.settings.nominatim_url}/search",
                params=params,
                headers=self.headers,
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise Timeout(f"geocoding {query!r} timed out after {timeout:.1f}s") from exc
        except requests.RequestException as exc:
            raise ServiceError(f"geocoding request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error("Nominatim search failed: status=%s, query=%s", response.status_code, query)
            raise ServiceError("geocoding service returned an error", response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceError("geocoding service returned invalid JSON", response.status_code) from exc

        if not isinstance(payload, list):
            raise ServiceError("geocoding service returned an unexpected payload", response.status_code)
        if not payload:
            logger.info("No geocoding match for query=%s", query)
            raise NotFound(query)

        return _parse_candidate(payload[0], response.status_code)


def _parse_candidate(candidate: Any, status: int) -> GeocodeResult:
    if not isinstance(candidate, dict):
        raise ServiceError("geocoding candidate is not an object", status)
    try:
        location = Location(float(candidate["lat"]), float(candidate["lon"]))
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise ServiceError(f"geocoding candidate has unusable coordinates: {exc}", status) from exc

    return GeocodeResult(
        location=location,
        bbox=parse_bounding_box(candidate.get("boundingbox")),
        display_name=candidate.get("display_name"),
    )


def parse_bounding_box(raw: Optional[List[Any]]) -> Optional[BoundingBox]:
    """Nominatim sends ``[south, north, west, east]`` as numeric strings."""
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        return None
    try:
        south, north, west, east = (float(value) for value in raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed boundingbox: %s", raw)
        return None
    return BoundingBox(south=south, north=north, west=west, east=east)


def candidate_to_dict(result: GeocodeResult) -> Dict[str, Any]:
    """Shape a GeocodeResult like the upstream candidate for API responses."""
    return {
        "lat": result.location.lat,
        "lon": result.location.lon,
        "boundingbox": result.bbox.to_list() if result.bbox else None,
        "display_name": result.display_name,
    }
