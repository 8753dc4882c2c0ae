"""Client for the Overpass API, the point-of-interest source for facility searches."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from facility_finder.core.config import Settings, get_settings
from facility_finder.core.deadline import remaining
from facility_finder.core.errors import ServiceError, Timeout
from facility_finder.models import AreaElement, Location, PointElement, RawElement

logger = logging.getLogger(__name__)
_SESSION = requests.Session()

_ELEMENT_TYPES = ("node", "way", "relation")


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def category_filter(category: str) -> str:
    """Turn ``hospital`` into ``["amenity"="hospital"]``; ``healthcare=doctor`` is used as given.

    Raises ValueError for a blank category or one with an empty key or value.
    """
    category = category.strip()
    key, sep, value = category.partition("=")
    if not sep:
        key, value = "amenity", category
    key, value = key.strip(), value.strip()
    if not key or not value:
        raise ValueError(f"invalid category {category!r}")
    return f"[{_quote(key)}={_quote(value)}]"


def build_query(origin: Location, radius_m: int, categories: Iterable[str], server_timeout: int) -> str:
    """Overpass QL union over every category and element type, with centers for areas."""
    around = f"(around:{int(radius_m)},{origin.lat},{origin.lon})"
    clauses = [
        f"  {element_type}{category_filter(category)}{around};"
        for category in sorted(set(categories))
        for element_type in _ELEMENT_TYPES
    ]
    if not clauses:
        raise ValueError("at least one category is required")
    body = "\n".join(clauses)
    return f"[out:json][timeout:{int(server_timeout)}];\n(\n{body}\n);\nout center;"


class SpatialQueryClient:
    """Runs one radius-bounded category query. Never retries; the orchestrator owns retries."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def query(
        self,
        origin: Location,
        radius_m: int,
        categories: Iterable[str],
        deadline: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ) -> List[RawElement]:
        ql = build_query(origin, radius_m, categories, self.settings.overpass_server_timeout)
        timeout = remaining(deadline, self.settings.overpass_timeout)
        session = http or _SESSION
        logger.debug("Overpass query radius=%s at %s,%s", radius_m, origin.lat, origin.lon)
        try:
            response = session.post(self.settings.overpass_url, data={"data": ql}, timeout=timeout)
        except requests.Timeout as exc:
            raise Timeout(f"Overpass query timed out after {timeout:.1f}s") from exc
        except requests.RequestException as exc:
            raise ServiceError(f"Overpass request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error("Overpass query failed: status=%s body=%s", response.status_code, response.text[:200])
            raise ServiceError("Overpass returned an error", response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceError("Overpass returned invalid JSON", response.status_code) from exc
        if not isinstance(payload, dict):
            raise ServiceError("Overpass returned an unexpected payload", response.status_code)

        remark = str(payload.get("remark") or "")
        if "runtime error" in remark.lower():
            raise ServiceError(f"Overpass runtime error: {remark}", response.status_code)

        return parse_elements(payload.get("elements") or [])


def parse_elements(items: Iterable[Any]) -> List[RawElement]:
    """Map Overpass elements onto the Point/Area union.

    Elements with direct coordinates become points; anything else is an area
    whose centroid comes from ``center`` when the server supplied one.
    """
    elements: List[RawElement] = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        element_id = raw.get("id")
        if not isinstance(element_id, int) or isinstance(element_id, bool):
            logger.debug("Skipping element without integer id: %s", str(raw)[:200])
            continue

        kind = raw.get("type") or "node"
        tags = _string_tags(raw.get("tags"))
        if "lat" in raw and "lon" in raw:
            elements.append(
                PointElement(id=element_id, lat=_safe_float(raw["lat"]), lon=_safe_float(raw["lon"]), tags=tags, kind=kind)
            )
            continue

        center = raw.get("center")
        centroid = None
        if isinstance(center, dict):
            lat, lon = _safe_float(center.get("lat")), _safe_float(center.get("lon"))
            if lat is not None and lon is not None:
                centroid = (lat, lon)
        elements.append(AreaElement(id=element_id, centroid=centroid, tags=tags, kind=kind))
    return elements


def _string_tags(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        return None
    return {str(key): str(tag) for key, tag in value.items()}


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
