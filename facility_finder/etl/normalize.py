"""Turns heterogeneous data-source elements into canonical Facility records."""

import logging
from typing import Hashable, Iterable, List, Set, Tuple

from facility_finder.core.errors import ValidationError
from facility_finder.models import AreaElement, Facility, Location, PointElement, RawElement

logger = logging.getLogger(__name__)


def resolve_coordinates(element: RawElement) -> Tuple[float, float]:
    """Direct coordinates for points, the centroid for areas.

    Raises ValidationError when the element has no usable coordinate.
    """
    if isinstance(element, PointElement) and element.lat is not None and element.lon is not None:
        lat, lon = element.lat, element.lon
    elif isinstance(element, AreaElement) and element.centroid is not None:
        lat, lon = element.centroid
    else:
        raise ValidationError(f"{element.kind} {element.id} has no coordinates")

    Location(lat, lon)  # validates range and finiteness
    return lat, lon


class ResultNormalizer:
    """Validates and deduplicates raw elements.

    Dedupe is by ``id`` alone unless ``composite_ids`` is set, in which case
    ``(kind, id)`` is the key so a node and a way sharing a number both survive.
    """

    def __init__(self, composite_ids: bool = False) -> None:
        self.composite_ids = composite_ids

    def _key(self, element: RawElement) -> Hashable:
        return (element.kind, element.id) if self.composite_ids else element.id

    def normalize(self, raw: Iterable[RawElement]) -> List[Facility]:
        facilities: List[Facility] = []
        seen: Set[Hashable] = set()
        dropped = 0
        for element in raw:
            key = self._key(element)
            if key in seen:
                logger.debug("Dropping duplicate element %s", key)
                continue
            try:
                lat, lon = resolve_coordinates(element)
            except ValidationError as exc:
                logger.debug("Dropping element: %s", exc)
                dropped += 1
                continue
            seen.add(key)
            facilities.append(Facility(id=element.id, lat=lat, lon=lon, tags=element.tags or {}, kind=element.kind))

        if dropped:
            logger.info("Dropped %d elements without valid coordinates", dropped)
        return facilities
