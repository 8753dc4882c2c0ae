"""Orders facilities nearest-first."""

import math
from typing import Iterable, List

from facility_finder.models import Facility, Location

# Length of one degree of latitude; used for display only.
KM_PER_DEGREE = 111.32


def planar_distance(facility: Facility, origin: Location) -> float:
    """Euclidean distance in degree space.

    An approximation that only holds up because search radii stay within
    tens of kilometres; it is not a geodesic distance.
    """
    return math.hypot(facility.lat - origin.lat, facility.lon - origin.lon)


def approx_distance_km(facility: Facility, origin: Location) -> float:
    return planar_distance(facility, origin) * KM_PER_DEGREE


class RankingEngine:
    def rank(self, facilities: Iterable[Facility], origin: Location) -> List[Facility]:
        """Return a new list sorted by distance from ``origin``, ties by ascending id."""
        return sorted(facilities, key=lambda facility: (planar_distance(facility, origin), facility.id))
