"""Initial search radius from the size of a geocoding match."""

from typing import Optional, Sequence, Tuple

from facility_finder.models import BoundingBox

DEFAULT_RADIUS_M = 15000

# (minimum area in square degrees, radius in meters), highest threshold first.
# Comparisons are strict: an area of exactly 0.1 falls into the 10000 m tier.
RADIUS_TIERS: Tuple[Tuple[float, int], ...] = (
    (1.0, 50000),
    (0.5, 30000),
    (0.1, 20000),
    (0.01, 10000),
)
SMALLEST_RADIUS_M = 5000


class RadiusEstimator:
    """Maps bounding-box area (square degrees, not a geodesic area) onto a tier table."""

    def __init__(
        self,
        default_radius: int = DEFAULT_RADIUS_M,
        tiers: Sequence[Tuple[float, int]] = RADIUS_TIERS,
        smallest_radius: int = SMALLEST_RADIUS_M,
    ) -> None:
        self.default_radius = default_radius
        self.tiers = tuple(sorted(tiers, key=lambda tier: tier[0], reverse=True))
        self.smallest_radius = smallest_radius

    def estimate(self, bbox: Optional[BoundingBox]) -> int:
        if bbox is None:
            return self.default_radius
        area = bbox.area
        for threshold, radius in self.tiers:
            if area > threshold:
                return radius
        return self.smallest_radius
