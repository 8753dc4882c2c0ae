"""Search pipeline: geocode once, then walk an expanding radius ladder until something is found."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from facility_finder.core.config import Settings, get_settings
from facility_finder.core.deadline import deadline_in
from facility_finder.core.errors import SearchCancelled, SearchError, ServiceError, Timeout
from facility_finder.core.session import SearchChannel, SearchSession, SearchState
from facility_finder.etl.normalize import ResultNormalizer
from facility_finder.etl.radius import RadiusEstimator
from facility_finder.etl.rank import RankingEngine
from facility_finder.models import (
    AttemptOutcome,
    Exhausted,
    Failed,
    Facility,
    GeocodeResult,
    SearchAttempt,
    SearchOutcome,
    Success,
)
from facility_finder.vendors.nominatim import GeocodeResolver
from facility_finder.vendors.overpass import SpatialQueryClient, category_filter

logger = logging.getLogger(__name__)

MAX_RADIUS_M = 50000


@dataclass(frozen=True)
class RadiusLadder:
    """Rungs ``[r0, min(2 * r0, max_radius), max_radius]`` with r0 clamped to ``max_radius``."""

    max_radius: int = MAX_RADIUS_M
    growth: int = 2

    def rungs(self, initial_radius: int) -> Tuple[int, ...]:
        first = min(int(initial_radius), self.max_radius)
        return (first, min(first * self.growth, self.max_radius), self.max_radius)


class SearchOrchestrator:
    """Drives GeocodeResolver, SpatialQueryClient, ResultNormalizer and RankingEngine.

    Holds no mutable state between invocations; everything belonging to one
    search lives on its SearchSession.
    """

    def __init__(
        self,
        resolver: Optional[GeocodeResolver] = None,
        client: Optional[SpatialQueryClient] = None,
        estimator: Optional[RadiusEstimator] = None,
        normalizer: Optional[ResultNormalizer] = None,
        ranker: Optional[RankingEngine] = None,
        ladder: Optional[RadiusLadder] = None,
        categories: Optional[Iterable[str]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.resolver = resolver or GeocodeResolver(settings)
        self.client = client or SpatialQueryClient(settings)
        self.estimator = estimator or RadiusEstimator(default_radius=settings.default_radius_m)
        self.normalizer = normalizer or ResultNormalizer()
        self.ranker = ranker or RankingEngine()
        self.ladder = ladder or RadiusLadder(max_radius=settings.max_radius_m)
        self.categories = tuple(category.strip() for category in (categories or settings.categories))
        for category in self.categories:
            category_filter(category)
        self.geocode_timeout = settings.geocode_timeout
        self.query_timeout = settings.overpass_timeout

    def search(self, place_name: str, channel: Optional[SearchChannel] = None) -> SearchOutcome:
        """Run one search.

        With a ``channel``, this invocation supersedes the channel's previous
        one, and raises SearchCancelled instead of returning if it is itself
        superseded before it completes.
        """
        session = channel.open(place_name) if channel is not None else SearchSession(place_name)
        try:
            outcome = self.run(session)
        finally:
            deliverable = channel.finish(session) if channel is not None else True
            if channel is None:
                session.close()
        if not deliverable:
            raise SearchCancelled(f"search for {place_name!r} was superseded")
        return outcome

    def run(self, session: SearchSession) -> SearchOutcome:
        session.state = SearchState.RESOLVING
        logger.info("Resolving place=%s", session.place_name)
        try:
            geocoded = self.resolver.resolve(
                session.place_name, deadline=deadline_in(self.geocode_timeout), http=session.http
            )
        except SearchError as exc:
            session.check()
            logger.warning("Geocoding failed for place=%s: %s", session.place_name, exc)
            session.state = SearchState.FAILED
            return Failed(error=exc, attempts=list(session.attempts))
        session.check()

        radius = self.estimator.estimate(geocoded.bbox)
        rungs = self.ladder.rungs(radius)
        logger.info(
            "Resolved %s to %.5f,%.5f; radius ladder %s",
            session.place_name,
            geocoded.location.lat,
            geocoded.location.lon,
            list(rungs),
        )

        session.state = SearchState.SEARCHING
        facilities = self._climb(session, geocoded, rungs)
        if isinstance(facilities, SearchError):
            session.state = SearchState.FAILED
            return Failed(error=facilities, attempts=list(session.attempts))
        if not facilities:
            session.state = SearchState.EXHAUSTED
            logger.info("No facilities near %s after %d attempts", session.place_name, len(session.attempts))
            return Exhausted(
                origin=geocoded.location, attempts=list(session.attempts), display_name=geocoded.display_name
            )

        ranked = self.ranker.rank(facilities, geocoded.location)
        session.state = SearchState.SUCCESS
        return Success(
            origin=geocoded.location,
            facilities=ranked,
            attempts=list(session.attempts),
            display_name=geocoded.display_name,
        )

    def _climb(self, session: SearchSession, geocoded: GeocodeResult, rungs: Tuple[int, ...]):
        """Walk the rungs smallest first; returns facilities, an empty list, or the final rung's error."""
        last_index = len(rungs) - 1
        for index, radius in enumerate(rungs):
            previous = session.attempts[-1] if session.attempts else None
            if previous is not None and previous.radius == radius and previous.outcome is AttemptOutcome.EMPTY:
                logger.debug("Skipping rung %d: radius %sm already answered empty", index + 1, radius)
                continue

            logger.info("Attempt %d/%d: %sm", index + 1, len(rungs), radius)
            try:
                raw = self.client.query(
                    geocoded.location,
                    radius,
                    self.categories,
                    deadline=deadline_in(self.query_timeout),
                    http=session.http,
                )
            except (ServiceError, Timeout) as exc:
                session.check()
                session.attempts.append(SearchAttempt(radius=radius, outcome=AttemptOutcome.FAILED, error=exc))
                if index == last_index:
                    logger.error("Final attempt at %sm failed: %s", radius, exc)
                    return exc
                logger.warning("Attempt at %sm failed, trying next radius: %s", radius, exc)
                continue
            session.check()

            facilities: List[Facility] = self.normalizer.normalize(raw)
            if facilities:
                session.attempts.append(
                    SearchAttempt(radius=radius, outcome=AttemptOutcome.FOUND, count=len(facilities))
                )
                logger.info("Found %d facilities at %sm", len(facilities), radius)
                return facilities
            session.attempts.append(SearchAttempt(radius=radius, outcome=AttemptOutcome.EMPTY))
            logger.info("No results at %sm", radius)
        return []
