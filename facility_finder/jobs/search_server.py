"""HTTP entrypoint exposing geocoding, single-radius place lookups and full searches."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from facility_finder.core.config import get_settings
from facility_finder.core.deadline import deadline_in
from facility_finder.core.errors import (
    NotFound,
    SearchCancelled,
    SearchError,
    ServiceError,
    Timeout,
    ValidationError,
)
from facility_finder.core.orchestrator import SearchOrchestrator
from facility_finder.core.session import SearchChannel
from facility_finder.etl.normalize import ResultNormalizer
from facility_finder.etl.rank import RankingEngine
from facility_finder.models import Failed, Location
from facility_finder.vendors.nominatim import GeocodeResolver, candidate_to_dict
from facility_finder.vendors.overpass import SpatialQueryClient

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & search wiring ----------
app = Flask(__name__)
_orchestrator: Optional[SearchOrchestrator] = None
# client id -> (channel, requests currently using it)
_channels: Dict[str, Tuple[SearchChannel, int]] = {}
_channels_lock = threading.Lock()


def get_orchestrator() -> SearchOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SearchOrchestrator(settings=get_settings())
    return _orchestrator


def _acquire_channel(client_id: Optional[str]) -> Optional[SearchChannel]:
    if not client_id:
        return None
    with _channels_lock:
        channel, users = _channels.get(client_id, (None, 0))
        if channel is None:
            channel = SearchChannel()
        _channels[client_id] = (channel, users + 1)
        return channel


def _release_channel(client_id: Optional[str]) -> None:
    """Drop the client's channel once no request is using it."""
    if not client_id:
        return
    with _channels_lock:
        channel, users = _channels[client_id]
        if users <= 1:
            del _channels[client_id]
        else:
            _channels[client_id] = (channel, users - 1)


def _error_status(error: SearchError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, Timeout):
        return 504
    if isinstance(error, ServiceError):
        return 502
    return 500


def _error_response(error: SearchError) -> Any:
    return jsonify({"error": error.user_message, "detail": str(error)}), _error_status(error)


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "categories": list(settings.categories),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.get("/api/geocode")
def geocode() -> Any:
    """Resolve ``city`` to its best geocoding match."""
    city = (request.args.get("city") or "").strip()
    if not city:
        return jsonify({"error": "city is required"}), 400

    orchestrator = get_orchestrator()
    try:
        result = orchestrator.resolver.resolve(city, deadline=deadline_in(orchestrator.geocode_timeout))
    except SearchError as exc:
        return _error_response(exc)
    return jsonify({"data": candidate_to_dict(result)}), 200


@app.get("/api/places")
def places() -> Any:
    """Facilities within ``radius`` meters of ``lat``/``lon``, nearest first, no retry ladder."""
    try:
        origin = Location(float(request.args["lat"]), float(request.args["lon"]))
    except KeyError:
        return jsonify({"error": "lat and lon are required"}), 400
    except (ValueError, ValidationError):
        return jsonify({"error": "lat and lon must be valid coordinates"}), 400

    try:
        radius = int(request.args.get("radius", get_settings().default_radius_m))
    except ValueError:
        return jsonify({"error": "radius must be an integer"}), 400
    if radius <= 0 or radius > get_settings().max_radius_m:
        return jsonify({"error": f"radius must be between 1 and {get_settings().max_radius_m}"}), 400

    orchestrator = get_orchestrator()
    try:
        raw = orchestrator.client.query(
            origin, radius, orchestrator.categories, deadline=deadline_in(orchestrator.query_timeout)
        )
    except SearchError as exc:
        return _error_response(exc)

    facilities = RankingEngine().rank(ResultNormalizer().normalize(raw), origin)
    return jsonify({"data": [facility.to_dict() for facility in facilities]}), 200


@app.get("/api/search")
def search() -> Any:
    """Full pipeline. ``X-Client-Id`` groups requests so a newer one supersedes an older one."""
    place = (request.args.get("place") or request.args.get("city") or "").strip()
    if not place:
        return jsonify({"error": "place is required"}), 400

    client_id = request.headers.get("X-Client-Id")
    channel = _acquire_channel(client_id)
    try:
        outcome = get_orchestrator().search(place, channel=channel)
    except SearchCancelled:
        return jsonify({"error": "superseded by a newer search"}), 409
    finally:
        _release_channel(client_id)

    if isinstance(outcome, Failed):
        return jsonify({"data": outcome.to_dict()}), _error_status(outcome.error)
    return jsonify({"data": outcome.to_dict()}), 200


def main() -> None:
    settings = get_settings()
    port = int(os.getenv("PORT") or settings.worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
