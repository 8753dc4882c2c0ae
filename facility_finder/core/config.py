"""Application configuration helpers.

Everything is read from the environment (optionally seeded from a ``.env``
file). Nominatim's usage policy requires an identifying User-Agent, so
``NOMINATIM_USER_AGENT`` should always be set in deployments.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

FALLBACK_USER_AGENT = "facility-finder/0.1 (contact: example@example.com)"


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = FALLBACK_USER_AGENT
    nominatim_referer: Optional[str] = None
    geocode_timeout: float = 10.0
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_timeout: float = 20.0
    overpass_server_timeout: int = 25
    categories: Tuple[str, ...] = ("hospital", "clinic")
    default_radius_m: int = 15000
    max_radius_m: int = 50000
    worker_port: int = 8080


def _get_number(name: str, default: str, cast):
    raw = os.getenv(name) or default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def _parse_categories(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return Settings.categories
    categories = tuple(part.strip() for part in raw.split(",") if part.strip())
    if not categories:
        raise ConfigError("SEARCH_CATEGORIES must name at least one category")
    for category in categories:
        key, sep, value = category.partition("=")
        if sep and not (key.strip() and value.strip()):
            raise ConfigError(f"SEARCH_CATEGORIES has an incomplete key=value filter: {category!r}")
    return categories


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    user_agent = os.getenv("NOMINATIM_USER_AGENT")
    if not user_agent:
        logger.warning(
            "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
            "This may violate Nominatim usage policy."
        )
        user_agent = FALLBACK_USER_AGENT

    default_radius_m = _get_number("DEFAULT_RADIUS_M", "15000", int)
    max_radius_m = _get_number("MAX_RADIUS_M", "50000", int)
    if default_radius_m <= 0 or max_radius_m <= 0:
        raise ConfigError("DEFAULT_RADIUS_M and MAX_RADIUS_M must be positive")

    overpass_timeout = _get_number("OVERPASS_TIMEOUT", "20", float)
    overpass_server_timeout = _get_number("OVERPASS_SERVER_TIMEOUT", "25", int)
    if overpass_timeout > overpass_server_timeout:
        logger.warning(
            "OVERPASS_TIMEOUT (%ss) exceeds OVERPASS_SERVER_TIMEOUT (%ss); the server gives up first.",
            overpass_timeout,
            overpass_server_timeout,
        )

    return Settings(
        nominatim_url=(os.getenv("NOMINATIM_URL") or Settings.nominatim_url).rstrip("/"),
        nominatim_user_agent=user_agent,
        nominatim_referer=os.getenv("NOMINATIM_REFERER") or None,
        geocode_timeout=_get_number("GEOCODE_TIMEOUT", "10", float),
        overpass_url=os.getenv("OVERPASS_URL") or Settings.overpass_url,
        overpass_timeout=overpass_timeout,
        overpass_server_timeout=overpass_server_timeout,
        categories=_parse_categories(os.getenv("SEARCH_CATEGORIES")),
        default_radius_m=default_radius_m,
        max_radius_m=max_radius_m,
        worker_port=_get_number("PORT", os.getenv("WORKER_PORT") or "8080", int),
    )
