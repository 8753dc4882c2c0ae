"""Error taxonomy for the facility search pipeline."""

from __future__ import annotations

from typing import Optional


class SearchError(RuntimeError):
    """Base class for failures a search can end with."""

    user_message = "An unexpected error occurred."


class NotFound(SearchError):
    """Raised when the geocoder has no candidate for a place name."""

    user_message = "Place not found. Please check the spelling."

    def __init__(self, place_name: str) -> None:
        super().__init__(f"no geocoding match for {place_name!r}")
        self.place_name = place_name


class ServiceError(SearchError):
    """Raised when an upstream service answers with a non-success status or a malformed payload.

    ``status`` is ``None`` when no HTTP response was received at all.
    """

    user_message = "The search service is unavailable right now. Please try again later."

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message if status is None else f"{message} (status={status})")
        self.status = status


class Timeout(SearchError):
    """Raised when a deadline elapses before the upstream service answers."""

    user_message = "The search timed out. Please try again."


class ValidationError(ValueError):
    """Raised for malformed or out-of-range coordinates; dropped by the normalizer, never surfaced."""


class SearchCancelled(RuntimeError):
    """Raised inside a search whose session was superseded or cancelled."""
