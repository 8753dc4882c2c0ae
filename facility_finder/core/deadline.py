"""Absolute deadlines for the blocking calls of a search."""

from __future__ import annotations

import time
from typing import Optional

from facility_finder.core.errors import Timeout


def deadline_in(seconds: float) -> float:
    return time.monotonic() + seconds


def remaining(deadline: Optional[float], default: float) -> float:
    """Seconds left before ``deadline``, or ``default`` when no deadline is set.

    Raises Timeout when the deadline has already passed so no request is sent.
    """
    if deadline is None:
        return default
    left = deadline - time.monotonic()
    if left <= 0:
        raise Timeout("deadline elapsed before the request was sent")
    return left
