"""Per-invocation search sessions and the supersede bookkeeping that links them."""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from typing import List, Optional

import requests

from facility_finder.core.errors import SearchCancelled
from facility_finder.models import SearchAttempt

logger = logging.getLogger(__name__)


class SearchState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    SEARCHING = "searching"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SearchSession:
    """State owned by exactly one orchestrator invocation.

    The cancellation token is a threading.Event. Cancelling also closes the
    session's HTTP connection pool so in-flight requests fail fast where the
    transport allows it.
    """

    def __init__(self, place_name: str = "") -> None:
        self.id = uuid.uuid4().hex[:12]
        self.place_name = place_name
        self.state = SearchState.IDLE
        self.attempts: List[SearchAttempt] = []
        self._cancelled = threading.Event()
        self._http: Optional[requests.Session] = None
        self._lock = threading.Lock()

    @property
    def http(self) -> requests.Session:
        with self._lock:
            if self._http is None:
                self._http = requests.Session()
            return self._http

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        logger.info("Cancelled search session %s (%s)", self.id, self.place_name)
        self.close()

    def check(self) -> None:
        if self._cancelled.is_set():
            self.state = SearchState.CANCELLED
            raise SearchCancelled(f"search session {self.id} was cancelled")

    def close(self) -> None:
        with self._lock:
            if self._http is not None:
                self._http.close()


class SearchChannel:
    """Tracks the current session of one logical caller.

    Opening a session cancels whichever session was current before it, and
    only the current, uncancelled session may finish.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[SearchSession] = None

    @property
    def current(self) -> Optional[SearchSession]:
        return self._current

    def open(self, place_name: str = "") -> SearchSession:
        session = SearchSession(place_name)
        with self._lock:
            previous, self._current = self._current, session
        if previous is not None and previous is not session:
            logger.info("Search for %r superseded by %r", previous.place_name, place_name)
            previous.cancel()
        return session

    def finish(self, session: SearchSession) -> bool:
        """Release ``session``; True only if it is still the one allowed to deliver."""
        with self._lock:
            deliverable = session is self._current and not session.cancelled
            if session is self._current:
                self._current = None
        session.close()
        return deliverable

    def cancel(self) -> None:
        with self._lock:
            session, self._current = self._current, None
        if session is not None:
            session.cancel()
