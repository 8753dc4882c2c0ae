"""Background execution of searches for one logical caller, with supersede delivery."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from facility_finder.core.errors import SearchCancelled
from facility_finder.core.orchestrator import SearchOrchestrator
from facility_finder.core.session import SearchChannel
from facility_finder.models import SearchOutcome

logger = logging.getLogger(__name__)

ResultCallback = Callable[[SearchOutcome], None]


class SearchDispatcher:
    """Submits searches to a thread pool.

    Each ``submit`` supersedes the previous one: its Future is cancelled, its
    session is cancelled, and its outcome is never handed to ``on_result``.
    """

    def __init__(self, orchestrator: SearchOrchestrator, max_workers: int = 2) -> None:
        self.orchestrator = orchestrator
        self.channel = SearchChannel()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="search")
        self._lock = threading.RLock()
        self._pending: Optional[Future] = None

    def submit(self, place_name: str, on_result: Optional[ResultCallback] = None) -> Future:
        future: Future = Future()
        with self._lock:
            previous, self._pending = self._pending, future
            if previous is not None:
                previous.cancel()
            # Stop the superseded search at its next checkpoint instead of when the new one starts.
            self.channel.cancel()
        self._executor.submit(self._run, place_name, future, on_result)
        return future

    def _run(self, place_name: str, future: Future, on_result: Optional[ResultCallback]) -> None:
        with self._lock:
            if future is not self._pending or future.cancelled():
                logger.debug("Search for %s superseded before it started", place_name)
                return
            session = self.channel.open(place_name)

        try:
            outcome = self.orchestrator.run(session)
        except SearchCancelled:
            self.channel.finish(session)
            logger.info("Discarding superseded search for %s", place_name)
            future.cancel()
            return
        except Exception as exc:  # noqa: BLE001
            self.channel.finish(session)
            logger.exception("Search for %s crashed: %s", place_name, exc)
            if future.set_running_or_notify_cancel():
                future.set_exception(exc)
            return

        deliverable = self.channel.finish(session)
        # Held through delivery: a concurrent submit lands before the check or after on_result returns.
        with self._lock:
            if not deliverable or future is not self._pending or not future.set_running_or_notify_cancel():
                logger.info("Discarding superseded result for %s", place_name)
                future.cancel()
                return
            self._pending = None
            future.set_result(outcome)
            if on_result is not None:
                on_result(outcome)

    def cancel(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
        self.channel.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
