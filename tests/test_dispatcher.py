import threading

import pytest

from facility_finder.core.config import Settings
from facility_finder.core.dispatcher import SearchDispatcher
from facility_finder.core.orchestrator import SearchOrchestrator
from facility_finder.core.session import SearchChannel
from facility_finder.models import GeocodeResult, Location, PointElement, Success

PLACES = {
    "Paris": GeocodeResult(location=Location(48.8566, 2.3522)),
    "Lyon": GeocodeResult(location=Location(45.764, 4.8357)),
}


class GatedResolver:
    """Blocks resolution of gated place names until the test releases them."""

    def __init__(self, gated=()):
        self.gates = {name: threading.Event() for name in gated}
        self.entered = {name: threading.Event() for name in gated}

    def resolve(self, place_name, deadline=None, http=None):
        if place_name in self.gates:
            self.entered[place_name].set()
            assert self.gates[place_name].wait(timeout=5)
        return PLACES[place_name]


class EchoClient:
    def query(self, origin, radius_m, categories, deadline=None, http=None):
        return [PointElement(id=1, lat=origin.lat, lon=origin.lon, tags={"name": f"near {origin.lat}"})]


def _dispatcher(resolver):
    orchestrator = SearchOrchestrator(resolver=resolver, client=EchoClient(), settings=Settings())
    return SearchDispatcher(orchestrator, max_workers=2)


def test_only_the_latest_search_is_delivered():
    resolver = GatedResolver(gated=["Paris"])
    dispatcher = _dispatcher(resolver)
    delivered = []

    paris = dispatcher.submit("Paris", on_result=lambda outcome: delivered.append(("Paris", outcome)))
    assert resolver.entered["Paris"].wait(timeout=5)
    lyon = dispatcher.submit("Lyon", on_result=lambda outcome: delivered.append(("Lyon", outcome)))

    lyon_outcome = lyon.result(timeout=5)
    resolver.gates["Paris"].set()
    dispatcher.shutdown(wait=True)

    assert paris.cancelled()
    assert [name for name, _ in delivered] == ["Lyon"]
    assert isinstance(lyon_outcome, Success)
    assert lyon_outcome.origin == PLACES["Lyon"].location


def test_superseded_search_that_has_not_started_never_runs():
    resolver = GatedResolver()
    dispatcher = _dispatcher(resolver)
    blocker = threading.Event()
    dispatcher._executor.submit(blocker.wait, 5)
    dispatcher._executor.submit(blocker.wait, 5)
    delivered = []

    paris = dispatcher.submit("Paris", on_result=delivered.append)
    lyon = dispatcher.submit("Lyon", on_result=delivered.append)
    blocker.set()

    lyon.result(timeout=5)
    dispatcher.shutdown(wait=True)

    assert paris.cancelled()
    assert len(delivered) == 1
    assert delivered[0].origin == PLACES["Lyon"].location


def test_single_search_is_delivered_exactly_once():
    dispatcher = _dispatcher(GatedResolver())
    delivered = []

    future = dispatcher.submit("Lyon", on_result=delivered.append)
    outcome = future.result(timeout=5)
    dispatcher.shutdown(wait=True)

    assert delivered == [outcome]


def test_cancel_discards_the_pending_search():
    resolver = GatedResolver(gated=["Paris"])
    dispatcher = _dispatcher(resolver)
    delivered = []

    paris = dispatcher.submit("Paris", on_result=delivered.append)
    assert resolver.entered["Paris"].wait(timeout=5)
    dispatcher.cancel()
    resolver.gates["Paris"].set()
    dispatcher.shutdown(wait=True)

    assert paris.cancelled()
    assert delivered == []


def test_channel_open_cancels_previous_session():
    channel = SearchChannel()
    first = channel.open("Paris")
    second = channel.open("Lyon")

    assert first.cancelled
    assert not second.cancelled
    assert channel.finish(first) is False
    assert channel.finish(second) is True


@pytest.mark.parametrize("place", ["Paris", "Lyon"])
def test_sequential_searches_are_each_delivered(place):
    dispatcher = _dispatcher(GatedResolver())
    delivered = []

    dispatcher.submit(place, on_result=delivered.append).result(timeout=5)
    dispatcher.submit(place, on_result=delivered.append).result(timeout=5)
    dispatcher.shutdown(wait=True)

    assert len(delivered) == 2


def test_submit_between_finish_and_delivery_drops_the_older_result():
    dispatcher = _dispatcher(GatedResolver())
    delivered = []
    submitted = []
    lyon_submitted = threading.Event()
    original_finish = dispatcher.channel.finish

    def finish_then_submit_lyon(session):
        result = original_finish(session)
        if session.place_name == "Paris":
            # Lyon arrives from another thread after Paris completed but before it was delivered.
            thread = threading.Thread(
                target=lambda: submitted.append(dispatcher.submit("Lyon", on_result=lambda o: delivered.append("Lyon")))
            )
            thread.start()
            thread.join(timeout=5)
            lyon_submitted.set()
        return result

    dispatcher.channel.finish = finish_then_submit_lyon

    paris = dispatcher.submit("Paris", on_result=lambda outcome: delivered.append("Paris"))
    assert lyon_submitted.wait(timeout=5)
    lyon_outcome = submitted[0].result(timeout=5)
    dispatcher.shutdown(wait=True)

    assert paris.cancelled()
    assert lyon_outcome.origin == PLACES["Lyon"].location
    assert delivered == ["Lyon"]


def test_callback_may_submit_a_follow_up_search():
    dispatcher = _dispatcher(GatedResolver())
    delivered = []
    follow_up = []
    submitted = threading.Event()

    def on_paris(outcome):
        delivered.append("Paris")
        follow_up.append(dispatcher.submit("Lyon", on_result=lambda o: delivered.append("Lyon")))
        submitted.set()

    dispatcher.submit("Paris", on_result=on_paris)
    assert submitted.wait(timeout=5)
    follow_up[0].result(timeout=5)
    dispatcher.shutdown(wait=True)

    assert delivered == ["Paris", "Lyon"]
