import pytest
import requests

from facility_finder.core.config import Settings
from facility_finder.core.deadline import deadline_in
from facility_finder.core.errors import ServiceError, Timeout
from facility_finder.models import AreaElement, Location, PointElement
from facility_finder.vendors import overpass


class DummyResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False, text=""):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json
        self.text = text

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse(payload={"elements": []})
        self.error = None

    def post(self, url, data=None, timeout=None):
        self.calls.append((url, data, timeout))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(overpass, "_SESSION", session)
    return session


@pytest.fixture
def client():
    return overpass.SpatialQueryClient(Settings(overpass_timeout=20.0, overpass_server_timeout=25))


ORIGIN = Location(39.78, -89.65)


def test_category_filter():
    assert overpass.category_filter("hospital") == '["amenity"="hospital"]'
    assert overpass.category_filter("healthcare = doctor") == '["healthcare"="doctor"]'
    with pytest.raises(ValueError):
        overpass.category_filter(" ")


def test_build_query_covers_every_category_and_geometry():
    ql = overpass.build_query(ORIGIN, 10000, ["hospital", "clinic"], server_timeout=25)

    assert ql.startswith("[out:json][timeout:25];")
    assert ql.endswith("out center;")
    for element_type in ("node", "way", "relation"):
        for category in ("hospital", "clinic"):
            assert f'{element_type}["amenity"="{category}"](around:10000,39.78,-89.65);' in ql


def test_build_query_requires_categories():
    with pytest.raises(ValueError):
        overpass.build_query(ORIGIN, 10000, [], server_timeout=25)


def test_query_returns_points_and_areas(patch_session, client):
    patch_session.response = DummyResponse(
        payload={
            "elements": [
                {"type": "node", "id": 1, "lat": 39.79, "lon": -89.64, "tags": {"amenity": "hospital", "name": "St. John's"}},
                {"type": "way", "id": 2, "center": {"lat": 39.77, "lon": -89.66}, "tags": {"amenity": "clinic"}},
                {"type": "relation", "id": 3},
                {"type": "node", "lat": 1.0, "lon": 1.0},
            ]
        }
    )

    elements = client.query(ORIGIN, 10000, {"hospital", "clinic"})

    assert elements == [
        PointElement(id=1, lat=39.79, lon=-89.64, tags={"amenity": "hospital", "name": "St. John's"}, kind="node"),
        AreaElement(id=2, centroid=(39.77, -89.66), tags={"amenity": "clinic"}, kind="way"),
        AreaElement(id=3, centroid=None, tags=None, kind="relation"),
    ]
    url, data, timeout = patch_session.calls[0]
    assert url == "https://overpass-api.de/api/interpreter"
    assert "out center;" in data["data"]
    assert timeout == 20.0


def test_query_zero_matches_is_empty_list(patch_session, client):
    patch_session.response = DummyResponse(payload={"version": 0.6, "elements": []})

    assert client.query(ORIGIN, 5000, ["hospital"]) == []


def test_query_non_success_status(patch_session, client):
    patch_session.response = DummyResponse(status_code=504, text="Gateway Timeout")

    with pytest.raises(ServiceError) as excinfo:
        client.query(ORIGIN, 5000, ["hospital"])
    assert excinfo.value.status == 504


def test_query_invalid_json(patch_session, client):
    patch_session.response = DummyResponse(invalid_json=True)

    with pytest.raises(ServiceError):
        client.query(ORIGIN, 5000, ["hospital"])


def test_query_runtime_error_remark(patch_session, client):
    patch_session.response = DummyResponse(
        payload={"elements": [], "remark": "runtime error: Query timed out in \"query\" at line 3 after 25 seconds."}
    )

    with pytest.raises(ServiceError):
        client.query(ORIGIN, 5000, ["hospital"])


def test_query_transport_errors(patch_session, client):
    patch_session.error = requests.ReadTimeout("slow")
    with pytest.raises(Timeout):
        client.query(ORIGIN, 5000, ["hospital"])

    patch_session.error = requests.ConnectionError("refused")
    with pytest.raises(ServiceError) as excinfo:
        client.query(ORIGIN, 5000, ["hospital"])
    assert excinfo.value.status is None


def test_query_deadline_bounds_the_request_timeout(patch_session, client):
    client.query(ORIGIN, 5000, ["hospital"], deadline=deadline_in(3.0))

    _, _, timeout = patch_session.calls[0]
    assert 0 < timeout <= 3.0


def test_category_filter_escapes_quotes_and_backslashes():
    assert overpass.category_filter('name=St "Mary"') == '["name"="St \\"Mary\\""]'
    assert overpass.category_filter("name=A\\B") == '["name"="A\\\\B"]'


@pytest.mark.parametrize("category", ["amenity=", "=hospital", " = "])
def test_category_filter_rejects_incomplete_filters(category):
    with pytest.raises(ValueError):
        overpass.category_filter(category)


def test_query_tolerates_non_string_remark(patch_session, client):
    patch_session.response = DummyResponse(
        payload={"remark": {"note": "partial"}, "elements": [{"type": "node", "id": 1, "lat": 1.0, "lon": 1.0}]}
    )

    elements = client.query(ORIGIN, 5000, ["hospital"])

    assert [element.id for element in elements] == [1]
