import pytest
from fastapi.testclient import TestClient

from transit_eta.config import Settings
from transit_eta.domain import Route, StopTime, Trip
from transit_eta.main import create_app, load_position_provider, load_timetable
from transit_eta.providers.gtfs import GtfsTimetable
from transit_eta.providers.mock import MockPositionProvider
from transit_eta.providers.mpk import MpkPositionProvider

from fakes import STOP, FakeTimetable


@pytest.fixture
def hourly_timetable():
    # a departure at quarter past every hour, so some are always upcoming
    trips = [Trip(f"T{h}", "R33", "ALL", "Sepolno") for h in range(24)]
    stop_times = [StopTime(f"T{h}", STOP.stop_id, f"{h:02d}:15:00") for h in range(24)]
    return FakeTimetable(stops=[STOP], stop_times=stop_times, trips=trips, routes=[Route("R33", "33", "", 0)])


@pytest.fixture
def client(hourly_timetable):
    app = create_app(
        settings=Settings(timezone="UTC"),
        timetable=hourly_timetable,
        positions=MockPositionProvider(vehicles=[]),
    )
    with TestClient(app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "gtfs_stops": 1, "tracked_vehicles": 0}


def test_stops(client):
    body = client.get("/stops").json()
    assert body["total"] == 1
    assert body["stops"][0]["stop_code"] == "100"


def test_arrivals(client):
    r = client.get("/stops/100/arrivals", params={"count": 3})
    assert r.status_code == 200
    body = r.json()
    assert body["stop_code"] == "100"
    assert body["stop_name"] == "Rynek"
    etas = [a["eta_min"] for a in body["arrivals"]]
    assert len(etas) == 3
    assert etas == sorted(etas)
    assert all(a["is_real_time"] is False for a in body["arrivals"])


def test_unknown_stop_is_404(client):
    r = client.get("/stops/nope/arrivals")
    assert r.status_code == 404
    assert r.json()["detail"] == "Stop code 'nope' not found"


def test_failure_is_500(client, hourly_timetable):
    hourly_timetable.fail_stop = True
    assert client.get("/stops/100/arrivals").status_code == 500


def test_batch(client):
    r = client.post("/stops/arrivals/batch", json={"stop_codes": ["100", "nope"], "count_per_stop": 2})
    assert r.status_code == 200
    etas = [a["eta_min"] for a in r.json()]
    assert len(etas) == 2
    assert etas == sorted(etas)


def test_batch_empty(client):
    assert client.post("/stops/arrivals/batch", json={"stop_codes": []}).json() == []


def test_load_position_provider():
    assert isinstance(load_position_provider(Settings(provider="mock")), MockPositionProvider)

    mpk = load_position_provider(Settings(provider="mpk", provider_opts='{"timeout_s": 5}'))
    assert isinstance(mpk, MpkPositionProvider)
    assert mpk.timeout_s == 5

    with pytest.raises(RuntimeError):
        load_position_provider(Settings(provider="nope"))


def test_load_timetable(tmp_path):
    with pytest.raises(RuntimeError):
        load_timetable(Settings(gtfs_path=str(tmp_path / "missing")))
    assert isinstance(load_timetable(Settings(gtfs_path=str(tmp_path), timezone="UTC")), GtfsTimetable)
