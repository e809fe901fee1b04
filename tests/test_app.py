import random

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from ers.app import InvalidPercent, client_ip, create_app, parse_percent
from ers.lifecycle import ShutdownTrigger
from ers.store import FileRateStore, MemoryRateStore


NOT_FOUND_BODY = '{"error":"404: This page could not be found"}'


def test_startup_writes_default_rate(client, rate_path):
    with open(rate_path) as f:
        assert float(f.read()) == 0.001
    r = client.get("/errors")
    assert r.status_code == 200
    assert r.json() == {"rate": 0.001}
    assert r.headers["content-type"] == "application/json"


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"healthy": "true"}
    assert r.headers["content-type"] == "application/json"


def test_healthz_ignores_rate_state(store, shutdown, rate_path):
    app = create_app(store, shutdown=shutdown, default_rate=None)
    with TestClient(app) as client:
        # No rate file at all: the rate endpoints fail, health does not.
        assert client.get("/errors").status_code == 500
        assert client.get("/healthz").status_code == 200
        client.get("/errors/100")
        assert client.get("/healthz").status_code == 200


@pytest.mark.parametrize("percent", ["0", "0.5", "12.25", "50", "99.9", "100", "1e1"])
def test_set_then_get_round_trip(client, percent):
    r = client.get(f"/errors/{percent}")
    assert r.status_code == 200
    assert r.json() == {"status": "success"}

    r = client.get("/errors")
    assert r.status_code == 200
    assert r.json()["rate"] == float(percent)


@pytest.mark.parametrize("percent", ["-1", "100.0001", "101", "abc", "nan", "inf", "-inf", "1_0", "0x10", "%20"])
def test_invalid_percent_is_rejected_and_rate_unchanged(client, percent):
    client.get("/errors/42")
    r = client.get(f"/errors/{percent}")
    assert r.status_code == 500
    assert r.content == b""
    assert client.get("/errors").json() == {"rate": 42.0}


def test_write_failure_returns_500(tmp_path, shutdown):
    store = FileRateStore(str(tmp_path / "missing" / "rate.txt"))
    app = create_app(store, shutdown=shutdown, default_rate=None)
    with TestClient(app) as client:
        r = client.get("/errors/10")
        assert r.status_code == 500
        assert r.content == b""


def test_root_with_rate_zero_nearly_always_passes(client):
    assert client.get("/errors/0").status_code == 200
    statuses = [client.get("/").status_code for _ in range(200)]
    # Only sample == 0 can fail at rate 0.
    assert statuses.count(200) >= 195
    ok = client.get("/")
    if ok.status_code == 200:
        assert ok.json() == {"Hello": "World"}


def test_root_with_rate_hundred_always_fails(client):
    assert client.get("/errors/100").status_code == 200
    for _ in range(100):
        r = client.get("/")
        assert r.status_code == 500
        assert r.content == b""


def test_root_greeting_when_sample_passes(store, shutdown):
    class FixedRandom(random.Random):
        def randrange(self, *args, **kwargs):
            return 999

    app = create_app(store, shutdown=shutdown, rng=FixedRandom(), default_rate=0.5)
    with TestClient(app) as client:
        r = client.get("/")
        assert r.status_code == 200
        assert r.json() == {"Hello": "World"}
        assert r.headers["content-type"] == "application/json"


def test_root_fails_when_rate_unreadable(rate_path, store, shutdown):
    app = create_app(store, shutdown=shutdown, default_rate=None)
    with TestClient(app) as client:
        r = client.get("/")
        assert r.status_code == 500
        assert r.content == b""

        with open(rate_path, "w") as f:
            f.write("not-a-number")
        assert client.get("/").status_code == 500
        assert client.get("/errors").status_code == 500


def test_percent_as_fraction_divides_by_hundred(store, shutdown):
    app = create_app(store, shutdown=shutdown, percent_as_fraction=True)
    with TestClient(app) as client:
        assert client.get("/errors/50").status_code == 200
        assert client.get("/errors").json() == {"rate": 0.5}

        assert client.get("/errors/100").status_code == 200
        assert all(client.get("/").status_code == 500 for _ in range(50))


def test_unmatched_route_returns_fixed_404(client):
    r = client.get("/bogus")
    assert r.status_code == 404
    assert r.text == NOT_FOUND_BODY
    assert r.headers["content-type"] == "application/json"

    r = client.get("/errors/1/extra")
    assert r.status_code == 404
    assert r.json() == {"error": "404: This page could not be found"}


@pytest.mark.parametrize("path", ["/healthz/", "/errors/", "/quitquitquit/", "/metrics/", "/errors/5/"])
def test_trailing_slash_is_not_redirected(client, exits, path):
    r = client.get(path, follow_redirects=False)
    assert r.status_code == 404
    assert r.text == NOT_FOUND_BODY
    assert "location" not in r.headers
    assert exits.codes == []


def test_wrong_method_is_405_without_body(client):
    r = client.post("/healthz")
    assert r.status_code == 405
    assert r.content == b""


def test_quitquitquit_triggers_shutdown(client, exits):
    r = client.get("/quitquitquit")
    assert exits.codes == [1]
    assert r.status_code == 200
    assert client.app.state.shutdown.triggered is True


def test_startup_failure_triggers_shutdown(tmp_path, exits):
    store = FileRateStore(str(tmp_path / "missing" / "rate.txt"))
    app = create_app(store, shutdown=ShutdownTrigger(exit_code=1, exit_func=exits))
    with TestClient(app):
        pass
    assert exits.codes == [1]


def test_memory_store_can_back_the_app(shutdown):
    app = create_app(MemoryRateStore(), shutdown=shutdown)
    with TestClient(app) as client:
        assert client.get("/errors").json() == {"rate": 0.001}
        client.get("/errors/7")
        assert client.get("/errors").json() == {"rate": 7.0}


def test_request_id_is_generated_or_echoed(client):
    r = client.get("/healthz")
    assert len(r.headers["x-request-id"]) == 32

    r = client.get("/healthz", headers={"X-Request-Id": "abc-123"})
    assert r.headers["x-request-id"] == "abc-123"


def test_unhandled_error_becomes_empty_500(store, shutdown):
    class BrokenStore(MemoryRateStore):
        def _load(self):
            raise RuntimeError("boom")

    app = create_app(BrokenStore(), shutdown=shutdown, default_rate=None)
    with TestClient(app) as client:
        r = client.get("/errors")
        assert r.status_code == 500
        assert r.content == b""
        assert "x-request-id" in r.headers


def test_parse_percent():
    assert parse_percent("0") == 0.0
    assert parse_percent("100") == 100.0
    assert parse_percent("33.3") == 33.3
    for bad in ("", " 5", "5 ", "1_000", "nan", "-0.01", "100.5", "five"):
        with pytest.raises(InvalidPercent):
            parse_percent(bad)
    assert issubclass(InvalidPercent, ValueError)


def _request(headers, peer=("10.0.0.9", 1234)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": peer,
    }
    return Request(scope)


def test_client_ip_prefers_proxy_headers():
    assert client_ip(_request({"X-Real-IP": "1.2.3.4", "X-Forwarded-For": "5.6.7.8"})) == "1.2.3.4"
    assert client_ip(_request({"X-Forwarded-For": "5.6.7.8, 9.9.9.9"})) == "5.6.7.8"
    assert client_ip(_request({})) == "10.0.0.9"
    assert client_ip(_request({}, peer=None)) == "-"
