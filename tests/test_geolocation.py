import httpx

from security.geolocation import lookup_location, parse_location


def test_parse_ipapi_payload():
    payload = {"country_name": "Kenya", "city": "Nairobi", "latitude": "-1.28", "longitude": "36.82"}

    assert parse_location(payload) == {
        "country": "Kenya",
        "city": "Nairobi",
        "coordinates": {"latitude": -1.28, "longitude": 36.82},
    }


def test_parse_without_coordinates():
    assert parse_location({"country": "Chile", "city": None}) == {"country": "Chile", "city": None}


def test_parse_rejects_error_and_empty_payloads():
    assert parse_location({"error": True, "reason": "Reserved IP Address"}) is None
    assert parse_location({}) is None
    assert parse_location(["not", "a", "dict"]) is None


def test_lookup_disabled_without_url(app, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(httpx, "get", fail)

    assert lookup_location("8.8.8.8") is None


def test_lookup_skips_private_addresses(app, monkeypatch):
    app.config["GEOIP_LOOKUP_URL"] = "https://geo.example.test/{ip}/json/"

    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(httpx, "get", fail)

    assert lookup_location("192.168.1.10") is None
    assert lookup_location("127.0.0.1") is None
    assert lookup_location("unknown") is None


def test_lookup_treats_http_errors_as_unknown(app, monkeypatch):
    app.config["GEOIP_LOOKUP_URL"] = "https://geo.example.test/{ip}/json/"

    def rate_limited(url, timeout):
        return httpx.Response(429, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", rate_limited)

    assert lookup_location("8.8.8.8") is None


def test_lookup_with_broken_template_returns_none(app, monkeypatch):
    app.config["GEOIP_LOOKUP_URL"] = "https://geo.example.test/{addr}/json/"

    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(httpx, "get", fail)

    assert lookup_location("8.8.8.8") is None


def test_lookup_with_invalid_url_returns_none(app, monkeypatch):
    app.config["GEOIP_LOOKUP_URL"] = "https://geo.example.test/{ip}/json/"

    def invalid(url, timeout):
        raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

    monkeypatch.setattr(httpx, "get", invalid)

    assert lookup_location("8.8.8.8") is None
