import pytest
from inline_snapshot import snapshot

from sockhttp import Entry, Origin, Response, fingerprint


def test_origin_from_url():
    assert Origin.from_url("http://api.example.test") == snapshot(
        Origin(scheme="http", host="api.example.test", port=80)
    )
    assert Origin.from_url("HTTPS://Api.Example.Test:8443/ignored") == snapshot(
        Origin(scheme="https", host="api.example.test", port=8443)
    )


@pytest.mark.parametrize("url", ["ftp://api.example.test", "api.example.test", "http://"])
def test_origin_rejects_bad_endpoints(url):
    with pytest.raises(ValueError):
        Origin.from_url(url)


def test_origin_rendering():
    assert str(Origin.from_url("https://api.example.test")) == "https://api.example.test"
    assert str(Origin.from_url("http://api.example.test:8080")) == "http://api.example.test:8080"


def test_request_url(make_request):
    assert make_request("/items").url == "http://api.example.test/items"


def test_fingerprint_ignores_field_order(make_request):
    first = make_request("/items", data=(("a", "1"), ("b", "2")))
    second = make_request("/items", data=(("b", "2"), ("a", "1")))

    assert fingerprint(first) == fingerprint(second)


def test_fingerprint_covers_method_action_and_fields(make_request):
    base = fingerprint(make_request("/items", data=(("id", "5"),)))

    assert base != fingerprint(make_request("/items", method="POST", data=(("id", "5"),)))
    assert base != fingerprint(make_request("/other", data=(("id", "5"),)))
    assert base != fingerprint(make_request("/items", data=(("id", "6"),)))
    assert base == fingerprint(make_request("/items", data=(("id", "5"),), timeout=1.0))


def test_entry_expiry():
    entry = Entry(fingerprint="k", response=Response(200), expiration=10, created_at=1000.0)

    assert entry.age(1004.0) == 4.0
    assert not entry.is_expired(1009.9)
    assert entry.is_expired(1010.0)
