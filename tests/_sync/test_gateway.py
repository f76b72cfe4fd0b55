import sqlite3
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from time_machine import travel

from sockhttp import (
    BaseStorage,
    CacheConfig,
    CacheGateway,
    InMemoryStorage,
    NullStorage,
    Outcome,
    Response,
    Severity,
    classify,
)

EXPIRATION = 300


def success(content: bytes = b"ok") -> Response:
    return Response(status_code=200, content=content, outcome=Outcome.SUCCESS)


class BrokenStorage(BaseStorage):
    def query(self, fingerprint):
        raise sqlite3.OperationalError("database is locked")

    def commit(self, fingerprint, response, ttl):
        raise sqlite3.OperationalError("database is locked")

    def prune(self):
        raise sqlite3.OperationalError("database is locked")

    def remove(self, fingerprint):
        pass

    def clear(self):
        pass


@pytest.mark.parametrize("offset, hit", [(EXPIRATION - 1, True), (EXPIRATION + 1, False)])
def test_entries_honored_only_while_fresh(make_request, offset, hit):
    gateway = CacheGateway(InMemoryStorage(), CacheConfig(expiration=EXPIRATION))
    request = make_request()

    with travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False) as traveller:
        gateway.commit(request, success(), classify(200))
        traveller.shift(offset)

        cached = gateway.get_cached_response(request)

    assert (cached is not None) is hit


@travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False)
def test_cached_response_metadata(make_request):
    gateway = CacheGateway(InMemoryStorage())
    first, second = make_request(), make_request()

    stored = gateway.commit(first, success(), classify(200))
    cached = gateway.get_cached_response(second)

    assert stored.metadata == {"sockhttp_stored": True, "sockhttp_created_at": 1704067200.0}
    assert cached is not None
    assert cached.from_cache
    assert cached.request is second
    assert cached.metadata == {"sockhttp_from_cache": True, "sockhttp_created_at": 1704067200.0}


def test_expiration_resolution_order(make_request):
    gateway = CacheGateway(config=CacheConfig(expiration=EXPIRATION))

    assert gateway.resolve_expiration(make_request()) == EXPIRATION
    gateway.set_expiration(60)
    assert gateway.resolve_expiration(make_request()) == 60
    assert gateway.resolve_expiration(make_request(ttl=5)) == 5


def test_expiration_override_reverts_once():
    gateway = CacheGateway(config=CacheConfig(expiration=EXPIRATION))

    gateway.set_expiration(10)
    gateway.set_expiration(20)
    assert gateway.expiration == 20

    assert gateway.revert_expiration() is True
    assert gateway.expiration == EXPIRATION
    assert gateway.revert_expiration() is False
    assert gateway.expiration == EXPIRATION


def test_negative_expiration_is_rejected():
    with pytest.raises(ValueError):
        CacheGateway().set_expiration(-1)


def test_per_request_ttl_applies_to_lookups(make_request):
    gateway = CacheGateway(InMemoryStorage(), CacheConfig(expiration=EXPIRATION))

    with travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False) as traveller:
        gateway.commit(make_request(), success(), classify(200))
        traveller.shift(30)

        assert gateway.get_cached_response(make_request()) is not None
        assert gateway.get_cached_response(make_request(ttl=10)) is None


@pytest.mark.parametrize(
    "config, request_force, call_force, expected",
    [
        (CacheConfig(), None, None, True),
        (CacheConfig(default_on=False), None, None, False),
        (CacheConfig(default_on=False), True, None, True),
        (CacheConfig(), False, None, False),
        (CacheConfig(), False, True, True),
        (CacheConfig(enabled=False), True, True, False),
    ],
)
def test_caching_switches(make_request, config, request_force, call_force, expected):
    storage = InMemoryStorage()
    CacheGateway(storage).commit(make_request(), success(), classify(200))
    gateway = CacheGateway(storage, config)

    cached = gateway.get_cached_response(make_request(force_cache=request_force), force_cache=call_force)

    assert (cached is not None) is expected


@pytest.mark.parametrize("status", [404, 403, 500])
def test_only_cacheable_responses_are_committed(make_request, status):
    storage = InMemoryStorage()
    gateway = CacheGateway(storage)

    stored = gateway.commit(make_request(), Response(status_code=status), classify(status))

    assert len(storage) == 0
    assert "sockhttp_stored" not in stored.metadata


def test_null_storage_is_never_marked_as_stored(make_request):
    stored = CacheGateway(NullStorage()).commit(make_request(), success(), classify(200))

    assert stored.metadata == {}


def test_store_failures_degrade_to_misses(make_request, sink):
    gateway = CacheGateway(BrokenStorage(), CacheConfig(auto_prune=True), sink)

    assert gateway.get_cached_response(make_request()) is None
    response = gateway.commit(make_request(), success(), classify(200))

    assert response.content == b"ok"
    assert sink.severities == [Severity.WARN, Severity.WARN, Severity.WARN]
    assert all(isinstance(trace, sqlite3.OperationalError) for _, _, trace in sink.records)


def test_auto_prune_runs_before_lookups(make_request):
    storage = InMemoryStorage()
    gateway = CacheGateway(storage, CacheConfig(auto_prune=True, expiration=EXPIRATION))

    with travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False) as traveller:
        gateway.commit(make_request("/old"), success(), classify(200))
        traveller.shift(EXPIRATION)
        gateway.commit(make_request("/new"), success(), classify(200))

        gateway.get_cached_response(make_request("/new"))

    assert len(storage) == 1


def test_remove_and_clear(make_request):
    storage = InMemoryStorage()
    gateway = CacheGateway(storage)
    gateway.commit(make_request("/a"), success(), classify(200))
    gateway.commit(make_request("/b"), success(), classify(200))

    gateway.remove(make_request("/a"))
    assert gateway.get_cached_response(make_request("/a")) is None
    assert gateway.get_cached_response(make_request("/b")) is not None

    gateway.clear()
    assert len(storage) == 0
