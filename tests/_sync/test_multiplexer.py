import time

import pytest

from sockhttp import (
    ConnectFailure,
    ConnectionMultiplexer,
    ConnectTimeout,
    MalformedResponse,
    MockBackend,
    MockReply,
    NonBlockingActivationFailure,
    Response,
    Severity,
    WriteFailure,
    build_message,
)
from sockhttp._sync._multiplexer import Connection, ConnectionState, Failure
from tests.conftest import http_response

POLL_INTERVAL = 0.05


def multiplexer_for(backend, **kwargs):
    kwargs.setdefault("poll_interval", POLL_INTERVAL)
    kwargs.setdefault("nonblocking_retry_delay", 0)
    return ConnectionMultiplexer(backend, **kwargs)


def test_every_request_yields_exactly_one_result(make_request):
    latencies = [0.3, 0.05, 0.2, 0.0, 0.1, 0.25]
    backend = MockBackend([MockReply(http_response(f"r{i}".encode()), latency=lat) for i, lat in enumerate(latencies)])
    backend.add_replies([MockReply(fail_connect=True), MockReply(hang=True)])
    multiplexer = multiplexer_for(backend)

    ids = [multiplexer.submit(make_request(f"/{i}", timeout=1.0)) for i in range(len(latencies) + 1)]
    ids.append(multiplexer.submit(make_request("/hang", timeout=0.5)))

    started = time.monotonic()
    results = multiplexer.run()
    elapsed = time.monotonic() - started

    assert sorted(results, key=ids.index) == ids
    assert elapsed < 1.0 + POLL_INTERVAL
    responses = [result for result in results.values() if isinstance(result, Response)]
    failures = [result for result in results.values() if isinstance(result, Failure)]
    assert len(responses) == len(latencies)
    assert sorted(response.content for response in responses) == [f"r{i}".encode() for i in range(6)]
    assert sorted(type(failure.error).__name__ for failure in failures) == ["ConnectFailure", "ConnectTimeout"]
    assert multiplexer.pending == []
    assert all(stream.closed for stream in backend.streams)


def test_results_arrive_in_completion_order(make_request):
    backend = MockBackend([MockReply(http_response(), latency=latency) for latency in (0.3, 0.0, 0.15)])
    multiplexer = multiplexer_for(backend)
    requests = [make_request(f"/{i}") for i in range(3)]
    for request in requests:
        multiplexer.submit(request)

    results = multiplexer.run()

    assert [result.request.action for result in results.values()] == ["/1", "/2", "/0"]


def test_response_keeps_its_request(make_request):
    backend = MockBackend([MockReply(http_response(b"hi", status="201 Created"))])
    multiplexer = multiplexer_for(backend)
    request = make_request("/items", method="POST", data=(("id", "5"),))

    connection_id = multiplexer.submit(request)
    response = multiplexer.run()[connection_id]

    assert isinstance(response, Response)
    assert response.request is request
    assert response.status_code == 201
    assert response.reason_phrase == "Created"
    assert response.content == b"hi"
    assert bytes(backend.streams[0].sent) == build_message(request)


def test_short_writes_are_completed(make_request):
    backend = MockBackend([MockReply(http_response(), max_write=7)])
    multiplexer = multiplexer_for(backend)
    request = make_request("/items", method="POST", data=(("payload", "x" * 100),))

    multiplexer.submit(request)
    (result,) = multiplexer.run().values()

    assert isinstance(result, Response)
    assert bytes(backend.streams[0].sent) == build_message(request)


def test_responses_read_in_small_pieces(make_request):
    body = b"0123456789" * 50
    backend = MockBackend([MockReply(http_response(body), read_chunk=3)])
    multiplexer = multiplexer_for(backend)

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Response)
    assert result.content == body


def test_nonblocking_activation_is_retried(make_request):
    backend = MockBackend([MockReply(http_response(), nonblocking_failures=2)])
    multiplexer = multiplexer_for(backend, nonblocking_attempts=3)

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Response)
    assert backend.streams[0].nonblocking_calls == 3


def test_nonblocking_activation_exhausted(make_request, sink):
    backend = MockBackend([MockReply(http_response(), nonblocking_failures=3)])
    multiplexer = multiplexer_for(backend, nonblocking_attempts=3, log_sink=sink)

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, NonBlockingActivationFailure)
    assert backend.streams[0].sent == b""
    assert backend.streams[0].closed
    assert sink.severities == [Severity.ERROR]
    assert sink.records[0][2] is result.error


def test_connect_failure(make_request):
    backend = MockBackend([MockReply(fail_connect=True)])
    multiplexer = multiplexer_for(backend)
    request = make_request()

    multiplexer.submit(request)
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, ConnectFailure)
    assert result.error.request is request
    assert isinstance(result.error.__cause__, ConnectionRefusedError)


def test_open_failure(make_request):
    multiplexer = multiplexer_for(MockBackend())

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, ConnectFailure)


def test_write_failure(make_request):
    backend = MockBackend([MockReply(http_response(), fail_write=True)])
    multiplexer = multiplexer_for(backend)

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, WriteFailure)
    assert backend.streams[0].closed


def test_hanging_connection_times_out(make_request):
    backend = MockBackend([MockReply(b"HTTP/1.0 200 OK\r\n", hang=True)])
    multiplexer = multiplexer_for(backend)

    started = time.monotonic()
    multiplexer.submit(make_request(timeout=0.2))
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, ConnectTimeout)
    assert 0.2 <= time.monotonic() - started < 0.2 + POLL_INTERVAL + 0.1


def test_run_can_be_time_boxed(make_request):
    backend = MockBackend([MockReply(hang=True)])
    multiplexer = multiplexer_for(backend)

    multiplexer.submit(make_request(timeout=30))
    (result,) = multiplexer.run(time_box=0.1).values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, ConnectTimeout)


@pytest.mark.parametrize("data", [b"garbage without a header block", b"SPAM 200 OK\r\n\r\nbody"])
def test_malformed_responses(make_request, data):
    multiplexer = multiplexer_for(MockBackend([MockReply(data)]))

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Failure)
    assert isinstance(result.error, MalformedResponse)


def test_missing_status_is_reported_as_zero(make_request):
    multiplexer = multiplexer_for(MockBackend([MockReply(b"HTTP/1.0 ??? Odd\r\n\r\nbody")]))

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Response)
    assert result.status_code == 0


def test_leading_slack_option_is_forwarded(make_request):
    raw = b"HTTP/1.0 200 OK\r\nContent-Length: 2\r\n\r\n\x00\x00ok"
    multiplexer = multiplexer_for(MockBackend([MockReply(raw)]), tolerate_leading_slack=True)

    multiplexer.submit(make_request())
    (result,) = multiplexer.run().values()

    assert isinstance(result, Response)
    assert result.content == b"ok"


def test_poll_advances_one_tick_at_a_time(make_request):
    backend = MockBackend([MockReply(http_response(), latency=0.0)])
    multiplexer = multiplexer_for(backend)
    connection_id = multiplexer.submit(make_request())

    assert multiplexer.poll() == []
    (connection,) = multiplexer.pending
    assert connection.state is ConnectionState.READABLE_WAITING

    (finished,) = multiplexer.poll()
    assert finished.id == connection_id
    assert finished.state is ConnectionState.COMPLETE
    assert multiplexer.pending == []


def test_connection_states_only_move_forward(make_request):
    connection = Connection(request=make_request(), message=b"")

    connection.advance(ConnectionState.CONNECTING)
    with pytest.raises(RuntimeError):
        connection.advance(ConnectionState.QUEUED)

    connection.advance(ConnectionState.FAILED)
    with pytest.raises(RuntimeError):
        connection.advance(ConnectionState.COMPLETE)


def test_close_fails_pending_connections(make_request):
    backend = MockBackend([MockReply(hang=True)])
    multiplexer = multiplexer_for(backend)
    multiplexer.submit(make_request())
    multiplexer.poll()

    multiplexer.close()

    assert multiplexer.pending == []
    assert backend.streams[0].closed
