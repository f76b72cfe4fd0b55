from __future__ import annotations

import enum
import logging
import time
import typing as tp
import uuid
from dataclasses import dataclass, field

from sockhttp._config import TLSConfig
from sockhttp._core._builder import build_message
from sockhttp._core._parser import parse_response
from sockhttp._core.models import Request, Response
from sockhttp._exceptions import (
    ConnectFailure,
    ConnectTimeout,
    MalformedResponse,
    NonBlockingActivationFailure,
    ReadFailure,
    SockHTTPError,
    WriteFailure,
)
from sockhttp._logging import LogSink, NullSink, Severity
from sockhttp._sync._backends import EVENT_READ, EVENT_WRITE, NetworkBackend, NetworkStream, SocketBackend
from sockhttp._utils import partition, sleep

READ_SIZE = 65536

logger = logging.getLogger("sockhttp.multiplexer")

__all__ = ("ConnectionState", "Connection", "Failure", "Result", "ConnectionMultiplexer")


class ConnectionState(enum.IntEnum):
    QUEUED = 0
    CONNECTING = 1
    WRITABLE = 2
    READABLE_WAITING = 3
    COMPLETE = 4
    FAILED = 5


TERMINAL_STATES = (ConnectionState.COMPLETE, ConnectionState.FAILED)


@dataclass
class Failure:
    """Marks a request whose connection failed; it never produced a response."""

    request: Request
    error: SockHTTPError


Result = tp.Union[Response, Failure]


@dataclass
class Connection:
    request: Request
    message: bytes
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    state: ConnectionState = ConnectionState.QUEUED
    stream: tp.Optional[NetworkStream] = None
    buffer: bytearray = field(default_factory=bytearray)
    created_at: float = field(default_factory=time.monotonic)
    sent: int = 0
    interest: int = 0
    result: tp.Optional[Result] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def deadline(self) -> float:
        return self.created_at + self.request.timeout

    def advance(self, state: ConnectionState) -> None:
        if self.is_terminal or state <= self.state:
            raise RuntimeError(f"Connection {self.id} cannot move from {self.state.name} to {state.name}")
        logger.debug(f"Connection {self.id} to {self.request.origin}: {self.state.name} -> {state.name}")
        self.state = state


class ConnectionMultiplexer:
    """
    Drives many HTTP/1.0 exchanges over non-blocking sockets from one control flow.

    Every submitted request becomes a :class:`Connection` in a single
    registry. Each call to :meth:`poll` waits at most one tick for readiness
    and advances whichever connections are ready:

    ``QUEUED -> CONNECTING -> WRITABLE -> READABLE_WAITING -> COMPLETE | FAILED``

    Results are keyed by connection id. Completion order does not follow
    submission order.

    :param backend: Network backend that opens and polls streams, defaults to :class:`SocketBackend`
    :type backend: tp.Optional[NetworkBackend], optional
    :param poll_interval: Longest single wait for readiness in seconds, defaults to 1.0
    :type poll_interval: float
    :param nonblocking_attempts: Attempts to switch a connected stream to non-blocking mode, defaults to 3
    :type nonblocking_attempts: int
    :param nonblocking_retry_delay: Pause between those attempts in seconds, defaults to 0.05
    :type nonblocking_retry_delay: float
    :param tolerate_leading_slack: Passed to the response parser, defaults to False
    :type tolerate_leading_slack: bool
    :param tls: Transport-security settings used for ``https`` origins, defaults to None
    :type tls: tp.Optional[TLSConfig], optional
    :param log_sink: Receives connection failures, defaults to None
    :type log_sink: tp.Optional[LogSink], optional
    """

    def __init__(
        self,
        backend: tp.Optional[NetworkBackend] = None,
        *,
        poll_interval: float = 1.0,
        nonblocking_attempts: int = 3,
        nonblocking_retry_delay: float = 0.05,
        tolerate_leading_slack: bool = False,
        tls: tp.Optional[TLSConfig] = None,
        log_sink: tp.Optional[LogSink] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if nonblocking_attempts < 1:
            raise ValueError("nonblocking_attempts must be at least 1")

        self._backend = backend if backend is not None else SocketBackend()
        self._poll_interval = poll_interval
        self._nonblocking_attempts = nonblocking_attempts
        self._nonblocking_retry_delay = nonblocking_retry_delay
        self._tolerate_leading_slack = tolerate_leading_slack
        self._tls = tls if tls is not None else TLSConfig()
        self._log_sink: LogSink = log_sink if log_sink is not None else NullSink()
        self._connections: tp.Dict[uuid.UUID, Connection] = {}
        self._results: tp.Dict[uuid.UUID, Result] = {}
        self._just_finished: tp.List[Connection] = []

    @property
    def pending(self) -> tp.List[Connection]:
        return list(self._connections.values())

    def submit(self, request: Request, message: tp.Optional[bytes] = None) -> uuid.UUID:
        connection = Connection(request=request, message=message if message is not None else build_message(request))
        self._connections[connection.id] = connection
        logger.debug(f"Queued connection {connection.id} for {request.method} {request.url}")
        return connection.id

    def run(self, time_box: tp.Optional[float] = None) -> tp.Dict[uuid.UUID, Result]:
        """
        Poll until every submitted connection reached a terminal state.

        :param time_box: Overall budget in seconds; connections still open when it runs out fail, defaults to None
        :type time_box: tp.Optional[float], optional
        :return: One result per submitted request, in completion order
        :rtype: tp.Dict[uuid.UUID, Result]
        """
        stop_at = None if time_box is None else time.monotonic() + time_box
        while self._connections:
            if stop_at is not None and time.monotonic() >= stop_at:
                for connection in self.pending:
                    self._fail(connection, ConnectTimeout("Multiplexer run was time-boxed", connection.request))
                break
            self.poll(None if stop_at is None else stop_at - time.monotonic())

        results, self._results = self._results, {}
        return results

    def poll(self, max_wait: tp.Optional[float] = None) -> tp.List[Connection]:
        """Advance every connection by at most one readiness tick and return those that finished."""
        self._just_finished = []
        self._expire(time.monotonic())

        queued, _ = partition(self.pending, lambda connection: connection.state is ConnectionState.QUEUED)
        for connection in queued:
            self._open(connection)

        active = {connection.stream: connection for connection in self.pending if connection.stream is not None}
        if active:
            ready = self._backend.wait(
                {stream: connection.interest for stream, connection in active.items()},
                self._tick(max_wait),
            )
            for stream, events in ready.items():
                connection = active[stream]
                if not connection.is_terminal:
                    self._dispatch(connection, events)

        finished, self._just_finished = self._just_finished, []
        return finished

    def close(self) -> None:
        for connection in self.pending:
            self._fail(connection, ConnectTimeout("Multiplexer was closed", connection.request))
        self._results.clear()

    def _tick(self, max_wait: tp.Optional[float]) -> float:
        now = time.monotonic()
        tick = min([self._poll_interval] + [connection.deadline() - now for connection in self.pending])
        if max_wait is not None:
            tick = min(tick, max_wait)
        return max(0.0, tick)

    def _expire(self, now: float) -> None:
        for connection in self.pending:
            if now >= connection.deadline():
                self._fail(
                    connection,
                    ConnectTimeout(
                        f"Request to {connection.request.url} did not finish within {connection.request.timeout}s",
                        connection.request,
                    ),
                )

    def _open(self, connection: Connection) -> None:
        request = connection.request
        try:
            connection.stream = self._backend.open_stream(
                request.origin, self._tls if request.origin.is_secure else None
            )
        except OSError as exc:
            self._fail(connection, ConnectFailure(f"Could not connect to {request.origin}: {exc}", request), exc)
            return
        connection.advance(ConnectionState.CONNECTING)
        connection.interest = EVENT_WRITE

    def _dispatch(self, connection: Connection, events: int) -> None:
        if connection.state is ConnectionState.CONNECTING:
            self._connect(connection)
        elif connection.state is ConnectionState.WRITABLE and events & EVENT_WRITE:
            self._write(connection)
        elif connection.state is ConnectionState.READABLE_WAITING and events & EVENT_READ:
            self._read(connection)

    def _connect(self, connection: Connection) -> None:
        assert connection.stream is not None
        request = connection.request
        try:
            awaiting = connection.stream.connect_step()
        except OSError as exc:
            self._fail(connection, ConnectFailure(f"Could not connect to {request.origin}: {exc}", request), exc)
            return
        if awaiting is not None:
            connection.interest = awaiting
            return

        for attempt in range(1, self._nonblocking_attempts + 1):
            try:
                connection.stream.set_nonblocking()
                break
            except OSError as exc:
                logger.debug(f"Connection {connection.id}: non-blocking mode attempt {attempt} failed: {exc}")
                if attempt == self._nonblocking_attempts:
                    self._fail(
                        connection,
                        NonBlockingActivationFailure(
                            f"Could not switch the connection to {request.origin} to non-blocking mode",
                            request,
                        ),
                        exc,
                    )
                    return
                sleep(self._nonblocking_retry_delay)

        connection.advance(ConnectionState.WRITABLE)
        connection.interest = EVENT_WRITE
        self._write(connection)

    def _write(self, connection: Connection) -> None:
        assert connection.stream is not None
        request = connection.request
        view = memoryview(connection.message)
        while connection.sent < len(view):
            try:
                written = connection.stream.send(view[connection.sent :])
            except BlockingIOError:
                return
            except OSError as exc:
                error = WriteFailure(f"Could not send the request to {request.origin}: {exc}", request)
                self._fail(connection, error, exc)
                return
            if written <= 0:
                self._fail(connection, WriteFailure(f"Connection to {request.origin} accepted no bytes", request))
                return
            connection.sent += written

        connection.advance(ConnectionState.READABLE_WAITING)
        connection.interest = EVENT_READ

    def _read(self, connection: Connection) -> None:
        assert connection.stream is not None
        request = connection.request
        while True:
            try:
                chunk = connection.stream.recv(READ_SIZE)
            except BlockingIOError:
                return
            except OSError as exc:
                error = ReadFailure(f"Could not read the response from {request.origin}: {exc}", request)
                self._fail(connection, error, exc)
                return
            if not chunk:
                self._complete(connection)
                return
            connection.buffer += chunk

    def _complete(self, connection: Connection) -> None:
        request = connection.request
        try:
            parsed = parse_response(bytes(connection.buffer), tolerate_leading_slack=self._tolerate_leading_slack)
        except MalformedResponse as exc:
            self._fail(connection, exc)
            return
        if parsed is None:
            self._fail(
                connection,
                MalformedResponse(f"Response from {request.url} ended before its header block was complete"),
            )
            return

        response = Response(
            status_code=parsed.status_code if parsed.status_code is not None else 0,
            reason_phrase=parsed.reason_phrase,
            http_version=parsed.http_version,
            headers=parsed.headers,
            content=parsed.body,
            request=request,
        )
        connection.advance(ConnectionState.COMPLETE)
        self._finish(connection, response)

    def _fail(self, connection: Connection, error: SockHTTPError, cause: tp.Optional[BaseException] = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        connection.advance(ConnectionState.FAILED)
        self._log_sink.log(str(error), Severity.ERROR, error)
        self._finish(connection, Failure(request=connection.request, error=error))

    def _finish(self, connection: Connection, result: Result) -> None:
        if connection.stream is not None:
            connection.stream.close()
        connection.result = result
        del self._connections[connection.id]
        self._just_finished.append(connection)
        self._results[connection.id] = result
