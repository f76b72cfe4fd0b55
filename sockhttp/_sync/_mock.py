from __future__ import annotations

import errno
import time
import typing as tp
from dataclasses import dataclass

from sockhttp._config import TLSConfig
from sockhttp._core.models import Origin
from sockhttp._sync._backends import EVENT_READ, EVENT_WRITE, NetworkBackend, NetworkStream
from sockhttp._utils import sleep

__all__ = ("MockReply", "MockStream", "MockBackend")


@dataclass
class MockReply:
    """
    Scripted behaviour of one fake connection.

    Times are measured from the moment the connection is opened.
    """

    data: bytes = b""
    latency: float = 0.0
    """Seconds before the response bytes become readable."""

    connect_latency: float = 0.0
    fail_connect: bool = False
    nonblocking_failures: int = 0
    """How many ``set_nonblocking`` calls fail before one succeeds."""

    fail_write: bool = False
    max_write: tp.Optional[int] = None
    """Upper bound of bytes accepted per ``send`` call, to force short writes."""

    read_chunk: int = 1024
    hang: bool = False
    """Never signal end of stream."""


class MockStream(NetworkStream):
    def __init__(self, reply: MockReply, origin: Origin, number: int) -> None:
        self.reply = reply
        self.origin = origin
        self.number = number
        self.opened_at = time.monotonic()
        self.sent = bytearray()
        self.closed = False
        self.nonblocking_calls = 0
        self._offset = 0

    def fileno(self) -> int:
        return 1000 + self.number

    @property
    def writable_at(self) -> float:
        return self.opened_at + self.reply.connect_latency

    @property
    def readable_at(self) -> float:
        return self.opened_at + max(self.reply.latency, self.reply.connect_latency)

    def ready_events(self, events: int, now: float) -> int:
        ready = 0
        if events & EVENT_WRITE and now >= self.writable_at:
            ready |= EVENT_WRITE
        if events & EVENT_READ and now >= self.readable_at and not self._exhausted_hanging():
            ready |= EVENT_READ
        return ready

    def _exhausted_hanging(self) -> bool:
        return self.reply.hang and self._offset >= len(self.reply.data)

    def connect_step(self) -> tp.Optional[int]:
        if self.reply.fail_connect:
            raise ConnectionRefusedError(errno.ECONNREFUSED, f"Connection to {self.origin} refused")
        return None

    def set_nonblocking(self) -> None:
        self.nonblocking_calls += 1
        if self.nonblocking_calls <= self.reply.nonblocking_failures:
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")

    def send(self, data: bytes) -> int:
        if self.reply.fail_write:
            raise BrokenPipeError(errno.EPIPE, "Broken pipe")
        accepted = bytes(data[: self.reply.max_write] if self.reply.max_write is not None else data)
        self.sent += accepted
        return len(accepted)

    def recv(self, max_bytes: int) -> bytes:
        if time.monotonic() < self.readable_at or self._exhausted_hanging():
            raise BlockingIOError(errno.EWOULDBLOCK, "No data yet")
        size = min(max_bytes, self.reply.read_chunk)
        chunk = self.reply.data[self._offset : self._offset + size]
        self._offset += len(chunk)
        return chunk

    def close(self) -> None:
        self.closed = True


class MockBackend(NetworkBackend):
    """
    A fake network: every opened stream consumes the next scripted reply.

        backend = MockBackend()
        backend.add_replies([MockReply(b"HTTP/1.0 200 OK\\r\\n\\r\\nok", latency=0.1)])
    """

    def __init__(self, replies: tp.Optional[tp.List[MockReply]] = None) -> None:
        self.replies: tp.List[MockReply] = list(replies or [])
        self.streams: tp.List[MockStream] = []

    def add_replies(self, replies: tp.List[MockReply]) -> None:
        self.replies.extend(replies)

    @property
    def opened(self) -> int:
        return len(self.streams)

    def open_stream(self, origin: Origin, tls: tp.Optional[TLSConfig] = None) -> NetworkStream:
        if not self.replies:
            raise ConnectionRefusedError(errno.ECONNREFUSED, f"No scripted reply left for {origin}")
        stream = MockStream(self.replies.pop(0), origin, number=len(self.streams))
        self.streams.append(stream)
        return stream

    def wait(
        self, interests: tp.Mapping[NetworkStream, int], timeout: float
    ) -> tp.Dict[NetworkStream, int]:
        deadline = time.monotonic() + timeout
        while True:
            now = time.monotonic()
            ready = {}
            for stream, events in interests.items():
                assert isinstance(stream, MockStream)
                mask = stream.ready_events(events, now)
                if mask:
                    ready[stream] = mask
            if ready or now >= deadline:
                return ready
            sleep(min(deadline, self._next_change(interests, now)) - now)

    def _next_change(self, interests: tp.Mapping[NetworkStream, int], now: float) -> float:
        upcoming = [
            moment
            for stream in interests
            if isinstance(stream, MockStream)
            for moment in (stream.writable_at, stream.readable_at)
            if moment > now
        ]
        return min(upcoming, default=float("inf"))
