from __future__ import annotations

import abc
import errno
import logging
import os
import selectors
import socket
import ssl
import typing as tp

from sockhttp._config import TLSConfig
from sockhttp._core.models import Origin

EVENT_READ = selectors.EVENT_READ
EVENT_WRITE = selectors.EVENT_WRITE
CONNECT_IN_PROGRESS = (0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY)

logger = logging.getLogger("sockhttp.backends")

__all__ = ("NetworkBackend", "NetworkStream", "SocketBackend", "SocketStream", "EVENT_READ", "EVENT_WRITE")


class NetworkStream(abc.ABC):
    @abc.abstractmethod
    def fileno(self) -> int:
        raise NotImplementedError()

    @abc.abstractmethod
    def connect_step(self) -> tp.Optional[int]:
        """
        Advance a pending connect once the stream reported readiness.

        Returns ``None`` once connected, or the readiness events still
        awaited (a TLS handshake may need several round trips).
        Raises ``OSError`` when the connection can't be established.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def set_nonblocking(self) -> None:
        raise NotImplementedError()

    @abc.abstractmethod
    def send(self, data: bytes) -> int:
        """Send what the stream accepts now; ``BlockingIOError`` when it accepts nothing."""
        raise NotImplementedError()

    @abc.abstractmethod
    def recv(self, max_bytes: int) -> bytes:
        """Return available bytes, ``b""`` at end of stream, ``BlockingIOError`` when none are ready."""
        raise NotImplementedError()

    @abc.abstractmethod
    def close(self) -> None:
        raise NotImplementedError()


class NetworkBackend(abc.ABC):
    @abc.abstractmethod
    def open_stream(self, origin: Origin, tls: tp.Optional[TLSConfig] = None) -> NetworkStream:
        """Issue a non-blocking connect to the origin."""
        raise NotImplementedError()

    @abc.abstractmethod
    def wait(
        self, interests: tp.Mapping[NetworkStream, int], timeout: float
    ) -> tp.Dict[NetworkStream, int]:
        """Block for at most ``timeout`` seconds and return the streams that became ready."""
        raise NotImplementedError()


class SocketStream(NetworkStream):
    def __init__(self, origin: Origin, tls: tp.Optional[TLSConfig] = None) -> None:
        self._origin = origin
        self._tls = tls
        self._connected = False
        self._handshaken = tls is None

        family, type_, proto, _, address = socket.getaddrinfo(origin.host, origin.port, type=socket.SOCK_STREAM)[0]
        self._sock: socket.socket = socket.socket(family, type_, proto)
        self._sock.setblocking(False)
        code = self._sock.connect_ex(address)
        if code not in CONNECT_IN_PROGRESS:
            self._sock.close()
            raise OSError(code, os.strerror(code))

    def fileno(self) -> int:
        return self._sock.fileno()

    def connect_step(self) -> tp.Optional[int]:
        if not self._connected:
            code = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            if code != 0:
                raise OSError(code, os.strerror(code))
            self._connected = True
            logger.debug(f"Connected to {self._origin}")
            if self._tls is not None:
                self._sock = self._tls.ssl_context().wrap_socket(
                    self._sock,
                    server_hostname=self._tls.server_hostname or self._origin.host,
                    do_handshake_on_connect=False,
                )

        if not self._handshaken:
            assert isinstance(self._sock, ssl.SSLSocket) and self._tls is not None
            try:
                self._sock.do_handshake()
            except ssl.SSLWantReadError:
                return EVENT_READ
            except ssl.SSLWantWriteError:
                return EVENT_WRITE
            self._handshaken = True
            logger.debug(f"TLS handshake with {self._origin} completed")
            if self._tls.verify_peer is not None and not self._tls.verify_peer(self._sock.getpeercert()):
                raise ssl.SSLError(f"Peer certificate of {self._origin} was rejected")
        return None

    def set_nonblocking(self) -> None:
        self._sock.setblocking(False)

    def send(self, data: bytes) -> int:
        try:
            return self._sock.send(data)
        except (ssl.SSLWantReadError, ssl.SSLWantWriteError):
            raise BlockingIOError(errno.EWOULDBLOCK, "TLS layer is not ready for writing") from None

    def recv(self, max_bytes: int) -> bytes:
        try:
            return self._sock.recv(max_bytes)
        except (ssl.SSLWantReadError, ssl.SSLWantWriteError):
            raise BlockingIOError(errno.EWOULDBLOCK, "TLS layer has no data yet") from None
        except ssl.SSLEOFError:
            # Peer closed without close_notify; the body is delimited by the close.
            return b""

    def close(self) -> None:
        self._sock.close()


class SocketBackend(NetworkBackend):
    """Real sockets, polled through the platform's default ``selectors`` implementation."""

    def open_stream(self, origin: Origin, tls: tp.Optional[TLSConfig] = None) -> NetworkStream:
        return SocketStream(origin, tls)

    def wait(
        self, interests: tp.Mapping[NetworkStream, int], timeout: float
    ) -> tp.Dict[NetworkStream, int]:
        with selectors.DefaultSelector() as selector:
            for stream, events in interests.items():
                selector.register(stream.fileno(), events, stream)
            ready = selector.select(timeout)
        return {key.data: events for key, events in ready}
