from __future__ import annotations

import types
import typing as tp

import httpx

from sockhttp._config import ClientConfig
from sockhttp._core._builder import MANAGED_HEADERS
from sockhttp._core.models import Origin, Request, Response
from sockhttp._exceptions import (
    ConnectTimeout,
    MalformedResponse,
    ReadFailure,
    SockHTTPError,
    WriteFailure,
)
from sockhttp._logging import LogSink
from sockhttp._sync._backends import NetworkBackend
from sockhttp._sync._multiplexer import ConnectionMultiplexer, Failure

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

__all__ = ("SocketTransport",)

# Framing headers that no longer describe the body once it has been dechunked and trimmed.
FRAMING_HEADERS = ("transfer-encoding", "content-length")


def httpx_to_internal(request: httpx.Request, default_timeout: float) -> Request:
    """
    Convert an httpx.Request to an internal Request.
    """
    timeouts = [value for value in request.extensions.get("timeout", {}).values() if value is not None]
    return Request(
        origin=Origin.from_url(str(request.url)),
        action=request.url.raw_path.decode("ascii"),
        method=request.method,
        headers=tuple(
            (key, value) for key, value in request.headers.multi_items() if key.lower() not in MANAGED_HEADERS
        ),
        content=request.read() or None,
        timeout=max(timeouts) if timeouts else default_timeout,
    )


def internal_to_httpx(response: Response, request: httpx.Request) -> httpx.Response:
    """
    Convert an internal Response to an httpx.Response.
    """
    headers = [(key, value) for key, value in response.headers.multi_items() if key not in FRAMING_HEADERS]
    headers.append(("content-length", str(len(response.content))))
    return httpx.Response(
        status_code=response.status_code,
        headers=headers,
        content=response.content,
        request=request,
        extensions={
            "http_version": response.http_version.encode("ascii"),
            "reason_phrase": response.reason_phrase.encode("ascii", errors="replace"),
        },
    )


def failure_to_httpx(failure: Failure, request: httpx.Request) -> httpx.TransportError:
    error: SockHTTPError = failure.error
    message = str(error)
    if isinstance(error, ConnectTimeout):
        return httpx.ConnectTimeout(message, request=request)
    if isinstance(error, WriteFailure):
        return httpx.WriteError(message, request=request)
    if isinstance(error, ReadFailure):
        return httpx.ReadError(message, request=request)
    if isinstance(error, MalformedResponse):
        return httpx.RemoteProtocolError(message, request=request)
    return httpx.ConnectError(message, request=request)


class SocketTransport(httpx.BaseTransport):
    """
    An HTTPX Transport that sends requests over the raw-socket engine.

    Every request opens its own HTTP/1.0 connection, which is closed once
    the response has been read.

    :param config: Poll, timeout and TLS settings, defaults to None
    :type config: tp.Optional[ClientConfig], optional
    :param backend: Network backend, defaults to real sockets
    :type backend: tp.Optional[NetworkBackend], optional
    :param log_sink: Receives connection failures, defaults to None
    :type log_sink: tp.Optional[LogSink], optional
    """

    def __init__(
        self,
        config: tp.Optional[ClientConfig] = None,
        *,
        backend: tp.Optional[NetworkBackend] = None,
        log_sink: tp.Optional[LogSink] = None,
    ) -> None:
        self._config = config if config is not None else ClientConfig()
        self._multiplexer = ConnectionMultiplexer(
            backend,
            poll_interval=self._config.poll_interval,
            nonblocking_attempts=self._config.nonblocking_attempts,
            nonblocking_retry_delay=self._config.nonblocking_retry_delay,
            tolerate_leading_slack=self._config.tolerate_leading_slack,
            tls=self._config.tls,
            log_sink=log_sink,
        )

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        internal_request = httpx_to_internal(request, self._config.timeout)
        connection_id = self._multiplexer.submit(internal_request)
        result = self._multiplexer.run()[connection_id]

        if isinstance(result, Failure):
            raise failure_to_httpx(result, request) from result.error
        return internal_to_httpx(result, request)

    def close(self) -> None:
        self._multiplexer.close()

    def __enter__(self) -> "Self":
        return self

    def __exit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        self.close()
