from __future__ import annotations

import typing as tp

if tp.TYPE_CHECKING:  # pragma: no cover
    from sockhttp._core.models import Request

__all__ = (
    "SockHTTPError",
    "TransportError",
    "ConnectFailure",
    "ConnectTimeout",
    "NonBlockingActivationFailure",
    "WriteFailure",
    "ReadFailure",
    "MalformedResponse",
)


class SockHTTPError(Exception): ...


class TransportError(SockHTTPError):
    """
    Base class for failures that terminate a single connection.

    The failed request is kept on the exception so the caller can re-issue it.
    """

    def __init__(self, message: str, request: tp.Optional["Request"] = None) -> None:
        super().__init__(message)
        self.request = request


class ConnectFailure(TransportError): ...


class ConnectTimeout(TransportError): ...


class NonBlockingActivationFailure(TransportError): ...


class WriteFailure(TransportError): ...


class ReadFailure(TransportError): ...


class MalformedResponse(SockHTTPError): ...
