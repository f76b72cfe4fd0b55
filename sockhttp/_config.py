from __future__ import annotations

import ssl
import typing as tp
from dataclasses import dataclass, field

__all__ = ("ClientConfig", "CacheConfig", "TLSConfig", "DEFAULT_EXPIRATION", "DEFAULT_TIMEOUT")

DEFAULT_TIMEOUT = 30.0
DEFAULT_EXPIRATION = 300.0


@dataclass(frozen=True)
class TLSConfig:
    """
    Transport-security settings for ``https`` origins.

    Attributes:
    ----------
    context : ssl.SSLContext | None
        Context used for the handshake. ``ssl.create_default_context()`` when omitted.
    server_hostname : str | None
        Name sent for SNI and hostname checks. Defaults to the origin host.
    verify_peer : Callable[[dict], bool] | None
        Pass/fail hook called with the peer certificate after the handshake.
        Returning False fails the connection.
    """

    context: tp.Optional[ssl.SSLContext] = None
    server_hostname: tp.Optional[str] = None
    verify_peer: tp.Optional[tp.Callable[[tp.Any], bool]] = None

    def ssl_context(self) -> ssl.SSLContext:
        return self.context if self.context is not None else ssl.create_default_context()


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    """When False the cache store is never consulted nor written."""

    default_on: bool = True
    """Whether requests use the cache when they don't say otherwise."""

    expiration: float = DEFAULT_EXPIRATION
    """Global default lifetime of cached responses, in seconds."""

    auto_prune: bool = False
    """When True, expired entries are pruned before every lookup."""


@dataclass(frozen=True)
class ClientConfig:
    """
    Settings handed to a client at construction.

    Attributes:
    ----------
    endpoint : str
        Origin every action is resolved against, e.g. ``"http://api.example.test"``.
    headers : Sequence[tuple[str, str]]
        Header lines sent with every request.
    user_agent : str | None
        Value of the ``User-Agent`` header, omitted when empty.
    timeout : float
        Seconds a request may stay in flight before it fails.
    method_override : bool
        Send verbs other than GET/POST as ``GET`` with ``X-HTTP-Method-Override``.
    tolerate_leading_slack : bool
        Take ``Content-Length`` bytes from the end of the body instead of the
        start, dropping noise received ahead of the payload.
    poll_interval : float
        Longest single wait for socket readiness, in seconds.
    nonblocking_attempts : int
        Attempts to switch a connected socket to non-blocking mode.
    nonblocking_retry_delay : float
        Pause between those attempts, in seconds.
    """

    endpoint: str = "http://localhost"
    headers: tp.Sequence[tp.Tuple[str, str]] = ()
    user_agent: tp.Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    method_override: bool = False
    tolerate_leading_slack: bool = False
    poll_interval: float = 1.0
    nonblocking_attempts: int = 3
    nonblocking_retry_delay: float = 0.05
    tls: TLSConfig = field(default_factory=TLSConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", tuple((key, value) for key, value in self.headers))
