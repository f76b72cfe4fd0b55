from __future__ import annotations

import base64
import enum
import hashlib
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, TypedDict, Union
from urllib.parse import urlsplit

from sockhttp._core._headers import ContentFamily, Headers, classify_content_type, content_charset

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Origin:
    scheme: str
    host: str
    port: int

    @classmethod
    def from_url(cls, url: str) -> "Origin":
        """
        Parse the scheme, host and port out of an endpoint URL.

            >>> Origin.from_url("http://api.example.test")
            Origin(scheme='http', host='api.example.test', port=80)
        """
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported scheme in endpoint {url!r}, expected one of {sorted(DEFAULT_PORTS)}")
        if not parts.hostname:
            raise ValueError(f"Endpoint {url!r} has no host")
        return cls(scheme=scheme, host=parts.hostname, port=parts.port or DEFAULT_PORTS[scheme])

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def host_header(self) -> str:
        if self.port == DEFAULT_PORTS[self.scheme]:
            return self.host
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host_header}"


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str = ""

    def header_value(self, method: str, uri: str) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"


@dataclass(frozen=True)
class DigestAuth:
    """
    Digest credentials for a server challenge that has already been received.

    When ``response`` is not given it is computed from ``password`` following
    RFC 2617. The password itself never appears in the header.
    """

    username: str
    realm: str
    nonce: str
    password: Optional[str] = field(default=None, repr=False)
    response: Optional[str] = None
    qop: Optional[str] = None
    nc: str = "00000001"
    cnonce: Optional[str] = None
    opaque: Optional[str] = None
    algorithm: Optional[str] = None

    def header_value(self, method: str, uri: str) -> str:
        params: list[Tuple[str, str, bool]] = [
            ("username", self.username, True),
            ("realm", self.realm, True),
            ("nonce", self.nonce, True),
            ("uri", uri, True),
            ("response", self._response(method, uri), True),
        ]
        if self.algorithm:
            params.append(("algorithm", self.algorithm, False))
        if self.opaque:
            params.append(("opaque", self.opaque, True))
        if self.qop:
            params.append(("qop", self.qop, False))
            params.append(("nc", self.nc, False))
            params.append(("cnonce", self.cnonce or "", True))
        rendered = ", ".join(f'{name}="{value}"' if quoted else f"{name}={value}" for name, value, quoted in params)
        return f"Digest {rendered}"

    def _response(self, method: str, uri: str) -> str:
        if self.response is not None:
            return self.response
        if self.password is None:
            raise ValueError("DigestAuth needs either a precomputed response or a password")

        def md5(value: str) -> str:
            return hashlib.md5(value.encode("utf-8")).hexdigest()

        ha1 = md5(f"{self.username}:{self.realm}:{self.password}")
        ha2 = md5(f"{method}:{uri}")
        if self.qop:
            return md5(f"{ha1}:{self.nonce}:{self.nc}:{self.cnonce or ''}:{self.qop}:{ha2}")
        return md5(f"{ha1}:{self.nonce}:{ha2}")


Auth = Union[BasicAuth, DigestAuth]


@dataclass(frozen=True)
class Request:
    origin: Origin
    action: str
    method: str = "GET"
    headers: Tuple[Tuple[str, str], ...] = ()
    data: Tuple[Tuple[str, str], ...] = ()
    content: Optional[bytes] = None
    timeout: float = 30.0
    ttl: Optional[float] = None
    """Per-request cache lifetime in seconds, overrides the client setting."""

    force_cache: Optional[bool] = None
    """When set, overrides whether the client consults the cache for this request."""

    auth: Optional[Auth] = None
    user_agent: Optional[str] = None
    method_override: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4, compare=False)

    @property
    def url(self) -> str:
        return f"{self.origin}{self.action}"


class Outcome(enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "sockhttp_" to avoid collisions with user data
    sockhttp_from_cache: bool
    """Indicates whether the response was served from cache."""

    sockhttp_stored: bool
    """Indicates whether the response was stored in cache."""

    sockhttp_created_at: float
    """Timestamp when the response was cached."""

    sockhttp_original_status: Optional[int]
    """Status received on the wire when it was replaced by a synthesized one."""


@dataclass
class Response:
    status_code: int
    reason_phrase: str = ""
    http_version: str = "HTTP/1.0"
    headers: Headers = field(default_factory=Headers)
    content: bytes = b""
    value: Any = None
    """Decoded body, filled in by the body decoder."""

    outcome: Optional[Outcome] = None
    request: Optional[Request] = None
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def family(self) -> ContentFamily:
        return classify_content_type(self.content_type)

    @property
    def text(self) -> str:
        return self.content.decode(content_charset(self.content_type), errors="replace")

    @property
    def from_cache(self) -> bool:
        return bool(self.metadata.get("sockhttp_from_cache", False))


@dataclass
class Entry:
    fingerprint: str
    response: Response
    expiration: float
    created_at: float = field(default_factory=time.time)

    def age(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.created_at

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.age(now) >= self.expiration
