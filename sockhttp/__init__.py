from sockhttp._config import (
    DEFAULT_EXPIRATION as DEFAULT_EXPIRATION,
    DEFAULT_TIMEOUT as DEFAULT_TIMEOUT,
    CacheConfig as CacheConfig,
    ClientConfig as ClientConfig,
    TLSConfig as TLSConfig,
)
from sockhttp._core._builder import build as build, build_message as build_message
from sockhttp._core._classifier import Classification as Classification, classify as classify
from sockhttp._core._decoders import BodyDecoder as BodyDecoder, DefaultDecoder as DefaultDecoder
from sockhttp._core._headers import ContentFamily as ContentFamily, Headers as Headers
from sockhttp._core._keygen import fingerprint as fingerprint
from sockhttp._core._parser import (
    ParsedResponse as ParsedResponse,
    dechunk as dechunk,
    parse_response as parse_response,
)
from sockhttp._core.models import (
    BasicAuth as BasicAuth,
    DigestAuth as DigestAuth,
    Entry as Entry,
    Origin as Origin,
    Outcome as Outcome,
    Request as Request,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from sockhttp._exceptions import (
    ConnectFailure as ConnectFailure,
    ConnectTimeout as ConnectTimeout,
    MalformedResponse as MalformedResponse,
    NonBlockingActivationFailure as NonBlockingActivationFailure,
    ReadFailure as ReadFailure,
    SockHTTPError as SockHTTPError,
    TransportError as TransportError,
    WriteFailure as WriteFailure,
)
from sockhttp._logging import LoggerSink as LoggerSink, LogSink as LogSink, NullSink as NullSink, Severity as Severity
from sockhttp._sync import (
    BaseStorage as BaseStorage,
    CacheGateway as CacheGateway,
    ConnectionMultiplexer as ConnectionMultiplexer,
    ConnectionState as ConnectionState,
    Exchange as Exchange,
    Failure as Failure,
    InMemoryStorage as InMemoryStorage,
    MockBackend as MockBackend,
    MockReply as MockReply,
    NetworkBackend as NetworkBackend,
    NullStorage as NullStorage,
    ServiceClient as ServiceClient,
    SocketBackend as SocketBackend,
    SQLiteStorage as SQLiteStorage,
)

__all__ = (
    ## Configuration
    "ClientConfig",
    "CacheConfig",
    "TLSConfig",
    "DEFAULT_EXPIRATION",
    "DEFAULT_TIMEOUT",
    ## Models
    "Origin",
    "Request",
    "Response",
    "ResponseMetadata",
    "Entry",
    "Outcome",
    "BasicAuth",
    "DigestAuth",
    "Headers",
    "ContentFamily",
    ## Wire format
    "build",
    "build_message",
    "parse_response",
    "ParsedResponse",
    "dechunk",
    "classify",
    "Classification",
    "fingerprint",
    ## Decoding and logging
    "BodyDecoder",
    "DefaultDecoder",
    "LogSink",
    "LoggerSink",
    "NullSink",
    "Severity",
    ## Engine
    "ServiceClient",
    "Exchange",
    "ConnectionMultiplexer",
    "ConnectionState",
    "Failure",
    "NetworkBackend",
    "SocketBackend",
    "MockBackend",
    "MockReply",
    ## Storages
    "BaseStorage",
    "NullStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    "CacheGateway",
    ## Exceptions
    "SockHTTPError",
    "TransportError",
    "ConnectFailure",
    "ConnectTimeout",
    "NonBlockingActivationFailure",
    "WriteFailure",
    "ReadFailure",
    "MalformedResponse",
)

__version__ = "0.1.0"
