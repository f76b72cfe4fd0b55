from sockhttp._sync._backends import NetworkBackend, NetworkStream, SocketBackend, SocketStream
from sockhttp._sync._client import Exchange, ServiceClient
from sockhttp._sync._gateway import CacheGateway
from sockhttp._sync._mock import MockBackend, MockReply, MockStream
from sockhttp._sync._multiplexer import Connection, ConnectionMultiplexer, ConnectionState, Failure, Result
from sockhttp._sync._storages import BaseStorage, InMemoryStorage, NullStorage, SQLiteStorage

__all__ = (
    "NetworkBackend",
    "NetworkStream",
    "SocketBackend",
    "SocketStream",
    "Exchange",
    "ServiceClient",
    "CacheGateway",
    "MockBackend",
    "MockReply",
    "MockStream",
    "Connection",
    "ConnectionMultiplexer",
    "ConnectionState",
    "Failure",
    "Result",
    "BaseStorage",
    "InMemoryStorage",
    "NullStorage",
    "SQLiteStorage",
)
