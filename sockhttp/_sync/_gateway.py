from __future__ import annotations

import logging
import time
import typing as tp
from dataclasses import replace

from sockhttp._config import CacheConfig
from sockhttp._core._classifier import Classification
from sockhttp._core._keygen import fingerprint
from sockhttp._core.models import Request, Response
from sockhttp._logging import LogSink, NullSink, Severity
from sockhttp._sync._storages import BaseStorage, NullStorage

logger = logging.getLogger("sockhttp.gateway")

__all__ = ("CacheGateway",)


class CacheGateway:
    """
    Mediates every read and write between a client and its cache store.

    Expiration is resolved per request: the request's own ``ttl``, else the
    client's current expiration, else the configured default. The current
    expiration can be overridden once with :meth:`set_expiration` and put
    back with :meth:`revert_expiration`.
    """

    def __init__(
        self,
        storage: tp.Optional[BaseStorage] = None,
        config: tp.Optional[CacheConfig] = None,
        log_sink: tp.Optional[LogSink] = None,
    ) -> None:
        self._storage = storage if storage is not None else NullStorage()
        self._config = config if config is not None else CacheConfig()
        self._log_sink: LogSink = log_sink if log_sink is not None else NullSink()
        self._expiration = self._config.expiration
        self._previous_expiration: tp.Optional[float] = None

    @property
    def storage(self) -> BaseStorage:
        return self._storage

    @property
    def expiration(self) -> float:
        return self._expiration

    def resolve_caching(self, force_cache: tp.Optional[bool] = None) -> bool:
        if not self._config.enabled:
            return False
        return self._config.default_on if force_cache is None else force_cache

    def resolve_expiration(self, request: Request) -> float:
        if request.ttl is not None:
            return request.ttl
        return self._expiration

    def set_expiration(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Expiration must not be negative")
        if self._previous_expiration is None:
            self._previous_expiration = self._expiration
        logger.debug(f"Cache expiration set to {seconds}s")
        self._expiration = seconds

    def revert_expiration(self) -> bool:
        """Restore the expiration that was active before :meth:`set_expiration`; returns False if nothing to revert."""
        if self._previous_expiration is None:
            return False
        self._expiration, self._previous_expiration = self._previous_expiration, None
        logger.debug(f"Cache expiration reverted to {self._expiration}s")
        return True

    def get_cached_response(self, request: Request, force_cache: tp.Optional[bool] = None) -> tp.Optional[Response]:
        """
        Look up a fresh cached response for ``request``.

        :param request: The request being dispatched
        :type request: Request
        :param force_cache: Overrides the request's and the client's caching choice, defaults to None
        :type force_cache: tp.Optional[bool], optional
        :return: The cached response, or None on a miss
        :rtype: tp.Optional[Response]
        """
        if not self.resolve_caching(force_cache if force_cache is not None else request.force_cache):
            return None

        if self._config.auto_prune:
            self.prune()

        key = fingerprint(request)
        try:
            entry = self._storage.query(key)
        except Exception as exc:
            self._log_sink.log(f"Cache lookup failed for {request.url}, treating it as a miss", Severity.WARN, exc)
            return None

        if entry is None:
            logger.debug(f"Cache miss for {request.method} {request.url}")
            return None

        age = time.time() - entry.created_at
        if age >= self.resolve_expiration(request):
            logger.debug(f"Cached response for {request.url} is stale ({age:.1f}s old)")
            return None

        logger.debug(f"Cache hit for {request.method} {request.url}")
        return replace(
            entry.response,
            request=request,
            metadata={
                **entry.response.metadata,
                "sockhttp_from_cache": True,
                "sockhttp_created_at": entry.created_at,
            },
        )

    def commit(self, request: Request, response: Response, classification: Classification) -> Response:
        """Store ``response`` when caching applies and it is classified cacheable."""
        if isinstance(self._storage, NullStorage):
            return response
        if not classification.cacheable or not self.resolve_caching(request.force_cache):
            return response

        key = fingerprint(request)
        try:
            entry = self._storage.commit(key, response, self.resolve_expiration(request))
        except Exception as exc:
            self._log_sink.log(f"Could not store the response for {request.url}", Severity.WARN, exc)
            return response

        logger.debug(f"Stored response for {request.method} {request.url}")
        return replace(
            response,
            metadata={
                **response.metadata,
                "sockhttp_stored": True,
                "sockhttp_created_at": entry.created_at,
            },
        )

    def prune(self) -> int:
        try:
            return self._storage.prune()
        except Exception as exc:
            self._log_sink.log("Pruning the cache failed", Severity.WARN, exc)
            return 0

    def remove(self, request: Request) -> None:
        self._storage.remove(fingerprint(request))

    def clear(self) -> None:
        self._storage.clear()

    def close(self) -> None:
        self._storage.close()
