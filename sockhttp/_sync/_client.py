from __future__ import annotations

import logging
import types
import typing as tp
import uuid
from dataclasses import dataclass, replace

from sockhttp._config import ClientConfig
from sockhttp._core._builder import build_message
from sockhttp._core._classifier import NOT_FOUND_MESSAGE, apply_classification, classify
from sockhttp._core._decoders import BodyDecoder, DefaultDecoder
from sockhttp._core.models import Auth, BasicAuth, Origin, Outcome, Request, Response
from sockhttp._logging import LoggerSink, LogSink, Severity
from sockhttp._sync._backends import NetworkBackend
from sockhttp._sync._gateway import CacheGateway
from sockhttp._sync._multiplexer import ConnectionMultiplexer, Failure
from sockhttp._sync._storages import BaseStorage
from sockhttp._utils import FormData, form_fields

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("sockhttp.client")

__all__ = ("ServiceClient", "Exchange")

DECODED_OUTCOMES = (Outcome.SUCCESS, Outcome.NOT_FOUND)


@dataclass
class Exchange:
    """
    One issued request and what came back for it.

    Exactly one of ``response`` and ``failure`` is set. Unpacks as
    ``request, response``, so the request can be handed to
    :meth:`ServiceClient.retry` later.
    """

    request: Request
    response: tp.Optional[Response] = None
    failure: tp.Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.response is not None

    def raise_for_failure(self) -> Response:
        if self.failure is not None:
            raise self.failure.error
        assert self.response is not None
        return self.response

    def __iter__(self) -> tp.Iterator[tp.Any]:
        yield self.request
        yield self.response


class ServiceClient:
    """
    Calls a web service over raw sockets, with an optional response cache.

    :param config: Endpoint, headers, timeouts and cache settings, defaults to None
    :type config: tp.Optional[ClientConfig], optional
    :param storage: Cache store, defaults to a store that keeps nothing
    :type storage: tp.Optional[BaseStorage], optional
    :param backend: Network backend, defaults to real sockets
    :type backend: tp.Optional[NetworkBackend], optional
    :param decoder: Turns bodies into values by content type, defaults to None
    :type decoder: tp.Optional[BodyDecoder], optional
    :param log_sink: Receives notable events, defaults to a sink writing to the ``sockhttp`` logger
    :type log_sink: tp.Optional[LogSink], optional
    """

    def __init__(
        self,
        config: tp.Optional[ClientConfig] = None,
        *,
        storage: tp.Optional[BaseStorage] = None,
        backend: tp.Optional[NetworkBackend] = None,
        decoder: tp.Optional[BodyDecoder] = None,
        log_sink: tp.Optional[LogSink] = None,
    ) -> None:
        self._config = config if config is not None else ClientConfig()
        self._origin = Origin.from_url(self._config.endpoint)
        self._log_sink: LogSink = log_sink if log_sink is not None else LoggerSink()
        self._decoder = decoder if decoder is not None else DefaultDecoder()
        self._auth: tp.Optional[Auth] = None
        self._gateway = CacheGateway(storage, self._config.cache, self._log_sink)
        self._multiplexer = ConnectionMultiplexer(
            backend,
            poll_interval=self._config.poll_interval,
            nonblocking_attempts=self._config.nonblocking_attempts,
            nonblocking_retry_delay=self._config.nonblocking_retry_delay,
            tolerate_leading_slack=self._config.tolerate_leading_slack,
            tls=self._config.tls,
            log_sink=self._log_sink,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def origin(self) -> Origin:
        return self._origin

    @property
    def gateway(self) -> CacheGateway:
        return self._gateway

    def authenticate(self, username: str, password: str = "") -> None:
        self._auth = BasicAuth(username, password)

    def set_auth(self, auth: tp.Optional[Auth]) -> None:
        self._auth = auth

    def build_request(
        self,
        action: str,
        method: str = "GET",
        data: tp.Optional[FormData] = None,
        *,
        headers: tp.Optional[tp.Sequence[tp.Tuple[str, str]]] = None,
        timeout: tp.Optional[float] = None,
        ttl: tp.Optional[float] = None,
        force_cache: tp.Optional[bool] = None,
        accept: tp.Optional[str] = None,
        content: tp.Optional[bytes] = None,
    ) -> Request:
        request_headers = list(self._config.headers)
        if accept is not None:
            request_headers.append(("Accept", accept))
        request_headers.extend(headers or ())

        return Request(
            origin=self._origin,
            action=action,
            method=method.upper(),
            headers=tuple(request_headers),
            data=tuple(form_fields(data)),
            content=content,
            timeout=self._config.timeout if timeout is None else timeout,
            ttl=ttl,
            force_cache=force_cache,
            auth=self._auth,
            user_agent=self._config.user_agent,
            method_override=self._config.method_override,
        )

    def call(
        self, action: str, method: str = "GET", data: tp.Optional[FormData] = None, **options: tp.Any
    ) -> Exchange:
        """
        Issue one request and wait for its outcome.

        Keyword options are those of :meth:`build_request`.

            >>> request, response = client.call("/items", data={"id": 5})
        """
        return self.send(self.build_request(action, method, data, **options))

    def call_xml(
        self, action: str, method: str = "GET", data: tp.Optional[FormData] = None, **options: tp.Any
    ) -> Exchange:
        options.setdefault("accept", "text/xml")
        return self.call(action, method, data, **options)

    def call_json(
        self, action: str, method: str = "GET", data: tp.Optional[FormData] = None, **options: tp.Any
    ) -> Exchange:
        options.setdefault("accept", "application/json")
        return self.call(action, method, data, **options)

    def call_many(self, calls: tp.Iterable[tp.Union[Request, tp.Mapping[str, tp.Any]]]) -> tp.List[Exchange]:
        """
        Issue several requests at once over concurrent connections.

        Each item is either a prebuilt :class:`Request` or the keyword
        arguments of :meth:`build_request`. Exchanges come back in completion
        order, not in the order given.
        """
        requests = [item if isinstance(item, Request) else self.build_request(**item) for item in calls]
        return self.send_many(requests)

    def send(self, request: Request) -> Exchange:
        return self.send_many([request])[0]

    def send_many(self, requests: tp.Sequence[Request]) -> tp.List[Exchange]:
        exchanges: tp.List[Exchange] = []
        misses: tp.List[Request] = []

        for request in requests:
            cached = self._gateway.get_cached_response(request)
            if cached is not None:
                exchanges.append(Exchange(request=request, response=self._decode(cached)))
                continue
            misses.append(request)

        # Build every message before queueing any.
        messages = [(request, build_message(request)) for request in misses]
        submitted: tp.Dict[uuid.UUID, Request] = {
            self._multiplexer.submit(request, message): request for request, message in messages
        }

        if not submitted:
            return exchanges

        logger.debug(f"Dispatching {len(submitted)} request(s) to the network")
        for connection_id, result in self._multiplexer.run().items():
            request = submitted[connection_id]
            if isinstance(result, Failure):
                exchanges.append(Exchange(request=request, failure=result))
            else:
                exchanges.append(Exchange(request=request, response=self._handle_response(request, result)))
        return exchanges

    def retry(self, request: Request) -> Exchange:
        """Re-issue ``request`` exactly as it was built."""
        logger.debug(f"Retrying {request.method} {request.url}")
        return self.send(request)

    def set_expiration(self, seconds: float) -> None:
        self._gateway.set_expiration(seconds)

    def revert_expiration(self) -> bool:
        return self._gateway.revert_expiration()

    def get_cached_response(self, request: Request, force_cache: tp.Optional[bool] = None) -> tp.Optional[Response]:
        return self._gateway.get_cached_response(request, force_cache)

    def prune_cache(self) -> int:
        return self._gateway.prune()

    def remove_cached(self, request: Request) -> None:
        self._gateway.remove(request)

    def clear_cache(self) -> None:
        self._gateway.clear()

    def _handle_response(self, request: Request, response: Response) -> Response:
        classification = classify(response.status_code)
        response = apply_classification(response, classification)

        if classification.outcome is Outcome.NOT_FOUND:
            self._log_sink.log(NOT_FOUND_MESSAGE, classification.severity)
        elif classification.outcome is not Outcome.SUCCESS:
            original = response.metadata.get("sockhttp_original_status")
            received = f" (received {original!r})" if classification.synthesized else ""
            self._log_sink.log(
                f"{response.status_code} {response.reason_phrase} from {request.method} {request.url}{received}",
                classification.severity,
            )

        response = self._gateway.commit(request, response, classification)
        return self._decode(response)

    def _decode(self, response: Response) -> Response:
        if response.outcome not in DECODED_OUTCOMES:
            return response
        try:
            value = self._decoder.decode(response.content, response.content_type)
        except Exception as exc:
            self._log_sink.log(f"Could not decode a {response.content_type!r} body", Severity.ERROR, exc)
            return response
        return replace(response, value=value)

    def close(self) -> None:
        self._multiplexer.close()
        self._gateway.close()

    def __enter__(self) -> "Self":
        return self

    def __exit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        self.close()
