import typing as tp

import pytest

from sockhttp import ClientConfig, MockBackend, Origin, Request, Severity


class RecordingSink:
    def __init__(self) -> None:
        self.records: tp.List[tp.Tuple[str, Severity, tp.Any]] = []

    def log(self, message: str, severity: Severity, trace: tp.Any = None) -> None:
        self.records.append((message, severity, trace))

    @property
    def severities(self) -> tp.List[Severity]:
        return [severity for _, severity, _ in self.records]


def http_response(
    body: bytes = b"ok",
    status: str = "200 OK",
    headers: tp.Sequence[tp.Tuple[str, str]] = (),
    content_length: bool = True,
) -> bytes:
    lines = [f"HTTP/1.0 {status}"]
    lines.extend(f"{key}: {value}" for key, value in headers)
    if content_length:
        lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


@pytest.fixture()
def origin() -> Origin:
    return Origin.from_url("http://api.example.test")


@pytest.fixture()
def make_request(origin: Origin) -> tp.Callable[..., Request]:
    def factory(action: str = "/items", **kwargs: tp.Any) -> Request:
        return Request(origin=origin, action=action, **kwargs)

    return factory


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def backend() -> MockBackend:
    return MockBackend()


@pytest.fixture()
def config() -> ClientConfig:
    return ClientConfig(endpoint="http://api.example.test", poll_interval=0.05, timeout=2.0)
