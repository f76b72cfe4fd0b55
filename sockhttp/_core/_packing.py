from __future__ import annotations

import typing as tp

import msgpack

from sockhttp._core._headers import Headers
from sockhttp._core.models import Entry, Outcome, Response

__all__ = ("pack", "unpack")


def filter_out_sockhttp_metadata(data: tp.Mapping[str, tp.Any]) -> tp.Dict[str, tp.Any]:
    return {k: v for k, v in data.items() if not k.startswith("sockhttp_")}


def pack(entry: Entry) -> bytes:
    """
    Serialize a cache entry with msgpack.

    The decoded ``value`` and the request back-reference are left out; both
    are rebuilt when the entry is served.
    """
    response = entry.response
    return tp.cast(
        bytes,
        msgpack.packb(
            {
                "fingerprint": entry.fingerprint,
                "response": {
                    "status_code": response.status_code,
                    "reason_phrase": response.reason_phrase,
                    "http_version": response.http_version,
                    "headers": response.headers.multi_items(),
                    "content": response.content,
                    "outcome": response.outcome.value if response.outcome is not None else None,
                    "extra": filter_out_sockhttp_metadata(response.metadata),
                },
                "expiration": entry.expiration,
                "created_at": entry.created_at,
            }
        ),
    )


def unpack(value: bytes) -> Entry:
    data = msgpack.unpackb(value, raw=False)
    response_data = data["response"]
    outcome = response_data["outcome"]
    response = Response(
        status_code=response_data["status_code"],
        reason_phrase=response_data["reason_phrase"],
        http_version=response_data["http_version"],
        headers=Headers([(key, value) for key, value in response_data["headers"]]),
        content=response_data["content"],
        outcome=Outcome(outcome) if outcome is not None else None,
        metadata=response_data["extra"],
    )
    return Entry(
        fingerprint=data["fingerprint"],
        response=response,
        expiration=data["expiration"],
        created_at=data["created_at"],
    )
