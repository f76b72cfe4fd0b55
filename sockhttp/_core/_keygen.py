from __future__ import annotations

import hashlib

from sockhttp._core.models import Request

__all__ = ("fingerprint",)


def fingerprint(request: Request, algorithm: str = "sha256") -> str:
    """
    Derive the cache key of a request.

    The key covers the origin, the action, the method and the form fields in
    sorted order, so field order does not produce distinct entries. Raw
    content, when present, is hashed in as well.
    """
    hasher = hashlib.new(algorithm)
    for part in (str(request.origin), request.action, request.method.upper()):
        hasher.update(part.encode("utf-8"))
        hasher.update(b"\x00")
    for key, value in sorted(request.data):
        hasher.update(f"{key}={value}".encode("utf-8"))
        hasher.update(b"\x00")
    if request.content is not None:
        hasher.update(request.content)
    return hasher.hexdigest()
