from __future__ import annotations

import typing as tp
from urllib.parse import quote

from sockhttp._core.models import Auth, Origin, Request
from sockhttp._utils import FormData, form_encode, form_fields

HEADERS_ENCODING = "iso-8859-1"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Methods that always announce a body, even an empty one.
BODY_METHODS = ("POST", "PUT", "PATCH")
# Methods that never carry a body; their form fields go into the query string.
BODYLESS_METHODS = ("GET", "HEAD")
# Verbs every service is expected to accept without an override header.
PLAIN_VERBS = ("GET", "POST")
# Headers the builder always writes itself.
MANAGED_HEADERS = ("host", "connection", "content-length")
# Characters left as-is in the request target; everything else is percent-encoded.
TARGET_SAFE = "/?&=%:@!$'()*+,;~-._"

__all__ = ("build", "build_message", "wire_method")


def wire_method(request: Request) -> tp.Tuple[str, tp.Optional[str]]:
    """
    Return the verb written on the request line and the overridden verb, if any.

        >>> wire_method(Request(origin, "/items/1", method="DELETE", method_override=True))
        ('GET', 'DELETE')
    """
    method = request.method.upper()
    if request.method_override and method not in PLAIN_VERBS:
        return "GET", method
    return method, None


def _carries_body(method: str, request: Request) -> bool:
    if method in BODYLESS_METHODS:
        return False
    return method in BODY_METHODS or request.content is not None or bool(request.data)


def _request_target(request: Request, with_query: bool) -> str:
    target = quote(request.action or "/", safe=TARGET_SAFE)
    if not target.startswith("/"):
        target = "/" + target
    if with_query and request.data:
        target += ("&" if "?" in target else "?") + form_encode(request.data)
    return target


def build_message(request: Request) -> bytes:
    """
    Serialize a request into a complete HTTP/1.0 message.

    The message always carries ``Host`` and ``Connection: Close``. Form
    fields of body-less methods are appended to the request target as a
    query string, otherwise they become an ``application/x-www-form-urlencoded``
    body with a matching ``Content-Length``.

    The function is pure: building the same request twice yields the same bytes.
    """
    method, overridden = wire_method(request)
    has_body = _carries_body(method, request)
    target = _request_target(request, with_query=not has_body)

    lines = [f"{method} {target} HTTP/1.0", f"Host: {request.origin.host_header}"]
    if request.user_agent:
        lines.append(f"User-Agent: {request.user_agent}")

    caller_content_type = False
    for key, value in request.headers:
        if key.strip().lower() in MANAGED_HEADERS:
            continue
        caller_content_type = caller_content_type or key.strip().lower() == "content-type"
        lines.append(f"{key}: {value}")

    if request.auth is not None:
        lines.append(f"Authorization: {request.auth.header_value(method, target)}")
    if overridden is not None:
        lines.append(f"X-HTTP-Method-Override: {overridden}")

    body = b""
    if has_body:
        if request.content is not None:
            body = request.content
        else:
            body = form_encode(request.data).encode("ascii")
            if not caller_content_type:
                lines.append(f"Content-Type: {FORM_CONTENT_TYPE}")
        lines.append(f"Content-Length: {len(body)}")

    lines.append("Connection: Close")
    head = ("\r\n".join(lines) + "\r\n\r\n").encode(HEADERS_ENCODING)
    return head + body


def build(
    endpoint: str,
    action: str,
    method: str = "GET",
    headers: tp.Sequence[tp.Tuple[str, str]] = (),
    body: tp.Optional[FormData] = None,
    auth: tp.Optional[Auth] = None,
    user_agent: tp.Optional[str] = None,
) -> bytes:
    """Build a request message straight from its parts."""
    request = Request(
        origin=Origin.from_url(endpoint),
        action=action,
        method=method.upper(),
        headers=tuple(headers),
        data=tuple(form_fields(body)),
        auth=auth,
        user_agent=user_agent,
    )
    return build_message(request)
