from __future__ import annotations

import logging
import re
import typing as tp
from dataclasses import dataclass

from sockhttp._core._headers import ContentFamily, Headers, classify_content_type
from sockhttp._exceptions import MalformedResponse

HEADERS_ENCODING = "iso-8859-1"
HEADER_TERMINATOR = re.compile(rb"\r?\n\r?\n")
TRANSFER_ENCODING = "transfer-encoding"
# How far past the Transfer-Encoding field name "chunked" may appear.
CHUNKED_LOOKAHEAD = 16
XML_DECLARATION = b"<?xml"

logger = logging.getLogger("sockhttp.parser")

__all__ = ("ParsedResponse", "parse_response", "dechunk", "is_chunked")


@dataclass
class ParsedResponse:
    http_version: str
    status_code: tp.Optional[int]
    """``None`` when the status line carried no numeric code."""

    reason_phrase: str
    headers: Headers
    body: bytes


def split_head(raw: bytes) -> tp.Optional[tp.Tuple[bytes, bytes]]:
    match = HEADER_TERMINATOR.search(raw)
    if match is None:
        return None
    return raw[: match.start()], raw[match.end() :]


def parse_status_line(line: str) -> tp.Tuple[str, tp.Optional[int], str]:
    """
    Split a status line into version, numeric status and reason phrase.

        >>> parse_status_line("HTTP/1.0 200 OK")
        ('HTTP/1.0', 200, 'OK')
        >>> parse_status_line("HTTP/1.1 abc Broken")
        ('HTTP/1.1', None, 'Broken')
    """
    line = line.strip()
    if not line.upper().startswith("HTTP/"):
        raise MalformedResponse(f"Unparsable status line: {line[:80]!r}")

    parts = line.split(None, 2)
    version = parts[0]
    token = parts[1] if len(parts) > 1 else ""
    reason = parts[2] if len(parts) > 2 else ""
    status = int(token) if len(token) == 3 and token.isdigit() else None
    return version, status, reason


def parse_header_lines(lines: tp.Iterable[str]) -> Headers:
    headers = Headers()
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        headers.add(key, value)
    return headers


def is_chunked(head: str) -> bool:
    """
    Tell whether the raw header block announces chunked transfer-encoding.

    Only the few characters right after a ``Transfer-Encoding`` field name
    are examined, so a "chunked" token elsewhere in the headers is ignored.
    """
    lowered = head.lower()
    start = lowered.find(TRANSFER_ENCODING)
    while start != -1:
        window_start = start + len(TRANSFER_ENCODING)
        if "chunked" in lowered[window_start : window_start + CHUNKED_LOOKAHEAD]:
            return True
        start = lowered.find(TRANSFER_ENCODING, window_start)
    return False


def dechunk(body: bytes) -> bytes:
    """
    Reverse chunked transfer-encoding.

    Blank lines between chunks are skipped, so doubled separators left by
    noisy reads collapse into one. Chunk extensions after ``;`` are ignored.
    Decoding stops at the zero-size chunk or at the end of the buffer.

        >>> dechunk(b"5\\r\\nhello\\r\\n6\\r\\n world\\r\\n0\\r\\n\\r\\n")
        b'hello world'
    """
    decoded = bytearray()
    position = 0
    length = len(body)

    while position < length:
        line_end = body.find(b"\n", position)
        if line_end == -1:
            break
        size_line = body[position:line_end].rstrip(b"\r")
        position = line_end + 1

        if not size_line.strip():
            continue

        size_token = size_line.split(b";", 1)[0].strip()
        try:
            size = int(size_token, 16)
        except ValueError:
            raise MalformedResponse(f"Invalid chunk size line: {size_line[:40]!r}") from None
        if size < 0:
            raise MalformedResponse(f"Invalid chunk size line: {size_line[:40]!r}")
        if size == 0:
            break

        decoded += body[position : position + size]
        position += size
        if body.startswith(b"\r\n", position):
            position += 2
        elif body.startswith(b"\n", position):
            position += 1

    return bytes(decoded)


def frame_body(body: bytes, content_length: tp.Optional[int], tolerate_leading_slack: bool) -> bytes:
    if content_length is None:
        return body
    if content_length == 0:
        return b""
    if tolerate_leading_slack:
        # Keep the trailing bytes, dropping whatever arrived ahead of the payload.
        return body[-content_length:]
    return body[:content_length]


def trim_xml(body: bytes) -> bytes:
    start = body.find(XML_DECLARATION)
    if start > 0:
        body = body[start:]
    end = body.rfind(b">")
    if end != -1:
        body = body[: end + 1]
    return body


def _content_length(headers: Headers) -> tp.Optional[int]:
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value.split(",")[0].strip())
    except ValueError:
        logger.debug(f"Ignoring invalid Content-Length value {value!r}")
        return None
    return length if length >= 0 else None


def parse_response(raw: bytes, *, tolerate_leading_slack: bool = False) -> tp.Optional[ParsedResponse]:
    """
    Parse accumulated response bytes.

    Returns ``None`` while the header block is still incomplete so the
    caller can keep reading.

    Args:
        raw: Every byte received on the connection so far.
        tolerate_leading_slack: When True and ``Content-Length`` is present,
            the body is taken from the *end* of the buffer, discarding any
            leading bytes that preceded the real payload.
            With the default of False the body is the *first*
            ``Content-Length`` bytes, so noise received ahead of the payload
            ends up in the body.

    Raises:
        MalformedResponse: The status line or a chunk-size line can't be parsed.
    """
    split = split_head(raw)
    if split is None:
        return None
    head_bytes, body = split

    head = head_bytes.decode(HEADERS_ENCODING)
    lines = head.splitlines()
    if not lines:
        raise MalformedResponse("Response has an empty header block")
    status_line, *header_lines = lines
    version, status, reason = parse_status_line(status_line)
    headers = parse_header_lines(header_lines)

    if is_chunked(head):
        body = dechunk(body)

    body = frame_body(body, _content_length(headers), tolerate_leading_slack)

    if classify_content_type(headers.get("content-type")) is ContentFamily.XML:
        body = trim_xml(body)

    return ParsedResponse(
        http_version=version,
        status_code=status,
        reason_phrase=reason,
        headers=headers,
        body=body,
    )
