from __future__ import annotations

import time
import typing as tp
from urllib.parse import quote_plus, urlencode

T = tp.TypeVar("T")

FormData = tp.Union[tp.Mapping[str, tp.Any], tp.Sequence[tp.Tuple[str, tp.Any]]]


def sleep(seconds: tp.Union[int, float]) -> None:
    time.sleep(seconds)


def partition(iterable: tp.Iterable[T], predicate: tp.Callable[[T], bool]) -> tp.Tuple[tp.List[T], tp.List[T]]:
    """
    Partition an iterable into two lists: one for matching items and one for non-matching items.

    Example:
        ```
        finished, pending = partition(connections, lambda conn: conn.is_terminal)
        ```
    """
    matching, non_matching = [], []
    for item in iterable:
        if predicate(item):
            matching.append(item)
        else:
            non_matching.append(item)
    return matching, non_matching


def form_fields(data: tp.Optional[FormData]) -> tp.List[tp.Tuple[str, str]]:
    """
    Flatten form data into an ordered list of string pairs.

    Sequence values expand into repeated keys, ``None`` becomes an empty
    string and booleans are written as ``1`` / ``0``.
    """
    if not data:
        return []

    items = data.items() if isinstance(data, tp.Mapping) else data
    fields: tp.List[tp.Tuple[str, str]] = []
    for key, value in items:
        if isinstance(value, (list, tuple)):
            fields.extend((str(key), _stringify(item)) for item in value)
        else:
            fields.append((str(key), _stringify(value)))
    return fields


def form_encode(data: tp.Optional[FormData]) -> str:
    """
    Encode form data as ``application/x-www-form-urlencoded``.

    This is the only encoding used for both query strings and request bodies.

        >>> form_encode({"id": 5, "q": "a b"})
        'id=5&q=a+b'
    """
    return urlencode(form_fields(data), quote_via=quote_plus)


def _stringify(value: tp.Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
