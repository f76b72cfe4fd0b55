from __future__ import annotations

import enum
from typing import (
    Any,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

HeaderSource = Union[Mapping[str, Union[str, List[str]]], Sequence[Tuple[str, str]]]


class Headers(MutableMapping[str, str]):
    """
    Ordered, case-insensitive header mapping.

    Keys are stored lowercased and trimmed. Repeated fields keep every value
    in arrival order; item access joins them with ``", "``.
    """

    def __init__(self, headers: Optional[HeaderSource] = None) -> None:
        self._headers: dict[str, list[str]] = {}
        if headers is None:
            return
        if isinstance(headers, Mapping):
            for key, value in headers.items():
                for item in [value] if isinstance(value, str) else value:
                    self.add(key, item)
        else:
            for key, value in headers:
                self.add(key, value)

    def add(self, key: str, value: str) -> None:
        self._headers.setdefault(key.strip().lower(), []).append(value.strip())

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.strip().lower(), None)

    def multi_items(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.strip().lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers[key.strip().lower()] = [value.strip()]

    def __delitem__(self, key: str) -> None:
        del self._headers[key.strip().lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self.multi_items()!r})"

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers


class ContentFamily(enum.Enum):
    JSON = "json"
    XML = "xml"
    TEXT = "text"
    OTHER = "other"


def split_content_type(value: Optional[str]) -> Tuple[str, dict[str, str]]:
    """
    Split a Content-Type value into its media type and parameters.

        >>> split_content_type("application/json; charset=UTF-8")
        ('application/json', {'charset': 'UTF-8'})
    """
    if not value:
        return "", {}
    media_type, *raw_params = value.split(";")
    params: dict[str, str] = {}
    for raw in raw_params:
        name, sep, param_value = raw.partition("=")
        if sep:
            params[name.strip().lower()] = param_value.strip().strip('"')
    return media_type.strip().lower(), params


def classify_content_type(value: Optional[str]) -> ContentFamily:
    media_type, _ = split_content_type(value)
    if not media_type:
        return ContentFamily.OTHER
    _, _, subtype = media_type.partition("/")
    if subtype == "json" or subtype.endswith("+json"):
        return ContentFamily.JSON
    if subtype == "xml" or subtype.endswith("+xml"):
        return ContentFamily.XML
    if media_type.startswith("text/"):
        return ContentFamily.TEXT
    return ContentFamily.OTHER


def content_charset(value: Optional[str], default: str = "utf-8") -> str:
    _, params = split_content_type(value)
    return params.get("charset", default)
