from __future__ import annotations

import abc
import json
import typing as tp
import xml.etree.ElementTree as ElementTree

from sockhttp._core._headers import ContentFamily, classify_content_type, content_charset

__all__ = ("BodyDecoder", "DefaultDecoder")


class BodyDecoder(abc.ABC):
    @abc.abstractmethod
    def decode(self, body: bytes, content_type: tp.Optional[str]) -> tp.Any:
        raise NotImplementedError()


class DefaultDecoder(BodyDecoder):
    """
    Decodes JSON into Python objects, XML into an ``Element`` and text into ``str``.

    Bodies of any other content type are returned unchanged.
    """

    def decode(self, body: bytes, content_type: tp.Optional[str]) -> tp.Any:
        family = classify_content_type(content_type)
        if family is ContentFamily.JSON:
            return json.loads(body.decode(content_charset(content_type)))
        if family is ContentFamily.XML:
            return ElementTree.fromstring(body)
        if family is ContentFamily.TEXT:
            return body.decode(content_charset(content_type), errors="replace")
        return body
