import json

import pytest

from sockhttp import DefaultDecoder


def test_json():
    assert DefaultDecoder().decode(b'{"ok":true}', "application/json") == {"ok": True}


def test_xml():
    element = DefaultDecoder().decode(b'<?xml version="1.0"?><items><item id="5"/></items>', "text/xml")

    assert element.tag == "items"
    assert element[0].attrib == {"id": "5"}


def test_text_uses_the_charset():
    assert DefaultDecoder().decode("café".encode("latin-1"), "text/plain; charset=latin-1") == "café"


def test_other_content_is_returned_as_bytes():
    assert DefaultDecoder().decode(b"\x00\x01", "application/octet-stream") == b"\x00\x01"


def test_invalid_json_raises():
    with pytest.raises(json.JSONDecodeError):
        DefaultDecoder().decode(b"{nope", "application/json")
