from sockhttp._core._builder import build, build_message
from sockhttp._core._classifier import Classification, apply_classification, classify
from sockhttp._core._decoders import BodyDecoder, DefaultDecoder
from sockhttp._core._headers import ContentFamily, Headers, classify_content_type
from sockhttp._core._keygen import fingerprint
from sockhttp._core._parser import ParsedResponse, dechunk, parse_response

__all__ = (
    "build",
    "build_message",
    "Classification",
    "apply_classification",
    "classify",
    "BodyDecoder",
    "DefaultDecoder",
    "ContentFamily",
    "Headers",
    "classify_content_type",
    "fingerprint",
    "ParsedResponse",
    "dechunk",
    "parse_response",
)
