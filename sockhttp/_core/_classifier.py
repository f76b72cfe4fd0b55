from __future__ import annotations

import logging
import typing as tp
from dataclasses import dataclass, replace
from http import HTTPStatus

from sockhttp._core._headers import Headers
from sockhttp._core.models import Outcome, Response
from sockhttp._logging import Severity

logger = logging.getLogger("sockhttp.classifier")

KNOWN_STATUS_CODES = frozenset(
    status.value for status in HTTPStatus if status.value // 100 in (2, 4, 5)
)
NOT_FOUND_MESSAGE = "404: No record found for this request or web service not available."
SYNTHESIZED_STATUS = 500

__all__ = ("Classification", "classify", "apply_classification", "KNOWN_STATUS_CODES")


@dataclass(frozen=True)
class Classification:
    outcome: Outcome
    status_code: int
    """The status to expose, a synthesized 500 when the received one is unknown."""

    cacheable: bool
    severity: Severity
    decode_body: bool
    """Whether the body goes through content-type based decoding."""

    synthesized: bool = False


def classify(status_code: tp.Optional[int]) -> Classification:
    """
    Map a status code to an outcome.

    - 2xx is a cacheable success.
    - 404 is a benign, non-cacheable terminal state.
    - Any other 4xx is a client error, 5xx a server error.
    - Codes missing from the known table, and a missing status, become a
      synthesized 500 server error.
    """
    if status_code is None or status_code not in KNOWN_STATUS_CODES:
        logger.debug(f"Treating unknown status {status_code!r} as a server error")
        return Classification(
            outcome=Outcome.SERVER_ERROR,
            status_code=SYNTHESIZED_STATUS,
            cacheable=False,
            severity=Severity.ERROR,
            decode_body=False,
            synthesized=True,
        )

    if status_code // 100 == 2:
        return Classification(Outcome.SUCCESS, status_code, cacheable=True, severity=Severity.INFO, decode_body=True)
    if status_code == 404:
        return Classification(
            Outcome.NOT_FOUND, status_code, cacheable=False, severity=Severity.INFO, decode_body=True
        )
    if status_code // 100 == 4:
        return Classification(
            Outcome.CLIENT_ERROR, status_code, cacheable=False, severity=Severity.WARN, decode_body=False
        )
    return Classification(
        Outcome.SERVER_ERROR, status_code, cacheable=False, severity=Severity.ERROR, decode_body=False
    )


def apply_classification(response: Response, classification: Classification) -> Response:
    """
    Return a copy of the response carrying its outcome.

    A not-found response gets a plain-text body; a synthesized status keeps
    the received one in ``sockhttp_original_status`` metadata.
    """
    metadata = dict(response.metadata)
    changes: dict[str, tp.Any] = {"outcome": classification.outcome}

    if classification.outcome is Outcome.NOT_FOUND:
        headers = Headers(response.headers.multi_items())
        headers["content-type"] = "text/plain; charset=utf-8"
        content = NOT_FOUND_MESSAGE.encode("utf-8")
        headers["content-length"] = str(len(content))
        changes.update(headers=headers, content=content)

    if classification.synthesized:
        metadata["sockhttp_original_status"] = response.status_code
        changes.update(
            status_code=classification.status_code,
            reason_phrase=HTTPStatus(classification.status_code).phrase,
        )

    return replace(response, metadata=metadata, **changes)
