import pytest

from sockhttp import Headers, Outcome, Response, Severity, classify
from sockhttp._core._classifier import NOT_FOUND_MESSAGE, apply_classification


@pytest.mark.parametrize(
    "status, outcome, cacheable, severity",
    [
        (200, Outcome.SUCCESS, True, Severity.INFO),
        (201, Outcome.SUCCESS, True, Severity.INFO),
        (404, Outcome.NOT_FOUND, False, Severity.INFO),
        (403, Outcome.CLIENT_ERROR, False, Severity.WARN),
        (500, Outcome.SERVER_ERROR, False, Severity.ERROR),
        (503, Outcome.SERVER_ERROR, False, Severity.ERROR),
    ],
)
def test_known_statuses(status, outcome, cacheable, severity):
    classification = classify(status)

    assert classification.outcome is outcome
    assert classification.status_code == status
    assert classification.cacheable is cacheable
    assert classification.severity is severity
    assert classification.synthesized is False


@pytest.mark.parametrize("status", [None, 0, 100, 302, 499, 999])
def test_unknown_statuses_become_server_errors(status):
    classification = classify(status)

    assert classification.outcome is Outcome.SERVER_ERROR
    assert classification.status_code == 500
    assert classification.cacheable is False
    assert classification.synthesized is True


def test_only_success_and_not_found_are_decoded():
    assert [classify(status).decode_body for status in (200, 404, 400, 500)] == [True, True, False, False]


def test_not_found_body_is_rewritten():
    response = Response(
        status_code=404,
        reason_phrase="Not Found",
        headers=Headers([("Content-Type", "text/html"), ("Content-Length", "9"), ("X-Trace", "t1")]),
        content=b"<h1>?</h1>",
    )

    classified = apply_classification(response, classify(404))

    assert classified.outcome is Outcome.NOT_FOUND
    assert classified.status_code == 404
    assert classified.content == NOT_FOUND_MESSAGE.encode("utf-8")
    assert classified.headers["content-type"] == "text/plain; charset=utf-8"
    assert classified.headers["content-length"] == str(len(NOT_FOUND_MESSAGE))
    assert classified.headers["x-trace"] == "t1"
    assert response.content == b"<h1>?</h1>"


def test_synthesized_status_keeps_the_received_one():
    response = Response(status_code=302, reason_phrase="Found", content=b"moved")

    classified = apply_classification(response, classify(302))

    assert classified.status_code == 500
    assert classified.reason_phrase == "Internal Server Error"
    assert classified.metadata["sockhttp_original_status"] == 302
    assert classified.content == b"moved"
