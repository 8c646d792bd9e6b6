"""
Unit tests for the error envelope.
"""

import pytest

from shared.errors import (
    ConsentRequiredError,
    ExchangeFailedError,
    InvalidTokenError,
    RelayStatus,
    TransportError,
    UnexpectedError,
    UnknownDownstreamError,
    UpstreamError,
    WrongAudienceError,
)


@pytest.mark.parametrize("error,status_code,relay_status", [
    (InvalidTokenError(), 401, RelayStatus.AUTH_ERROR),
    (WrongAudienceError(), 401, RelayStatus.AUTH_ERROR),
    (ConsentRequiredError(["api://x/.default"]), 401, RelayStatus.AUTH_ERROR),
    (ExchangeFailedError(), 502, RelayStatus.TRANSPORT_ERROR),
    (ExchangeFailedError(status_code=401), 401, RelayStatus.AUTH_ERROR),
    (TransportError("backend"), 502, RelayStatus.TRANSPORT_ERROR),
    (TransportError("backend", timed_out=True), 504, RelayStatus.TRANSPORT_ERROR),
    (UpstreamError("backend", 503), 503, RelayStatus.UPSTREAM_ERROR),
    (UpstreamError("backend", 302), 502, RelayStatus.UPSTREAM_ERROR),
    (UnknownDownstreamError("nowhere"), 404, RelayStatus.NOT_FOUND),
    (UnexpectedError(), 500, RelayStatus.UNEXPECTED),
])
def test_status_mapping(error, status_code, relay_status):
    assert error.status_code == status_code
    assert error.relay_status is relay_status
    assert error.to_response().statusCode == status_code


def test_envelope_shape():
    body = InvalidTokenError("Authorization header missing").to_response().model_dump(exclude_none=True)
    assert body == {
        "statusCode": 401,
        "title": "Unauthorized",
        "detail": "Authorization header missing",
        "code": "INVALID_TOKEN",
    }


def test_consent_envelope_carries_scopes_and_remediation():
    body = ConsentRequiredError(["api://obo-backend/.default"]).to_response().model_dump()
    assert body["scopes"] == ["api://obo-backend/.default"]
    assert "grant consent" in body["detail"]


def test_upstream_envelope_carries_downstream_response():
    body = UpstreamError("backend", 503, {"error": "down"}).to_response().model_dump()
    assert body["upstreamStatus"] == 503
    assert body["upstreamBody"] == {"error": "down"}
    assert body["detail"] == "backend responded with status 503"


def test_timeout_title_does_not_leak_to_other_instances():
    assert TransportError("a", timed_out=True).title == "Gateway timeout"
    assert TransportError("b").title == "Bad gateway"
