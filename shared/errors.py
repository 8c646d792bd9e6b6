"""
Shared error handling for the relay services.

Every failure a caller can observe is a ``RelayException`` subclass and is
rendered as the ``{statusCode, title, detail}`` envelope.
"""

from enum import Enum
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict


class RelayStatus(str, Enum):
    """Outcome class of a relayed request."""
    SUCCESS = "success"
    UPSTREAM_ERROR = "upstream-error"
    AUTH_ERROR = "auth-error"
    TRANSPORT_ERROR = "transport-error"
    NOT_FOUND = "not-found"
    UNEXPECTED = "unexpected"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(extra="allow")

    statusCode: int
    title: str
    detail: str
    code: Optional[str] = None


class RelayException(Exception):
    """Base exception for relay services."""

    code = "RELAY_ERROR"
    title = "Relay error"
    status_code = 500
    relay_status = RelayStatus.UNEXPECTED

    def __init__(self, detail: str, *, status_code: Optional[int] = None,
                 extensions: Optional[Dict[str, Any]] = None):
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        self.extensions = extensions or {}
        super().__init__(detail)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            statusCode=self.status_code,
            title=self.title,
            detail=self.detail,
            code=self.code,
            **self.extensions
        )


class InvalidTokenError(RelayException):
    """Malformed, expired, unsigned or otherwise untrusted bearer token."""

    code = "INVALID_TOKEN"
    title = "Unauthorized"
    status_code = 401
    relay_status = RelayStatus.AUTH_ERROR

    def __init__(self, detail: str = "The bearer token is invalid"):
        super().__init__(detail)


class WrongAudienceError(RelayException):
    """Token was issued for a different application."""

    code = "WRONG_AUDIENCE"
    title = "Unauthorized"
    status_code = 401
    relay_status = RelayStatus.AUTH_ERROR

    def __init__(self, detail: str = "The bearer token was not issued for this application"):
        super().__init__(detail)


class ConsentRequiredError(RelayException):
    """The user has not consented to the downstream scopes."""

    code = "CONSENT_REQUIRED"
    title = "Consent required"
    status_code = 401
    relay_status = RelayStatus.AUTH_ERROR

    def __init__(self, scopes: Sequence[str], reason: Optional[str] = None):
        self.scopes = list(scopes)
        self.reason = reason
        super().__init__(
            "The signed-in user has not granted consent for "
            f"{' '.join(self.scopes)}. Sign in again and grant consent to the "
            "requested permissions, then retry.",
            extensions={"scopes": self.scopes},
        )


class ExchangeFailedError(RelayException):
    """The trust anchor refused or failed an On-Behalf-Of exchange."""

    code = "EXCHANGE_FAILED"
    title = "Token exchange failed"
    status_code = 502
    relay_status = RelayStatus.TRANSPORT_ERROR

    def __init__(self, detail: str = "Token exchange failed", *,
                 error_code: Optional[str] = None, status_code: Optional[int] = None):
        self.error_code = error_code
        super().__init__(detail, status_code=status_code)
        if self.status_code == 401:
            self.relay_status = RelayStatus.AUTH_ERROR


class TransportError(RelayException):
    """A network call failed before a response was received."""

    code = "TRANSPORT_ERROR"
    title = "Bad gateway"
    status_code = 502
    relay_status = RelayStatus.TRANSPORT_ERROR

    def __init__(self, service: str, detail: str = "Service unreachable", *, timed_out: bool = False):
        self.service = service
        self.timed_out = timed_out
        super().__init__(f"{service}: {detail}", status_code=504 if timed_out else 502)
        if timed_out:
            self.title = "Gateway timeout"


class UpstreamError(RelayException):
    """A downstream service answered with a non-success status."""

    code = "UPSTREAM_ERROR"
    title = "Upstream error"
    relay_status = RelayStatus.UPSTREAM_ERROR

    def __init__(self, service: str, upstream_status: int, body: Any = None):
        self.service = service
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            f"{service} responded with status {upstream_status}",
            status_code=upstream_status if upstream_status >= 400 else 502,
            extensions={"upstreamStatus": upstream_status, "upstreamBody": body},
        )


class UnknownDownstreamError(RelayException):
    """The request named a downstream that is not configured."""

    code = "UNKNOWN_DOWNSTREAM"
    title = "Not found"
    status_code = 404
    relay_status = RelayStatus.NOT_FOUND

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No downstream service named '{name}' is configured")


class UnexpectedError(RelayException):
    """Programming or runtime fault. Detail is fixed to avoid leaking internals."""

    code = "INTERNAL_ERROR"
    title = "Internal server error"
    status_code = 500
    relay_status = RelayStatus.UNEXPECTED

    def __init__(self):
        super().__init__("An unexpected error occurred while processing the request")
