"""
Data model for the relay: credentials, downstream targets and results.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.errors import ErrorResponse, RelayException, RelayStatus
from ..identity.claims import UNKNOWN, Identity


class RelayMode(str, Enum):
    """How the caller's identity is carried to a downstream."""
    FORWARD = "forward"  # same audience, original token passed through
    OBO = "obo"          # different audience, token exchanged On-Behalf-Of


@dataclass(frozen=True)
class IncomingCredential:
    """A validated bearer token and what it says about the caller."""

    token: str
    claims: Mapping[str, Any]
    identity: Identity

    def __post_init__(self):
        object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))

    @property
    def cache_subject(self) -> Optional[str]:
        """Subject used to key exchanged tokens, ``None`` if not attributable.

        Object ids and ``sub`` values are tagged so a ``sub`` can never
        collide with another user's object id.
        """
        if self.identity.subject_id != UNKNOWN:
            return f"oid:{self.identity.subject_id}"
        sub = self.claims.get("sub")
        if isinstance(sub, str) and sub:
            return f"sub:{sub}"
        return None

    def __repr__(self) -> str:
        return f"IncomingCredential(identity={self.identity!r})"


class DownstreamTarget(BaseModel):
    """A downstream service the relay may call."""

    model_config = ConfigDict(frozen=True)

    name: str
    base_address: str
    audience: str
    scopes: List[str] = Field(default_factory=list)
    mode: RelayMode = RelayMode.FORWARD
    path: str = "/api/data"
    route: Optional[str] = None

    @model_validator(mode="after")
    def _check_scopes(self) -> "DownstreamTarget":
        if self.mode is RelayMode.OBO and not self.scopes:
            raise ValueError(f"OBO target '{self.name}' requires at least one scope")
        return self


@dataclass
class RelayResult:
    """Outcome of one relayed request."""

    status: RelayStatus
    status_code: int
    payload: Optional[Dict[str, Any]] = None
    error: Optional[ErrorResponse] = None
    identity: Optional[Identity] = None
    exception: Optional[RelayException] = field(default=None, repr=False)

    @classmethod
    def completed(cls, payload: Dict[str, Any], identity: Identity) -> "RelayResult":
        return cls(status=RelayStatus.SUCCESS, status_code=200, payload=payload, identity=identity)

    @classmethod
    def rejected(cls, exc: RelayException, identity: Optional[Identity] = None) -> "RelayResult":
        return cls(
            status=exc.relay_status,
            status_code=exc.status_code,
            error=exc.to_response(),
            identity=identity,
            exception=exc,
        )

    @property
    def ok(self) -> bool:
        return self.status is RelayStatus.SUCCESS

    def body(self) -> Dict[str, Any]:
        """JSON body for the caller."""
        if self.ok:
            return self.payload or {}
        return self.error.model_dump(exclude_none=True)
