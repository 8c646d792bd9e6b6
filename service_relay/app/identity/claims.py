"""
Claim projection: raw token claims to a stable identity record.

Issuers disagree on which claims they populate, so each identity field is
resolved from an ordered list of claim names. The lists are policy data and
their order is the precedence.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

OBJECT_ID_CLAIM_URI = "http://schemas.microsoft.com/identity/claims/objectidentifier"
IDENTITY_NAME_CLAIM_URI = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"
ROLE_CLAIM_URI = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"

ANONYMOUS = "Anonymous"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ClaimPolicy:
    """Ordered claim lookup keys for each identity field."""

    display_name_claims: Tuple[str, ...] = (
        "name",
        "preferred_username",
        IDENTITY_NAME_CLAIM_URI,
        "unique_name",
    )
    subject_id_claims: Tuple[str, ...] = (OBJECT_ID_CLAIM_URI, "oid")
    role_claims: Tuple[str, ...] = ("roles", ROLE_CLAIM_URI)
    anonymous_name: str = ANONYMOUS
    unknown_subject: str = UNKNOWN


DEFAULT_POLICY = ClaimPolicy()


@dataclass(frozen=True)
class Identity:
    """Normalized caller identity."""

    subject_id: str
    display_name: str
    roles: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "user": self.display_name,
            "userId": self.subject_id,
            "roles": list(self.roles),
        }


def first_claim(claims: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    """Return the first non-empty string value found under ``keys``."""
    for key in keys:
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def collect_claims(claims: Mapping[str, Any], keys: Iterable[str]) -> List[str]:
    """Union of the values under ``keys``, first occurrence order, no duplicates."""
    values: List[str] = []
    for key in keys:
        raw = claims.get(key)
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, (list, tuple)):
            continue
        for item in raw:
            if isinstance(item, str) and item and item not in values:
                values.append(item)
    return values


def project_claims(claims: Mapping[str, Any], policy: ClaimPolicy = DEFAULT_POLICY) -> Identity:
    """Project a raw claim mapping onto an :class:`Identity`."""
    return Identity(
        subject_id=first_claim(claims, policy.subject_id_claims) or policy.unknown_subject,
        display_name=first_claim(claims, policy.display_name_claims) or policy.anonymous_name,
        roles=tuple(collect_claims(claims, policy.role_claims)),
    )
