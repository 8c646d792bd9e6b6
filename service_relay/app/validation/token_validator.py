"""
Bearer token validation against the issuer's published signing keys.
"""

from typing import Any, Dict, Optional, Sequence

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

from shared.errors import InvalidTokenError, WrongAudienceError
from shared.logging import get_logger
from ..jwks.client import JWKSClient

BEARER_SCHEME = "bearer"


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token carried by an ``Authorization: Bearer`` header value.

    The scheme name is matched case-insensitively. The token is returned
    exactly as sent; headers whose token part carries whitespace are refused
    rather than normalized.
    """
    if not authorization:
        raise InvalidTokenError("Authorization header missing")

    scheme, separator, token = authorization.partition(" ")
    if scheme.lower() != BEARER_SCHEME or not separator:
        raise InvalidTokenError("Authorization header must use the Bearer scheme")

    if not token or any(ch.isspace() for ch in token):
        raise InvalidTokenError("Authorization header contained a malformed bearer token")
    return token


class TokenValidator:
    """Stateless validator for bearer tokens issued by the trust anchor."""

    def __init__(self, jwks_client: JWKSClient, audiences: Sequence[str],
                 issuers: Sequence[str], *, leeway: int = 0,
                 algorithms: Sequence[str] = ("RS256",)):
        self.jwks_client = jwks_client
        self.audiences = [a for a in audiences if a]
        self.issuers = [i for i in issuers if i]
        if not self.audiences:
            raise ValueError("TokenValidator requires at least one accepted audience")
        if not self.issuers:
            raise ValueError("TokenValidator requires at least one trusted issuer; "
                             "set authority or issuers")
        self.leeway = leeway
        self.algorithms = list(algorithms)
        self.logger = get_logger("relay.validator")

    async def validate(self, token: str) -> Dict[str, Any]:
        """Verify ``token`` and return its claims.

        Raises ``InvalidTokenError`` for malformed, expired, not-yet-valid or
        badly signed tokens and for an untrusted issuer, and
        ``WrongAudienceError`` when the token targets another application.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidTokenError("Bearer token is malformed") from exc

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise InvalidTokenError("Bearer token header missing key id (kid)")

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise InvalidTokenError(f"Bearer token signed with unsupported algorithm '{alg}'")

        key_data = await self.jwks_client.get_key(kid)
        if not key_data:
            raise InvalidTokenError("Signing key not found for bearer token")

        try:
            claims = jwt.decode(
                token,
                key_data,
                algorithms=self.algorithms,
                options={"verify_aud": False, "require_exp": True, "leeway": self.leeway},
            )
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("Bearer token has expired") from exc
        except JWTClaimsError as exc:
            raise InvalidTokenError(f"Bearer token claims rejected: {exc}") from exc
        except JWTError as exc:
            raise InvalidTokenError(f"Bearer token verification failed: {exc}") from exc

        self._check_issuer(claims)
        self._check_audience(claims)
        return claims

    def _check_issuer(self, claims: Dict[str, Any]) -> None:
        if claims.get("iss") not in self.issuers:
            self.logger.warning("Untrusted issuer", issuer=claims.get("iss"))
            raise InvalidTokenError("Bearer token issuer is not trusted")

    def _check_audience(self, claims: Dict[str, Any]) -> None:
        aud = claims.get("aud")
        token_audiences = [aud] if isinstance(aud, str) else aud
        if not isinstance(token_audiences, list):
            raise WrongAudienceError("Bearer token has no audience")
        if not set(token_audiences) & set(self.audiences):
            self.logger.warning("Audience mismatch", token_audience=token_audiences)
            raise WrongAudienceError()
