"""
Stateless bearer tokens.

HS256-signed JWTs carrying `sub`, `iat` and `exp` (and `iss` when an issuer
is configured). Nothing is stored server-side: a token is valid iff its
signature checks out and `now < exp`.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import jwt

from authgate.core.auth.errors import (
    InternalFailure,
    InvalidCredential,
    MalformedCredential,
    MissingCredential,
)

logger = logging.getLogger(__name__)

# Fixed signing algorithm; decode accepts nothing else
JWT_ALGORITHM = "HS256"

BEARER_SCHEME = "Bearer"

# Single public message for every verification failure
INVALID_TOKEN_MESSAGE = "invalid or expired token"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a bearer token."""
    subject: str
    issued_at: int
    expires_at: int


def extract_bearer_token(header_value: Optional[str], scheme: str = BEARER_SCHEME) -> str:
    """
    Pull the raw token out of an Authorization header.

    The scheme prefix must match exactly (case-sensitive, single space).
    Headers shorter than the prefix are rejected before any slicing.

    Raises:
        MissingCredential: If the header is absent or empty
        MalformedCredential: If the prefix is wrong or no token follows it
    """
    if not header_value:
        raise MissingCredential("no Authorization header", public_message=INVALID_TOKEN_MESSAGE)

    prefix = f"{scheme} "
    if len(header_value) <= len(prefix) or header_value[:len(prefix)] != prefix:
        raise MalformedCredential(
            f"Authorization header does not start with '{prefix}'",
            public_message=INVALID_TOKEN_MESSAGE,
        )

    token = header_value[len(prefix):].strip()
    if not token:
        raise MalformedCredential("empty bearer token", public_message=INVALID_TOKEN_MESSAGE)
    return token


class TokenCodec:
    """
    Issues and verifies bearer tokens with a process-wide secret.

    Expiry is checked against the codec's own clock; PyJWT only checks
    structure and signature.
    """

    def __init__(
        self,
        secret: str,
        default_ttl_seconds: int = 900,
        issuer: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise InternalFailure("token signing secret unavailable")
        self._secret = secret
        self.default_ttl_seconds = default_ttl_seconds
        self.issuer = issuer
        self._clock = clock

    def issue(self, subject: str, ttl_seconds: Optional[int] = None) -> str:
        """
        Create a signed token for a subject.

        iat/exp are whole seconds, so issue time is truncated: the token
        stays valid for more than ttl - 1 and at most ttl seconds, never
        longer. A zero ttl is therefore expired on arrival.

        Raises:
            InternalFailure: If the token cannot be signed
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        # Truncate, never round up
        now = int(self._clock())
        payload = {
            "sub": subject,
            "iat": now,
            "exp": now + ttl,
        }
        if self.issuer:
            payload["iss"] = self.issuer

        try:
            return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise InternalFailure(f"could not sign token: {e}") from e

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and validate a token.

        Decode errors, signature mismatches and expiry all raise the same
        InvalidCredential; only `reason` (logged, never returned) differs.
        """
        required = ["sub", "iat", "exp"] + (["iss"] if self.issuer else [])
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_iss": bool(self.issuer),
                    "require": required,
                },
            )
        except jwt.InvalidSignatureError:
            raise InvalidCredential("signature", public_message=INVALID_TOKEN_MESSAGE)
        except jwt.DecodeError as e:
            raise InvalidCredential(f"malformed: {e}", public_message=INVALID_TOKEN_MESSAGE)
        except jwt.InvalidTokenError as e:
            raise InvalidCredential(f"claims: {e}", public_message=INVALID_TOKEN_MESSAGE)

        try:
            claims = TokenClaims(
                subject=str(payload["sub"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (TypeError, ValueError) as e:
            raise InvalidCredential(f"claims: {e}", public_message=INVALID_TOKEN_MESSAGE)

        if not claims.subject:
            raise InvalidCredential("claims: empty subject", public_message=INVALID_TOKEN_MESSAGE)

        if not self._clock() < claims.expires_at:
            raise InvalidCredential("expired", public_message=INVALID_TOKEN_MESSAGE)

        return claims
