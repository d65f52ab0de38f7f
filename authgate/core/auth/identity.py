"""
Resolved principals.

An Identity is what every strategy hands to the protected handler. It is
immutable and lives for one request; sessions persist it only through
their own signed payload.
"""

from dataclasses import dataclass, asdict
from typing import Optional


# Strategy tags carried in Identity.issued_by
ISSUER_SESSION = "session"
ISSUER_BEARER = "bearer"
ISSUER_API_KEY = "api_key"
ISSUER_DELEGATED = "delegated"


@dataclass(frozen=True)
class Identity:
    """
    Principal resolved from a credential.

    Attributes:
        subject: Unique within its issuing strategy
        issued_by: Strategy tag (see ISSUER_* constants)
        display_name: Optional human-readable name
        email: Optional email address
        expires_at: Unix timestamp after which the credential is no longer valid
    """
    subject: str
    issued_by: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[float] = None

    def __post_init__(self):
        if not self.subject:
            raise ValueError("Identity requires a non-empty subject")

    def with_expiry(self, expires_at: Optional[float]) -> "Identity":
        """Copy of this identity bound to a different expiry."""
        return Identity(
            subject=self.subject,
            issued_by=self.issued_by,
            display_name=self.display_name,
            email=self.email,
            expires_at=expires_at,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Identity":
        return cls(
            subject=data["subject"],
            issued_by=data["issued_by"],
            display_name=data.get("display_name"),
            email=data.get("email"),
            expires_at=data.get("expires_at"),
        )


@dataclass(frozen=True)
class SessionValues:
    """
    The fixed record a session carries.

    `identity` is optional: a form login only needs `authenticated`,
    a delegated login also stores who signed in.
    """
    authenticated: bool = False
    identity: Optional[Identity] = None

    def to_dict(self) -> dict:
        return {
            "authenticated": self.authenticated,
            "identity": self.identity.to_dict() if self.identity else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionValues":
        authenticated = data.get("authenticated", False)
        if not isinstance(authenticated, bool):
            raise ValueError("authenticated must be a boolean")
        identity_data = data.get("identity")
        identity = Identity.from_dict(identity_data) if identity_data else None
        return cls(authenticated=authenticated, identity=identity)
