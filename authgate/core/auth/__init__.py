"""
Authentication core.

Credential verifiers, signed sessions, bearer tokens and the delegated
login flow. Nothing in here knows about HTTP routing.
"""

from .errors import (
    AuthError,
    MissingCredential,
    MalformedCredential,
    InvalidCredential,
    Expired,
    CsrfMismatch,
    UpstreamFailure,
    InternalFailure,
)
from .identity import Identity, SessionValues
from .verifiers import ApiKeyRecord, ApiKeyVerifier, CredentialVerifier, StaticPairVerifier
from .sessions import Session, SessionCookie, SessionStore
from .tokens import TokenClaims, TokenCodec, extract_bearer_token
from .delegated import (
    CompletedLogin,
    DelegatedLoginController,
    DelegatedLoginState,
    FlowStatus,
    LoginStateStore,
    ProviderConfig,
)

__all__ = [
    # Errors
    "AuthError",
    "MissingCredential",
    "MalformedCredential",
    "InvalidCredential",
    "Expired",
    "CsrfMismatch",
    "UpstreamFailure",
    "InternalFailure",
    # Identity
    "Identity",
    "SessionValues",
    # Verifiers
    "ApiKeyRecord",
    "ApiKeyVerifier",
    "CredentialVerifier",
    "StaticPairVerifier",
    # Sessions
    "Session",
    "SessionCookie",
    "SessionStore",
    # Tokens
    "TokenClaims",
    "TokenCodec",
    "extract_bearer_token",
    # Delegated login
    "CompletedLogin",
    "DelegatedLoginController",
    "DelegatedLoginState",
    "FlowStatus",
    "LoginStateStore",
    "ProviderConfig",
]
