"""
Authentication Gateway

One contract for every credential scheme:

    strategy.authenticate(request) -> Identity   (raises AuthError)
    strategy.reject(request, error) -> Response

Routes pick a strategy by scheme name when they are registered:

    @router.get("/dashboard")
    async def dashboard(identity: Identity = Depends(Authenticated("session"))):
        ...

On success the identity is attached to `request.state.identity` and the
handler runs. On failure the handler never runs; the AuthRejected handler
renders the strategy's own rejection (redirect for browser sessions, 401
JSON for APIs).
"""
import logging
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from authgate.api.services import AuthServices
from authgate.core.auth.errors import AuthError, InternalFailure, InvalidCredential, MissingCredential
from authgate.core.auth.identity import (
    ISSUER_API_KEY,
    ISSUER_BEARER,
    ISSUER_DELEGATED,
    ISSUER_SESSION,
    Identity,
)
from authgate.core.auth.sessions import Session, SessionStore
from authgate.core.auth.tokens import BEARER_SCHEME, TokenCodec, extract_bearer_token
from authgate.core.auth.verifiers import ApiKeyVerifier

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
LOGIN_PATH = "/login"


class AuthStrategy(ABC):
    """One pluggable authentication scheme."""

    scheme: str = ""

    @abstractmethod
    def authenticate(self, request: Request) -> Identity:
        """
        Resolve the caller's identity.

        Raises:
            AuthError: If the request carries no acceptable credential
        """

    @abstractmethod
    def reject(self, request: Request, error: AuthError) -> Response:
        """Build the response sent when `authenticate` fails."""


# ============================================================================
# Session-backed strategies (browser-facing)
# ============================================================================

class SessionCookieStrategy(AuthStrategy):
    """Signed session cookie; rejection redirects to the login page."""

    scheme = "session"

    def __init__(self, store: SessionStore, login_path: str = LOGIN_PATH):
        self.store = store
        self.login_path = login_path

    def load_session(self, request: Request) -> Session:
        cookie_value = request.cookies.get(self.store.cookie_name)
        if not cookie_value:
            raise MissingCredential("no session cookie")

        session = self.store.load(cookie_value)
        if session is None:
            raise InvalidCredential("session cookie failed verification")
        if not session.values.authenticated:
            raise InvalidCredential(f"session {session.session_id[:8]}... is not authenticated")

        request.state.session = session
        return session

    def authenticate(self, request: Request) -> Identity:
        session = self.load_session(request)
        identity = session.values.identity
        if identity is None:
            identity = Identity(subject=f"session-{session.session_id[:8]}", issued_by=ISSUER_SESSION)
        return identity.with_expiry(session.expires_at)

    def reject(self, request: Request, error: AuthError) -> Response:
        response = RedirectResponse(url=self.login_path, status_code=302)
        # Drop a cookie we could not use so the browser stops sending it
        if self.store.cookie_name in request.cookies:
            self.store.invalidate(None).apply(response)
        return response


class DelegatedSessionStrategy(SessionCookieStrategy):
    """Session created by a completed third-party login."""

    scheme = "delegated"

    def authenticate(self, request: Request) -> Identity:
        session = self.load_session(request)
        identity = session.values.identity
        if identity is None or identity.issued_by != ISSUER_DELEGATED:
            raise InvalidCredential(f"session {session.session_id[:8]}... has no delegated identity")
        return identity.with_expiry(session.expires_at)


# ============================================================================
# Header-based strategies (API-facing)
# ============================================================================

class BearerTokenStrategy(AuthStrategy):
    """`Authorization: Bearer <jwt>`; rejection is 401 JSON."""

    scheme = "bearer"

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def authenticate(self, request: Request) -> Identity:
        token = extract_bearer_token(request.headers.get("Authorization"))
        claims = self.codec.verify(token)
        return Identity(
            subject=claims.subject,
            issued_by=ISSUER_BEARER,
            expires_at=float(claims.expires_at),
        )

    def reject(self, request: Request, error: AuthError) -> Response:
        challenge = BEARER_SCHEME
        if not isinstance(error, MissingCredential):
            challenge = f'{BEARER_SCHEME} error="invalid_token"'
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or expired token"},
            headers={"WWW-Authenticate": challenge},
        )


class ApiKeyStrategy(AuthStrategy):
    """`X-API-Key: <key>`; rejection is 401 JSON."""

    scheme = "api_key"

    def __init__(self, verifier: ApiKeyVerifier, header: str = API_KEY_HEADER):
        self.verifier = verifier
        self.header = header

    def authenticate(self, request: Request) -> Identity:
        subject = self.verifier.verify(request.headers.get(self.header))
        return Identity(subject=subject, issued_by=ISSUER_API_KEY)

    def reject(self, request: Request, error: AuthError) -> Response:
        return JSONResponse(
            status_code=401,
            content={"detail": "Unauthorized: missing or invalid API key"},
        )


# ============================================================================
# Gateway
# ============================================================================

class AuthRejected(Exception):
    """Raised by the gateway dependency; carries what the handler needs to respond."""

    def __init__(self, strategy: AuthStrategy, error: AuthError):
        super().__init__(error.reason)
        self.strategy = strategy
        self.error = error


class AuthGateway:
    """
    Immutable scheme -> strategy table, built once at startup.

    Holds no per-request state, so one instance serves all concurrent
    requests.
    """

    def __init__(self, strategies: Iterable[AuthStrategy]):
        table = {}
        for strategy in strategies:
            if strategy.scheme in table:
                raise ValueError(f"Duplicate auth scheme: {strategy.scheme}")
            table[strategy.scheme] = strategy
        self._strategies: Mapping[str, AuthStrategy] = MappingProxyType(table)

    @property
    def schemes(self):
        return tuple(self._strategies)

    def strategy(self, scheme: str) -> AuthStrategy:
        try:
            return self._strategies[scheme]
        except KeyError:
            raise InternalFailure(f"no strategy registered for scheme '{scheme}'")

    def authenticate(self, scheme: str, request: Request) -> Identity:
        """
        Run one strategy and attach the identity to the request.

        Raises:
            AuthRejected: On any credential failure
            InternalFailure: On a fault on our side (not a rejection)
        """
        strategy = self.strategy(scheme)
        try:
            identity = strategy.authenticate(request)
        except InternalFailure:
            raise
        except AuthError as e:
            logger.info(
                f"Rejected {request.method} {request.url.path} "
                f"(scheme={scheme}, {e.kind}: {e.reason})"
            )
            raise AuthRejected(strategy, e)

        request.state.identity = identity
        return identity


def build_gateway(services: AuthServices) -> AuthGateway:
    """Gateway with every scheme the services support."""
    return AuthGateway([
        SessionCookieStrategy(services.session_store),
        DelegatedSessionStrategy(services.session_store),
        BearerTokenStrategy(services.token_codec),
        ApiKeyStrategy(services.api_key_verifier),
    ])


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


class Authenticated:
    """
    FastAPI dependency guarding a route with one scheme.

    Args:
        scheme: Registered strategy name
        required: When False, a failed check yields None instead of rejecting
    """

    def __init__(self, scheme: str, required: bool = True):
        self.scheme = scheme
        self.required = required

    async def __call__(self, request: Request) -> Optional[Identity]:
        gateway = get_gateway(request)
        if self.required:
            return gateway.authenticate(self.scheme, request)

        try:
            return gateway.authenticate(self.scheme, request)
        except AuthRejected:
            return None


async def auth_rejected_handler(request: Request, exc: AuthRejected) -> Response:
    """Render the rejecting strategy's response."""
    return exc.strategy.reject(request, exc.error)
