"""
Delegated Login (OAuth2 authorization-code flow)

Drives the redirect/exchange protocol with a third-party authorization
server (Google by default) and turns the result into a local session.

Flow:
1. start(): mint a state nonce, remember it for a few minutes, return the
   provider's authorization URL
2. The provider redirects the browser back with ?code=...&state=...
3. handle_callback(): claim the nonce (single use), exchange the code for
   an access token, fetch the profile, create a session

Per-attempt states:
    NOT_STARTED -> AWAITING_CALLBACK -> EXCHANGED -> RESOLVED
    AWAITING_CALLBACK / EXCHANGED -> FAILED

Network calls are bounded by a timeout and never retried here; the caller
decides what to do with a retryable UpstreamFailure.
"""

import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from authgate.core.auth.errors import CsrfMismatch, MissingCredential, UpstreamFailure
from authgate.core.auth.identity import ISSUER_DELEGATED, Identity, SessionValues
from authgate.core.auth.sessions import Session, SessionStore

logger = logging.getLogger(__name__)


# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)

# Pending logins older than this are dropped
DEFAULT_STATE_TTL_SECONDS = 600


class FlowStatus(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGED = "exchanged"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderConfig:
    """Where and how to talk to the authorization server."""
    client_id: str
    client_secret: str
    redirect_uri: str
    authorize_url: str = GOOGLE_AUTH_URL
    token_url: str = GOOGLE_TOKEN_URL
    userinfo_url: str = GOOGLE_USERINFO_URL
    scopes: Tuple[str, ...] = GOOGLE_SCOPES
    timeout_seconds: float = 10.0
    extra_authorize_params: Tuple[Tuple[str, str], ...] = (("access_type", "offline"),)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


@dataclass
class DelegatedLoginState:
    """
    One pending login attempt.

    Attributes:
        state: Anti-CSRF nonce sent to the provider
        redirect_target: Local path to land on after login
        created_at: Unix timestamp of start()
        expires_at: Unix timestamp after which the callback is refused
        status: Where this attempt is in the flow
    """
    state: str
    redirect_target: str
    created_at: float
    expires_at: float
    status: FlowStatus = FlowStatus.NOT_STARTED

    def is_expired_at(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class CompletedLogin:
    """Result of a successful callback."""
    identity: Identity
    session: Session
    redirect_target: str


class LoginStateStore:
    """
    Pending logins keyed by state nonce.

    `claim` removes the entry atomically, so a nonce can be used once.
    Expired entries are purged on every write and claim.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: Dict[str, DelegatedLoginState] = {}
        self._lock = threading.Lock()

    def open(self, redirect_target: str) -> DelegatedLoginState:
        now = self._clock()
        login_state = DelegatedLoginState(
            state=secrets.token_urlsafe(32),
            redirect_target=redirect_target,
            created_at=now,
            expires_at=now + self.ttl_seconds,
            status=FlowStatus.AWAITING_CALLBACK,
        )
        with self._lock:
            self._purge_unsafe(now)
            self._pending[login_state.state] = login_state
        return login_state

    def claim(self, state: Optional[str]) -> Optional[DelegatedLoginState]:
        """Remove and return the live entry for `state`, or None."""
        if not state:
            return None
        now = self._clock()
        with self._lock:
            self._purge_unsafe(now)
            return self._pending.pop(state, None)

    def _purge_unsafe(self, now: float) -> None:
        expired = [key for key, entry in self._pending.items() if entry.is_expired_at(now)]
        for key in expired:
            del self._pending[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired login states")

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class DelegatedLoginController:
    """
    Third-party login state machine.

    Args:
        provider: Authorization server configuration
        session_store: Where resolved identities become sessions
        state_store: Pending-login registry (one is created if omitted)
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        provider: ProviderConfig,
        session_store: SessionStore,
        state_store: Optional[LoginStateStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.session_store = session_store
        self.state_store = state_store or LoginStateStore()
        self._transport = transport

    def start(self, redirect_target: str = "/") -> str:
        """
        Begin a login attempt.

        Returns:
            Authorization URL to redirect the browser to
        """
        authorization_url, _ = self.begin(redirect_target)
        return authorization_url

    def begin(self, redirect_target: str = "/") -> Tuple[str, str]:
        """Like start(), but also returns the state nonce so the caller can bind it to the browser."""
        login_state = self.state_store.open(redirect_target)
        params = {
            "client_id": self.provider.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.provider.scopes),
            "state": login_state.state,
        }
        params.update(dict(self.provider.extra_authorize_params))

        logger.info(f"Login started (state={login_state.state[:8]}..., target={redirect_target})")
        return f"{self.provider.authorize_url}?{urlencode(params)}", login_state.state

    async def handle_callback(self, code: Optional[str], state: Optional[str]) -> CompletedLogin:
        """
        Complete a login attempt.

        Raises:
            MissingCredential: No authorization code
            CsrfMismatch: State matches no live, unexpired attempt
            UpstreamFailure: Exchange or profile fetch failed
        """
        if not code:
            self.abandon(state)
            raise MissingCredential("callback without authorization code", public_message="Missing code")

        login_state = self.state_store.claim(state)
        if login_state is None:
            raise CsrfMismatch(f"no live login for state {(state or '')[:8]}...")

        try:
            async with httpx.AsyncClient(
                timeout=self.provider.timeout_seconds,
                transport=self._transport,
            ) as client:
                access_token = await self._exchange_code(client, code)
                login_state.status = FlowStatus.EXCHANGED
                identity = await self._fetch_identity(client, access_token)
        except UpstreamFailure as e:
            login_state.status = FlowStatus.FAILED
            logger.error(
                f"Login failed (state={login_state.state[:8]}..., retryable={e.retryable}): {e.reason}"
            )
            raise
        except asyncio.CancelledError:
            login_state.status = FlowStatus.FAILED
            logger.warning(f"Login abandoned mid-exchange (state={login_state.state[:8]}...)")
            raise

        session = self.session_store.create(SessionValues(authenticated=True, identity=identity))
        identity = identity.with_expiry(session.expires_at)
        login_state.status = FlowStatus.RESOLVED

        logger.info(f"Login resolved for {identity.email or identity.subject}")
        return CompletedLogin(
            identity=identity,
            session=session,
            redirect_target=login_state.redirect_target,
        )

    def abandon(self, state: Optional[str]) -> bool:
        """Fail the pending attempt for `state`, if any. Returns True if one was dropped."""
        login_state = self.state_store.claim(state)
        if login_state is None:
            return False
        login_state.status = FlowStatus.FAILED
        logger.info(f"Login abandoned (state={login_state.state[:8]}...)")
        return True

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        payload = {
            "code": code,
            "client_id": self.provider.client_id,
            "client_secret": self.provider.client_secret,
            "redirect_uri": self.provider.redirect_uri,
            "grant_type": "authorization_code",
        }
        data = await self._call(
            "token exchange",
            client.post(
                self.provider.token_url,
                data=payload,
                headers={"Accept": "application/json"},
            ),
        )
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise UpstreamFailure("token exchange: no access_token in response", retryable=False)
        return access_token

    async def _fetch_identity(self, client: httpx.AsyncClient, access_token: str) -> Identity:
        data = await self._call(
            "profile fetch",
            client.get(
                self.provider.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            ),
        )
        for field_name in ("email", "name"):
            value = data.get(field_name)
            if value is not None and not isinstance(value, str):
                raise UpstreamFailure(f"profile fetch: '{field_name}' is not a string", retryable=False)

        provider_id = data.get("id")
        if provider_id is None:
            provider_id = data.get("sub")
        # bool is an int subclass; a flag is never an account id
        if provider_id is not None and (isinstance(provider_id, bool) or not isinstance(provider_id, (str, int))):
            raise UpstreamFailure("profile fetch: account id is not a string or integer", retryable=False)

        email = data.get("email") or None
        subject = str(provider_id) if provider_id not in (None, "") else email
        if not subject:
            raise UpstreamFailure("profile fetch: no subject or email in profile", retryable=False)
        return Identity(
            subject=subject,
            issued_by=ISSUER_DELEGATED,
            display_name=data.get("name") or None,
            email=email,
        )

    @staticmethod
    async def _call(step: str, request) -> dict:
        """Await one provider call and map failures to UpstreamFailure."""
        try:
            response = await request
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamFailure(f"{step}: timed out ({type(e).__name__})", retryable=True) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise UpstreamFailure(
                f"{step}: provider returned {status_code}",
                retryable=status_code >= 500,
            ) from e
        except httpx.TransportError as e:
            raise UpstreamFailure(f"{step}: connection failed ({type(e).__name__})", retryable=True) from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFailure(f"{step}: response is not JSON", retryable=False) from e
        if not isinstance(data, dict):
            raise UpstreamFailure(f"{step}: unexpected response shape", retryable=False)
        return data
