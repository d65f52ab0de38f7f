"""
Signed Session Store

Sessions travel to the browser as a single cookie holding the serialized
session payload plus an HMAC-SHA256 signature over it:

    {base64url(payload_json)}.{base64url(hmac_sha256(key, payload_segment))}

The store also keeps a server-side registry of live sessions
(session_id -> current signature, expiry). A cookie is trusted only if its
signature verifies against the process signing key AND matches the
registered signature, so invalidated or superseded cookies stop working
even though they are still correctly signed.

Thread-safe for concurrent access.
"""

import base64
import binascii
import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from authgate.core.auth.errors import Expired, InternalFailure
from authgate.core.auth.identity import SessionValues

logger = logging.getLogger(__name__)


# Cleanup interval for the live-session registry
CLEANUP_INTERVAL_SECONDS = 60


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    """
    Strict base64url decode.

    The decoder silently drops stray characters and unused trailing bits,
    so the result is re-encoded and compared: two different cookie strings
    must never decode to the same bytes.
    """
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 segment: {e}") from e
    if _b64encode(raw) != segment:
        raise ValueError("non-canonical base64 segment")
    return raw


@dataclass
class Session:
    """
    A server-recognized session.

    Attributes:
        session_id: Opaque, unguessable identifier
        values: The session record (authenticated flag, optional identity)
        created_at: Unix timestamp of creation
        expires_at: Unix timestamp of expiration
        signature: Base64url HMAC over the last serialized payload
    """
    session_id: str
    values: SessionValues
    created_at: float
    expires_at: float
    signature: str = ""

    def is_expired_at(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


@dataclass(frozen=True)
class SessionCookie:
    """
    A Set-Cookie directive for a session.

    `max_age <= 0` means "delete this cookie now".
    """
    name: str
    value: str
    max_age: int
    path: str = "/"
    secure: bool = False
    http_only: bool = True
    same_site: str = "lax"

    @property
    def is_deletion(self) -> bool:
        return self.max_age <= 0

    def apply(self, response) -> None:
        """Write this directive onto a Starlette response."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            expires=0 if self.is_deletion else None,
            path=self.path,
            secure=self.secure,
            httponly=self.http_only,
            samesite=self.same_site,
        )


class SessionStore:
    """
    Creates, verifies, re-signs and invalidates signed sessions.

    The signing key is fixed for the lifetime of the store.
    """

    def __init__(
        self,
        secret: bytes,
        cookie_name: str = "session",
        ttl_seconds: int = 86400,
        cookie_path: str = "/",
        cookie_secure: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise InternalFailure("session signing key unavailable")
        self._key = bytes(secret)
        self.cookie_name = cookie_name
        self.ttl_seconds = ttl_seconds
        self.cookie_path = cookie_path
        self.cookie_secure = cookie_secure
        self._clock = clock

        # session_id -> (current signature, expires_at)
        self._live: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.RLock()
        self._last_cleanup = 0.0

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def _sign(self, data: bytes) -> bytes:
        mac = hmac.HMAC(self._key, hashes.SHA256())
        mac.update(data)
        return mac.finalize()

    def _verify(self, data: bytes, signature: bytes) -> None:
        mac = hmac.HMAC(self._key, hashes.SHA256())
        mac.update(data)
        mac.verify(signature)

    def _serialize(self, session: Session) -> Tuple[str, str]:
        """Return (cookie value, signature segment) for a session."""
        payload = {
            "sid": session.session_id,
            "values": session.values.to_dict(),
            "created_at": session.created_at,
            "expires_at": session.expires_at,
        }
        try:
            payload_json = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise InternalFailure(f"session payload not serializable: {e}") from e

        payload_segment = _b64encode(payload_json.encode("utf-8"))
        signature_segment = _b64encode(self._sign(payload_segment.encode("ascii")))
        return f"{payload_segment}.{signature_segment}", signature_segment

    def _cookie(self, value: str, max_age: int) -> SessionCookie:
        return SessionCookie(
            name=self.cookie_name,
            value=value,
            max_age=max_age,
            path=self.cookie_path,
            secure=self.cookie_secure,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, values: Optional[SessionValues] = None, ttl_seconds: Optional[int] = None) -> Session:
        """
        Create and register a fresh session.

        Args:
            values: Session record (defaults to unauthenticated)
            ttl_seconds: Lifetime override

        Returns:
            Signed Session; pass it to `save` to get the cookie to send
        """
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        session = Session(
            session_id=secrets.token_urlsafe(32),
            values=values or SessionValues(),
            created_at=now,
            expires_at=now + ttl,
        )
        _, session.signature = self._serialize(session)

        with self._lock:
            self._maybe_cleanup(now)
            self._live[session.session_id] = (session.signature, session.expires_at)

        logger.info(f"Session created: {session.session_id[:8]}... (ttl={ttl}s)")
        return session

    def load(self, cookie_value: Optional[str]) -> Optional[Session]:
        """
        Verify a cookie value and return its session.

        Returns None on any failure: missing, undecodable, tampered,
        expired, invalidated or superseded.
        """
        if not cookie_value:
            return None

        payload_segment, sep, signature_segment = cookie_value.partition(".")
        if not sep or not payload_segment or not signature_segment:
            logger.debug("Session cookie rejected: wrong shape")
            return None

        try:
            signature = _b64decode(signature_segment)
            payload_bytes = _b64decode(payload_segment)
        except ValueError as e:
            logger.debug(f"Session cookie rejected: {e}")
            return None

        try:
            self._verify(payload_segment.encode("ascii"), signature)
        except (InvalidSignature, UnicodeEncodeError):
            logger.warning("Session cookie rejected: signature mismatch")
            return None

        try:
            payload = json.loads(payload_bytes)
            session = Session(
                session_id=str(payload["sid"]),
                values=SessionValues.from_dict(payload["values"]),
                created_at=float(payload["created_at"]),
                expires_at=float(payload["expires_at"]),
                signature=signature_segment,
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Session cookie rejected: signed payload unreadable ({e})")
            return None

        now = self._clock()
        with self._lock:
            registered = self._live.get(session.session_id)
            if registered is None:
                logger.info(f"Session not live: {session.session_id[:8]}...")
                return None
            registered_signature, registered_expiry = registered
            if now >= registered_expiry or session.is_expired_at(now):
                del self._live[session.session_id]
                logger.info(f"Session expired: {session.session_id[:8]}...")
                return None
            if not secrets.compare_digest(registered_signature, signature_segment):
                logger.info(f"Session cookie superseded: {session.session_id[:8]}...")
                return None

        return session

    def save(self, session: Session) -> SessionCookie:
        """
        Re-sign a (possibly mutated) session and return its cookie.

        Raises:
            Expired: If the session was invalidated or has expired
        """
        now = self._clock()
        value, signature = self._serialize(session)

        with self._lock:
            if session.session_id not in self._live:
                raise Expired(f"session {session.session_id[:8]}... is no longer live")
            if session.is_expired_at(now):
                del self._live[session.session_id]
                raise Expired(f"session {session.session_id[:8]}... has expired")
            self._live[session.session_id] = (signature, session.expires_at)

        session.signature = signature
        return self._cookie(value, int(session.remaining_seconds(now)))

    def invalidate(self, session: Optional[Session]) -> SessionCookie:
        """
        End a session and return a cookie directive that deletes it.

        Clears the session's values in place; safe to call with None.
        """
        if session is not None:
            with self._lock:
                removed = self._live.pop(session.session_id, None)
            session.values = SessionValues()
            session.expires_at = min(session.expires_at, self._clock())
            session.signature = ""
            if removed:
                logger.info(f"Session invalidated: {session.session_id[:8]}...")

        return self._cookie("", 0)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def _maybe_cleanup(self, now: float) -> None:
        """Drop expired registry entries if the interval has passed. Caller holds the lock."""
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return

        self._last_cleanup = now
        expired = [sid for sid, (_, expires_at) in self._live.items() if now >= expires_at]
        for sid in expired:
            del self._live[sid]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")

    def count(self) -> int:
        """Number of registered sessions (including not-yet-swept expired ones)."""
        with self._lock:
            return len(self._live)
