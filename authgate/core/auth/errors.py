"""
Authentication failure taxonomy.

Every failure carries two messages: `reason` is the internal diagnostic that
goes to the server log, `public_message` is the only text a client may see.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all authentication failures."""

    public_message = "Unauthorized"

    def __init__(self, reason: str = "", public_message: Optional[str] = None):
        super().__init__(reason or self.public_message)
        self.reason = reason or self.public_message
        if public_message is not None:
            self.public_message = public_message

    @property
    def kind(self) -> str:
        return type(self).__name__


class MissingCredential(AuthError):
    """No header, cookie or token was presented."""


class MalformedCredential(AuthError):
    """A credential was presented but could not be decoded."""


class InvalidCredential(AuthError):
    """The credential decoded but its signature or lookup failed."""


class Expired(AuthError):
    """The credential was valid once and is past its expiry."""


class CsrfMismatch(AuthError):
    """A login callback carried a state nonce that matches no live flow."""


class UpstreamFailure(AuthError):
    """
    The third-party provider could not complete the exchange.

    `retryable` separates transient network trouble (timeouts, connection
    errors, 5xx) from responses that will never succeed (malformed JSON,
    rejected codes).
    """

    public_message = "Authentication failed"

    def __init__(self, reason: str = "", retryable: bool = False, public_message: Optional[str] = None):
        super().__init__(reason, public_message)
        self.retryable = retryable


class InternalFailure(AuthError):
    """Signing or storage fault on our side."""

    public_message = "An internal error occurred"
