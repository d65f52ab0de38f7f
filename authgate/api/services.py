"""
Service wiring

Turns Settings into the explicit set of authentication components each
app is built with. Routes reach them through `get_services`; nothing reads
a secret from a module global at request time.
"""
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from fastapi import Request

from authgate.core.auth.delegated import DelegatedLoginController, LoginStateStore, ProviderConfig
from authgate.core.auth.sessions import SessionStore
from authgate.core.auth.tokens import TokenCodec
from authgate.core.auth.verifiers import (
    ApiKeyVerifier,
    StaticPairVerifier,
    load_api_keys_from_yaml,
    parse_api_key_csv,
)
from authgate.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """Everything the gateway and routes need, constructed once per app."""
    session_store: SessionStore
    token_codec: TokenCodec
    password_verifier: StaticPairVerifier
    api_key_verifier: ApiKeyVerifier
    login_controller: Optional[DelegatedLoginController] = None


def _process_secret(configured: Optional[str], name: str) -> str:
    if configured:
        return configured
    logger.warning(f"{name} not set - using a random per-process secret (credentials will not survive a restart)")
    return secrets.token_urlsafe(32)


def build_services(
    settings: Settings,
    oauth_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthServices:
    """
    Build the authentication components from settings.

    Args:
        settings: Application settings
        oauth_transport: Optional httpx transport for the delegated-login provider

    Returns:
        AuthServices
    """
    session_store = SessionStore(
        secret=_process_secret(settings.session_secret, "SESSION_SECRET").encode("utf-8"),
        cookie_name=settings.session_cookie_name,
        ttl_seconds=settings.session_ttl_seconds,
        cookie_path=settings.session_cookie_path,
        cookie_secure=settings.session_cookie_secure,
    )

    token_codec = TokenCodec(
        secret=_process_secret(settings.jwt_secret, "JWT_SECRET"),
        default_ttl_seconds=settings.jwt_ttl_seconds,
        issuer=settings.jwt_issuer,
    )

    api_keys = list(parse_api_key_csv(settings.valid_api_keys))
    if settings.api_keys_file:
        api_keys.extend(load_api_keys_from_yaml(Path(settings.api_keys_file)))
    if not api_keys:
        logger.warning("No API keys configured - every X-API-Key request will be rejected")

    provider = ProviderConfig(
        client_id=settings.google_client_id or "",
        client_secret=settings.google_client_secret or "",
        redirect_uri=settings.google_redirect_url,
        authorize_url=settings.oauth_authorize_url,
        token_url=settings.oauth_token_url,
        userinfo_url=settings.oauth_userinfo_url,
        scopes=tuple(settings.oauth_scopes_list),
        timeout_seconds=settings.oauth_http_timeout_seconds,
    )
    login_controller = None
    if provider.is_configured:
        login_controller = DelegatedLoginController(
            provider=provider,
            session_store=session_store,
            state_store=LoginStateStore(ttl_seconds=settings.oauth_state_ttl_seconds),
            transport=oauth_transport,
        )
    else:
        logger.info("Delegated login not configured (GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET missing)")

    return AuthServices(
        session_store=session_store,
        token_codec=token_codec,
        password_verifier=StaticPairVerifier(settings.login_username, settings.login_password),
        api_key_verifier=ApiKeyVerifier(api_keys),
        login_controller=login_controller,
    )


def get_services(request: Request) -> AuthServices:
    """FastAPI dependency returning the app's services."""
    return request.app.state.services
