"""
Delegated-login server routes

Google OAuth2 (authorization-code flow) backed by a local session cookie.

Flow:
1. GET /login -> 307 to the provider with a fresh state nonce, which is
   also set as an HttpOnly oauth_state cookie on this browser
2. Provider -> GET /auth/callback?code=...&state=...
   (the provider-registered /auth/google/callback is served too)
3. State must equal the oauth_state cookie, so a callback URL minted
   for one browser cannot log in another
4. Exchange + profile fetch, session cookie set, 303 to the target page
"""
import html
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response

from authgate.api.gateway import Authenticated
from authgate.api.services import AuthServices, get_services
from authgate.core.auth.delegated import DelegatedLoginController
from authgate.core.auth.errors import CsrfMismatch, InternalFailure, MissingCredential, UpstreamFailure
from authgate.core.auth.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["delegated-login"])

# Seconds a client should wait before re-initiating after a transient provider failure
RETRY_AFTER_SECONDS = 5

# Browser-side copy of the pending state nonce
STATE_COOKIE = "oauth_state"


def _controller(services: AuthServices) -> DelegatedLoginController:
    if services.login_controller is None:
        raise InternalFailure("delegated login requested but GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are not set")
    return services.login_controller


def _safe_redirect_target(target: Optional[str]) -> str:
    """Only same-site absolute paths; anything else lands on the home page."""
    if not target or not target.startswith("/") or target.startswith("//") or "\\" in target:
        return "/"
    return target


def _state_matches_browser(request: Request, state: Optional[str]) -> bool:
    stored_state = request.cookies.get(STATE_COOKIE)
    if not state or not stored_state:
        return False
    return secrets.compare_digest(stored_state.encode("utf-8"), state.encode("utf-8"))


def _clear_state_cookie(response: Response) -> Response:
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


@router.get("/", response_class=HTMLResponse)
async def home(identity: Optional[Identity] = Depends(Authenticated("delegated", required=False))):
    if identity is None:
        return "<a href='/login'>Login with Google</a>"
    return (
        f"Logged in as: {html.escape(identity.display_name or identity.subject)} "
        f"({html.escape(identity.email or '')})<br><a href='/logout'>Logout</a>"
    )


@router.get("/login")
async def login(
    target: Optional[str] = Query(None, alias="next"),
    services: AuthServices = Depends(get_services),
):
    """Send the browser to the provider's consent page."""
    controller = _controller(services)
    authorization_url, state = controller.begin(_safe_redirect_target(target))

    response = RedirectResponse(url=authorization_url, status_code=307)
    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        max_age=controller.state_store.ttl_seconds,
        path="/",
        httponly=True,
        secure=services.session_store.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/auth/callback")
@router.get("/auth/google/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    services: AuthServices = Depends(get_services),
):
    """
    Complete the login started by /login.

    State not issued to this browser, or unknown/expired/reused -> 401,
    missing code -> 400, provider-reported error -> 400,
    provider unreachable or malformed -> 500.
    The oauth_state cookie is cleared on every outcome.
    """
    controller = _controller(services)

    if not _state_matches_browser(request, state):
        logger.warning(f"Callback rejected: state {(state or '')[:8]}... was not issued to this browser")
        return _clear_state_cookie(PlainTextResponse("Unauthorized", status_code=401))

    if error:
        controller.abandon(state)
        logger.warning(f"Provider returned error on callback: {error[:64]}")
        return _clear_state_cookie(PlainTextResponse("Login was not completed", status_code=400))

    try:
        completed = await controller.handle_callback(code, state)
    except MissingCredential as e:
        return _clear_state_cookie(PlainTextResponse(e.public_message, status_code=400))
    except CsrfMismatch as e:
        logger.warning(f"Callback rejected: {e.reason}")
        return _clear_state_cookie(PlainTextResponse("Unauthorized", status_code=401))
    except UpstreamFailure as e:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if e.retryable else None
        return _clear_state_cookie(PlainTextResponse(e.public_message, status_code=500, headers=headers))

    store = services.session_store
    previous = store.load(request.cookies.get(store.cookie_name))
    if previous is not None:
        store.invalidate(previous)

    response = RedirectResponse(url=completed.redirect_target, status_code=303)
    store.save(completed.session).apply(response)
    return _clear_state_cookie(response)


@router.get("/logout")
async def logout(request: Request, services: AuthServices = Depends(get_services)):
    store = services.session_store
    session = store.load(request.cookies.get(store.cookie_name))

    response = RedirectResponse(url="/", status_code=303)
    store.invalidate(session).apply(response)
    return response


@router.get("/me")
async def me(identity: Identity = Depends(Authenticated("delegated"))):
    """The signed-in identity as JSON."""
    return identity.to_dict()
