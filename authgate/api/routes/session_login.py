"""
Cookie-session server routes

Form login against a single configured credential pair. A successful login
issues a signed session cookie; /dashboard and /profile require it and
send everyone else to /login.
"""
import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from authgate.api.gateway import Authenticated
from authgate.api.services import AuthServices, get_services
from authgate.core.auth.errors import AuthError
from authgate.core.auth.identity import ISSUER_SESSION, Identity, SessionValues

logger = logging.getLogger(__name__)

router = APIRouter(tags=["session-login"])


def _page(title: str, body: str) -> HTMLResponse:
    return HTMLResponse(
        f"<!DOCTYPE html><html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1>{body}</body></html>"
    )


LOGIN_FORM = """
<form method="post" action="/login">
  <label>Username <input name="username" autocomplete="username"></label>
  <label>Password <input name="password" type="password" autocomplete="current-password"></label>
  <button type="submit">Log in</button>
</form>
"""


# ============================================================================
# Public pages
# ============================================================================

@router.get("/", response_class=HTMLResponse)
async def home():
    return _page("Home", "<p><a href='/login'>Log in</a> | <a href='/about'>About</a></p>")


@router.get("/about", response_class=HTMLResponse)
async def about():
    return _page("About", "<p>Session cookie authentication demo.</p>")


@router.get("/welcome", response_class=HTMLResponse)
async def welcome():
    return _page("Welcome", "<p>Welcome!</p>")


# ============================================================================
# Login & Logout
# ============================================================================

@router.get("/login", response_class=HTMLResponse)
async def login_page():
    return _page("Login", LOGIN_FORM)


@router.post("/login")
async def login(
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    services: AuthServices = Depends(get_services),
):
    """
    Check the submitted pair and start a session.

    Success redirects (302) to /dashboard with the session cookie set.
    """
    try:
        subject = services.password_verifier.verify((username, password))
    except AuthError as e:
        logger.info(f"Form login rejected ({e.kind}: {e.reason})")
        return HTMLResponse("Invalid login", status_code=401)

    store = services.session_store
    session = store.create(SessionValues(
        authenticated=True,
        identity=Identity(subject=subject, issued_by=ISSUER_SESSION),
    ))

    response = RedirectResponse(url="/dashboard", status_code=302)
    store.save(session).apply(response)
    logger.info(f"Form login succeeded for {subject}")
    return response


@router.get("/logout")
async def logout(request: Request, services: AuthServices = Depends(get_services)):
    """End the current session, if any, and go home."""
    store = services.session_store
    session = store.load(request.cookies.get(store.cookie_name))

    response = RedirectResponse(url="/", status_code=302)
    store.invalidate(session).apply(response)
    return response


# ============================================================================
# Protected pages
# ============================================================================

@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(identity: Identity = Depends(Authenticated("session"))):
    return _page("Dashboard", f"<p>Signed in as {html.escape(identity.subject)}.</p><p><a href='/logout'>Log out</a></p>")


@router.get("/profile", response_class=HTMLResponse)
async def profile(identity: Identity = Depends(Authenticated("session"))):
    return _page("Profile", f"<p>User: {html.escape(identity.subject)}</p>")
