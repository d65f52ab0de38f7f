"""
FastAPI application for the authgate servers

One process serves one of four flavours, picked by the SERVER setting:

    session    form login + signed session cookie
    token      JSON login + HS256 bearer tokens
    api_key    static X-API-Key lookup
    delegated  Google OAuth2 login + signed session cookie

Run with `python -m authgate.api.main` or `uvicorn authgate.api.main:app`.
"""
import logging
import re
import uuid
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authgate.api.gateway import AuthRejected, auth_rejected_handler, build_gateway
from authgate.api.routes import SERVER_ROUTERS
from authgate.api.services import AuthServices, build_services
from authgate.core.auth.errors import InternalFailure
from authgate.core.config import Settings, get_settings

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("authgate.errors")


def configure_logging(settings: Settings) -> None:
    """Root logging from settings; quiets the HTTP client libraries."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


def _sanitize_error_message(message: str) -> str:
    """
    Scrub potential secrets from exception messages before logging.

    Covers connection strings with passwords, `*_SECRET=` style pairs
    and anything shaped like a JWT.
    """
    sanitized = re.sub(
        r'([a-z][a-z0-9+.-]*)://[^:/\s]+:[^@\s]+@',
        r'\1://[USER]:[REDACTED]@',
        message,
        flags=re.IGNORECASE
    )

    sensitive_patterns = [
        (r'(SESSION_SECRET|JWT_SECRET|GOOGLE_CLIENT_SECRET|VALID_API_KEYS)[=:\s]+[^\s,;]+', r'\1=[REDACTED]'),
        (r'(password|passwd|secret|token|key)["\']?\s*[=:]\s*["\']?[^"\'\s,;]+', r'\1=[REDACTED]'),
    ]
    for pattern, replacement in sensitive_patterns:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    sanitized = re.sub(r'eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+', '[REDACTED_JWT]', sanitized)

    return sanitized


async def internal_error_handler(request: Request, exc: Exception):
    """
    Log the full (scrubbed) error with an id; the client gets only the id.

    Unhandled exceptions reach this handler outside the middleware stack,
    so the security headers are set here too.
    """
    error_id = str(uuid.uuid4())

    detail = exc.reason if isinstance(exc, InternalFailure) else str(exc)
    error_logger.error(
        f"Error {error_id}: {type(exc).__name__}: {_sanitize_error_message(detail)}",
        exc_info=exc,
        extra={
            "error_id": error_id,
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else None
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error_id": error_id,
        },
        headers=SECURITY_HEADERS,
    )


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AuthServices] = None,
    server: Optional[str] = None,
    oauth_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build one server.

    Args:
        settings: Settings (defaults to get_settings())
        services: Pre-built auth components (built from settings if omitted)
        server: Overrides settings.server
        oauth_transport: httpx transport for the delegated-login provider

    Returns:
        FastAPI app
    """
    settings = settings or get_settings()
    server = server or settings.server
    if server not in SERVER_ROUTERS:
        raise ValueError(f"Unknown server '{server}'. Expected one of: {', '.join(SERVER_ROUTERS)}")

    services = services or build_services(settings, oauth_transport=oauth_transport)

    app = FastAPI(
        title=f"authgate ({server})",
        description="Request-authentication gateway",
        version="1.0.0",
    )
    app.state.services = services
    app.state.gateway = build_gateway(services)
    app.state.server = server

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_exception_handler(AuthRejected, auth_rejected_handler)
    app.add_exception_handler(InternalFailure, internal_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(SERVER_ROUTERS[server])

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "healthy", "server": server}

    logger.info(f"authgate app built (server={server}, schemes={', '.join(app.state.gateway.schemes)})")
    return app


settings = get_settings()
configure_logging(settings)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
