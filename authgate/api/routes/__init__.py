"""
API Routes

One router per server flavour; `create_app` mounts exactly one of them.
"""
from authgate.api.routes import api_keys, delegated_login, session_login, token_login

SERVER_ROUTERS = {
    "session": session_login.router,
    "token": token_login.router,
    "api_key": api_keys.router,
    "delegated": delegated_login.router,
}

__all__ = ["api_keys", "delegated_login", "session_login", "token_login", "SERVER_ROUTERS"]
