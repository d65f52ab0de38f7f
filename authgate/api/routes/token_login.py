"""
Bearer-token server routes

POST /login trades a JSON credential pair for a short-lived HS256 token;
/dashboard requires `Authorization: Bearer <token>`.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from authgate.api.gateway import Authenticated
from authgate.api.services import AuthServices, get_services
from authgate.core.auth.errors import AuthError, InternalFailure
from authgate.core.auth.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["token-login"])


class Credentials(BaseModel):
    username: str = ""
    password: str = ""


def _invalid_credentials() -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": "Invalid credentials"})


@router.post("/login")
async def login(request: Request, services: AuthServices = Depends(get_services)):
    """
    Issue a token for the configured credential pair.

    The body is parsed by hand so an undecodable body is just another
    failed login (401) rather than a validation error.
    """
    try:
        creds = Credentials.model_validate(json.loads(await request.body()))
    except (ValueError, ValidationError) as e:
        logger.info(f"Token login rejected: unreadable body ({type(e).__name__})")
        return _invalid_credentials()

    try:
        subject = services.password_verifier.verify((creds.username, creds.password))
    except AuthError as e:
        logger.info(f"Token login rejected ({e.kind}: {e.reason})")
        return _invalid_credentials()

    try:
        token = services.token_codec.issue(subject)
    except InternalFailure as e:
        logger.error(f"Token signing failed: {e.reason}")
        return JSONResponse(status_code=500, content={"detail": "Could not generate token"})

    logger.info(f"Token issued for {subject}")
    return {"token": token}


@router.get("/dashboard")
async def dashboard(identity: Identity = Depends(Authenticated("bearer"))):
    return {"message": "Welcome to your dashboard!"}
