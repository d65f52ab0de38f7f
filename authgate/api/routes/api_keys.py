"""
API-key server routes
"""
from fastapi import APIRouter, Depends

from authgate.api.gateway import Authenticated
from authgate.core.auth.identity import Identity

router = APIRouter(tags=["api-key"])


@router.get("/public")
async def public():
    """No credential needed."""
    return {"message": "Welcome to the public API endpoint!"}


@router.get("/data")
async def protected_data(identity: Identity = Depends(Authenticated("api_key"))):
    """Requires an active `X-API-Key`."""
    return {"message": "You have access to protected data!", "client": identity.subject}
