"""
Authentication utilities

Bearer tokens are Supabase access tokens. Requests without a token run as
guests on the orchestration endpoint; history and profile endpoints require
a signed-in user.
"""
import logging
import os
from typing import Optional
from fastapi import HTTPException, Header
from jose import JWTError, jwt
from dotenv import load_dotenv
from .supabase_client import get_supabase_client

load_dotenv()
load_dotenv('../.env')

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def _jwt_secret() -> Optional[str]:
    # Supabase signs access tokens with the project's JWT secret
    return os.getenv("SUPABASE_JWT_SECRET")


def _bearer_token(authorization: str) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")
    return authorization.replace("Bearer ", "", 1)


def _user_from_claims(token: str) -> dict:
    """Decode the token locally when the JWT secret is configured."""
    try:
        claims = jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM], audience="authenticated")
    except JWTError as e:
        logger.warning(f"⚠️ [Auth] Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return {"id": user_id, "email": claims.get("email")}


def _user_from_supabase(token: str) -> dict:
    supabase = get_supabase_client()
    user_response = supabase.auth.get_user(token)

    if not user_response or not user_response.user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = user_response.user
    return {"id": user.id, "email": user.email}


async def get_current_user(authorization: Optional[str] = Header(None)):
    """
    Validate the bearer token and return user info

    With SUPABASE_JWT_SECRET set the token is checked locally and Supabase
    is never contacted, so local storage works without Supabase credentials.
    Role and name are read from the persistence adapter, not from here.

    Returns:
        dict: id, email

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    token = _bearer_token(authorization)

    try:
        if _jwt_secret():
            return _user_from_claims(token)
        return _user_from_supabase(token)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ [Auth] Could not validate credentials: {e}")
        raise HTTPException(status_code=401, detail="Could not validate credentials")


async def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[dict]:
    """Like get_current_user, but a missing header means guest (None)."""
    if not authorization:
        return None
    return await get_current_user(authorization)
