from __future__ import annotations

import logging
from jose import jwt
from jose.exceptions import JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Any, Dict, Optional
from qc_checkin.core.config import settings

logger = logging.getLogger(__name__)
bearer = HTTPBearer(auto_error=False)

DEV_USER_ID = "123e4567-e89b-12d3-a456-426614174000"
DEV_COUPLE_ID = "323e4567-e89b-12d3-a456-426614174002"

def _dev_user() -> Dict[str, Any]:
    return {"user_id": DEV_USER_ID, "couple_id": DEV_COUPLE_ID, "role": "authenticated"}

def _couple_from_claims(payload: Dict[str, Any]) -> Optional[str]:
    if payload.get("couple_id"):
        return str(payload["couple_id"])
    meta = payload.get("app_metadata") or {}
    return str(meta["couple_id"]) if meta.get("couple_id") else None

def verify_supabase_token(token: str) -> Dict[str, Any]:
    """
    Verify a Supabase JWT and pull out the user and the couple they belong to.
    """
    try:
        if settings.SUPABASE_JWT_SECRET:
            payload = jwt.decode(
                token,
                settings.SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience=settings.JWT_AUDIENCE,
                options={"verify_signature": True, "verify_iss": False},
            )
        else:
            # Fallback: decode without verification (development only)
            logger.warning("No JWT secret configured, using unverified token decode")
            payload = jwt.get_unverified_claims(token)

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Token missing user ID")

        return {
            "user_id": str(user_id),
            "couple_id": _couple_from_claims(payload),
            "role": payload.get("role", "authenticated"),
            "email": payload.get("email"),
        }

    except ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token has expired") from exc
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {str(e)}") from e

async def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Dict[str, Any]:
    """
    Resolve the current user (and couple) from the bearer token; dev mode falls back to a test couple.
    """
    if settings.APP_ENV == "dev":
        if not creds or creds.credentials in ["dev-bypass", "test", "dev"]:
            logger.info("Dev bypass, using test user")
            return _dev_user()

    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    try:
        return verify_supabase_token(creds.credentials)
    except HTTPException:
        if settings.APP_ENV == "dev":
            logger.info("Token verification failed in dev mode, using test user")
            return _dev_user()
        raise
