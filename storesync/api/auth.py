"""
Operator authentication - HS256 JWT carrying an operator_id claim.

Accepted from `Authorization: Bearer <token>` or the storesync_operator
cookie. Tokens are issued out of band (see create_operator_token).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storesync.config import get_settings

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

OPERATOR_COOKIE = "storesync_operator"


def _jwt_secret() -> str:
    settings = get_settings()
    return settings.operator_jwt_secret or settings.app_secret_key


def create_operator_token(operator_id: str, expiry_hours: Optional[int] = None) -> str:
    settings = get_settings()
    hours = expiry_hours if expiry_hours is not None else settings.operator_jwt_expiry_hours
    return pyjwt.encode(
        {
            "operator_id": str(operator_id),
            "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
        },
        _jwt_secret(),
        algorithm="HS256",
    )


async def get_current_operator(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Dependency returning the authenticated operator id."""
    token = credentials.credentials if credentials else request.cookies.get(OPERATOR_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = pyjwt.decode(token, _jwt_secret(), algorithms=["HS256"])
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    operator_id = payload.get("operator_id")
    if not operator_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return str(operator_id)
