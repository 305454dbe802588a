"""Bearer token authentication for members issued by the auth service."""
from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header

from src.core.config import settings
from src.core.exceptions import AuthError, PermissionDeniedError


def require_auth(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    """Validate a bearer token and return the member id with decoded claims."""

    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
        )
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    if "member_id" not in payload:
        raise AuthError("Member missing in token")

    try:
        member_id = int(payload["member_id"])
    except (TypeError, ValueError) as exc:
        raise AuthError("Invalid member identifier") from exc

    return {"member_id": member_id, "claims": payload}


def require_admin(auth: Dict[str, Any] = Depends(require_auth)) -> Dict[str, Any]:
    if auth["claims"].get("role") != "admin":
        raise PermissionDeniedError("Admin privileges required")
    return auth
