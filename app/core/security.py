"""
Bearer-token authentication for admin routes.

Tokens are HS256 JWTs minted by the institute's login service with the
claims `userId`, `name` and `role`. This module only verifies them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app import config
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.roles import Action, AdminRole, can

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AdminPrincipal:
    user_id: str
    name: str
    role: AdminRole


def decode_admin_token(token: str) -> AdminPrincipal:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthenticationError("Invalid or expired token")

    role = AdminRole.parse(payload.get("role"))
    user_id = payload.get("userId") or payload.get("sub")
    if role is None or not user_id:
        raise PermissionDeniedError("Admin privileges required")

    return AdminPrincipal(
        user_id=str(user_id),
        name=payload.get("name") or "Admin",
        role=role,
    )


def get_current_admin(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> AdminPrincipal:
    if creds is None or not creds.credentials:
        raise AuthenticationError("Access token required")
    return decode_admin_token(creds.credentials)


def require_capability(action: Action):
    """
    Dependency factory: resolve the admin and check the capability table.

    Usage:
        @router.patch("/{query_id}/close")
        def close(admin: AdminPrincipal = Depends(require_capability(Action.CLOSE_QUERY))):
            ...
    """
    def dependency(admin: AdminPrincipal = Depends(get_current_admin)) -> AdminPrincipal:
        if not can(admin.role, action):
            raise PermissionDeniedError(
                f"Role '{admin.role.value}' is not allowed to {action.value.replace('_', ' ')}"
            )
        return admin

    return dependency
