#  Project Scaffolder - Auth Middleware
#
#  FastAPI dependencies for Bearer-token authentication and role gating.
#  Only "access" tokens authenticate requests; refresh tokens are rejected.
#
#  Depends on: services/auth.py, container.py, models/enums.py
#  Used by:    app.py, routes/*

import logging

import jwt
from dependency_injector.wiring import inject, Provide
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scaffolder.container import Container
from scaffolder.models.enums import UserRole
from scaffolder.services.auth import AuthService

logger = logging.getLogger("scaffolder.auth")

_bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.ENTERPRISE_ADMIN.value})


def is_admin(user: dict) -> bool:
    return user.get("role") in ADMIN_ROLES


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@inject
async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    auth: AuthService = Depends(Provide[Container.auth]),
) -> dict:
    """Resolve the Bearer token to an active user. Raises 401 otherwise."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        claims = auth.decode_token(credentials.credentials)
    except jwt.PyJWTError as e:
        logger.debug("Rejected token: %s", e)
        raise _unauthorized("Invalid or expired token") from None

    if claims.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user = await auth.get_user(claims["sub"])
    if user is None or not user["is_active"]:
        raise _unauthorized("User not found or disabled")
    return user


def require_role(*roles: UserRole):
    """Build a dependency that admits only users holding one of ``roles``."""
    allowed = {r.value for r in roles}

    async def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
        return user

    return dependency


require_admin = require_role(UserRole.ADMIN, UserRole.ENTERPRISE_ADMIN)
