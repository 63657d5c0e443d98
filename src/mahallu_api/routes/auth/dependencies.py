"""
FastAPI dependencies for authentication, tenant scope and role gates.

``get_current_user_dep`` verifies the bearer JWT and loads the user;
``get_tenant_scope`` resolves the request's ``TenantScope`` from that user and
the request's tenant hints and stores both on ``request.state`` for the
activity logger.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from mahallu_api.config import settings
from mahallu_api.database import db_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope, read_tenant_hints, resolve_tenant_scope
from mahallu_api.models.user_models import UserRole
from mahallu_api.utils.error_handling import AccessDenied
from mahallu_api.utils.identifiers import to_object_id

logger = get_logger(prefix="[Auth Dependencies]")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)


def _secret_key() -> str:
    return settings.SECRET_KEY.get_secret_value()


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for ``user``.

    Args:
        user: User document; its ``_id`` becomes the ``userId`` claim.
        expires_delta: Token lifetime, ``ACCESS_TOKEN_EXPIRE_MINUTES`` by default.

    Returns:
        str: Encoded JWT access token.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "userId": str(user["_id"]),
        "role": user.get("role"),
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, _secret_key(), algorithm=settings.ALGORITHM)


async def get_current_user_dep(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """
    Dependency function to retrieve the current authenticated user.

    Raises:
        HTTPException: 401 when the token is missing/invalid or the user is
            gone, 403 when the user is inactive.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(token, _secret_key(), algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.info("Rejected token on %s: %s", request.url.path, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_oid = to_object_id(payload.get("userId"))
    user = None
    if user_oid:
        user = await db_manager.get_collection("users").find_one({"_id": user_oid}, {"password": 0})
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    if user.get("status") != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    request.state.user = user
    return user


async def get_tenant_scope(request: Request, user: Dict[str, Any] = Depends(get_current_user_dep)) -> TenantScope:
    """Resolve and publish the tenant scope for the authenticated request."""
    hints = await read_tenant_hints(request)
    scope = resolve_tenant_scope(user, **hints)
    request.state.tenant_scope = scope
    logger.debug(
        "Scope for %s %s: tenant=%s elevated=%s", request.method, request.url.path, scope.tenant_id, scope.is_elevated
    )
    return scope


async def require_elevated(scope: TenantScope = Depends(get_tenant_scope)) -> TenantScope:
    """Only elevated (super admin) actors may continue."""
    if not scope.is_elevated:
        raise AccessDenied(
            "Super admin access required",
            required_role=UserRole.SUPER_ADMIN.value,
            actor_role=scope.actor_role.value if scope.actor_role else None,
        )
    return scope


def allow_roles(*roles: UserRole):
    """
    Build a dependency admitting elevated actors plus the listed roles.

    Usage:
        scope: TenantScope = Depends(allow_roles(UserRole.MAHALL, UserRole.SURVEY))
    """
    allowed = set(roles)

    async def _check(scope: TenantScope = Depends(get_tenant_scope)) -> TenantScope:
        if scope.is_elevated or scope.actor_role in allowed:
            return scope
        raise AccessDenied(
            "You don't have permission to perform this action",
            required_role=",".join(sorted(role.value for role in allowed)),
            actor_role=scope.actor_role.value if scope.actor_role else None,
        )

    return _check


async def member_user_only(
    scope: TenantScope = Depends(get_tenant_scope), user: Dict[str, Any] = Depends(get_current_user_dep)
) -> Dict[str, Any]:
    """Only users with the ``member`` role may continue; returns the user."""
    if scope.actor_role is not UserRole.MEMBER:
        raise AccessDenied(
            "Member user access required",
            required_role=UserRole.MEMBER.value,
            actor_role=scope.actor_role.value if scope.actor_role else None,
        )
    return user
