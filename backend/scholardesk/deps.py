from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from scholardesk.auth import decode_access_token
from scholardesk.models import UserRole
from scholardesk.rbac import has_permission

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Caller identity as resolved from the token. The role is taken as given."""
    id: UUID
    name: str
    role: UserRole


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def actor_from_token(token: Optional[str]) -> Optional[Actor]:
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    try:
        return Actor(
            id=UUID(str(payload.get("sub"))),
            name=payload.get("name") or "",
            role=UserRole(payload.get("role")),
        )
    except ValueError:
        return None


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Get current actor from JWT token (header or cookie)"""
    token = credentials.credentials if credentials else request.cookies.get("access_token")
    if not token:
        raise _unauthorized("Not authenticated")

    actor = actor_from_token(token)
    if actor is None:
        raise _unauthorized("Invalid authentication credentials")

    request.state.user_id = str(actor.id)
    return actor


def require_roles(*roles: UserRole):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}"
            )
        return actor

    return dependency


def require_permission(permission: str):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not has_permission(actor.role, permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return actor

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_client = require_roles(UserRole.CLIENT)
require_worker = require_roles(UserRole.DEVELOPER, UserRole.WORKER)
