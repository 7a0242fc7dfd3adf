from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.database import get_db
from buildline.core.security import verify_access_token
from buildline.models.directory import User, BuildlineRole
from buildline.services.directory_service import DirectoryService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DB,
) -> User:
    """
    Dependency to get the current authenticated actor.
    Validates the JWT token and looks the subject up in the user directory.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        actor_id = uuid.UUID(user_id)
    except ValueError:
        logger.warning("Invalid user_id in token: %s", user_id)
        raise credentials_exception

    actor = await DirectoryService(db).get_actor(actor_id)
    if actor is None:
        logger.warning("User %s not found in directory", user_id)
        raise credentials_exception

    if not actor.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    if not actor.buildline_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No Buildline role assigned"
        )

    return actor


CurrentActor = Annotated[User, Depends(get_current_actor)]


def require_buildline_role(*roles: BuildlineRole):
    """
    Dependency factory to require one of the given Buildline roles.
    Admins pass every role check.

    Usage:
        @router.post("/assign")
        async def assign(actor: User = Depends(require_buildline_role(BuildlineRole.SUPERVISOR))):
            ...
    """
    allowed = {role.value for role in roles} | {BuildlineRole.ADMIN.value}

    async def role_dependency(actor: CurrentActor) -> User:
        if actor.buildline_role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(sorted(r.value for r in roles))}"
            )
        return actor

    return role_dependency
