"""
FastAPI dependencies for the Onkur service
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from onkur.db.database import get_db
from onkur.domain.roles import Role
from onkur.errors import AuthenticationError, ForbiddenError
from onkur.services.auth_service import Actor, auth_service

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_token(token: Optional[str] = Depends(oauth2_scheme)) -> str:
    if not token:
        raise AuthenticationError("Authentication required")
    return token


def get_current_actor(
    token: str = Depends(get_token),
    db: Session = Depends(get_db)
) -> Actor:
    """Resolve the bearer token to the acting user"""
    return auth_service.verify_token(db, token)


def require_roles(*roles: Role):
    """Dependency factory: passes when the actor holds any of the given roles"""

    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_any(*roles):
            raise ForbiddenError("You do not have permission to perform this action")
        return actor

    return checker
