"""FastAPI dependencies resolving the session and user behind a request"""
import uuid
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_config
from .database import get_db_session
from .exceptions import AuthenticationError, PermissionDeniedError
from .logging import set_current_user
from .models import User
from .rbac import Permission, Role, has_permission, has_role
from .sessions import Session, SessionManager, get_session_manager

SESSION_HEADER = "X-Session-ID"


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the ``X-Session-ID`` header, else the session cookie"""
    return request.headers.get(SESSION_HEADER) or request.cookies.get(get_config().session_cookie_name)


async def get_optional_session(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> Optional[Session]:
    session_id = get_session_id(request)
    if not session_id:
        return None
    return await manager.update_session_activity(session_id)


async def get_current_session(session: Optional[Session] = Depends(get_optional_session)) -> Session:
    if session is None:
        raise AuthenticationError("Authentication required")
    return session


async def _load_user(db: AsyncSession, session: Session) -> Optional[User]:
    try:
        user_id = uuid.UUID(session.user_id)
    except ValueError:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_optional_user(
    session: Optional[Session] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    if session is None:
        return None
    user = await _load_user(db, session)
    if user is not None:
        set_current_user(str(user.id))
    return user


async def get_current_user(
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    user = await _load_user(db, session)
    if user is None:
        raise AuthenticationError("User not found or inactive")
    set_current_user(str(user.id))
    return user


def require_permission(permission: Permission):
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, permission):
            raise PermissionDeniedError("Insufficient permissions")
        return user
    return dependency


def require_role(role: Role):
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_role(user, role):
            raise PermissionDeniedError("Insufficient role permissions")
        return user
    return dependency


# Moderators and admins both carry moderate:content
require_moderator = require_permission(Permission.MODERATE_CONTENT)
