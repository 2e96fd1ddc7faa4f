"""
Session Service

FastAPI service exposing per-device sessions: open a session for an
authenticated user, list and revoke sessions, and report the caller's
permissions.
"""

import uuid
from typing import List

from fastapi import FastAPI, Depends, Request, Response, Query
from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.ext.asyncio import AsyncSession

from shared.audit import create_audit_log
from shared.auth import get_current_session, get_current_user, require_role
from shared.config import get_config
from shared.database import check_database_health, get_db_manager, get_db_session
from shared.exceptions import AuthenticationError, NotFoundError, PermissionDeniedError
from shared.logging import get_logger
from shared.middleware import add_middleware
from shared.models import User
from shared.rate_limiter import ActionRateLimiter, enforce_rate_limit, get_rate_limiter
from shared.rbac import Permission, Role, get_all_permissions, has_permission
from shared.redis_client import check_redis_health, close_redis
from shared.schemas import PermissionsResponse, RevokeSessionsResponse, SessionCreateRequest, SessionResponse
from shared.sessions import Session, SessionManager, get_session_manager

# Prometheus metrics
SESSIONS_CREATED = Counter('auth_service_sessions_created_total', 'Sessions created')
SESSIONS_REVOKED = Counter('auth_service_sessions_revoked_total', 'Sessions revoked', ['reason'])

app = FastAPI(title="Session Service", version="1.0.0")
logger = get_logger(__name__)
config = get_config()

add_middleware(app)


def _to_response(session: Session, current_id: str = None) -> SessionResponse:
    return SessionResponse(**session.model_dump(), current=session.id == current_id)


def _ensure_self_or_user_admin(user: User, user_id: uuid.UUID):
    if user.id != user_id and not has_permission(user, Permission.MANAGE_USERS):
        raise PermissionDeniedError("Insufficient permissions")


@app.on_event("startup")
async def on_startup():
    await get_db_manager().initialize()
    logger.info("Session service initialized")


@app.on_event("shutdown")
async def on_shutdown():
    await get_db_manager().close()
    await close_redis()
    logger.info("Session service shutdown complete")


@app.get("/health")
async def health_check(deep: bool = False):
    """Health check endpoint with optional deep checks"""
    health_status = {"status": "healthy", "service": "auth-service"}

    if deep:
        database = await check_database_health()
        cache = await check_redis_health()
        health_status["database"] = database["status"]
        health_status["redis"] = cache["status"]
        if "unhealthy" in (database["status"], cache["status"]):
            health_status["status"] = "unhealthy"

    return health_status


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    payload: SessionCreateRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    manager: SessionManager = Depends(get_session_manager),
    limiter: ActionRateLimiter = Depends(get_rate_limiter),
):
    """
    Open a session for a user the identity provider has already verified.

    The session id is returned in the body and set as an HTTP-only cookie.
    """
    await enforce_rate_limit(limiter, str(payload.user_id), "session_create")

    user = await db.get(User, payload.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    session = await manager.create_session(
        user,
        user_agent=request.headers.get("user-agent", ""),
        ip=request.client.host if request.client else "",
    )
    SESSIONS_CREATED.inc()

    response.set_cookie(
        config.session_cookie_name,
        session.id,
        max_age=manager.session_ttl,
        httponly=True,
        samesite="lax",
        secure=config.environment == "production",
    )
    return _to_response(session, session.id)


@app.get("/sessions/me", response_model=SessionResponse)
async def current_session(session: Session = Depends(get_current_session)):
    return _to_response(session, session.id)


@app.get("/users/{user_id}/sessions", response_model=List[SessionResponse])
async def list_user_sessions(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
):
    """List a user's active sessions, most recently used first"""
    _ensure_self_or_user_admin(user, user_id)
    sessions = await manager.get_user_sessions(str(user_id))
    return [_to_response(s, session.id) for s in sessions]


@app.delete("/sessions/{session_id}", status_code=204)
async def revoke_session(
    session_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager),
    db: AsyncSession = Depends(get_db_session),
):
    target = await manager.get_session(session_id)
    if target is None:
        raise NotFoundError("Session not found")
    if target.user_id != str(user.id) and not has_permission(user, Permission.MANAGE_USERS):
        raise PermissionDeniedError("Insufficient permissions")

    await manager.revoke_session(session_id)
    SESSIONS_REVOKED.labels(reason="single").inc()
    await create_audit_log(
        db,
        action_type="session_revoke",
        entity_type="session",
        entity_id=session_id,
        user=user,
        action_data={"owner_id": target.user_id},
        request=request,
    )
    return Response(status_code=204)


@app.delete("/users/{user_id}/sessions", response_model=RevokeSessionsResponse)
async def revoke_user_sessions(
    user_id: uuid.UUID,
    request: Request,
    except_current: bool = Query(False, description="Keep the session making this request"),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
    db: AsyncSession = Depends(get_db_session),
):
    """Sign a user out everywhere, optionally keeping the calling session"""
    _ensure_self_or_user_admin(user, user_id)

    revoked = await manager.revoke_all_user_sessions(
        str(user_id),
        except_session_id=session.id if except_current else None,
    )
    SESSIONS_REVOKED.labels(reason="all").inc(revoked)
    await create_audit_log(
        db,
        action_type="session_revoke_all",
        entity_type="user",
        entity_id=str(user_id),
        user=user,
        action_data={"revoked": revoked, "except_current": except_current},
        request=request,
    )
    return RevokeSessionsResponse(revoked=revoked)


@app.post("/sessions/cleanup", response_model=RevokeSessionsResponse)
async def cleanup_sessions(
    user: User = Depends(require_role(Role.ADMIN)),
    manager: SessionManager = Depends(get_session_manager),
):
    revoked = await manager.cleanup_expired_sessions()
    SESSIONS_REVOKED.labels(reason="expired").inc(revoked)
    return RevokeSessionsResponse(revoked=revoked)


@app.get("/permissions/me", response_model=PermissionsResponse)
async def my_permissions(user: User = Depends(get_current_user)):
    return PermissionsResponse(
        user_id=str(user.id),
        role=user.role.value,
        permissions=[permission.value for permission in get_all_permissions(user.role)],
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
