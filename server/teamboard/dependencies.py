"""
Dependency wiring for the FastAPI app.

The store, access layer and auth helpers are built once by ``create_app`` and
kept on ``app.state``; the functions here hand them to request handlers and
implement the per-request authorization checks.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine, Optional

from fastapi import Depends, HTTPException, Request, Response, Security, status
from fastapi.concurrency import run_in_threadpool
from fastapi.dependencies.models import Dependant
from fastapi.routing import APIRoute
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teamboard.access import AccessLayer
from teamboard.auth import SESSION_COOKIE, Authenticator, SessionSigner
from teamboard.config import Settings
from teamboard.db import JsonFileRecordStore, RecordStore, SqlRecordStore, UserRecord

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def create_record_store(settings: Settings) -> RecordStore:
    """Pick the backend: SQL when a database URL is configured, else a JSON file."""
    if settings.database_url:
        logger.info("Using SQL record store")
        return SqlRecordStore(settings.database_url)
    logger.warning(
        "No DATABASE_URL found. Using local JSON record store (%s).",
        settings.local_db_path,
    )
    return JsonFileRecordStore(settings.local_db_path)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_access(request: Request) -> AccessLayer:
    return request.app.state.access


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_session_signer(request: Request) -> SessionSigner:
    return request.app.state.session_signer


def _load_caller(request: Request, token: Optional[str]) -> UserRecord:
    signer: SessionSigner = request.app.state.session_signer
    access: AccessLayer = request.app.state.access
    user_id = signer.resolve(token) if token else None
    try:
        user = access.users.get(user_id) if user_id else None
    except Exception as exc:
        logger.exception("Failed to load session user")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load session",
        ) from exc
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer),
) -> UserRecord:
    """Resolve the caller from a bearer token or the session cookie."""
    user = getattr(request.state, "user", None)
    if user is None:
        token = (
            credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
        )
        user = request.state.user = _load_caller(request, token)
    return user


def get_current_user_id(user: UserRecord = Depends(get_current_user)) -> str:
    return user.id


def _depends_on(dependant: Dependant, call) -> bool:
    return any(d.call is call or _depends_on(d, call) for d in dependant.dependencies)


class SessionFirstRoute(APIRoute):
    """
    Route that authenticates the caller before FastAPI reads the request body,
    so an anonymous request is a 401 even when its body is malformed.

    Only routes that depend on ``get_current_user`` are affected.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()
        if not _depends_on(self.dependant, get_current_user):
            return handler

        async def authenticated_handler(request: Request) -> Response:
            credentials = await bearer(request)
            await run_in_threadpool(get_current_user, request, credentials)
            return await handler(request)

        return authenticated_handler


def require_group_member(access: AccessLayer, user_id: str, group_id: str) -> None:
    groups = access.groups.find_member_groups(user_id)
    if not any(g.id == group_id for g in groups):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this group"
        )


def require_todo_access(access: AccessLayer, user_id: str, todo_id: str) -> None:
    # A missing todo is reported the same way as one the caller cannot see.
    if not access.todos.check_access(user_id, todo_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Todo not found or access denied",
        )


def require_note_access(access: AccessLayer, user_id: str, note_id: str) -> None:
    if not access.notes.check_access(user_id, note_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Note not found or access denied",
        )
