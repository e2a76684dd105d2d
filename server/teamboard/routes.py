"""
HTTP routes for the Teamboard API.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from teamboard.access import PERSONAL_SCOPE, AccessLayer
from teamboard.auth import (
    SESSION_COOKIE,
    Authenticator,
    EmailTakenError,
    InvalidCredentialsError,
    SessionSigner,
)
from teamboard.config import Settings
from teamboard.db import UserRecord
from teamboard.dependencies import (
    SessionFirstRoute,
    get_access,
    get_app_settings,
    get_authenticator,
    get_current_user,
    get_current_user_id,
    get_session_signer,
    require_group_member,
    require_note_access,
    require_todo_access,
)
from teamboard.schemas import (
    AddMemberRequest,
    AuthResponse,
    ClientConfigResponse,
    GroupCreateRequest,
    GroupListResponse,
    GroupOut,
    GroupResponse,
    MemberListResponse,
    MemberOut,
    MessageCreateRequest,
    MessageListResponse,
    MessageOut,
    MessageResponse,
    NoteCreateRequest,
    NoteListResponse,
    NoteOut,
    NoteResponse,
    NoteUpdateRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    SuccessResponse,
    TodoCreateRequest,
    TodoListResponse,
    TodoOut,
    TodoResponse,
    TodoUpdateRequest,
    UserListResponse,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(route_class=SessionFirstRoute)


@contextmanager
def _failure_message(message: str) -> Iterator[None]:
    """Turn unexpected errors into a 500 carrying ``message``."""
    try:
        yield
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception(message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message
        ) from exc


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _is_group_scope(group_id: Optional[str]) -> bool:
    return bool(group_id) and group_id != PERSONAL_SCOPE


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


# Auth


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def sign_up(
    payload: SignUpRequest,
    response: Response,
    authenticator: Authenticator = Depends(get_authenticator),
    signer: SessionSigner = Depends(get_session_signer),
    settings: Settings = Depends(get_app_settings),
):
    if not (payload.email or "").strip() or not payload.password:
        raise _bad_request("Email and password are required")
    with _failure_message("Failed to create account"):
        try:
            user = authenticator.sign_up(
                payload.email, payload.password, name=payload.name, image=payload.image
            )
        except EmailTakenError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="Email already registered"
            )
        token = signer.issue(user.id)
    _set_session_cookie(response, token, settings)
    return AuthResponse(user=UserOut.model_validate(user), token=token)


@router.post("/auth/signin", response_model=AuthResponse)
def sign_in(
    payload: SignInRequest,
    response: Response,
    authenticator: Authenticator = Depends(get_authenticator),
    signer: SessionSigner = Depends(get_session_signer),
    settings: Settings = Depends(get_app_settings),
):
    if not (payload.email or "").strip() or not payload.password:
        raise _bad_request("Email and password are required")
    with _failure_message("Failed to sign in"):
        try:
            user = authenticator.sign_in(payload.email, payload.password)
        except InvalidCredentialsError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )
        token = signer.issue(user.id)
    _set_session_cookie(response, token, settings)
    return AuthResponse(user=UserOut.model_validate(user), token=token)


@router.post("/auth/signout", response_model=SuccessResponse)
def sign_out(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return SuccessResponse()


@router.get("/auth/session", response_model=SessionResponse)
def current_session(user: UserRecord = Depends(get_current_user)):
    return SessionResponse(user=UserOut.model_validate(user))


@router.get("/client-config", response_model=ClientConfigResponse)
def client_config(settings: Settings = Depends(get_app_settings)):
    return ClientConfigResponse(
        chat_poll_interval_seconds=settings.chat_poll_interval_seconds
    )


# Groups


@router.get("/groups", response_model=GroupListResponse)
def list_groups(
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to fetch groups"):
        groups = access.groups.find_member_groups(user_id)
    return GroupListResponse(groups=[GroupOut.model_validate(g) for g in groups])


@router.post("/groups", response_model=GroupResponse, status_code=201)
def create_group(
    payload: GroupCreateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    name = (payload.name or "").strip()
    if not name:
        raise _bad_request("Group name is required")
    with _failure_message("Failed to create group"):
        group = access.groups.create(name, user_id)
    return GroupResponse(group=GroupOut.model_validate(group))


@router.get("/groups/{group_id}/members", response_model=MemberListResponse)
def list_group_members(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to fetch members"):
        require_group_member(access, user_id, group_id)
        members = access.members.list(group_id)
    return MemberListResponse(members=[MemberOut.model_validate(m) for m in members])


@router.post(
    "/groups/{group_id}/members", response_model=SuccessResponse, status_code=201
)
def add_group_member(
    group_id: str,
    payload: AddMemberRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    if not payload.user_id_to_add:
        raise _bad_request("User ID is required")
    with _failure_message("Failed to add member"):
        require_group_member(access, user_id, group_id)
        access.members.add(group_id, payload.user_id_to_add)
    return SuccessResponse()


@router.get("/groups/{group_id}/messages", response_model=MessageListResponse)
def list_group_messages(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to fetch messages"):
        require_group_member(access, user_id, group_id)
        messages = access.messages.list(group_id)
    return MessageListResponse(
        messages=[MessageOut.model_validate(m) for m in messages]
    )


@router.post(
    "/groups/{group_id}/messages", response_model=MessageResponse, status_code=201
)
def send_group_message(
    group_id: str,
    payload: MessageCreateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    content = (payload.content or "").strip()
    if not content:
        raise _bad_request("Content is required")
    with _failure_message("Failed to send message"):
        require_group_member(access, user_id, group_id)
        message = access.messages.create(user_id, group_id, content)
    return MessageResponse(message=MessageOut.model_validate(message))


# Todos


@router.get("/todos", response_model=TodoListResponse)
def list_todos(
    group_id: Optional[str] = Query(None, alias="groupId"),
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to fetch todos"):
        if _is_group_scope(group_id):
            require_group_member(access, user_id, group_id)
        todos = access.todos.list(user_id, group_id)
    return TodoListResponse(todos=[TodoOut.model_validate(t) for t in todos])


@router.post("/todos", response_model=TodoResponse, status_code=201)
def create_todo(
    payload: TodoCreateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    title = payload.todo_title()
    if not title:
        raise _bad_request("Title is required")
    with _failure_message("Failed to create todo"):
        if _is_group_scope(payload.group_id):
            require_group_member(access, user_id, payload.group_id)
        assigned_to = payload.assignees()
        if assigned_to is None:
            assigned_to = [user_id]
        todo = access.todos.create(
            user_id,
            title,
            group_id=payload.group_id,
            due_date=payload.due(),
            assigned_to=assigned_to,
        )
    return TodoResponse(todo=TodoOut.model_validate(todo))


@router.patch("/todos/{todo_id}", response_model=TodoResponse)
def update_todo(
    todo_id: str,
    payload: TodoUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to update todo"):
        require_todo_access(access, user_id, todo_id)
        fields = payload.to_fields()
        if not fields:
            raise _bad_request("No valid fields to update")
        todo = access.todos.update(todo_id, fields)
        if todo is None:
            # Deleted between the access check and the update.
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Todo not found or access denied",
            )
    return TodoResponse(todo=TodoOut.model_validate(todo))


@router.delete("/todos/{todo_id}", response_model=SuccessResponse)
def delete_todo(
    todo_id: str,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to delete todo"):
        require_todo_access(access, user_id, todo_id)
        access.todos.delete(todo_id)
    return SuccessResponse()


# Notes


@router.get("/notes", response_model=NoteListResponse)
def list_notes(
    group_id: Optional[str] = Query(None, alias="groupId"),
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to fetch notes"):
        if _is_group_scope(group_id):
            require_group_member(access, user_id, group_id)
        notes = access.notes.list(user_id, group_id)
    return NoteListResponse(notes=[NoteOut.model_validate(n) for n in notes])


@router.post("/notes", response_model=NoteResponse, status_code=201)
def create_note(
    payload: NoteCreateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    if not (payload.content or "").strip():
        raise _bad_request("Content is required")
    with _failure_message("Failed to create note"):
        if _is_group_scope(payload.group_id):
            require_group_member(access, user_id, payload.group_id)
        note = access.notes.create(user_id, payload.content, group_id=payload.group_id)
    return NoteResponse(note=NoteOut.model_validate(note))


@router.patch("/notes/{note_id}", response_model=NoteResponse)
def update_note(
    note_id: str,
    payload: NoteUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to update note"):
        require_note_access(access, user_id, note_id)
        if not (payload.content or "").strip():
            raise _bad_request("Content is required")
        note = access.notes.update(note_id, payload.content)
        if note is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Note not found or access denied",
            )
    return NoteResponse(note=NoteOut.model_validate(note))


@router.delete("/notes/{note_id}", response_model=SuccessResponse)
def delete_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    access: AccessLayer = Depends(get_access),
):
    with _failure_message("Failed to delete note"):
        require_note_access(access, user_id, note_id)
        access.notes.delete(note_id)
    return SuccessResponse()


# Users


@router.get(
    "/users/search",
    response_model=UserListResponse,
    dependencies=[Depends(get_current_user)],
)
def search_users(
    email: Optional[str] = Query(None),
    access: AccessLayer = Depends(get_access),
):
    if not email or not email.strip():
        raise _bad_request("Email query is required")
    with _failure_message("Failed to search users"):
        users = access.users.search(email)
    return UserListResponse(users=[UserOut.model_validate(u) for u in users])
