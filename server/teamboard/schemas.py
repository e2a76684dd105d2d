"""
Pydantic schemas for the Teamboard API.

Request bodies use the camelCase keys the web client sends; responses use the
snake_case record fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GroupCreateRequest(_RequestModel):
    name: Optional[str] = None


class AddMemberRequest(_RequestModel):
    user_id_to_add: Optional[str] = Field(default=None, alias="userIdToAdd")


class MessageCreateRequest(_RequestModel):
    content: Optional[str] = None


def _string_list(value: Any) -> Optional[list[str]]:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    return None


def _text(value: Any) -> Optional[str]:
    """A non-empty string, or None."""
    if isinstance(value, str) and value:
        return value
    return None


# Todo bodies are loosely typed: a field of the wrong type is ignored, not
# rejected, so the rest of the body still applies.


class TodoCreateRequest(_RequestModel):
    title: Any = None
    group_id: Optional[str] = Field(default=None, alias="groupId")
    due_date: Any = Field(default=None, alias="dueDate")
    # Anything other than a list of ids falls back to the creator.
    assigned_to: Any = Field(default=None, alias="assignedTo")

    def todo_title(self) -> Optional[str]:
        return _text(self.title)

    def due(self) -> Optional[str]:
        return _text(self.due_date)

    def assignees(self) -> Optional[list[str]]:
        return _string_list(self.assigned_to)


class TodoUpdateRequest(_RequestModel):
    completed: Any = None
    title: Any = None
    due_date: Any = Field(default=None, alias="dueDate")
    assigned_to: Any = Field(default=None, alias="assignedTo")

    def to_fields(self) -> dict:
        """Only the fields the client actually asked to change."""
        fields: dict = {}
        if isinstance(self.completed, bool):
            fields["completed"] = self.completed
        title = _text(self.title)
        if title:
            fields["title"] = title
        # An explicit null clears the due date.
        if "due_date" in self.model_fields_set and (
            self.due_date is None or isinstance(self.due_date, str)
        ):
            fields["due_date"] = self.due_date
        assigned_to = _string_list(self.assigned_to)
        if assigned_to is not None:
            fields["assigned_to"] = assigned_to
        return fields


class NoteCreateRequest(_RequestModel):
    content: Optional[str] = None
    group_id: Optional[str] = Field(default=None, alias="groupId")


class NoteUpdateRequest(_RequestModel):
    content: Optional[str] = None


class SignUpRequest(_RequestModel):
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)
    name: Optional[str] = Field(default=None, max_length=200)
    image: Optional[str] = None


class SignInRequest(_RequestModel):
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)


class _RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(_RecordModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


class GroupOut(_RecordModel):
    id: str
    name: str
    created_by: str
    created_at: datetime


class MemberOut(_RecordModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    joined_at: Optional[datetime] = None


class TodoOut(_RecordModel):
    id: str
    created_by: str
    title: str
    group_id: Optional[str] = None
    due_date: Optional[str] = None
    assigned_to: list[str]
    completed: bool
    created_at: datetime
    group_name: Optional[str] = None


class NoteOut(_RecordModel):
    id: str
    created_by: str
    content: str
    group_id: Optional[str] = None
    created_at: datetime


class MessageOut(_RecordModel):
    id: str
    group_id: str
    user_id: str
    content: str
    created_at: datetime
    user_name: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


class GroupListResponse(BaseModel):
    groups: list[GroupOut]


class GroupResponse(BaseModel):
    group: GroupOut


class MemberListResponse(BaseModel):
    members: list[MemberOut]


class MessageListResponse(BaseModel):
    messages: list[MessageOut]


class MessageResponse(BaseModel):
    message: MessageOut


class TodoListResponse(BaseModel):
    todos: list[TodoOut]


class TodoResponse(BaseModel):
    todo: TodoOut


class NoteListResponse(BaseModel):
    notes: list[NoteOut]


class NoteResponse(BaseModel):
    note: NoteOut


class UserListResponse(BaseModel):
    users: list[UserOut]


class AuthResponse(BaseModel):
    user: UserOut
    token: str


class SessionResponse(BaseModel):
    user: UserOut


class ClientConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_poll_interval_seconds: float = Field(alias="chatPollIntervalSeconds")
