"""
Per-entity repositories that enforce membership and ownership rules on top of
a RecordStore.

Every listing is normalized here (ordering, annotations, fallbacks) so both
store backends produce the same observable results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, TypeVar

from teamboard.config import MAX_USER_SEARCH_RESULTS
from teamboard.db import (
    TODO_MUTABLE_FIELDS,
    GroupRecord,
    MemberRecord,
    MessageRecord,
    NoteRecord,
    RecordStore,
    TodoRecord,
    UserRecord,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

PERSONAL_SCOPE = "personal"
UNKNOWN_SENDER = "Unknown"

_R = TypeVar("_R", GroupRecord, TodoRecord, NoteRecord)


def normalize_group_id(group_id: Optional[str]) -> Optional[str]:
    """Map the "personal" scope (or no scope) to a null group id."""
    if not group_id or group_id == PERSONAL_SCOPE:
        return None
    return group_id


def _newest_first(records: Iterable[_R]) -> list[_R]:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def _display_name(user: Optional[UserRecord]) -> str:
    if user is None:
        return UNKNOWN_SENDER
    return user.name or user.email or UNKNOWN_SENDER


@dataclass
class MemberProfile:
    id: str
    joined_at: Optional[datetime]
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None


class GroupRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def create(self, name: str, user_id: str) -> GroupRecord:
        """Create a group and enroll its creator in the same write."""
        now = utcnow()
        group = GroupRecord(id=new_id(), name=name, created_by=user_id, created_at=now)
        creator = MemberRecord(group_id=group.id, user_id=user_id, joined_at=now)
        self.store.create_group(group, creator)
        logger.info("User %s created group %s", user_id, group.id)
        return group

    def find_member_groups(self, user_id: str) -> list[GroupRecord]:
        """Groups the user belongs to, most recently created first."""
        return _newest_first(self.store.list_member_groups(user_id))

    def is_member(self, group_id: str, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.store.list_members(group_id))


class MemberRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def add(self, group_id: str, user_id: str) -> bool:
        """Idempotent; returns False when the pair already exists."""
        added = self.store.add_member(MemberRecord(group_id=group_id, user_id=user_id))
        if added:
            logger.info("Added user %s to group %s", user_id, group_id)
        return added

    def remove(self, group_id: str, user_id: str) -> bool:
        return self.store.remove_member(group_id, user_id)

    def list(self, group_id: str) -> list[MemberProfile]:
        members = sorted(self.store.list_members(group_id), key=lambda m: m.joined_at)
        try:
            users = {
                u.id: u for u in self.store.get_users([m.user_id for m in members])
            }
        except Exception:
            # Profiles are optional here; members are still listed by id.
            logger.warning(
                "Could not load member profiles for group %s", group_id, exc_info=True
            )
            users = {}

        profiles = []
        for member in members:
            user = users.get(member.user_id)
            if user is None:
                profiles.append(MemberProfile(id=member.user_id, joined_at=member.joined_at))
                continue
            profiles.append(
                MemberProfile(
                    id=user.id,
                    joined_at=member.joined_at,
                    name=user.name,
                    email=user.email,
                    image=user.image,
                )
            )
        return profiles


class UserRepository:
    def __init__(self, store: RecordStore, search_limit: int = MAX_USER_SEARCH_RESULTS):
        self.store = store
        self.search_limit = min(search_limit, MAX_USER_SEARCH_RESULTS)

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self.store.get_user(user_id)

    def search(self, fragment: str) -> list[UserRecord]:
        """Case-insensitive substring match on email, capped."""
        fragment = fragment.strip()
        if not fragment:
            return []
        return self.store.search_users(fragment, self.search_limit)


def _can_access(
    store: RecordStore, user_id: str, created_by: str, group_id: Optional[str]
) -> bool:
    if not group_id:
        return created_by == user_id
    return any(m.user_id == user_id for m in store.list_members(group_id))


class TodoRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def list(self, user_id: str, group_filter: Optional[str] = None) -> list[TodoRecord]:
        """
        List todos for one scope.

        "personal" returns the user's personal todos, a group id returns all of
        that group's todos (membership is checked by the caller), and no filter
        returns personal todos plus those of every group the user belongs to,
        each annotated with its group's name.
        """
        if group_filter == PERSONAL_SCOPE:
            return _newest_first(self.store.list_personal_todos(user_id))
        if group_filter:
            return _newest_first(self.store.list_group_todos([group_filter]))

        names = {g.id: g.name for g in self.store.list_member_groups(user_id)}
        todos = self.store.list_personal_todos(user_id)
        todos += self.store.list_group_todos(list(names))
        for todo in todos:
            todo.group_name = names.get(todo.group_id) if todo.group_id else None
        return _newest_first(todos)

    def create(
        self,
        user_id: str,
        title: str,
        group_id: Optional[str] = None,
        due_date: Optional[str] = None,
        assigned_to: Optional[list[str]] = None,
    ) -> TodoRecord:
        if not title:
            raise ValueError("Todo title is required")
        todo = TodoRecord(
            id=new_id(),
            created_by=user_id,
            title=title,
            group_id=normalize_group_id(group_id),
            due_date=due_date,
            assigned_to=list(assigned_to or []),
        )
        return self.store.insert_todo(todo)

    def update(self, todo_id: str, fields: dict) -> Optional[TodoRecord]:
        """Merge only the given fields. Returns None if the todo is gone."""
        unknown = set(fields) - TODO_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update todo fields: {sorted(unknown)}")
        if not fields:
            return self.store.get_todo(todo_id)
        return self.store.update_todo(todo_id, dict(fields))

    def delete(self, todo_id: str) -> bool:
        self.store.delete_todo(todo_id)
        return True

    def check_access(self, user_id: str, todo_id: str) -> bool:
        todo = self.store.get_todo(todo_id)
        if todo is None:
            return False
        return _can_access(self.store, user_id, todo.created_by, todo.group_id)


class NoteRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def list(self, user_id: str, group_filter: Optional[str] = None) -> list[NoteRecord]:
        if group_filter == PERSONAL_SCOPE:
            return _newest_first(self.store.list_personal_notes(user_id))
        if group_filter:
            return _newest_first(self.store.list_group_notes([group_filter]))
        # There is no "all notes" view.
        return []

    def create(
        self, user_id: str, content: str, group_id: Optional[str] = None
    ) -> NoteRecord:
        if not content:
            raise ValueError("Note content is required")
        note = NoteRecord(
            id=new_id(),
            created_by=user_id,
            content=content,
            group_id=normalize_group_id(group_id),
        )
        return self.store.insert_note(note)

    def update(self, note_id: str, content: str) -> Optional[NoteRecord]:
        if not content:
            raise ValueError("Note content is required")
        return self.store.update_note(note_id, content)

    def delete(self, note_id: str) -> bool:
        self.store.delete_note(note_id)
        return True

    def check_access(self, user_id: str, note_id: str) -> bool:
        note = self.store.get_note(note_id)
        if note is None:
            return False
        return _can_access(self.store, user_id, note.created_by, note.group_id)


class MessageRepository:
    def __init__(self, store: RecordStore):
        self.store = store

    def list(self, group_id: str) -> list[MessageRecord]:
        """Oldest first, each message carrying its sender's display name."""
        messages = self.store.list_messages(group_id)
        senders = {
            u.id: u for u in self.store.get_users(sorted({m.user_id for m in messages}))
        }
        for message in messages:
            message.user_name = _display_name(senders.get(message.user_id))
        return sorted(messages, key=lambda m: m.created_at)

    def create(self, user_id: str, group_id: str, content: str) -> MessageRecord:
        if not content:
            raise ValueError("Message content is required")
        message = MessageRecord(
            id=new_id(), group_id=group_id, user_id=user_id, content=content
        )
        return self.store.insert_message(message)


class AccessLayer:
    """Bundles the per-entity repositories that share one record store."""

    def __init__(
        self, store: RecordStore, *, user_search_limit: int = MAX_USER_SEARCH_RESULTS
    ):
        self.store = store
        self.groups = GroupRepository(store)
        self.members = MemberRepository(store)
        self.users = UserRepository(store, search_limit=user_search_limit)
        self.todos = TodoRepository(store)
        self.notes = NoteRepository(store)
        self.messages = MessageRepository(store)
