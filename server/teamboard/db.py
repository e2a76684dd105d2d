"""
Record store abstraction for Postgres (via SQLAlchemy) and a JSON-file
implementation for local development.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "users",
    "accounts",
    "groups",
    "group_members",
    "todos",
    "notes",
    "messages",
)
TODO_MUTABLE_FIELDS = frozenset({"completed", "title", "due_date", "assigned_to"})
CREDENTIALS_PROVIDER = "credentials"


class StoreError(RuntimeError):
    """Raised when the backing store cannot be read or written."""


class DuplicateRecordError(StoreError):
    """Raised when an insert collides with a unique key."""


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return _as_utc(datetime.fromisoformat(value))


def _format_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _as_utc(value).isoformat()


def _check_todo_fields(fields: dict) -> None:
    unknown = set(fields) - TODO_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update todo fields: {sorted(unknown)}")


class RecordStore(Protocol):
    """Interface for the durable record collections."""

    def init_schema(self) -> None:
        ...

    def close(self) -> None:
        ...

    # Users and accounts

    def create_user(
        self, user: "UserRecord", account: Optional["AccountRecord"] = None
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def get_users(self, user_ids: Sequence[str]) -> list["UserRecord"]:
        ...

    def search_users(self, fragment: str, limit: int) -> list["UserRecord"]:
        ...

    def get_account(self, user_id: str, provider: str) -> Optional["AccountRecord"]:
        ...

    # Groups and membership

    def create_group(
        self, group: "GroupRecord", creator: "MemberRecord"
    ) -> "GroupRecord":
        ...

    def get_groups(self, group_ids: Sequence[str]) -> list["GroupRecord"]:
        ...

    def list_member_groups(self, user_id: str) -> list["GroupRecord"]:
        ...

    def add_member(self, member: "MemberRecord") -> bool:
        ...

    def remove_member(self, group_id: str, user_id: str) -> bool:
        ...

    def list_members(self, group_id: str) -> list["MemberRecord"]:
        ...

    # Todos

    def insert_todo(self, todo: "TodoRecord") -> "TodoRecord":
        ...

    def get_todo(self, todo_id: str) -> Optional["TodoRecord"]:
        ...

    def list_personal_todos(self, user_id: str) -> list["TodoRecord"]:
        ...

    def list_group_todos(self, group_ids: Sequence[str]) -> list["TodoRecord"]:
        ...

    def update_todo(self, todo_id: str, fields: dict) -> Optional["TodoRecord"]:
        ...

    def delete_todo(self, todo_id: str) -> None:
        ...

    # Notes

    def insert_note(self, note: "NoteRecord") -> "NoteRecord":
        ...

    def get_note(self, note_id: str) -> Optional["NoteRecord"]:
        ...

    def list_personal_notes(self, user_id: str) -> list["NoteRecord"]:
        ...

    def list_group_notes(self, group_ids: Sequence[str]) -> list["NoteRecord"]:
        ...

    def update_note(self, note_id: str, content: str) -> Optional["NoteRecord"]:
        ...

    def delete_note(self, note_id: str) -> None:
        ...

    # Messages

    def insert_message(self, message: "MessageRecord") -> "MessageRecord":
        ...

    def list_messages(self, group_id: str) -> list["MessageRecord"]:
        ...


@dataclass
class UserRecord:
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        return cls(
            id=data["id"],
            email=data["email"],
            name=data.get("name"),
            image=data.get("image"),
        )


@dataclass
class AccountRecord:
    user_id: str
    provider: str
    provider_account_id: str
    password_hash: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "provider": self.provider,
            "provider_account_id": self.provider_account_id,
            "password_hash": self.password_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccountRecord":
        return cls(
            user_id=data["user_id"],
            provider=data["provider"],
            provider_account_id=data["provider_account_id"],
            password_hash=data.get("password_hash"),
        )


@dataclass
class GroupRecord:
    id: str
    name: str
    created_by: str
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GroupRecord":
        return cls(
            id=data["id"],
            name=data["name"],
            created_by=data["created_by"],
            created_at=_parse_time(data["created_at"]),
        )


@dataclass
class MemberRecord:
    group_id: str
    user_id: str
    joined_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "user_id": self.user_id,
            "joined_at": _format_time(self.joined_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemberRecord":
        return cls(
            group_id=data["group_id"],
            user_id=data["user_id"],
            joined_at=_parse_time(data["joined_at"]),
        )


@dataclass
class TodoRecord:
    id: str
    created_by: str
    title: str
    group_id: Optional[str] = None
    due_date: Optional[str] = None
    assigned_to: list[str] = field(default_factory=list)
    completed: bool = False
    created_at: datetime = field(default_factory=utcnow)
    # Filled in by the access layer for dashboard listings; never persisted.
    group_name: Optional[str] = field(default=None, compare=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "created_by": self.created_by,
            "title": self.title,
            "group_id": self.group_id,
            "due_date": self.due_date,
            "assigned_to": list(self.assigned_to),
            "completed": self.completed,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TodoRecord":
        return cls(
            id=data["id"],
            created_by=data["created_by"],
            title=data["title"],
            group_id=data.get("group_id"),
            due_date=data.get("due_date"),
            assigned_to=list(data.get("assigned_to") or []),
            completed=bool(data.get("completed", False)),
            created_at=_parse_time(data["created_at"]),
        )


@dataclass
class NoteRecord:
    id: str
    created_by: str
    content: str
    group_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "created_by": self.created_by,
            "content": self.content,
            "group_id": self.group_id,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NoteRecord":
        return cls(
            id=data["id"],
            created_by=data["created_by"],
            content=data["content"],
            group_id=data.get("group_id"),
            created_at=_parse_time(data["created_at"]),
        )


@dataclass
class MessageRecord:
    id: str
    group_id: str
    user_id: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    # Sender display name, filled in by the access layer; never persisted.
    user_name: Optional[str] = field(default=None, compare=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "content": self.content,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageRecord":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            user_id=data["user_id"],
            content=data["content"],
            created_at=_parse_time(data["created_at"]),
        )


def _empty_document() -> dict[str, list[dict]]:
    return {name: [] for name in COLLECTIONS}


class JsonFileRecordStore:
    """
    Keeps every collection as an array inside one JSON document on disk.

    The document is re-read on every call and rewritten wholesale on every
    mutation. There is no locking: concurrent writers doing read-modify-write
    on the same file lose each other's updates (last writer wins). Use it for
    single-process local development only, never as the system of record.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def init_schema(self) -> None:
        if self.path.exists():
            # Fail at startup rather than on the first request.
            self._read()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write(_empty_document())
        logger.info("Created local record store at %s", self.path)

    def close(self) -> None:
        pass

    def _read(self) -> dict[str, list[dict]]:
        if not self.path.exists():
            return _empty_document()
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read local store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Local store {self.path} is not a JSON object")
        for name in COLLECTIONS:
            rows = data.setdefault(name, [])
            if not isinstance(rows, list):
                raise StoreError(f"Collection '{name}' in {self.path} is not a list")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Cannot write local store {self.path}: {exc}") from exc

    # Users and accounts

    def create_user(
        self, user: UserRecord, account: Optional[AccountRecord] = None
    ) -> UserRecord:
        data = self._read()
        email = user.email.lower()
        if any(
            u["id"] == user.id or (u.get("email") or "").lower() == email
            for u in data["users"]
        ):
            raise DuplicateRecordError(f"User {user.email} already exists")
        data["users"].append(user.as_dict())
        if account:
            data["accounts"].append(account.as_dict())
        self._write(data)
        return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        for row in self._read()["users"]:
            if row["id"] == user_id:
                return UserRecord.from_dict(row)
        return None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.lower()
        for row in self._read()["users"]:
            if (row.get("email") or "").lower() == email:
                return UserRecord.from_dict(row)
        return None

    def get_users(self, user_ids: Sequence[str]) -> list[UserRecord]:
        wanted = set(user_ids)
        return [
            UserRecord.from_dict(row)
            for row in self._read()["users"]
            if row["id"] in wanted
        ]

    def search_users(self, fragment: str, limit: int) -> list[UserRecord]:
        needle = fragment.lower()
        matches = [
            UserRecord.from_dict(row)
            for row in self._read()["users"]
            if row.get("email") and needle in row["email"].lower()
        ]
        matches.sort(key=lambda u: u.email)
        return matches[:limit]

    def get_account(self, user_id: str, provider: str) -> Optional[AccountRecord]:
        for row in self._read()["accounts"]:
            if row["user_id"] == user_id and row["provider"] == provider:
                return AccountRecord.from_dict(row)
        return None

    # Groups and membership

    def create_group(self, group: GroupRecord, creator: MemberRecord) -> GroupRecord:
        data = self._read()
        data["groups"].append(group.as_dict())
        data["group_members"].append(creator.as_dict())
        # Single write: the group never appears without its creator.
        self._write(data)
        return group

    def get_groups(self, group_ids: Sequence[str]) -> list[GroupRecord]:
        wanted = set(group_ids)
        return [
            GroupRecord.from_dict(row)
            for row in self._read()["groups"]
            if row["id"] in wanted
        ]

    def list_member_groups(self, user_id: str) -> list[GroupRecord]:
        data = self._read()
        group_ids = {
            m["group_id"] for m in data["group_members"] if m["user_id"] == user_id
        }
        return [
            GroupRecord.from_dict(row)
            for row in data["groups"]
            if row["id"] in group_ids
        ]

    def add_member(self, member: MemberRecord) -> bool:
        data = self._read()
        for row in data["group_members"]:
            if row["group_id"] == member.group_id and row["user_id"] == member.user_id:
                return False
        data["group_members"].append(member.as_dict())
        self._write(data)
        return True

    def remove_member(self, group_id: str, user_id: str) -> bool:
        data = self._read()
        kept = [
            row
            for row in data["group_members"]
            if not (row["group_id"] == group_id and row["user_id"] == user_id)
        ]
        if len(kept) == len(data["group_members"]):
            return False
        data["group_members"] = kept
        self._write(data)
        return True

    def list_members(self, group_id: str) -> list[MemberRecord]:
        return [
            MemberRecord.from_dict(row)
            for row in self._read()["group_members"]
            if row["group_id"] == group_id
        ]

    # Todos

    def insert_todo(self, todo: TodoRecord) -> TodoRecord:
        data = self._read()
        data["todos"].append(todo.as_dict())
        self._write(data)
        return todo

    def get_todo(self, todo_id: str) -> Optional[TodoRecord]:
        for row in self._read()["todos"]:
            if row["id"] == todo_id:
                return TodoRecord.from_dict(row)
        return None

    def list_personal_todos(self, user_id: str) -> list[TodoRecord]:
        return [
            TodoRecord.from_dict(row)
            for row in self._read()["todos"]
            if not row.get("group_id") and row["created_by"] == user_id
        ]

    def list_group_todos(self, group_ids: Sequence[str]) -> list[TodoRecord]:
        wanted = set(group_ids)
        return [
            TodoRecord.from_dict(row)
            for row in self._read()["todos"]
            if row.get("group_id") in wanted
        ]

    def update_todo(self, todo_id: str, fields: dict) -> Optional[TodoRecord]:
        _check_todo_fields(fields)
        data = self._read()
        for index, row in enumerate(data["todos"]):
            if row["id"] == todo_id:
                updated = TodoRecord.from_dict({**row, **fields})
                data["todos"][index] = updated.as_dict()
                self._write(data)
                return updated
        return None

    def delete_todo(self, todo_id: str) -> None:
        data = self._read()
        kept = [row for row in data["todos"] if row["id"] != todo_id]
        if len(kept) != len(data["todos"]):
            data["todos"] = kept
            self._write(data)

    # Notes

    def insert_note(self, note: NoteRecord) -> NoteRecord:
        data = self._read()
        data["notes"].append(note.as_dict())
        self._write(data)
        return note

    def get_note(self, note_id: str) -> Optional[NoteRecord]:
        for row in self._read()["notes"]:
            if row["id"] == note_id:
                return NoteRecord.from_dict(row)
        return None

    def list_personal_notes(self, user_id: str) -> list[NoteRecord]:
        return [
            NoteRecord.from_dict(row)
            for row in self._read()["notes"]
            if not row.get("group_id") and row["created_by"] == user_id
        ]

    def list_group_notes(self, group_ids: Sequence[str]) -> list[NoteRecord]:
        wanted = set(group_ids)
        return [
            NoteRecord.from_dict(row)
            for row in self._read()["notes"]
            if row.get("group_id") in wanted
        ]

    def update_note(self, note_id: str, content: str) -> Optional[NoteRecord]:
        data = self._read()
        for index, row in enumerate(data["notes"]):
            if row["id"] == note_id:
                updated = NoteRecord.from_dict({**row, "content": content})
                data["notes"][index] = updated.as_dict()
                self._write(data)
                return updated
        return None

    def delete_note(self, note_id: str) -> None:
        data = self._read()
        kept = [row for row in data["notes"] if row["id"] != note_id]
        if len(kept) != len(data["notes"]):
            data["notes"] = kept
            self._write(data)

    # Messages

    def insert_message(self, message: MessageRecord) -> MessageRecord:
        data = self._read()
        data["messages"].append(message.as_dict())
        self._write(data)
        return message

    def list_messages(self, group_id: str) -> list[MessageRecord]:
        return [
            MessageRecord.from_dict(row)
            for row in self._read()["messages"]
            if row["group_id"] == group_id
        ]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def init_schema(self) -> None:
        # create_all only issues CREATE TABLE for tables that are missing.
        Base.metadata.create_all(self.engine)
        logger.info("Record store schema ready (%s)", self.engine.dialect.name)

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _to_user_record(row: "UserRow") -> UserRecord:
        return UserRecord(id=row.id, email=row.email, name=row.name, image=row.image)

    @staticmethod
    def _to_group_record(row: "GroupRow") -> GroupRecord:
        return GroupRecord(
            id=row.id,
            name=row.name,
            created_by=row.created_by,
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_member_record(row: "GroupMemberRow") -> MemberRecord:
        return MemberRecord(
            group_id=row.group_id,
            user_id=row.user_id,
            joined_at=_as_utc(row.joined_at),
        )

    @staticmethod
    def _to_todo_record(row: "TodoRow") -> TodoRecord:
        return TodoRecord(
            id=row.id,
            created_by=row.created_by,
            title=row.title,
            group_id=row.group_id,
            due_date=row.due_date,
            assigned_to=list(row.assigned_to or []),
            completed=bool(row.completed),
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_note_record(row: "NoteRow") -> NoteRecord:
        return NoteRecord(
            id=row.id,
            created_by=row.created_by,
            content=row.content,
            group_id=row.group_id,
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_message_record(row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            id=row.id,
            group_id=row.group_id,
            user_id=row.user_id,
            content=row.content,
            created_at=_as_utc(row.created_at),
        )

    # Users and accounts

    def create_user(
        self, user: UserRecord, account: Optional[AccountRecord] = None
    ) -> UserRecord:
        with self.Session() as session:
            try:
                session.add(
                    UserRow(
                        id=user.id,
                        email=user.email,
                        name=user.name,
                        image=user.image,
                    )
                )
                session.flush()
                if account:
                    session.add(
                        AccountRow(
                            provider=account.provider,
                            provider_account_id=account.provider_account_id,
                            user_id=account.user_id,
                            password_hash=account.password_hash,
                        )
                    )
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(
                    f"User {user.email} already exists"
                ) from exc
        return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_user_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(func.lower(UserRow.email) == email.lower())
            row = session.execute(stmt).scalars().first()
            if not row:
                return None
            return self._to_user_record(row)

    def get_users(self, user_ids: Sequence[str]) -> list[UserRecord]:
        if not user_ids:
            return []
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.id.in_(list(user_ids)))
            return [self._to_user_record(row) for row in session.execute(stmt).scalars()]

    def search_users(self, fragment: str, limit: int) -> list[UserRecord]:
        with self.Session() as session:
            stmt = (
                select(UserRow)
                .where(func.lower(UserRow.email).contains(fragment.lower(), autoescape=True))
                .order_by(UserRow.email.asc())
                .limit(limit)
            )
            return [self._to_user_record(row) for row in session.execute(stmt).scalars()]

    def get_account(self, user_id: str, provider: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            stmt = select(AccountRow).where(
                AccountRow.user_id == user_id, AccountRow.provider == provider
            )
            row = session.execute(stmt).scalars().first()
            if not row:
                return None
            return AccountRecord(
                user_id=row.user_id,
                provider=row.provider,
                provider_account_id=row.provider_account_id,
                password_hash=row.password_hash,
            )

    # Groups and membership

    def create_group(self, group: GroupRecord, creator: MemberRecord) -> GroupRecord:
        with self.Session() as session:
            session.add(
                GroupRow(
                    id=group.id,
                    name=group.name,
                    created_by=group.created_by,
                    created_at=group.created_at,
                )
            )
            session.flush()
            session.add(
                GroupMemberRow(
                    group_id=creator.group_id,
                    user_id=creator.user_id,
                    joined_at=creator.joined_at,
                )
            )
            # One transaction for both rows.
            session.commit()
        return group

    def get_groups(self, group_ids: Sequence[str]) -> list[GroupRecord]:
        if not group_ids:
            return []
        with self.Session() as session:
            stmt = select(GroupRow).where(GroupRow.id.in_(list(group_ids)))
            return [self._to_group_record(row) for row in session.execute(stmt).scalars()]

    def list_member_groups(self, user_id: str) -> list[GroupRecord]:
        with self.Session() as session:
            stmt = (
                select(GroupRow)
                .join(GroupMemberRow, GroupMemberRow.group_id == GroupRow.id)
                .where(GroupMemberRow.user_id == user_id)
                .order_by(GroupRow.created_at.desc(), GroupRow.id.asc())
            )
            return [self._to_group_record(row) for row in session.execute(stmt).scalars()]

    def add_member(self, member: MemberRecord) -> bool:
        key = (member.group_id, member.user_id)
        with self.Session() as session:
            if session.get(GroupMemberRow, key):
                return False
            session.add(
                GroupMemberRow(
                    group_id=member.group_id,
                    user_id=member.user_id,
                    joined_at=member.joined_at,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                # Lost a race with a concurrent insert of the same pair.
                if session.get(GroupMemberRow, key):
                    return False
                raise
        return True

    def remove_member(self, group_id: str, user_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(GroupMemberRow).where(
                    GroupMemberRow.group_id == group_id,
                    GroupMemberRow.user_id == user_id,
                )
            )
            session.commit()
            return result.rowcount > 0

    def list_members(self, group_id: str) -> list[MemberRecord]:
        with self.Session() as session:
            stmt = (
                select(GroupMemberRow)
                .where(GroupMemberRow.group_id == group_id)
                .order_by(GroupMemberRow.joined_at.asc())
            )
            return [self._to_member_record(row) for row in session.execute(stmt).scalars()]

    # Todos

    def insert_todo(self, todo: TodoRecord) -> TodoRecord:
        with self.Session() as session:
            session.add(
                TodoRow(
                    id=todo.id,
                    created_by=todo.created_by,
                    title=todo.title,
                    group_id=todo.group_id,
                    due_date=todo.due_date,
                    assigned_to=list(todo.assigned_to),
                    completed=todo.completed,
                    created_at=todo.created_at,
                )
            )
            session.commit()
        return todo

    def get_todo(self, todo_id: str) -> Optional[TodoRecord]:
        with self.Session() as session:
            row = session.get(TodoRow, todo_id)
            if not row:
                return None
            return self._to_todo_record(row)

    def list_personal_todos(self, user_id: str) -> list[TodoRecord]:
        with self.Session() as session:
            stmt = (
                select(TodoRow)
                .where(TodoRow.group_id.is_(None), TodoRow.created_by == user_id)
                .order_by(TodoRow.created_at.desc())
            )
            return [self._to_todo_record(row) for row in session.execute(stmt).scalars()]

    def list_group_todos(self, group_ids: Sequence[str]) -> list[TodoRecord]:
        if not group_ids:
            return []
        with self.Session() as session:
            stmt = (
                select(TodoRow)
                .where(TodoRow.group_id.in_(list(group_ids)))
                .order_by(TodoRow.created_at.desc())
            )
            return [self._to_todo_record(row) for row in session.execute(stmt).scalars()]

    def update_todo(self, todo_id: str, fields: dict) -> Optional[TodoRecord]:
        _check_todo_fields(fields)
        with self.Session() as session:
            row = session.get(TodoRow, todo_id)
            if not row:
                return None
            for name, value in fields.items():
                if name == "assigned_to":
                    value = list(value or [])
                setattr(row, name, value)
            session.commit()
            session.refresh(row)
            return self._to_todo_record(row)

    def delete_todo(self, todo_id: str) -> None:
        with self.Session() as session:
            session.execute(delete(TodoRow).where(TodoRow.id == todo_id))
            session.commit()

    # Notes

    def insert_note(self, note: NoteRecord) -> NoteRecord:
        with self.Session() as session:
            session.add(
                NoteRow(
                    id=note.id,
                    created_by=note.created_by,
                    content=note.content,
                    group_id=note.group_id,
                    created_at=note.created_at,
                )
            )
            session.commit()
        return note

    def get_note(self, note_id: str) -> Optional[NoteRecord]:
        with self.Session() as session:
            row = session.get(NoteRow, note_id)
            if not row:
                return None
            return self._to_note_record(row)

    def list_personal_notes(self, user_id: str) -> list[NoteRecord]:
        with self.Session() as session:
            stmt = (
                select(NoteRow)
                .where(NoteRow.group_id.is_(None), NoteRow.created_by == user_id)
                .order_by(NoteRow.created_at.desc())
            )
            return [self._to_note_record(row) for row in session.execute(stmt).scalars()]

    def list_group_notes(self, group_ids: Sequence[str]) -> list[NoteRecord]:
        if not group_ids:
            return []
        with self.Session() as session:
            stmt = (
                select(NoteRow)
                .where(NoteRow.group_id.in_(list(group_ids)))
                .order_by(NoteRow.created_at.desc())
            )
            return [self._to_note_record(row) for row in session.execute(stmt).scalars()]

    def update_note(self, note_id: str, content: str) -> Optional[NoteRecord]:
        with self.Session() as session:
            row = session.get(NoteRow, note_id)
            if not row:
                return None
            row.content = content
            session.commit()
            session.refresh(row)
            return self._to_note_record(row)

    def delete_note(self, note_id: str) -> None:
        with self.Session() as session:
            session.execute(delete(NoteRow).where(NoteRow.id == note_id))
            session.commit()

    # Messages

    def insert_message(self, message: MessageRecord) -> MessageRecord:
        with self.Session() as session:
            session.add(
                MessageRow(
                    id=message.id,
                    group_id=message.group_id,
                    user_id=message.user_id,
                    content=message.content,
                    created_at=message.created_at,
                )
            )
            session.commit()
        return message

    def list_messages(self, group_id: str) -> list[MessageRecord]:
        with self.Session() as session:
            stmt = (
                select(MessageRow)
                .where(MessageRow.group_id == group_id)
                .order_by(MessageRow.created_at.asc())
            )
            return [
                self._to_message_record(row) for row in session.execute(stmt).scalars()
            ]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    image = Column(String, nullable=True)


class AccountRow(Base):
    __tablename__ = "accounts"

    provider = Column(String, primary_key=True)
    provider_account_id = Column(String, primary_key=True)
    user_id = Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    password_hash = Column(String, nullable=True)


class GroupRow(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class GroupMemberRow(Base):
    __tablename__ = "group_members"

    # The composite key is the (group_id, user_id) uniqueness constraint.
    group_id = Column(
        String, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String, primary_key=True, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False)


class TodoRow(Base):
    __tablename__ = "todos"

    id = Column(String, primary_key=True)
    created_by = Column(String, nullable=False, index=True)
    title = Column(Text, nullable=False)
    group_id = Column(
        String,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    due_date = Column(String, nullable=True)
    assigned_to = Column(JSON, nullable=False, default=list)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class NoteRow(Base):
    __tablename__ = "notes"

    id = Column(String, primary_key=True)
    created_by = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    group_id = Column(
        String,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    group_id = Column(
        String,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
