"""
Helpers shared by the test suite.
"""

from __future__ import annotations

from typing import Optional

from teamboard.config import Settings
from teamboard.db import RecordStore, UserRecord, new_id

SQLITE_MEMORY_URL = "sqlite+pysqlite:///:memory:"
TEST_PASSWORD = "correct horse battery"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values = {
        "database_url": None,
        "local_db_path": "local-db.json",
        "auth_secret": "test-secret",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_user(
    store: RecordStore, email: str, name: Optional[str] = None
) -> UserRecord:
    """Insert a profile without credentials."""
    return store.create_user(UserRecord(id=new_id(), email=email, name=name))


def sign_up(client, email: str, name: Optional[str] = None) -> tuple[dict, dict]:
    """
    Register through the API and return (user, auth headers).

    The session cookie set by sign-up is dropped so each caller is identified
    only by its bearer token.
    """
    response = client.post(
        "/api/auth/signup",
        json={"email": email, "password": TEST_PASSWORD, "name": name},
    )
    if response.status_code != 201:
        raise RuntimeError(f"sign-up failed: {response.status_code} {response.text}")
    client.cookies.clear()
    body = response.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}
