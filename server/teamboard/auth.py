"""
Credential sign-up/sign-in and signed session tokens.
"""

from __future__ import annotations

import logging
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from teamboard.db import (
    CREDENTIALS_PROVIDER,
    AccountRecord,
    DuplicateRecordError,
    RecordStore,
    UserRecord,
    new_id,
)

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
SESSION_SALT = "teamboard-session"


class AuthError(Exception):
    pass


class EmailTakenError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SessionSigner:
    """Issues and verifies expiring session tokens carrying a user id."""

    def __init__(self, secret: str, max_age_seconds: int):
        self._serializer = URLSafeTimedSerializer(secret, salt=SESSION_SALT)
        self.max_age_seconds = max_age_seconds

    def issue(self, user_id: str) -> str:
        return self._serializer.dumps({"user_id": user_id})

    def resolve(self, token: str) -> Optional[str]:
        """Return the user id in a valid token, or None."""
        try:
            payload = self._serializer.loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            logger.info("Rejected expired session token")
            return None
        except BadSignature:
            return None
        if not isinstance(payload, dict):
            return None
        user_id = payload.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            return None
        return user_id


class Authenticator:
    def __init__(self, store: RecordStore):
        self.store = store

    def sign_up(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> UserRecord:
        email = normalize_email(email)
        if not email or not password:
            raise ValueError("Email and password are required")
        if self.store.get_user_by_email(email):
            raise EmailTakenError(email)

        user = UserRecord(id=new_id(), email=email, name=name or None, image=image or None)
        account = AccountRecord(
            user_id=user.id,
            provider=CREDENTIALS_PROVIDER,
            provider_account_id=user.id,
            password_hash=generate_password_hash(password),
        )
        try:
            self.store.create_user(user, account)
        except DuplicateRecordError as exc:
            raise EmailTakenError(email) from exc
        logger.info("Registered user %s", user.id)
        return user

    def sign_in(self, email: str, password: str) -> UserRecord:
        email = normalize_email(email)
        user = self.store.get_user_by_email(email)
        account = (
            self.store.get_account(user.id, CREDENTIALS_PROVIDER) if user else None
        )
        if (
            account is None
            or not account.password_hash
            or not check_password_hash(account.password_hash, password)
        ):
            logger.info("Failed sign-in for %s", email)
            raise InvalidCredentialsError("Invalid email or password")
        return user
