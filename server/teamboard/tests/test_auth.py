import unittest

from teamboard.auth import (
    Authenticator,
    EmailTakenError,
    InvalidCredentialsError,
    SessionSigner,
)
from teamboard.db import CREDENTIALS_PROVIDER, SqlRecordStore
from teamboard.testing_utils import SQLITE_MEMORY_URL, TEST_PASSWORD, make_user


class SessionSignerTests(unittest.TestCase):
    def setUp(self):
        self.signer = SessionSigner("secret", max_age_seconds=3600)

    def test_issued_token_resolves_to_user(self):
        token = self.signer.issue("u1")
        self.assertEqual(self.signer.resolve(token), "u1")

    def test_tampered_token_is_rejected(self):
        token = self.signer.issue("u1")
        payload, rest = token.split(".", 1)
        self.assertIsNone(self.signer.resolve(payload + "x." + rest))
        self.assertIsNone(self.signer.resolve("not-a-token"))

    def test_token_from_other_secret_is_rejected(self):
        other = SessionSigner("other-secret", max_age_seconds=3600)
        self.assertIsNone(self.signer.resolve(other.issue("u1")))

    def test_expired_token_is_rejected(self):
        expired = SessionSigner("secret", max_age_seconds=-1)
        self.assertIsNone(expired.resolve(self.signer.issue("u1")))


class AuthenticatorTests(unittest.TestCase):
    def setUp(self):
        self.store = SqlRecordStore(SQLITE_MEMORY_URL)
        self.store.init_schema()
        self.addCleanup(self.store.close)
        self.auth = Authenticator(self.store)

    def test_sign_up_normalizes_email_and_hashes_password(self):
        user = self.auth.sign_up("  Alice@Example.COM ", TEST_PASSWORD, name="Alice")
        self.assertEqual(user.email, "alice@example.com")
        self.assertEqual(user.name, "Alice")

        account = self.store.get_account(user.id, CREDENTIALS_PROVIDER)
        self.assertIsNotNone(account)
        self.assertNotEqual(account.password_hash, TEST_PASSWORD)
        self.assertNotIn(TEST_PASSWORD, account.password_hash)

    def test_sign_up_requires_email_and_password(self):
        with self.assertRaises(ValueError):
            self.auth.sign_up("   ", TEST_PASSWORD)
        with self.assertRaises(ValueError):
            self.auth.sign_up("a@example.com", "")

    def test_duplicate_email_is_rejected_case_insensitively(self):
        self.auth.sign_up("alice@example.com", TEST_PASSWORD)
        with self.assertRaises(EmailTakenError):
            self.auth.sign_up("ALICE@example.com", "another password")

    def test_sign_in_with_correct_password(self):
        user = self.auth.sign_up("alice@example.com", TEST_PASSWORD)
        self.assertEqual(self.auth.sign_in("Alice@example.com", TEST_PASSWORD), user)

    def test_sign_in_with_wrong_password(self):
        self.auth.sign_up("alice@example.com", TEST_PASSWORD)
        with self.assertRaises(InvalidCredentialsError):
            self.auth.sign_in("alice@example.com", "wrong")

    def test_sign_in_with_unknown_email(self):
        with self.assertRaises(InvalidCredentialsError):
            self.auth.sign_in("nobody@example.com", TEST_PASSWORD)

    def test_sign_in_without_credentials_account(self):
        make_user(self.store, "oauth@example.com")
        with self.assertRaises(InvalidCredentialsError):
            self.auth.sign_in("oauth@example.com", TEST_PASSWORD)


if __name__ == "__main__":
    unittest.main()
