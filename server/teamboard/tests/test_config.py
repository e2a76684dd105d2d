import os
import tempfile
import unittest

from pydantic import ValidationError

from teamboard.db import JsonFileRecordStore, SqlRecordStore
from teamboard.dependencies import create_record_store
from teamboard.testing_utils import SQLITE_MEMORY_URL, make_settings


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = make_settings()
        self.assertEqual(settings.api_prefix, "/api")
        self.assertFalse(settings.uses_database)
        self.assertEqual(settings.user_search_limit, 20)
        self.assertEqual(settings.chat_poll_interval_seconds, 2.0)
        self.assertEqual(settings.get_cors_origins_list(), [])

    def test_cors_origins_are_split_and_trimmed(self):
        settings = make_settings(
            cors_origins="http://localhost:3000, https://app.example.com,,"
        )
        self.assertEqual(
            settings.get_cors_origins_list(),
            ["http://localhost:3000", "https://app.example.com"],
        )

    def test_search_limit_cannot_exceed_twenty(self):
        with self.assertRaises(ValidationError):
            make_settings(user_search_limit=21)

    def test_poll_interval_must_be_positive(self):
        with self.assertRaises(ValidationError):
            make_settings(chat_poll_interval_seconds=0)


class CreateRecordStoreTests(unittest.TestCase):
    def test_database_url_selects_sql_store(self):
        store = create_record_store(make_settings(database_url=SQLITE_MEMORY_URL))
        self.addCleanup(store.close)
        self.assertIsInstance(store, SqlRecordStore)

    def test_no_database_url_selects_json_store(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "local-db.json")
            store = create_record_store(make_settings(local_db_path=path))
            self.assertIsInstance(store, JsonFileRecordStore)
            self.assertEqual(str(store.path), path)


if __name__ == "__main__":
    unittest.main()
