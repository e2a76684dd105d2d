import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from teamboard.access import AccessLayer
from teamboard.db import (
    GroupRecord,
    JsonFileRecordStore,
    MemberRecord,
    MessageRecord,
    SqlRecordStore,
    UserRecord,
)
from teamboard.testing_utils import SQLITE_MEMORY_URL, make_user

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class AccessLayerContract:
    """Behaviour both record stores must share; mixed into a TestCase per backend."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()
        self.store.init_schema()
        self.addCleanup(self.store.close)
        self.access = AccessLayer(self.store)
        self.alice = make_user(self.store, "alice@example.com", "Alice")
        self.bob = make_user(self.store, "bob@example.com", "Bob")
        self.carol = make_user(self.store, "carol@example.com")

    def _group_at(self, group_id, name, created_at, owner):
        group = GroupRecord(id=group_id, name=name, created_by=owner, created_at=created_at)
        self.store.create_group(
            group, MemberRecord(group_id=group_id, user_id=owner, joined_at=created_at)
        )
        return group

    # Groups and members

    def test_creator_is_sole_member_of_new_group(self):
        group = self.access.groups.create("Eng", self.alice.id)
        self.assertEqual(
            [g.id for g in self.access.groups.find_member_groups(self.alice.id)],
            [group.id],
        )
        members = self.access.members.list(group.id)
        self.assertEqual([m.id for m in members], [self.alice.id])
        self.assertEqual(members[0].name, "Alice")
        self.assertEqual(self.access.groups.find_member_groups(self.bob.id), [])

    def test_groups_are_listed_newest_first(self):
        self._group_at("g-old", "Old", T0, self.alice.id)
        self._group_at("g-new", "New", T0 + timedelta(days=1), self.alice.id)
        self._group_at("g-mid", "Mid", T0 + timedelta(hours=1), self.alice.id)
        groups = self.access.groups.find_member_groups(self.alice.id)
        self.assertEqual([g.id for g in groups], ["g-new", "g-mid", "g-old"])

    def test_adding_member_twice_keeps_one_row(self):
        group = self.access.groups.create("Eng", self.alice.id)
        self.assertTrue(self.access.members.add(group.id, self.bob.id))
        self.assertFalse(self.access.members.add(group.id, self.bob.id))
        ids = [m.id for m in self.access.members.list(group.id)]
        self.assertEqual(sorted(ids), sorted([self.alice.id, self.bob.id]))
        self.assertTrue(self.access.groups.is_member(group.id, self.bob.id))

    def test_members_ordered_by_join_time_with_missing_profiles(self):
        self._group_at("g1", "Eng", T0, self.alice.id)
        self.store.add_member(
            MemberRecord(group_id="g1", user_id="ghost", joined_at=T0 + timedelta(hours=2))
        )
        self.store.add_member(
            MemberRecord(group_id="g1", user_id=self.bob.id, joined_at=T0 + timedelta(hours=1))
        )
        members = self.access.members.list("g1")
        self.assertEqual([m.id for m in members], [self.alice.id, self.bob.id, "ghost"])
        self.assertEqual(members[1].email, "bob@example.com")
        self.assertIsNone(members[2].email)
        self.assertEqual(members[2].joined_at, T0 + timedelta(hours=2))

    def test_members_listed_by_id_when_profiles_fail(self):
        group = self.access.groups.create("Eng", self.alice.id)
        with mock.patch.object(self.store, "get_users", side_effect=RuntimeError("down")):
            members = self.access.members.list(group.id)
        self.assertEqual([m.id for m in members], [self.alice.id])
        self.assertIsNone(members[0].name)

    # Users

    def test_search_is_case_insensitive_substring(self):
        make_user(self.store, "test1@example.com")
        make_user(self.store, "other@example.com")
        results = self.access.users.search("TEST1")
        self.assertEqual([u.email for u in results], ["test1@example.com"])
        self.assertEqual(self.access.users.search("   "), [])

    def test_search_results_are_capped_and_sorted(self):
        for i in range(25):
            make_user(self.store, f"member{i:02d}@team.example")
        results = self.access.users.search("@team.")
        self.assertEqual(len(results), 20)
        self.assertEqual(results[0].email, "member00@team.example")
        self.assertEqual([u.email for u in results], sorted(u.email for u in results))

    # Todos

    def test_personal_todo_is_private_to_creator(self):
        todo = self.access.todos.create(self.alice.id, "Buy milk")
        self.assertIsNone(todo.group_id)
        self.assertTrue(self.access.todos.check_access(self.alice.id, todo.id))
        self.assertFalse(self.access.todos.check_access(self.bob.id, todo.id))
        self.assertEqual(self.access.todos.list(self.bob.id), [])

    def test_group_todo_access_follows_membership(self):
        group = self.access.groups.create("Eng", self.alice.id)
        todo = self.access.todos.create(self.alice.id, "ship v1", group_id=group.id)
        self.assertFalse(self.access.todos.check_access(self.bob.id, todo.id))

        self.access.members.add(group.id, self.bob.id)
        self.assertTrue(self.access.todos.check_access(self.bob.id, todo.id))

        self.access.members.remove(group.id, self.bob.id)
        self.assertFalse(self.access.todos.check_access(self.bob.id, todo.id))

    def test_missing_todo_is_not_accessible(self):
        self.assertFalse(self.access.todos.check_access(self.alice.id, "missing"))

    def test_personal_scope_maps_to_no_group(self):
        todo = self.access.todos.create(self.alice.id, "Stretch", group_id="personal")
        self.assertIsNone(todo.group_id)
        listed = self.access.todos.list(self.alice.id, "personal")
        self.assertEqual([t.id for t in listed], [todo.id])

    def test_create_then_list_round_trip(self):
        todo = self.access.todos.create(
            self.alice.id,
            "Write report",
            due_date="2024-06-01T00:00:00.000Z",
            assigned_to=[self.alice.id, self.bob.id],
        )
        [listed] = self.access.todos.list(self.alice.id, "personal")
        self.assertEqual(listed, todo)
        self.assertEqual(listed.assigned_to, [self.alice.id, self.bob.id])
        self.assertFalse(listed.completed)

    def test_create_requires_title(self):
        with self.assertRaises(ValueError):
            self.access.todos.create(self.alice.id, "")

    def test_partial_update_only_touches_given_fields(self):
        todo = self.access.todos.create(
            self.alice.id, "Draft", due_date="2024-06-01", assigned_to=[self.alice.id]
        )
        first = self.access.todos.update(todo.id, {"completed": True})
        second = self.access.todos.update(todo.id, {"completed": True})
        self.assertEqual(first, second)
        self.assertTrue(second.completed)
        self.assertEqual(second.title, "Draft")
        self.assertEqual(second.due_date, "2024-06-01")
        self.assertEqual(second.assigned_to, [self.alice.id])
        self.assertEqual(second.created_at, todo.created_at)

    def test_update_can_clear_due_date(self):
        todo = self.access.todos.create(self.alice.id, "Draft", due_date="2024-06-01")
        updated = self.access.todos.update(todo.id, {"due_date": None})
        self.assertIsNone(updated.due_date)

    def test_update_missing_todo_returns_none(self):
        self.assertIsNone(self.access.todos.update("missing", {"completed": True}))

    def test_update_rejects_unknown_fields(self):
        todo = self.access.todos.create(self.alice.id, "Draft")
        with self.assertRaises(ValueError):
            self.access.todos.update(todo.id, {"created_by": self.bob.id})
        self.assertEqual(self.store.get_todo(todo.id).created_by, self.alice.id)

    def test_delete_is_idempotent(self):
        todo = self.access.todos.create(self.alice.id, "Draft")
        self.assertTrue(self.access.todos.delete(todo.id))
        self.assertTrue(self.access.todos.delete(todo.id))
        self.assertIsNone(self.store.get_todo(todo.id))

    def test_dashboard_lists_personal_and_group_todos_with_group_names(self):
        group = self.access.groups.create("Eng", self.alice.id)
        other = self.access.groups.create("Sales", self.bob.id)
        self.access.members.add(group.id, self.bob.id)

        mine = self.access.todos.create(self.alice.id, "Personal")
        team = self.access.todos.create(self.bob.id, "Team", group_id=group.id)
        self.access.todos.create(self.bob.id, "Hidden", group_id=other.id)
        self.access.todos.create(self.bob.id, "Bob personal")

        todos = {t.id: t for t in self.access.todos.list(self.alice.id)}
        self.assertEqual(set(todos), {mine.id, team.id})
        self.assertIsNone(todos[mine.id].group_name)
        self.assertEqual(todos[team.id].group_name, "Eng")

    def test_group_listing_returns_all_group_todos(self):
        group = self.access.groups.create("Eng", self.alice.id)
        self.access.members.add(group.id, self.bob.id)
        a = self.access.todos.create(self.alice.id, "A", group_id=group.id)
        b = self.access.todos.create(self.bob.id, "B", group_id=group.id)
        self.access.todos.create(self.alice.id, "Personal")
        listed = self.access.todos.list(self.bob.id, group.id)
        self.assertEqual({t.id for t in listed}, {a.id, b.id})

    # Notes

    def test_notes_without_filter_are_empty(self):
        self.access.notes.create(self.alice.id, "Remember")
        self.assertEqual(self.access.notes.list(self.alice.id), [])
        self.assertEqual(len(self.access.notes.list(self.alice.id, "personal")), 1)

    def test_note_access_and_update(self):
        group = self.access.groups.create("Eng", self.alice.id)
        personal = self.access.notes.create(self.alice.id, "Mine")
        shared = self.access.notes.create(self.alice.id, "Ours", group_id=group.id)

        self.assertFalse(self.access.notes.check_access(self.bob.id, personal.id))
        self.assertFalse(self.access.notes.check_access(self.bob.id, shared.id))
        self.access.members.add(group.id, self.bob.id)
        self.assertTrue(self.access.notes.check_access(self.bob.id, shared.id))

        updated = self.access.notes.update(shared.id, "Ours, edited")
        self.assertEqual(updated.content, "Ours, edited")
        self.assertEqual(updated.created_by, self.alice.id)
        self.assertIsNone(self.access.notes.update("missing", "x"))

        self.access.notes.delete(personal.id)
        self.assertFalse(self.access.notes.check_access(self.alice.id, personal.id))

    # Messages

    def test_messages_sorted_with_sender_names(self):
        group = self._group_at("g1", "Eng", T0, self.alice.id)
        self.store.add_member(MemberRecord(group_id=group.id, user_id=self.carol.id))
        rows = [
            ("m3", "ghost", T0 + timedelta(minutes=3)),
            ("m1", self.alice.id, T0 + timedelta(minutes=1)),
            ("m2", self.carol.id, T0 + timedelta(minutes=2)),
        ]
        for message_id, user_id, created_at in rows:
            self.store.insert_message(
                MessageRecord(
                    id=message_id,
                    group_id=group.id,
                    user_id=user_id,
                    content=f"hello from {user_id}",
                    created_at=created_at,
                )
            )
        messages = self.access.messages.list(group.id)
        self.assertEqual([m.id for m in messages], ["m1", "m2", "m3"])
        self.assertEqual(
            [m.user_name for m in messages], ["Alice", "carol@example.com", "Unknown"]
        )

    def test_create_message(self):
        group = self.access.groups.create("Eng", self.alice.id)
        message = self.access.messages.create(self.alice.id, group.id, "hi")
        [listed] = self.access.messages.list(group.id)
        self.assertEqual(listed.id, message.id)
        self.assertEqual(listed.user_name, "Alice")
        with self.assertRaises(ValueError):
            self.access.messages.create(self.alice.id, group.id, "")


class JsonFileAccessLayerTests(AccessLayerContract, unittest.TestCase):
    def make_store(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return JsonFileRecordStore(os.path.join(tmp.name, "local-db.json"))


class SqlAccessLayerTests(AccessLayerContract, unittest.TestCase):
    def make_store(self):
        return SqlRecordStore(SQLITE_MEMORY_URL)


class UserRepositoryLimitTests(unittest.TestCase):
    def test_search_limit_never_exceeds_twenty(self):
        store = mock.Mock()
        store.search_users.return_value = [UserRecord(id="u1", email="a@example.com")]
        access = AccessLayer(store, user_search_limit=50)
        access.users.search(" a ")
        store.search_users.assert_called_once_with("a", 20)


if __name__ == "__main__":
    unittest.main()
