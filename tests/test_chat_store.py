"""Tests for orion_ai/chat_store.py."""

import unittest
from unittest import mock

from orion_ai.chat_store import (
    ATTACHMENT_TITLE,
    DEFAULT_TITLE,
    ChatMessage,
    ChatSession,
    GroundingSource,
    SessionStore,
    from_json,
    make_title,
)
from orion_ai.errors import StorageUnavailable
from orion_ai.storage import KeyValueStore, history_key


def _user(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def _assistant(text: str, *sources: GroundingSource) -> ChatMessage:
    return ChatMessage(role="assistant", content=text, sources=sources)


class _Clock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        self.now += 1
        return self.now


# -----------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------

class TestRecords(unittest.TestCase):

    def test_message_without_sources_omits_key(self) -> None:
        self.assertEqual(_user("hi").to_dict(),
                         {"role": "user", "content": "hi"})

    def test_message_with_sources(self) -> None:
        msg = _assistant("x", GroundingSource("Doc", "https://a"))
        self.assertEqual(msg.to_dict()["sources"],
                         [{"title": "Doc", "uri": "https://a"}])
        self.assertEqual(ChatMessage.from_dict(msg.to_dict()), msg)

    def test_from_dict_drops_sources_without_uri(self) -> None:
        msg = ChatMessage.from_dict({
            "role": "assistant", "content": "x",
            "sources": [{"title": "t"}, {"title": None, "uri": "https://b"}],
        })
        self.assertEqual(msg.sources, (GroundingSource("", "https://b"),))

    def test_from_dict_rejects_bad_role(self) -> None:
        with self.assertRaises(ValueError):
            ChatMessage.from_dict({"role": "system", "content": "x"})

    def test_from_json_skips_invalid_entries(self) -> None:
        raw = [
            {"id": "1", "title": "ok", "messages": [], "timestamp": 1},
            {"title": "no id"},
            "garbage",
        ]
        sessions = from_json(raw)
        self.assertEqual([s.id for s in sessions], ["1"])

    def test_bad_message_keeps_rest_of_session(self) -> None:
        raw = [{"id": "2", "title": "Trip", "messages": [
            {"role": "user", "content": "Plan a trip"},
            {"role": "bot", "content": "x"},
            "garbage",
            {"role": "assistant", "content": "Sure"},
        ]}]
        sessions = from_json(raw)
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].title, "Trip")
        self.assertEqual([m.content for m in sessions[0].messages],
                         ["Plan a trip", "Sure"])

    def test_null_messages_load_as_empty(self) -> None:
        session = ChatSession.from_dict(
            {"id": "3", "title": "Kept", "messages": None})
        self.assertEqual(session.title, "Kept")
        self.assertEqual(session.messages, [])

    def test_from_json_non_list(self) -> None:
        self.assertEqual(from_json({"id": "1"}), [])

    def test_make_title(self) -> None:
        self.assertEqual(make_title("x" * 50), "x" * 40)
        self.assertEqual(make_title(""), ATTACHMENT_TITLE)


# -----------------------------------------------------------------------
# SessionStore
# -----------------------------------------------------------------------

class TestSessionStore(unittest.TestCase):

    def setUp(self) -> None:
        self.kv = KeyValueStore(":memory:")
        self.store = SessionStore(self.kv, clock=_Clock())

    def tearDown(self) -> None:
        self.kv.close()

    def _persisted(self, username: str = "alice") -> list:
        return self.kv.get_json(history_key(username), [])

    def test_fresh_user_gets_one_new_chat(self) -> None:
        self.store.load_for_user("alice")
        sessions = self.store.sessions
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].title, DEFAULT_TITLE)
        self.assertEqual(sessions[0].messages, [])
        self.assertEqual(self.store.active_id, sessions[0].id)
        self.assertEqual(len(self._persisted()), 1)

    def test_load_existing_history(self) -> None:
        stored = [
            ChatSession("2", "Second", [_user("b")], 2).to_dict(),
            ChatSession("1", "First", [_user("a")], 1).to_dict(),
        ]
        self.kv.set_json(history_key("alice"), stored)
        self.store.load_for_user("alice")
        self.assertEqual([s.id for s in self.store.sessions], ["2", "1"])
        self.assertEqual(self.store.active_id, "2")

    def test_malformed_history_yields_new_chat(self) -> None:
        self.kv.set(history_key("alice"), "[{broken")
        self.store.load_for_user("alice")
        self.assertEqual(len(self.store.sessions), 1)
        self.assertEqual(self.store.sessions[0].title, DEFAULT_TITLE)

    def test_no_save_before_load(self) -> None:
        self.kv.set_json(history_key("alice"), [{"id": "9", "title": "Keep"}])
        with mock.patch.object(self.kv, "set_json") as set_json:
            self.store.create_session()
            set_json.assert_not_called()

    def test_create_session_prepends_and_activates(self) -> None:
        self.store.load_for_user("alice")
        first = self.store.active_id
        new = self.store.create_session()
        self.assertEqual(self.store.sessions[0].id, new.id)
        self.assertEqual(self.store.active_id, new.id)
        self.assertNotEqual(new.id, first)
        self.assertEqual(self._persisted()[0]["id"], new.id)

    def test_ids_unique_within_same_millisecond(self) -> None:
        store = SessionStore(self.kv, clock=lambda: 1000.0)
        store.load_for_user("bob")
        a = store.create_session()
        b = store.create_session()
        self.assertNotEqual(a.id, b.id)

    def test_first_message_sets_title_second_does_not(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user("Hello"))
        self.store.append_assistant_message(sid, _assistant("Hi"))
        self.store.append_user_message(sid, _user("Something else"))
        self.assertEqual(self.store.get(sid).title, "Hello")
        self.assertEqual(self._persisted()[0]["title"], "Hello")

    def test_long_first_message_title_truncated(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user("a" * 100))
        self.assertEqual(self.store.get(sid).title, "a" * 40)

    def test_attachment_only_first_message_title(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user(""))
        self.assertEqual(self.store.get(sid).title, ATTACHMENT_TITLE)

    def test_revert_last_user_message(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user("Hello"))
        self.assertTrue(self.store.revert_last_user_message(sid))
        self.assertEqual(self.store.get(sid).messages, [])
        self.assertEqual(self._persisted()[0]["messages"], [])

    def test_revert_keeps_assistant_message(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user("Hello"))
        self.store.append_assistant_message(sid, _assistant("Hi"))
        self.assertFalse(self.store.revert_last_user_message(sid))
        self.assertEqual(len(self.store.get(sid).messages), 2)

    def test_delete_requires_confirmation(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.assertFalse(self.store.delete_session(sid, confirm=lambda: False))
        self.assertIsNotNone(self.store.get(sid))

    def test_delete_active_moves_to_first_remaining(self) -> None:
        self.store.load_for_user("alice")
        older = self.store.active_id
        newer = self.store.create_session().id
        self.assertTrue(self.store.delete_session(newer, confirm=lambda: True))
        self.assertEqual(self.store.active_id, older)

    def test_delete_inactive_keeps_active(self) -> None:
        self.store.load_for_user("alice")
        older = self.store.active_id
        newer = self.store.create_session().id
        self.store.delete_session(older)
        self.assertEqual(self.store.active_id, newer)

    def test_delete_only_session_replaces_it(self) -> None:
        self.store.load_for_user("alice")
        only = self.store.active_id
        self.store.append_user_message(only, _user("Hello"))
        self.store.delete_session(only)
        sessions = self.store.sessions
        self.assertEqual(len(sessions), 1)
        self.assertNotEqual(sessions[0].id, only)
        self.assertEqual(sessions[0].title, DEFAULT_TITLE)
        self.assertEqual(sessions[0].messages, [])
        self.assertEqual(self.store.active_id, sessions[0].id)

    def test_operations_on_vanished_session_are_noops(self) -> None:
        self.store.load_for_user("alice")
        before = [s.to_dict() for s in self.store.sessions]
        confirm = mock.Mock(return_value=True)
        self.assertFalse(self.store.delete_session("gone", confirm=confirm))
        confirm.assert_not_called()
        self.assertFalse(self.store.append_user_message("gone", _user("x")))
        self.assertFalse(
            self.store.append_assistant_message("gone", _assistant("y")))
        self.assertFalse(self.store.revert_last_user_message("gone"))
        self.store.select("gone")
        self.assertEqual([s.to_dict() for s in self.store.sessions], before)
        self.assertEqual(self.store.active_id, before[0]["id"])

    def test_list_never_empty_after_any_sequence(self) -> None:
        self.store.load_for_user("alice")
        for _ in range(3):
            self.store.create_session()
        for session in self.store.sessions:
            self.store.delete_session(session.id)
            self.assertGreaterEqual(len(self.store.sessions), 1)
            self.assertIsNotNone(self.store.active())

    def test_unload_then_reload_other_user(self) -> None:
        self.store.load_for_user("alice")
        self.store.append_user_message(self.store.active_id, _user("mine"))
        self.store.unload()
        self.assertEqual(self.store.sessions, [])
        self.assertIsNone(self.store.active())
        self.store.load_for_user("bob")
        self.assertEqual(self.store.sessions[0].title, DEFAULT_TITLE)
        self.assertEqual(self._persisted("alice")[0]["title"], "mine")

    def test_storage_failure_is_raised(self) -> None:
        self.store.load_for_user("alice")
        with mock.patch.object(self.kv, "set_json",
                               side_effect=StorageUnavailable("disk full")):
            with self.assertRaises(StorageUnavailable):
                self.store.create_session()

    def test_two_stores_last_writer_wins(self) -> None:
        other = SessionStore(self.kv, clock=_Clock(2_000_000_000.0))
        self.store.load_for_user("alice")
        other.load_for_user("alice")
        self.store.create_session()
        other.create_session()
        persisted_ids = [s["id"] for s in self._persisted()]
        self.assertEqual(persisted_ids, [s.id for s in other.sessions])

    def test_failed_append_leaves_session_unchanged(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        with mock.patch.object(self.kv, "set_json",
                               side_effect=StorageUnavailable("disk full")):
            with self.assertRaises(StorageUnavailable):
                self.store.append_user_message(sid, _user("Hello"))
        session = self.store.get(sid)
        self.assertEqual(session.messages, [])
        self.assertEqual(session.title, DEFAULT_TITLE)

    def test_failed_append_keeps_earlier_messages(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        self.store.append_user_message(sid, _user("Hello"))
        self.store.append_assistant_message(sid, _assistant("Hi"))
        with mock.patch.object(self.kv, "set_json",
                               side_effect=StorageUnavailable("disk full")):
            with self.assertRaises(StorageUnavailable):
                self.store.append_user_message(sid, _user("Again"))
        session = self.store.get(sid)
        self.assertEqual([m.content for m in session.messages],
                         ["Hello", "Hi"])
        self.assertEqual(session.title, "Hello")

    def test_revert_expected_message_only(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        first = _user("Hello")
        self.store.append_user_message(sid, first)
        self.store.append_user_message(sid, _user("Hello"))
        self.assertFalse(
            self.store.revert_last_user_message(sid, expected=first))
        self.assertEqual(len(self.store.get(sid).messages), 2)

    def test_revert_expected_message_when_last(self) -> None:
        self.store.load_for_user("alice")
        sid = self.store.active_id
        message = _user("Hello")
        self.store.append_user_message(sid, message)
        self.assertTrue(
            self.store.revert_last_user_message(sid, expected=message))
        self.assertEqual(self.store.get(sid).messages, [])


if __name__ == "__main__":
    unittest.main()
