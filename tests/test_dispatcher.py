"""Tests for orion_ai/dispatcher.py.

The Gemini client is replaced by a small fake so no HTTP requests are made.
"""

import threading
import unittest
from unittest import mock

from orion_ai.auth import AuthGate
from orion_ai.chat_store import DEFAULT_TITLE, ChatMessage, GroundingSource, SessionStore
from orion_ai.dispatcher import (
    LOCATION_ERROR,
    ChatDispatcher,
    LocationCache,
    build_contents,
)
from orion_ai.errors import StorageUnavailable
from orion_ai.file_handler import Attachment
from orion_ai.gemini_api import ChatResponse, GeminiAPIError, LatLng
from orion_ai.geolocation import LocationUnavailable
from orion_ai.storage import KeyValueStore


class _FakeClient:
    """Records chat() calls and replays a canned reply or error."""

    def __init__(self, reply: ChatResponse | None = None,
                 error: Exception | None = None) -> None:
        self.reply = reply or ChatResponse(text="Hi Alice!")
        self.error = error
        self.calls: list[dict] = []

    def chat(self, contents, model, **kwargs) -> ChatResponse:
        self.calls.append({"contents": contents, "model": model, **kwargs})
        if self.error is not None:
            raise self.error
        return self.reply


class _NoLookup(LocationCache):
    """Location cache that never starts a thread."""

    def __init__(self, location: LatLng | None = None) -> None:
        super().__init__(lookup=lambda: location)
        self.ensure_calls = 0
        if location is not None:
            self._location = location

    def ensure(self, on_error=None):
        self.ensure_calls += 1
        return None


# -----------------------------------------------------------------------
# build_contents
# -----------------------------------------------------------------------

class TestBuildContents(unittest.TestCase):

    def test_roles_mapped_and_new_turn_last(self) -> None:
        history = [
            ChatMessage("user", "Hi"),
            ChatMessage("assistant", "Hello",
                        (GroundingSource("t", "https://x"),)),
        ]
        contents = build_contents(history, "How are you?")
        self.assertEqual([c["role"] for c in contents],
                         ["user", "model", "user"])
        self.assertEqual(contents[1]["parts"], [{"text": "Hello"}])
        self.assertEqual(contents[-1]["parts"], [{"text": "How are you?"}])

    def test_attachment_goes_on_new_turn_only(self) -> None:
        att = Attachment(data="QUJD", mime_type="image/png")
        contents = build_contents([ChatMessage("user", "old")], "look", att)
        self.assertEqual(len(contents[0]["parts"]), 1)
        self.assertEqual(contents[-1]["parts"][1],
                         {"inlineData": {"mimeType": "image/png",
                                         "data": "QUJD"}})


# -----------------------------------------------------------------------
# ChatDispatcher
# -----------------------------------------------------------------------

class TestChatDispatcher(unittest.TestCase):

    def setUp(self) -> None:
        self.kv = KeyValueStore(":memory:")
        self.auth = AuthGate(self.kv)
        self.store = SessionStore(self.kv)
        self.user = self.auth.register("alice", "secret")
        self.store.load_for_user(self.user)

    def tearDown(self) -> None:
        self.kv.close()

    def _dispatcher(self, client, cache=None, on_error=None) -> ChatDispatcher:
        return ChatDispatcher(self.store, client, cache or _NoLookup(),
                              on_location_error=on_error)

    def test_registration_gives_default_session(self) -> None:
        sessions = self.store.sessions
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].title, DEFAULT_TITLE)
        self.assertEqual(sessions[0].messages, [])

    def test_successful_send(self) -> None:
        client = _FakeClient()
        result = self._dispatcher(client).send("Hello", self.user)
        self.assertTrue(result.ok)
        session = self.store.active()
        self.assertEqual(session.title, "Hello")
        self.assertEqual(
            [(m.role, m.content) for m in session.messages],
            [("user", "Hello"), ("assistant", "Hi Alice!")],
        )
        self.assertEqual(len(client.calls), 1)
        self.assertIn("alice", client.calls[0]["system_instruction"])

    def test_failure_rolls_back(self) -> None:
        client = _FakeClient(error=GeminiAPIError("quota exceeded"))
        result = self._dispatcher(client).send("Hello", self.user)
        self.assertFalse(result.ok)
        self.assertTrue(result.error)
        self.assertIn("quota exceeded", result.error)
        self.assertEqual(self.store.active().messages, [])

    def test_unexpected_exception_also_rolls_back(self) -> None:
        client = _FakeClient(error=RuntimeError("boom"))
        dispatcher = self._dispatcher(client)
        dispatcher.send("First", self.user)
        self.assertEqual(self.store.active().messages, [])

    def test_failure_keeps_earlier_exchange(self) -> None:
        client = _FakeClient()
        dispatcher = self._dispatcher(client)
        dispatcher.send("Hello", self.user)
        client.error = GeminiAPIError("down")
        dispatcher.send("Again", self.user)
        self.assertEqual([m.content for m in self.store.active().messages],
                         ["Hello", "Hi Alice!"])

    def test_unsaved_message_is_not_kept(self) -> None:
        client = _FakeClient()
        dispatcher = self._dispatcher(client)
        with mock.patch.object(self.kv, "set_json",
                               side_effect=StorageUnavailable("disk full")):
            with self.assertRaises(StorageUnavailable):
                dispatcher.begin("Hello", self.user)
        session = self.store.active()
        self.assertEqual(session.messages, [])
        self.assertEqual(session.title, DEFAULT_TITLE)
        self.assertEqual(client.calls, [])

    def test_failure_does_not_remove_newer_message(self) -> None:
        client = _FakeClient(error=GeminiAPIError("down"))
        dispatcher = self._dispatcher(client)
        first = dispatcher.begin("Hello", self.user)
        sid = first.session_id
        self.store.append_user_message(sid, ChatMessage("user", "Again"))
        dispatcher.fail(first, GeminiAPIError("down"))
        self.assertEqual([m.content for m in self.store.get(sid).messages],
                         ["Hello", "Again"])

    def test_blank_message_without_attachment_is_ignored(self) -> None:
        client = _FakeClient()
        self.assertIsNone(self._dispatcher(client).send("   ", self.user))
        self.assertEqual(client.calls, [])
        self.assertEqual(self.store.active().messages, [])

    def test_attachment_only_message(self) -> None:
        client = _FakeClient()
        att = Attachment(data="QUJD", mime_type="image/jpeg")
        result = self._dispatcher(client).send("", self.user,
                                               attachment=att)
        self.assertTrue(result.ok)
        self.assertEqual(self.store.active().title, "Image Query")
        parts = client.calls[0]["contents"][-1]["parts"]
        self.assertEqual(parts[1]["inlineData"]["mimeType"], "image/jpeg")

    def test_history_sent_with_follow_up(self) -> None:
        client = _FakeClient()
        dispatcher = self._dispatcher(client)
        dispatcher.send("Hello", self.user)
        dispatcher.send("And then?", self.user)
        roles = [c["role"] for c in client.calls[1]["contents"]]
        self.assertEqual(roles, ["user", "model", "user"])

    def test_sources_attached_to_reply(self) -> None:
        src = GroundingSource("Example", "https://example.com")
        client = _FakeClient(ChatResponse(text="Found it", sources=(src,)))
        result = self._dispatcher(client).send("search", self.user,
                                               use_search=True)
        self.assertEqual(result.message.sources, (src,))
        self.assertTrue(client.calls[0]["use_search"])

    def test_model_is_passed_through(self) -> None:
        client = _FakeClient()
        self._dispatcher(client).send("hi", self.user,
                                      model="gemini-2.5-pro")
        self.assertEqual(client.calls[0]["model"], "gemini-2.5-pro")

    def test_reply_for_deleted_session_is_dropped(self) -> None:
        client = _FakeClient()
        dispatcher = self._dispatcher(client)
        pending = dispatcher.begin("Hello", self.user)
        self.store.delete_session(pending.session_id)
        response = dispatcher.execute(pending)
        dispatcher.complete(pending, response)
        self.assertIsNone(self.store.get(pending.session_id))
        self.assertEqual(self.store.active().messages, [])

    def test_reply_lands_in_originating_session(self) -> None:
        client = _FakeClient()
        dispatcher = self._dispatcher(client)
        pending = dispatcher.begin("Hello", self.user)
        other = self.store.create_session()
        dispatcher.complete(pending, dispatcher.execute(pending))
        self.assertEqual(len(self.store.get(pending.session_id).messages), 2)
        self.assertEqual(self.store.get(other.id).messages, [])

    # -- maps / location --------------------------------------------------

    def test_maps_without_location_triggers_lookup(self) -> None:
        cache = _NoLookup()
        client = _FakeClient()
        self._dispatcher(client, cache).send("cafes nearby", self.user,
                                             use_maps=True)
        self.assertEqual(cache.ensure_calls, 1)
        self.assertIsNone(client.calls[0]["location"])
        self.assertTrue(client.calls[0]["use_maps"])

    def test_cached_location_is_sent(self) -> None:
        here = LatLng(48.85, 2.35)
        cache = _NoLookup(here)
        client = _FakeClient()
        self._dispatcher(client, cache).send("cafes", self.user,
                                             use_maps=True)
        self.assertEqual(cache.ensure_calls, 0)
        self.assertEqual(client.calls[0]["location"], here)

    def test_location_not_sent_without_maps(self) -> None:
        client = _FakeClient()
        self._dispatcher(client, _NoLookup(LatLng(1, 2))).send("hi",
                                                               self.user)
        self.assertIsNone(client.calls[0]["location"])


class TestLocationCache(unittest.TestCase):

    def test_lookup_is_cached(self) -> None:
        calls = []

        def lookup() -> LatLng:
            calls.append(1)
            return LatLng(10.0, 20.0)

        cache = LocationCache(lookup)
        thread = cache.ensure()
        thread.join(timeout=5)
        self.assertEqual(cache.location, LatLng(10.0, 20.0))
        self.assertIsNone(cache.ensure())
        self.assertEqual(len(calls), 1)

    def test_failure_reports_error(self) -> None:
        def lookup() -> LatLng:
            raise LocationUnavailable("offline")

        errors: list[str] = []
        cache = LocationCache(lookup)
        cache.ensure(errors.append).join(timeout=5)
        self.assertIsNone(cache.location)
        self.assertEqual(errors, [LOCATION_ERROR])

    def test_no_second_thread_while_running(self) -> None:
        release = threading.Event()

        def lookup() -> LatLng:
            release.wait(timeout=5)
            return LatLng(1.0, 1.0)

        cache = LocationCache(lookup)
        first = cache.ensure()
        self.assertIsNone(cache.ensure())
        release.set()
        first.join(timeout=5)
        self.assertEqual(cache.location, LatLng(1.0, 1.0))


if __name__ == "__main__":
    unittest.main()
