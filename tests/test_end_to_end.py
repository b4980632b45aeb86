import unittest

import httpx

from chatsync import open_chat
from chatsync.config import Settings
from chatsync.controller import ConversationStatus
from chatsync.services.query_cache import messages_key

from tests.fake_backend import ChatBackend, create_app
from tests.fakes import make_session


class OpenChatTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.backend = ChatBackend()
        self.backend.add_user("u1", "Mia", "mia@example.com", role="mentor")
        self.backend.add_user("u2", "Ola", "ola@example.com")
        self.backend.add_user("u3", "Pia", "pia@example.com")
        self.backend.add_user("u4", "Kai", "kai@example.com")
        self.backend.add_thread("u1", "u3", thread_id="T2")
        self.backend.add_message("T2", "u1", "ping")
        self.backend.add_thread("u1", "u2", thread_id="T1")
        self.backend.add_message("T1", "u1", "hello")
        self.backend.add_message("T1", "u2", "hi there")
        self.backend.add_message("T1", "u2", "are you around?")

        self.session = make_session("u1")
        self.settings = Settings(poll_enabled=False, message_page_limit=2)
        self.http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=create_app(self.backend)),
            base_url="http://testserver/api",
        )

    async def asyncTearDown(self):
        await self.http.aclose()

    def open(self, **kwargs):
        return open_chat(settings=self.settings, session=self.session, client=self.http, **kwargs)

    async def test_full_conversation_flow(self):
        async with self.open() as chat:
            self.assertEqual(chat.status, ConversationStatus.THREAD_SELECTED)
            self.assertEqual(chat.active_thread_id, "T1")
            self.assertEqual([m.body for m in chat.messages], ["hi there", "are you around?"])
            self.assertTrue(chat.has_more)

            # Opening the thread acknowledged the counterpart's latest message
            self.assertEqual(self.backend.count("POST /api/chat/threads/T1/read"), 1)
            self.assertEqual(chat.active_thread.unread_count, 0)

            self.assertTrue(await chat.load_more())
            self.assertEqual([m.body for m in chat.messages], ["hello", "hi there", "are you around?"])
            self.assertFalse(chat.has_more)

            attempt = await chat.send("see you at 5")
            self.assertIsNone(attempt.error)
            self.assertEqual(chat.messages[-1].body, "see you at 5")
            self.assertEqual(chat.active_thread.last_message, "see you at 5")
            self.assertEqual(self.backend.count("POST /api/chat/threads/T1/read"), 1)

    async def test_new_message_from_counterpart_is_acknowledged(self):
        async with self.open() as chat:
            self.backend.add_message("T1", "u2", "still there?")
            await chat.queries.invalidate(messages_key("T1"))

            self.assertEqual(chat.messages[-1].body, "still there?")
            self.assertEqual(self.backend.count("POST /api/chat/threads/T1/read"), 2)

    async def test_deep_link_opens_requested_thread(self):
        async with self.open(navigation={"threadId": "T2"}) as chat:
            self.assertEqual(chat.active_thread_id, "T2")
            self.assertEqual(chat.navigation, {})
            self.assertEqual([m.body for m in chat.messages], ["ping"])
            # Own message last: nothing to acknowledge
            self.assertEqual(self.backend.count("POST /api/chat/threads/T2/read"), 0)

    async def test_start_conversation(self):
        async with self.open() as chat:
            result = await chat.start_conversation("ghost@example.com")
            self.assertIsNone(result)
            self.assertEqual(chat.creation_error, "No user found with that email")
            self.assertEqual(len(chat.threads), 2)

            thread = await chat.start_conversation("kai@example.com")
            self.assertIsNone(chat.creation_error)
            self.assertEqual(chat.active_thread_id, thread.id)
            self.assertEqual(len(chat.threads), 3)
            self.assertEqual(chat.messages, [])

    async def test_archive_hides_thread_and_moves_selection(self):
        async with self.open() as chat:
            self.assertTrue(await chat.archive_thread("T1"))
            self.assertEqual(chat.active_thread_id, "T2")
            self.assertEqual([t.id for t in chat.visible_threads], ["T2"])

    async def test_rejected_token_signs_out(self):
        self.session.token = "stranger"

        async with self.open() as chat:
            self.assertEqual(chat.threads_error, "Authentication required.")
            self.assertEqual(chat.status, ConversationStatus.NO_THREADS_YET)

        self.assertFalse(self.session.is_authenticated)
