import asyncio
import unittest

from chatsync.services.chat_api import ChatApiError
from chatsync.services.query_cache import QueryCoordinator, messages_key
from chatsync.stores.message_pages import MessagePageStore

from tests.fakes import FakeChatApi, msg, page, settle


def ids(store):
    return [m.id for m in store.messages]


class MessagePageStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.api = FakeChatApi()
        self.queries = QueryCoordinator()
        self.store = MessagePageStore(self.api, self.queries)
        self.api.pages[("T1", None)] = page(msg("m5", 5), msg("m4", 4), cursor="c1")
        self.api.pages[("T1", "c1")] = page(msg("m2", 2), msg("m1", 1), cursor="")

    async def test_two_page_history_flattens_oldest_first(self):
        await self.store.set_thread("T1")
        self.assertEqual(ids(self.store), ["m4", "m5"])
        self.assertTrue(self.store.has_more)

        self.assertTrue(await self.store.load_more())
        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5"])
        self.assertFalse(self.store.has_more)

        self.assertFalse(await self.store.load_more())
        self.assertEqual(self.api.count("list_messages", "T1"), 2)

    async def test_initial_fetch_only_loads_newest_page(self):
        await self.store.set_thread("T1")
        self.assertEqual(self.api.calls, [("list_messages", "T1", None)])

    async def test_load_more_while_fetch_in_flight_is_no_op(self):
        await self.store.set_thread("T1")
        gate = self.api.gate("list_messages", "T1", "c1")

        first = asyncio.create_task(self.store.load_more())
        await settle()
        self.assertTrue(self.store.is_fetching_next_page)
        self.assertFalse(await self.store.load_more())

        gate.set()
        self.assertTrue(await first)
        self.assertEqual(self.api.count("list_messages", "T1", "c1"), 1)
        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5"])

    async def test_load_more_without_thread_is_no_op(self):
        self.assertFalse(await self.store.load_more())
        self.assertEqual(self.api.calls, [])

    async def test_late_response_for_previous_thread_is_dropped(self):
        self.api.pages[("T2", None)] = page(msg("n1", 1, thread="T2"))
        gate = self.api.gate("list_messages", "T1", None)

        pending = asyncio.create_task(self.store.set_thread("T1"))
        await settle()
        await self.store.set_thread("T2")

        gate.set()
        await pending

        self.assertEqual(self.store.thread_id, "T2")
        self.assertEqual(ids(self.store), ["n1"])

    async def test_late_older_page_for_previous_thread_is_dropped(self):
        self.api.pages[("T2", None)] = page(msg("n1", 1, thread="T2"))
        await self.store.set_thread("T1")
        gate = self.api.gate("list_messages", "T1", "c1")

        pending = asyncio.create_task(self.store.load_more())
        await settle()
        await self.store.set_thread("T2")
        gate.set()

        self.assertFalse(await pending)
        self.assertEqual(ids(self.store), ["n1"])
        self.assertFalse(self.store.is_fetching)

    async def test_switching_thread_discards_pages(self):
        await self.store.set_thread("T1")
        await self.store.set_thread(None)

        self.assertEqual(self.store.pages, [])
        self.assertEqual(self.store.messages, [])
        self.assertFalse(self.store.has_more)

    async def test_refetch_after_invalidation_does_not_duplicate(self):
        await self.store.set_thread("T1")
        await self.store.load_more()

        await self.queries.invalidate(messages_key("T1"))
        await self.queries.invalidate(messages_key("T1"))

        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5"])
        self.assertEqual(len(self.store.pages), 2)

    async def test_refetch_picks_up_new_message(self):
        await self.store.set_thread("T1")
        self.api.pages[("T1", None)] = page(msg("m6", 6), msg("m5", 5), cursor="c1")

        await self.queries.invalidate(messages_key("T1"))

        self.assertEqual(ids(self.store), ["m4", "m5", "m6"])
        self.assertTrue(self.store.has_more)

        self.assertTrue(await self.store.load_more())
        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5", "m6"])

    async def test_refetch_keeps_older_messages_when_boundary_shifts(self):
        await self.store.set_thread("T1")
        await self.store.load_more()
        self.api.pages[("T1", None)] = page(msg("m6", 6), msg("m5", 5), cursor="c2")
        self.api.pages[("T1", "c2")] = page(msg("m4", 4), msg("m2", 2), cursor="c3")
        self.api.pages[("T1", "c3")] = page(msg("m1", 1))

        await self.queries.invalidate(messages_key("T1"))

        # m1 fell off the end of the re-walked pages but was already shown
        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5", "m6"])
        self.assertFalse(self.store.has_more)

    async def test_refetch_keeps_page_loaded_concurrently(self):
        await self.store.set_thread("T1")
        gate = self.api.gate("list_messages", "T1", "c1")

        older = asyncio.create_task(self.store.load_more())
        await settle()
        await self.queries.invalidate(messages_key("T1"))
        gate.set()
        await older

        self.assertEqual(ids(self.store), ["m1", "m2", "m4", "m5"])

    async def test_invalidation_of_previous_thread_is_ignored(self):
        await self.store.set_thread("T1")
        await self.store.set_thread(None)
        calls = len(self.api.calls)

        await self.queries.invalidate(messages_key("T1"))

        self.assertEqual(len(self.api.calls), calls)

    async def test_fetch_failure_sets_error_and_keeps_pages(self):
        await self.store.set_thread("T1")
        self.api.errors["list_messages"] = ChatApiError(message="Conversation not found.", status_code=404)

        await self.queries.invalidate(messages_key("T1"))
        self.assertEqual(self.store.error.message, "Conversation not found.")
        self.assertEqual(ids(self.store), ["m4", "m5"])

        del self.api.errors["list_messages"]
        await self.store.load_more()
        self.assertIsNone(self.store.error)

    async def test_loading_flag_only_during_first_page(self):
        gate = self.api.gate("list_messages", "T1", None)
        pending = asyncio.create_task(self.store.set_thread("T1"))
        await settle()
        self.assertTrue(self.store.is_loading)

        gate.set()
        await pending
        self.assertFalse(self.store.is_loading)

    async def test_listeners_notified_when_pages_change(self):
        seen = []

        async def listener():
            seen.append(ids(self.store))

        self.store.add_listener(listener)
        await self.store.set_thread("T1")
        await self.store.load_more()

        self.assertEqual(seen, [["m4", "m5"], ["m1", "m2", "m4", "m5"]])
