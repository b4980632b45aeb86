import logging
from typing import Callable, List, Optional

from chatsync.schemas.message import Message, MessagePage, flatten_pages
from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.services.query_cache import QueryCoordinator, messages_key
from chatsync.stores.base import Observable

logger = logging.getLogger(__name__)


class MessagePageStore(Observable):
    """History of the active thread, loaded newest page first.

    ``pages`` is append-only for a given selection: ``pages[0]`` is the newest
    page, every later entry is older. Each request remembers the selection
    generation it was issued for; a response for an earlier selection is
    dropped instead of being merged into the current thread.
    """

    def __init__(self, api: ChatApiClient, queries: QueryCoordinator):
        super().__init__()
        self.api = api
        self.queries = queries
        self.thread_id: Optional[str] = None
        self.pages: List[MessagePage] = []
        self.error: Optional[ChatApiError] = None
        self.is_fetching_next_page = False
        self._generation = 0
        self._in_flight = 0
        self._refetch_seq = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def messages(self) -> List[Message]:
        return flatten_pages(self.pages)

    @property
    def last_message(self) -> Optional[Message]:
        messages = self.messages
        return messages[-1] if messages else None

    @property
    def has_more(self) -> bool:
        return bool(self.pages) and self.pages[-1].next_cursor is not None

    @property
    def is_fetching(self) -> bool:
        return self._in_flight > 0

    @property
    def is_loading(self) -> bool:
        return self.is_fetching and not self.pages and not self.is_fetching_next_page

    def _is_current(self, generation: int, thread_id: str) -> bool:
        return generation == self._generation and thread_id == self.thread_id

    async def set_thread(self, thread_id: Optional[str]) -> None:
        """Switch the active thread, discarding everything loaded for the previous one."""
        if thread_id == self.thread_id:
            return

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._generation += 1
        self.thread_id = thread_id
        self.pages = []
        self.error = None
        self.is_fetching_next_page = False
        self._in_flight = 0

        if thread_id is None:
            await self._notify()
            return

        self._unsubscribe = self.queries.subscribe(messages_key(thread_id), self.refetch)
        await self._fetch_newest()

    async def _fetch_newest(self) -> None:
        generation, thread_id = self._generation, self.thread_id
        self._in_flight += 1
        try:
            page = await self.api.list_messages(thread_id)
        except ChatApiError as e:
            if self._is_current(generation, thread_id):
                logger.warning(f"Failed to load messages for thread {thread_id}: {e}")
                self.error = e
            return
        finally:
            if self._is_current(generation, thread_id):
                self._in_flight -= 1

        if not self._is_current(generation, thread_id):
            logger.debug(f"Dropping stale first page for thread {thread_id}")
            return
        self.pages = [page]
        self.error = None
        await self._notify()

    async def load_more(self) -> bool:
        """Fetch the next older page. Returns False when there was nothing to do.

        A no-op while any fetch for this thread is in flight, so two calls
        can never race on the same cursor.
        """
        if self.thread_id is None or not self.has_more or self.is_fetching:
            return False

        generation, thread_id = self._generation, self.thread_id
        cursor = self.pages[-1].next_cursor
        self._in_flight += 1
        self.is_fetching_next_page = True
        try:
            page = await self.api.list_messages(thread_id, cursor)
        except ChatApiError as e:
            if self._is_current(generation, thread_id):
                logger.warning(f"Failed to load older messages for thread {thread_id}: {e}")
                self.error = e
            return False
        finally:
            if self._is_current(generation, thread_id):
                self._in_flight -= 1
                self.is_fetching_next_page = False

        if not self._is_current(generation, thread_id):
            logger.debug(f"Dropping stale page for thread {thread_id}")
            return False
        self.pages = self.pages + [page]
        self.error = None
        await self._notify()
        return True

    async def refetch(self) -> None:
        """Reload the loaded pages after an invalidation.

        Walks the history again from the newest page, following fresh cursors,
        for as many pages as were loaded. A message already shown is never
        dropped: held pages with messages outside the fresh walk (a shifted
        page boundary, or a ``load_more`` that finished meanwhile) are kept,
        ordered by age, and duplicates collapse in ``messages``.
        """
        if self.thread_id is None:
            return

        generation, thread_id = self._generation, self.thread_id
        self._refetch_seq += 1
        seq = self._refetch_seq
        loaded = max(len(self.pages), 1)
        fresh: List[MessagePage] = []
        cursor = None

        self._in_flight += 1
        try:
            for _ in range(loaded):
                page = await self.api.list_messages(thread_id, cursor)
                fresh.append(page)
                cursor = page.next_cursor
                if cursor is None:
                    break
        except ChatApiError as e:
            if self._is_current(generation, thread_id):
                logger.warning(f"Failed to refresh messages for thread {thread_id}: {e}")
                self.error = e
            return
        finally:
            if self._is_current(generation, thread_id):
                self._in_flight -= 1

        if not self._is_current(generation, thread_id) or seq != self._refetch_seq:
            return

        # Held pages still carrying messages the fresh walk did not reach stay,
        # e.g. the old boundary message pushed out by a new arrival
        covered = {m.id for p in fresh for m in p.messages}
        kept = [p for p in self.pages if any(m.id not in covered for m in p.messages)]
        self.pages = sorted(fresh + kept, key=_page_age, reverse=True)
        self.error = None
        await self._notify()


def _page_age(page: MessagePage):
    """Newer pages sort higher; an empty page marks the end of history and sorts last."""
    if not page.messages:
        return (0,)
    return (1, min(m.sort_key for m in page.messages))
