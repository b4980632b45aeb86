import logging
from typing import List, Optional

from chatsync.config import Settings, get_settings
from chatsync.schemas.thread import Thread
from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.services.query_cache import QueryCoordinator, THREADS_KEY
from chatsync.stores.base import Observable

logger = logging.getLogger(__name__)


class ThreadDirectory(Observable):
    """Cached list of the signed-in user's conversation threads.

    The list is never merged by hand: creating, archiving or messaging
    invalidates ``THREADS_KEY`` and the whole list is fetched again, which
    keeps ``unread_count`` and ``last_message_at`` authoritative.
    """

    def __init__(self, api: ChatApiClient, queries: QueryCoordinator, settings: Optional[Settings] = None):
        super().__init__()
        self.api = api
        self.queries = queries
        self.soft_limit = (settings or get_settings()).thread_list_soft_limit
        self.threads: List[Thread] = []
        self.count = 0
        self.error: Optional[ChatApiError] = None
        self.loaded = False
        self._in_flight = 0
        self._refresh_seq = 0
        self.queries.subscribe(THREADS_KEY, self.refresh)

    @property
    def is_fetching(self) -> bool:
        return self._in_flight > 0

    @property
    def is_loading(self) -> bool:
        return self.is_fetching and not self.loaded

    def get(self, thread_id: Optional[str]) -> Optional[Thread]:
        if thread_id is None:
            return None
        return next((t for t in self.threads if t.id == thread_id), None)

    async def refresh(self) -> None:
        """Reload every thread. A failure keeps the previous list and sets ``error``.

        Refreshes overlap routinely; only the most recently issued one is
        applied.
        """
        self._refresh_seq += 1
        seq = self._refresh_seq
        self._in_flight += 1
        try:
            result = await self.api.list_threads()
        except ChatApiError as e:
            if seq != self._refresh_seq:
                return
            logger.warning(f"Failed to load threads: {e}")
            self.error = e
        else:
            if seq != self._refresh_seq:
                logger.debug("Dropping thread list superseded by a newer refresh")
                return
            self.threads = result.threads
            self.count = result.count
            self.error = None
            self.loaded = True
            if len(self.threads) >= self.soft_limit:
                logger.warning(f"Thread list reached {len(self.threads)} entries; older threads may be missing")
        finally:
            self._in_flight -= 1
        await self._notify()

    async def start_conversation(self, participant_email: str) -> Thread:
        """Open (or look up) the thread with the user owning ``participant_email``.

        Raises ChatApiError carrying the server's message untouched; the cached
        list is left alone in that case.
        """
        email = participant_email.strip()
        if not email:
            raise ChatApiError(message="Enter an email address.", code="CHAT_PARTICIPANT_REQUIRED")

        thread = await self.api.create_thread(email)
        logger.info(f"Conversation {thread.id} ready")
        await self.queries.invalidate(THREADS_KEY)
        return thread

    async def archive(self, thread_id: str) -> None:
        await self.api.archive_thread(thread_id)
        await self.queries.invalidate(THREADS_KEY)

    async def unarchive(self, thread_id: str) -> None:
        await self.api.unarchive_thread(thread_id)
        await self.queries.invalidate(THREADS_KEY)
