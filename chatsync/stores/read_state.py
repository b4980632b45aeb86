import logging
from typing import Dict, Optional, Set, Tuple

from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.services.query_cache import QueryCoordinator, THREADS_KEY, messages_key
from chatsync.session import SessionStore
from chatsync.stores.message_pages import MessagePageStore

logger = logging.getLogger(__name__)


class ReadStateTracker:
    """Marks the active thread read once someone else's message is the newest one.

    Runs after every change of the message list. Each ``(thread, last message)``
    pair is acknowledged at most once, so refetches triggered by its own
    invalidation do not mark the thread read again.
    """

    def __init__(
        self,
        api: ChatApiClient,
        queries: QueryCoordinator,
        session: SessionStore,
        pages: MessagePageStore,
    ):
        self.api = api
        self.queries = queries
        self.session = session
        self.pages = pages
        # thread id -> id of the newest message already acknowledged
        self.acknowledged: Dict[str, str] = {}
        self._pending: Set[Tuple[str, str]] = set()

    def should_mark_read(self) -> Optional[Tuple[str, str]]:
        thread_id = self.pages.thread_id
        user_id = self.session.user_id
        if thread_id is None or user_id is None:
            return None

        latest = self.pages.last_message
        if latest is None or latest.sender_id == user_id:
            return None

        target = (thread_id, latest.id)
        if self.acknowledged.get(thread_id) == latest.id or target in self._pending:
            return None
        return target

    async def evaluate(self) -> bool:
        """Issue mark-read if due. Returns True when the server acknowledged it."""
        target = self.should_mark_read()
        if target is None:
            return False

        thread_id, message_id = target
        self._pending.add(target)
        try:
            await self.api.mark_thread_read(thread_id)
        except ChatApiError as e:
            # Background courtesy call; the next evaluation retries.
            logger.warning(f"Failed to mark thread {thread_id} read: {e}")
            return False
        finally:
            self._pending.discard(target)

        self.acknowledged[thread_id] = message_id
        logger.debug(f"Thread {thread_id} read up to {message_id}")
        await self.queries.invalidate(THREADS_KEY, messages_key(thread_id))
        return True
