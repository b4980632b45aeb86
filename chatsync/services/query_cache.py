from typing import Awaitable, Callable, Dict, Hashable, List, Set, Tuple
import asyncio
import logging

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]
Refetch = Callable[[], Awaitable[None]]

THREADS_KEY: QueryKey = ("chat", "threads")


def messages_key(thread_id: str) -> QueryKey:
    return ("chat", "threads", thread_id, "messages")


class QueryCoordinator:
    """Dependent-query invalidation.

    Caches register the collection they were built from; mutations invalidate
    collections and every dependent cache reloads itself from the server.
    Nothing is patched in place.
    """

    def __init__(self):
        # query key -> refetch callbacks of the caches built from it
        self.subscribers: Dict[QueryKey, Set[Refetch]] = {}

    def subscribe(self, key: QueryKey, refetch: Refetch) -> Callable[[], None]:
        callbacks = self.subscribers.get(key)
        if not callbacks:
            callbacks = set()
            self.subscribers[key] = callbacks
        callbacks.add(refetch)

        def unsubscribe() -> None:
            callbacks = self.subscribers.get(key)
            if not callbacks:
                return
            callbacks.discard(refetch)
            if len(callbacks) == 0:
                self.subscribers.pop(key, None)

        return unsubscribe

    async def invalidate(self, *keys: QueryKey) -> None:
        pending: List[Refetch] = []
        for key in keys:
            for refetch in list(self.subscribers.get(key, ())):
                if refetch not in pending:
                    pending.append(refetch)
        if not pending:
            return

        results = await asyncio.gather(*[refetch() for refetch in pending], return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Refetch after invalidation failed", exc_info=result)
