from typing import Awaitable, Callable, List
import logging

logger = logging.getLogger(__name__)

Listener = Callable[[], Awaitable[None]]


class Observable:
    """Async change listeners for a client-side cache."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception:
                logger.exception(f"{type(self).__name__} listener failed")
