"""
Background polling. The chat backend is not subscribed to; instead the thread
list and the open thread are invalidated on a fixed interval so new messages
and unread counts show up without user action.
"""
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chatsync.config import get_settings
from chatsync.controller import ConversationController
from chatsync.services.query_cache import THREADS_KEY, messages_key

logger = logging.getLogger(__name__)

POLL_JOB_ID = "chat_poll"

scheduler: Optional[AsyncIOScheduler] = None


async def poll_once(controller: ConversationController) -> None:
    """Refetch the thread list and, when one is open, the active thread's pages."""
    keys = [THREADS_KEY]
    if controller.active_thread_id is not None:
        keys.append(messages_key(controller.active_thread_id))
    logger.debug(f"Polling {len(keys)} chat queries")
    await controller.queries.invalidate(*keys)


def start_polling(controller: ConversationController, interval_seconds: Optional[int] = None) -> AsyncIOScheduler:
    """Start (or reschedule) the poll job. Must be called from a running event loop."""
    global scheduler
    interval = interval_seconds or get_settings().poll_interval_seconds
    if scheduler is None:
        scheduler = AsyncIOScheduler()

    scheduler.add_job(
        poll_once,
        IntervalTrigger(seconds=interval),
        args=[controller],
        id=POLL_JOB_ID,
        name="Refresh chat threads and active messages",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
    logger.info(f"Chat polling started - every {interval}s")
    return scheduler


def stop_polling() -> None:
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Chat polling stopped")
    scheduler = None
