import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional

import httpx

from chatsync.config import Settings, get_settings
from chatsync.controller import ConversationController
from chatsync.scheduler import start_polling, stop_polling
from chatsync.services.chat_api import ChatApiClient
from chatsync.session import SessionStore


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def open_chat(
    settings: Optional[Settings] = None,
    session: Optional[SessionStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    navigation: Optional[Mapping[str, str]] = None,
) -> AsyncIterator[ConversationController]:
    """Wire up the chat core for the stored session and load the thread list.

    ``navigation`` carries the current query parameters, e.g. a ``threadId``
    deep link.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    session = session or SessionStore(settings.session_file).load()
    api = ChatApiClient(session, client=client, settings=settings)
    controller = ConversationController(api, session, navigation=navigation, settings=settings)

    # Startup
    try:
        await controller.start()
        if settings.poll_enabled:
            start_polling(controller, settings.poll_interval_seconds)
        yield controller
    # Shutdown
    finally:
        stop_polling()
        await api.aclose()
