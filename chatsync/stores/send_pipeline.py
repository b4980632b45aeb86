import enum
import itertools
import logging
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from chatsync.schemas.message import Message
from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.services.query_cache import QueryCoordinator, THREADS_KEY, messages_key

logger = logging.getLogger(__name__)

SELECT_CONVERSATION_FIRST = "Select a conversation first."
SEND_FAILED = "Failed to send message."


class SendStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SendAttempt(BaseModel):
    id: int
    thread_id: Optional[str] = None
    body: str
    status: SendStatus = SendStatus.PENDING
    message: Optional[Message] = None
    error: Optional[str] = None


class SendPipeline:
    """Submits outgoing messages for the thread the user is looking at.

    Sends are not queued; several may be in flight and each attempt keeps its
    own outcome. Nothing is appended locally: a successful send invalidates the
    thread's pages and the thread list, and the refetch brings the message in.
    """

    def __init__(self, api: ChatApiClient, queries: QueryCoordinator, active_thread_id: Callable[[], Optional[str]]):
        self.api = api
        self.queries = queries
        self.active_thread_id = active_thread_id
        self.error: Optional[str] = None
        self.in_flight: Dict[int, SendAttempt] = {}
        self._ids = itertools.count(1)

    @property
    def is_sending(self) -> bool:
        return bool(self.in_flight)

    async def send(self, thread_id: Optional[str], body: str) -> SendAttempt:
        attempt = SendAttempt(id=next(self._ids), thread_id=thread_id, body=body)

        if thread_id is None or thread_id != self.active_thread_id():
            attempt.status = SendStatus.FAILED
            attempt.error = SELECT_CONVERSATION_FIRST
            self.error = SELECT_CONVERSATION_FIRST
            return attempt

        self.error = None
        self.in_flight[attempt.id] = attempt
        try:
            message = await self.api.send_message(thread_id, body)
        except ChatApiError as e:
            logger.warning(f"Failed to send message to thread {thread_id}: {e}")
            attempt.status = SendStatus.FAILED
            attempt.error = e.message_or(SEND_FAILED)
            self.error = attempt.error
            return attempt
        finally:
            self.in_flight.pop(attempt.id, None)

        attempt.status = SendStatus.SUCCEEDED
        attempt.message = message
        await self.queries.invalidate(messages_key(message.thread_id), THREADS_KEY)
        return attempt
