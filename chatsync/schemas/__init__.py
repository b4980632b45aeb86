from chatsync.schemas.thread import Participant, SessionMeta, Thread, ThreadList, CreateThreadRequest
from chatsync.schemas.message import Message, MessagePage, SendMessageRequest, flatten_pages

__all__ = [
    "Participant", "SessionMeta", "Thread", "ThreadList", "CreateThreadRequest",
    "Message", "MessagePage", "SendMessageRequest", "flatten_pages",
]
