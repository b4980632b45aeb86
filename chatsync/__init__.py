from chatsync.controller import ConversationController, ConversationStatus, reconcile_selection
from chatsync.main import open_chat
from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.session import CurrentUser, SessionStore

__all__ = [
    "ConversationController", "ConversationStatus", "reconcile_selection",
    "open_chat",
    "ChatApiClient", "ChatApiError",
    "CurrentUser", "SessionStore",
]
