"""Conversation controller: which thread is active, and the flows around it.

Selection is an explicit state machine. ``reconcile_selection`` is a pure
transition function returning the next selection together with the side
effects the controller must apply (for example consuming a deep link).
"""
import enum
import logging
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from chatsync.config import Settings
from chatsync.schemas.message import Message
from chatsync.schemas.thread import Thread
from chatsync.services.chat_api import ChatApiClient, ChatApiError
from chatsync.services.query_cache import QueryCoordinator
from chatsync.session import SessionStore
from chatsync.stores.message_pages import MessagePageStore
from chatsync.stores.read_state import ReadStateTracker
from chatsync.stores.send_pipeline import SendAttempt, SendPipeline
from chatsync.stores.thread_directory import ThreadDirectory

logger = logging.getLogger(__name__)

DEEP_LINK_PARAM = "threadId"

START_CONVERSATION_FAILED = "Unable to start conversation."
ARCHIVE_FAILED = "Unable to archive chat."
UNARCHIVE_FAILED = "Unable to unarchive chat."
THREADS_FAILED = "Failed to load conversations."


class ConversationStatus(str, enum.Enum):
    NO_THREADS_YET = "no_threads_yet"
    THREAD_SELECTED = "thread_selected"


class Effect(str, enum.Enum):
    CONSUME_DEEP_LINK = "consume_deep_link"
    SHOW_ARCHIVED = "show_archived"


class Transition(BaseModel):
    thread_id: Optional[str] = None
    effects: List[Effect] = Field(default_factory=list)

    @property
    def status(self) -> ConversationStatus:
        if self.thread_id is None:
            return ConversationStatus.NO_THREADS_YET
        return ConversationStatus.THREAD_SELECTED


def visible_threads(threads: List[Thread], show_archived: bool) -> List[Thread]:
    return [t for t in threads if t.archived == show_archived]


def reconcile_selection(
    threads: List[Thread],
    active_thread_id: Optional[str],
    deep_link: Optional[str] = None,
    show_archived: bool = False,
    list_loaded: bool = True,
) -> Transition:
    """Next selection after the thread list, the navigation context or the view changed."""
    visible = visible_threads(threads, show_archived)
    first_visible = visible[0].id if visible else None
    # Nothing in the current view: fall back to the first thread overall
    fallback = first_visible or (threads[0].id if threads else None)

    if deep_link:
        requested = next((t for t in threads if t.id == deep_link), None)
        if requested is not None:
            effects = [Effect.CONSUME_DEEP_LINK]
            if requested.archived and not show_archived:
                effects.append(Effect.SHOW_ARCHIVED)
            return Transition(thread_id=requested.id, effects=effects)

    if active_thread_id is None:
        return Transition(thread_id=fallback)

    active = next((t for t in threads if t.id == active_thread_id), None)
    if active is None:
        # Only a list we actually received can prove the thread is gone
        if not list_loaded:
            return Transition(thread_id=active_thread_id)
        return Transition(thread_id=fallback)

    if active.archived and not show_archived and first_visible is not None:
        return Transition(thread_id=first_visible)

    return Transition(thread_id=active_thread_id)


class ConversationController:
    def __init__(
        self,
        api: ChatApiClient,
        session: SessionStore,
        queries: Optional[QueryCoordinator] = None,
        navigation: Optional[Mapping[str, str]] = None,
        settings: Optional[Settings] = None,
    ):
        self.api = api
        self.session = session
        self.queries = queries or QueryCoordinator()
        self.directory = ThreadDirectory(api, self.queries, settings=settings)
        self.pages = MessagePageStore(api, self.queries)
        self.read_state = ReadStateTracker(api, self.queries, session, self.pages)
        self.sender = SendPipeline(api, self.queries, lambda: self.active_thread_id)

        self.active_thread_id: Optional[str] = None
        self.navigation: Dict[str, str] = dict(navigation or {})
        self.show_archived = False
        self.creation_error: Optional[str] = None
        self.thread_action_error: Optional[str] = None

        self.directory.add_listener(self._reconcile)
        self.pages.add_listener(self.read_state.evaluate)

    # --- exposed state -------------------------------------------------

    @property
    def status(self) -> ConversationStatus:
        if self.active_thread_id is None:
            return ConversationStatus.NO_THREADS_YET
        return ConversationStatus.THREAD_SELECTED

    @property
    def threads(self) -> List[Thread]:
        return self.directory.threads

    @property
    def visible_threads(self) -> List[Thread]:
        return visible_threads(self.directory.threads, self.show_archived)

    @property
    def active_thread(self) -> Optional[Thread]:
        return self.directory.get(self.active_thread_id)

    @property
    def messages(self) -> List[Message]:
        return self.pages.messages

    @property
    def is_loading(self) -> bool:
        return self.pages.is_loading

    @property
    def threads_loading(self) -> bool:
        return self.directory.is_loading

    @property
    def has_more(self) -> bool:
        return self.pages.has_more

    @property
    def is_sending(self) -> bool:
        return self.sender.is_sending

    @property
    def threads_error(self) -> Optional[str]:
        error = self.directory.error
        return error.message_or(THREADS_FAILED) if error else None

    @property
    def messages_error(self) -> Optional[str]:
        error = self.pages.error
        return error.message_or("Failed to load messages.") if error else None

    @property
    def send_error(self) -> Optional[str]:
        return self.sender.error

    # --- transitions ---------------------------------------------------

    async def start(self) -> None:
        """Load the thread list; the first completed load picks the initial thread."""
        await self.directory.refresh()

    async def _select(self, thread_id: Optional[str]) -> None:
        if thread_id != self.active_thread_id:
            logger.debug(f"Active thread {self.active_thread_id} -> {thread_id}")
        self.active_thread_id = thread_id
        await self.pages.set_thread(thread_id)

    async def _reconcile(self) -> None:
        transition = reconcile_selection(
            self.directory.threads,
            self.active_thread_id,
            deep_link=self.navigation.get(DEEP_LINK_PARAM),
            show_archived=self.show_archived,
            list_loaded=self.directory.loaded and self.directory.error is None,
        )
        for effect in transition.effects:
            if effect == Effect.CONSUME_DEEP_LINK:
                self.navigation.pop(DEEP_LINK_PARAM, None)
            elif effect == Effect.SHOW_ARCHIVED:
                self.show_archived = True
        await self._select(transition.thread_id)

    async def navigate(self, params: Mapping[str, str]) -> None:
        """Replace the navigation context (query parameters) and re-evaluate selection."""
        self.navigation = dict(params)
        await self._reconcile()

    async def select_thread(self, thread_id: str) -> None:
        await self._select(thread_id)

    async def start_conversation(self, participant_email: str) -> Optional[Thread]:
        self.creation_error = None
        try:
            thread = await self.directory.start_conversation(participant_email)
        except ChatApiError as e:
            self.creation_error = e.message_or(START_CONVERSATION_FAILED)
            return None
        await self._select(thread.id)
        return thread

    async def send(self, body: str, thread_id: Optional[str] = None) -> SendAttempt:
        """Send ``body`` to the active thread (or ``thread_id``, which must be the active one)."""
        target = thread_id if thread_id is not None else self.active_thread_id
        return await self.sender.send(target, body)

    async def load_more(self) -> bool:
        return await self.pages.load_more()

    async def set_show_archived(self, value: bool) -> None:
        self.show_archived = value
        current = self.active_thread

        next_id = self.active_thread_id
        if not value:
            if current is not None and current.archived:
                next_id = next((t.id for t in self.threads if not t.archived), None)
        elif current is None:
            fallback = next((t for t in self.threads if t.archived), None)
            if fallback is None and self.threads:
                fallback = self.threads[0]
            next_id = fallback.id if fallback else None
        await self._select(next_id)

    async def archive_thread(self, thread_id: str) -> bool:
        self.thread_action_error = None
        try:
            await self.directory.archive(thread_id)
        except ChatApiError as e:
            self.thread_action_error = e.message_or(ARCHIVE_FAILED)
            return False
        return True

    async def unarchive_thread(self, thread_id: str) -> bool:
        self.thread_action_error = None
        try:
            await self.directory.unarchive(thread_id)
        except ChatApiError as e:
            self.thread_action_error = e.message_or(UNARCHIVE_FAILED)
            return False
        return True
