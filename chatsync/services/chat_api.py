import httpx
import logging
from typing import Optional, Dict, Any, Type, TypeVar
from pydantic import BaseModel, ValidationError
from chatsync.config import Settings, get_settings
from chatsync.schemas.thread import Thread, ThreadList, CreateThreadRequest
from chatsync.schemas.message import Message, MessagePage, SendMessageRequest
from chatsync.session import SessionStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ChatApiError(Exception):
    """Any failed call to the chat backend.

    ``message`` is the server's human readable text when the response carried
    one, otherwise None so callers can substitute their own wording.
    """

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message or code or f"HTTP {status_code}")
        self.message = message
        self.status_code = status_code
        self.code = code

    def message_or(self, fallback: str) -> str:
        return self.message or fallback


class ChatApiClient:
    """Client for the chat REST endpoints (JSON envelopes, bearer auth)"""

    def __init__(self, session: SessionStore, client: Optional[httpx.AsyncClient] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.session = session
        self.page_limit = settings.message_page_limit
        self.include_archived = settings.include_archived
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=settings.api_url.rstrip("/"),
            timeout=settings.api_timeout,
            verify=settings.verify_ssl,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        if self.session.token:
            return {"Authorization": f"Bearer {self.session.token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ChatApiError(str(e) or None) from e

        if response.status_code == 401:
            self.session.clear()

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error or data.get("success") is False:
            logger.info(f"{method} {path} -> {response.status_code} {data.get('error')}")
            raise ChatApiError(
                message=data.get("message"),
                status_code=response.status_code,
                code=data.get("error"),
            )
        return data

    def _parse(self, model: Type[ModelT], payload: Any) -> ModelT:
        try:
            return model.model_validate(payload or {})
        except ValidationError as e:
            logger.error(f"Unexpected {model.__name__} payload from chat backend: {e}")
            raise ChatApiError(code="INVALID_RESPONSE") from e

    async def list_threads(self) -> ThreadList:
        params = {"includeArchived": "true"} if self.include_archived else {}
        data = await self._request("GET", "/chat/threads", params=params)
        threads = [self._parse(Thread, t) for t in data.get("threads") or []]
        count = (data.get("meta") or {}).get("count", len(threads))
        return ThreadList(threads=threads, count=count)

    async def create_thread(self, participant_email: str) -> Thread:
        body = CreateThreadRequest(participant_email=participant_email)
        data = await self._request("POST", "/chat/threads", json=body.model_dump(by_alias=True))
        return self._parse(Thread, data.get("thread"))

    async def list_messages(self, thread_id: str, cursor: Optional[str] = None) -> MessagePage:
        params: Dict[str, Any] = {"limit": self.page_limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("GET", f"/chat/threads/{thread_id}/messages", params=params)
        meta = data.get("meta") or {}
        return MessagePage(
            messages=[self._parse(Message, m) for m in data.get("messages") or []],
            next_cursor=meta.get("cursor"),
            limit=meta.get("limit", self.page_limit),
        )

    async def send_message(self, thread_id: str, body: str) -> Message:
        payload = SendMessageRequest(body=body)
        data = await self._request("POST", f"/chat/threads/{thread_id}/messages", json=payload.model_dump())
        return self._parse(Message, data.get("message"))

    async def mark_thread_read(self, thread_id: str) -> None:
        await self._request("POST", f"/chat/threads/{thread_id}/read")

    async def archive_thread(self, thread_id: str) -> None:
        await self._request("POST", f"/chat/threads/{thread_id}/archive")

    async def unarchive_thread(self, thread_id: str) -> None:
        await self._request("POST", f"/chat/threads/{thread_id}/unarchive")
