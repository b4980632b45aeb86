from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional, Tuple
from datetime import datetime

from chatsync.schemas.thread import to_camel


class Message(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
        frozen=True,
    )

    id: str
    thread_id: str
    sender_id: str
    body: str
    created_at: datetime

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        """Server timestamp first, id breaks ties."""
        return self.created_at, self.id


class MessagePage(BaseModel):
    """One fetch of history. Immutable once received."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
        frozen=True,
    )

    messages: Tuple[Message, ...] = ()
    next_cursor: Optional[str] = None
    limit: int = 50

    @field_validator("next_cursor", mode="before")
    @classmethod
    def _blank_cursor_means_no_more(cls, value):
        if value is None or value == "":
            return None
        return str(value)


class SendMessageRequest(BaseModel):
    body: str


def flatten_pages(pages: List[MessagePage]) -> List[Message]:
    """Merge loaded pages into one oldest-first list without duplicate ids."""
    seen = {}
    for page in pages:
        for message in page.messages:
            seen.setdefault(message.id, message)
    return sorted(seen.values(), key=lambda m: m.sort_key)
