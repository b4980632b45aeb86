from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


def to_camel(string: str) -> str:
    components = string.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


class Participant(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )

    id: str
    name: str = ""
    avatar: Optional[str] = None
    role: Optional[str] = None


class SessionMeta(BaseModel):
    """Scheduling record a thread was opened for."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )

    id: Optional[str] = None
    subject: Optional[str] = None
    date: Optional[datetime] = None
    room: Optional[str] = None


class Thread(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )

    id: str
    participants: List[Participant] = Field(default_factory=list)
    counterpart: Optional[Participant] = None
    title: Optional[str] = None
    session: Optional[SessionMeta] = None

    # Summary fields, refreshed whenever the thread list is reloaded
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_sender: Optional[str] = None
    unread_count: int = 0
    archived: bool = False

    def counterpart_for(self, user_id: Optional[str]) -> Optional[Participant]:
        """Other participant from ``user_id``'s point of view.

        The server already resolves it for the viewer; otherwise it is only
        derivable for a two-person thread.
        """
        if self.counterpart is not None:
            return self.counterpart
        if user_id is None or len(self.participants) != 2:
            return None
        others = [p for p in self.participants if p.id != user_id]
        return others[0] if len(others) == 1 else None

    def display_title(self, user_id: Optional[str] = None) -> str:
        if self.title:
            return self.title
        if self.session is not None and self.session.subject:
            return self.session.subject
        counterpart = self.counterpart_for(user_id)
        if counterpart is not None and counterpart.name:
            return counterpart.name
        return "Conversation"


class ThreadList(BaseModel):
    threads: List[Thread] = Field(default_factory=list)
    count: int = 0


class CreateThreadRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )

    participant_email: str
