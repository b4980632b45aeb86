"""Stored login: bearer token plus the signed-in user's profile.

The auth flow (out of scope here) writes a JSON file of the form
``{"token": "...", "user": {"id": "...", "name": "...", "role": "..."}}``.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from chatsync.config import get_settings

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_stored(cls, raw: Dict[str, Any]) -> Optional["CurrentUser"]:
        # Mongo-backed auth hands out ``_id``
        user_id = raw.get("_id") or raw.get("id")
        if not user_id:
            return None
        try:
            return cls(**{**raw, "id": str(user_id)})
        except ValidationError:
            return None


class SessionStore:
    def __init__(self, path: Optional[str] = None, token: Optional[str] = None, user: Optional[CurrentUser] = None):
        self.path = Path(path or get_settings().session_file)
        self.token = token
        self.user = user

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def load(self) -> "SessionStore":
        """Read token and user from disk. Unreadable data leaves the session signed out."""
        if not self.path.exists():
            return self
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return self

        if not isinstance(raw, dict):
            return self
        self.token = raw.get("token") or None
        user = raw.get("user")
        self.user = CurrentUser.from_stored(user) if isinstance(user, dict) else None
        return self

    def save(self) -> None:
        payload = {
            "token": self.token,
            "user": self.user.model_dump() if self.user else None,
        }
        self.path.write_text(json.dumps(payload), encoding="utf-8")

    def clear(self) -> None:
        """Forget token and user, e.g. after the backend rejected the token."""
        self.token = None
        self.user = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.info("Session cleared")
