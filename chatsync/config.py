from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # Chat backend
    api_url: str = "http://localhost:4000/api"
    api_timeout: float = 10.0  # seconds
    verify_ssl: bool = True

    # Message history paging (server caps at 100)
    message_page_limit: int = 50

    # Thread list
    include_archived: bool = True
    thread_list_soft_limit: int = 100  # server returns at most this many threads

    # Polling - the backend is refetched, not subscribed to
    poll_enabled: bool = True
    poll_interval_seconds: int = 30

    # Stored login (token + user as written by the auth flow)
    session_file: str = ".chat_session.json"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CHAT_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
