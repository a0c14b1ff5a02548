from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path
import json
import os


SETTINGS_FILE = Path(__file__).parent.parent.parent / "settings.json"


def load_settings_from_file() -> dict:
    """Load settings from JSON file if exists."""
    if SETTINGS_FILE.exists():
        try:
            with open(SETTINGS_FILE) as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            pass
    return {}


class Settings(BaseSettings):
    # Metadata store: "mock" keeps documents in memory, "live" talks to Firestore
    metadata_store_mode: str = "mock"

    # Firestore (for live mode)
    firestore_project_id: str = ""
    firestore_api_key: str = ""
    firestore_bearer_token: str = ""
    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    firestore_poll_interval: float = 2.0
    remote_timeout_seconds: float = 10.0

    # Local content cache
    content_cache_url: str = "sqlite:///./content_cache.db"
    content_tombstone_ttl_seconds: float = 30.0
    anonymous_user_key: str = "anonymous"

    # Workspace rules
    required_file_extension: str = ".pdf"

    # Server
    backend_port: int = 8000
    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    def __init__(self, **kwargs):
        # Load from settings file first
        file_settings = load_settings_from_file()

        # Merge: kwargs > file_settings > env vars (handled by pydantic)
        merged = {**file_settings, **kwargs}

        super().__init__(**merged)

        # Handle CORS_ORIGINS as JSON string from env
        cors_env = os.getenv("CORS_ORIGINS")
        if cors_env:
            try:
                self.cors_origins = json.loads(cors_env)
            except json.JSONDecodeError:
                pass

    @property
    def is_live(self) -> bool:
        return self.metadata_store_mode == "live"

    def get_effective_settings(self) -> dict:
        """Get current effective settings (for API response)."""
        return {
            "metadata_store_mode": self.metadata_store_mode,
            "firestore_project_id": self.firestore_project_id,
            "firestore_api_key": self._mask_key(self.firestore_api_key),
            "firestore_bearer_token": self._mask_key(self.firestore_bearer_token),
            "firestore_poll_interval": self.firestore_poll_interval,
            "remote_timeout_seconds": self.remote_timeout_seconds,
            "required_file_extension": self.required_file_extension,
            "content_tombstone_ttl_seconds": self.content_tombstone_ttl_seconds,
        }

    def _mask_key(self, key: str) -> str:
        """Mask a secret key for display."""
        if not key:
            return ""
        if len(key) <= 8:
            return "*" * len(key)
        return key[:4] + "*" * (len(key) - 8) + key[-4:]


def reload_settings() -> "Settings":
    """Reload settings from file and environment."""
    global settings
    settings = Settings()
    return settings


settings = Settings()
