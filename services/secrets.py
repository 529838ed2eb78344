from typing import Protocol

from core.config import Settings, settings as default_settings
from core.exceptions import SecretNotFoundError


class SecretStore(Protocol):
    def get(self, name: str) -> str: ...


class SettingsSecretStore:
    """Reads secrets from the process settings (environment / .env)."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or default_settings

    def get(self, name: str) -> str:
        value = getattr(self._settings, name, None)
        if not value:
            raise SecretNotFoundError(f"Secret not configured: {name}")
        return value
