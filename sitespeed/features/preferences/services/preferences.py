import json
import logging
import os
from typing import Optional

from sitespeed.platform.config import settings

logger = logging.getLogger(__name__)


class PreferencesStore:
    """
    Client settings consulted before a run starts.

    The PageSpeed API key only lives for the lifetime of the process, like a
    browser session. The allow_insecure flag survives restarts in a small
    JSON file.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or settings.PREFERENCES_FILE
        self._api_key: Optional[str] = None
        self._allow_insecure = self._load_allow_insecure()

    # ── API key (session scoped) ────────────────

    def get_api_key(self) -> Optional[str]:
        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValueError("API key cannot be empty")
        self._api_key = api_key

    def clear_api_key(self) -> None:
        self._api_key = None

    def resolve_api_key(self, explicit: Optional[str] = None) -> Optional[str]:
        """Request value first, then the stored key, then the server default."""
        for candidate in (explicit, self._api_key, settings.PSI_API_KEY):
            if candidate and candidate.strip():
                return candidate.strip()
        return None

    # ── allow_insecure (durable) ────────────────

    @property
    def allow_insecure(self) -> bool:
        return self._allow_insecure

    def set_allow_insecure(self, value: bool) -> None:
        self._allow_insecure = bool(value)
        self._save()

    def resolve_allow_insecure(self, explicit: Optional[bool] = None) -> bool:
        return self._allow_insecure if explicit is None else bool(explicit)

    def _load_allow_insecure(self) -> bool:
        if not os.path.exists(self.path):
            return False
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
            return False
        return bool(data.get("allow_insecure", False)) if isinstance(data, dict) else False

    def _save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump({"allow_insecure": self._allow_insecure}, fh)
