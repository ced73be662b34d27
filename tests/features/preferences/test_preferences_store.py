import pytest

from sitespeed.features.preferences.schemas.preferences import mask_api_key
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.platform.config import settings


def test_api_key_is_session_only(tmp_path):
    path = str(tmp_path / "preferences.json")
    store = PreferencesStore(path=path)
    store.set_api_key("  AIza-session-key  ")

    assert store.get_api_key() == "AIza-session-key"
    assert PreferencesStore(path=path).get_api_key() is None


def test_empty_api_key_is_rejected(preferences):
    with pytest.raises(ValueError):
        preferences.set_api_key("   ")


def test_clear_api_key(preferences):
    preferences.set_api_key("AIza-session-key")
    preferences.clear_api_key()
    assert preferences.get_api_key() is None


def test_resolve_api_key_order(preferences, monkeypatch):
    monkeypatch.setattr(settings, "PSI_API_KEY", "server-key")
    assert preferences.resolve_api_key() == "server-key"

    preferences.set_api_key("stored-key")
    assert preferences.resolve_api_key() == "stored-key"
    assert preferences.resolve_api_key(" request-key ") == "request-key"
    assert preferences.resolve_api_key("") == "stored-key"


def test_resolve_api_key_without_any_key(preferences):
    assert preferences.resolve_api_key(None) is None


def test_allow_insecure_persists(tmp_path):
    path = tmp_path / "nested" / "preferences.json"
    store = PreferencesStore(path=str(path))
    assert store.allow_insecure is False

    store.set_allow_insecure(True)

    assert path.exists()
    assert PreferencesStore(path=str(path)).allow_insecure is True


def test_resolve_allow_insecure(preferences):
    preferences.set_allow_insecure(True)
    assert preferences.resolve_allow_insecure(None) is True
    assert preferences.resolve_allow_insecure(False) is False


def test_unreadable_preferences_file_is_ignored(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text("{not json", encoding="utf-8")
    assert PreferencesStore(path=str(path)).allow_insecure is False


def test_mask_api_key():
    assert mask_api_key("AIzaSy12345678") == "**********5678"
    assert mask_api_key("abc") == "***"
