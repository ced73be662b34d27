from functools import lru_cache

from sitespeed.features.preferences.services.preferences import PreferencesStore


@lru_cache
def get_preferences() -> PreferencesStore:
    return PreferencesStore()
