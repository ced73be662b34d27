from fastapi import APIRouter, Depends

from sitespeed.features.preferences.dependencies import get_preferences
from sitespeed.features.preferences.schemas.preferences import (
    AllowInsecureUpdate,
    ApiKeyStatus,
    ApiKeyUpdate,
    mask_api_key,
)
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.platform.response import api_response

router = APIRouter(prefix="/preferences", tags=["preferences"])


def _key_status(preferences: PreferencesStore) -> ApiKeyStatus:
    api_key = preferences.get_api_key()
    return ApiKeyStatus(is_saved=bool(api_key), masked=mask_api_key(api_key) if api_key else "")


@router.get("/api-key")
async def get_api_key_status(preferences: PreferencesStore = Depends(get_preferences)):
    return api_response(data=_key_status(preferences))


@router.put("/api-key")
async def save_api_key(
    data: ApiKeyUpdate,
    preferences: PreferencesStore = Depends(get_preferences),
):
    """Keep the PageSpeed API key for this server session."""
    try:
        preferences.set_api_key(data.api_key)
    except ValueError as e:
        return api_response(message=str(e), status_code=400)
    return api_response(message="API key saved", data=_key_status(preferences))


@router.delete("/api-key")
async def remove_api_key(preferences: PreferencesStore = Depends(get_preferences)):
    preferences.clear_api_key()
    return api_response(message="API key removed", data=_key_status(preferences))


@router.get("/allow-insecure")
async def get_allow_insecure(preferences: PreferencesStore = Depends(get_preferences)):
    return api_response(data={"allow_insecure": preferences.allow_insecure})


@router.put("/allow-insecure")
async def set_allow_insecure(
    data: AllowInsecureUpdate,
    preferences: PreferencesStore = Depends(get_preferences),
):
    """Skip TLS verification when fetching sitemaps. Persists across restarts."""
    preferences.set_allow_insecure(data.allow_insecure)
    return api_response(data={"allow_insecure": preferences.allow_insecure})
