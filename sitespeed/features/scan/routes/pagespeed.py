from fastapi import APIRouter, Depends

from sitespeed.features.preferences.dependencies import get_preferences
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.features.scan.dependencies import get_orchestrator
from sitespeed.features.scan.schemas.scan import PageSpeedRequest
from sitespeed.features.scan.services.orchestrator import ScanOrchestrator
from sitespeed.platform.exceptions import ScanInputError
from sitespeed.platform.response import api_response
from sitespeed.platform.utils.url_validator import validate_url

router = APIRouter(prefix="/pagespeed", tags=["pagespeed"])


@router.post("")
async def run_pagespeed(
    data: PageSpeedRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    preferences: PreferencesStore = Depends(get_preferences),
):
    """
    Score one URL for one device, outside of any run.

    Refused while a run or another single call is active, and a run cannot
    start until this call returns, so the API key never has two calls in
    flight. Backend failures keep their HTTP status.
    """
    orchestrator.ensure_idle()

    is_valid, url_str, error_message = validate_url(data.url)
    if not is_valid:
        raise ScanInputError(f"Invalid URL: {error_message}")

    api_key = preferences.resolve_api_key(data.api_key)
    if not api_key:
        raise ScanInputError("URL and API key are required")

    result = await orchestrator.score_once(url_str, api_key=api_key, device=data.strategy)
    return api_response(
        data={
            "url": url_str,
            "strategy": data.strategy.value,
            **result.model_dump(mode="json"),
        }
    )
