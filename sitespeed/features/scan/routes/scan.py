from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, status

from sitespeed.features.preferences.dependencies import get_preferences
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.features.scan.dependencies import get_orchestrator, get_sitemap_resolver
from sitespeed.features.scan.schemas.scan import (
    ScanRetryFailedRequest,
    ScanRetryRequest,
    ScanStartRequest,
    ToggleIssuesRequest,
)
from sitespeed.features.scan.services.orchestrator import MANUAL_SOURCE, ScanOrchestrator
from sitespeed.features.scan.services.sitemap import SitemapResolver
from sitespeed.platform.exceptions import ScanInputError
from sitespeed.platform.logger import get_logger
from sitespeed.platform.response import api_response
from sitespeed.platform.utils.url_validator import parse_manual_urls, validate_url

logger = get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])


def _validated_urls(raw_urls: List[str]) -> Tuple[List[str], List[str]]:
    valid, skipped = [], []
    for raw in raw_urls:
        is_valid, url_str, error_message = validate_url(raw)
        if is_valid:
            valid.append(url_str)
        else:
            logger.warning(f"Skipping invalid URL {raw!r}: {error_message}")
            skipped.append(raw)
    return valid, skipped


def _require_api_key(preferences: PreferencesStore, explicit: Optional[str]) -> str:
    api_key = preferences.resolve_api_key(explicit)
    if not api_key:
        raise ScanInputError("Please provide your Google PageSpeed Insights API key")
    return api_key


@router.post("/start", status_code=status.HTTP_202_ACCEPTED)
async def start_scan(
    data: ScanStartRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    resolver: SitemapResolver = Depends(get_sitemap_resolver),
    preferences: PreferencesStore = Depends(get_preferences),
):
    """
    Start scanning a URL list in the background.

    URLs come from `urls`, a pasted `manual_urls` block, or `sitemap_url`
    (checked in that order). Without any of them the currently loaded list
    is scanned again from scratch. Progress is streamed on `/scan/stream`.
    """
    orchestrator.ensure_idle()
    api_key = _require_api_key(preferences, data.api_key)

    urls: Optional[List[str]] = None
    skipped: List[str] = []
    source = MANUAL_SOURCE

    if data.urls is not None:
        urls, skipped = _validated_urls(data.urls)
    elif data.manual_urls is not None:
        urls, skipped = _validated_urls(parse_manual_urls(data.manual_urls))
    elif data.sitemap_url:
        allow_insecure = preferences.resolve_allow_insecure(data.allow_insecure)
        urls = await resolver.resolve(data.sitemap_url, allow_insecure=allow_insecure)
        source = data.sitemap_url.strip()

    if urls is not None and not urls:
        raise ScanInputError("No valid URLs found. Please check your input.")

    batch = orchestrator.prepare_start(
        urls,
        api_key=api_key,
        source=source if urls is not None else None,
    )
    orchestrator.launch(batch)

    logger.info(f"Scan started for {len(batch)} URL(s)")
    return api_response(
        message=f"Scanning {len(batch)} URL(s)",
        status_code=status.HTTP_202_ACCEPTED,
        data={
            "batch": batch,
            "skipped": skipped,
            "state": orchestrator.state(),
        },
    )


@router.post("/stop")
async def stop_scan(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    """Cooperative stop: the call in flight finishes, then the run halts."""
    stopped = orchestrator.stop()
    return api_response(
        message="Stopping scan" if stopped else "No scan is running",
        data={"stopping": stopped, "state": orchestrator.state()},
    )


@router.post("/retry-failed", status_code=status.HTTP_202_ACCEPTED)
async def retry_failed(
    data: Optional[ScanRetryFailedRequest] = None,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    preferences: PreferencesStore = Depends(get_preferences),
):
    """Rescan only the failed URLs; completed results are left untouched."""
    orchestrator.ensure_idle()
    api_key = _require_api_key(preferences, data.api_key if data else None)
    batch = orchestrator.prepare_retry_failed(api_key=api_key)
    orchestrator.launch(batch)
    return api_response(
        message=f"Rescanning {len(batch)} failed URL(s)",
        status_code=status.HTTP_202_ACCEPTED,
        data={"batch": batch, "state": orchestrator.state()},
    )


@router.post("/retry", status_code=status.HTTP_202_ACCEPTED)
async def retry_url(
    data: ScanRetryRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    preferences: PreferencesStore = Depends(get_preferences),
):
    """Rescan one URL of the current list, whatever its status."""
    orchestrator.ensure_idle()
    api_key = _require_api_key(preferences, data.api_key)
    batch = orchestrator.prepare_retry_one(data.url, api_key=api_key)
    orchestrator.launch(batch)
    return api_response(
        message=f"Rescanning {data.url}",
        status_code=status.HTTP_202_ACCEPTED,
        data={"batch": batch, "state": orchestrator.state()},
    )


@router.get("/state")
async def scan_state(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    return api_response(data=orchestrator.state())


@router.get("/results")
async def scan_results(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    return api_response(
        data={
            "state": orchestrator.state(),
            "items": orchestrator.snapshot(),
        }
    )


@router.post("/issues/toggle")
async def toggle_issue_list(
    data: ToggleIssuesRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    item = orchestrator.toggle_issues(data.url)
    return api_response(data=item)
