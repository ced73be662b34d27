"""
PageSpeed Insights client.

Turns one (url, device) PageSpeed Insights call into a DeviceResult, or a
ScanBackendError carrying the message and HTTP-style status of the failure.
No retries happen here; retrying is an explicit user action on the run.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from sitespeed.features.scan.schemas.scan import (
    AuditIssue,
    CategoryScores,
    Device,
    DeviceResult,
    FieldMetrics,
)
from sitespeed.platform.config import settings
from sitespeed.platform.exceptions import ScanBackendError

logger = logging.getLogger(__name__)

CATEGORIES = ["performance", "accessibility", "best-practices", "seo"]

# Audits surfaced as issues, in display order
RELEVANT_AUDIT_IDS = [
    "first-contentful-paint",
    "largest-contentful-paint",
    "cumulative-layout-shift",
    "total-blocking-time",
    "speed-index",
    "interactive",
    "server-response-time",
    "render-blocking-resources",
    "unminified-css",
    "unminified-javascript",
    "unused-css-rules",
    "unused-javascript",
    "uses-optimized-images",
    "uses-webp-images",
    "uses-responsive-images",
    "image-alt",
    "meta-description",
    "document-title",
    "crawlable-anchors",
]

ISSUE_SCORE_THRESHOLD = 0.9


class ScoringBackend(ABC):
    """Anything that can score one page for one device class."""

    @abstractmethod
    async def analyze(self, url: str, api_key: str, device: Device) -> DeviceResult:
        ...


class PageSpeedClient(ScoringBackend):

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = api_url or settings.PSI_API_URL
        self.timeout = settings.PSI_REQUEST_TIMEOUT if timeout is None else timeout
        self._transport = transport

    async def analyze(self, url: str, api_key: str, device: Device) -> DeviceResult:
        if not url or not api_key:
            raise ScanBackendError("URL and API key are required", status_code=400)

        device = Device(device)
        params = [
            ("url", url),
            ("key", api_key),
            ("strategy", device.value.upper()),
        ] + [("category", category) for category in CATEGORIES]

        logger.info(f"[PageSpeed] Scanning {url} ({device.value})...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.api_url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"[PageSpeed] Timed out scanning {url} ({device.value}): {e}")
            raise ScanBackendError(f"PageSpeed request timed out: {e}", status_code=504) from e
        except httpx.RequestError as e:
            logger.warning(f"[PageSpeed] Request failed for {url} ({device.value}): {e}")
            raise ScanBackendError(f"PageSpeed request failed: {e}", status_code=503) from e

        data = _json_or_empty(response)

        if not response.is_success:
            message = _error_message(data) or f"API request failed with status {response.status_code}"
            logger.error(f"[PageSpeed] API Error for {url} ({device.value}): {message}")
            raise ScanBackendError(message, status_code=response.status_code)

        if data.get("error"):
            raise ScanBackendError(_error_message(data) or "PageSpeed returned an error", status_code=500)

        lighthouse = data.get("lighthouseResult")
        if not isinstance(lighthouse, dict):
            raise ScanBackendError("PageSpeed response is missing lighthouseResult", status_code=502)

        runtime_error = lighthouse.get("runtimeError")
        if runtime_error:
            message = runtime_error.get("message") if isinstance(runtime_error, dict) else str(runtime_error)
            raise ScanBackendError(message or "Lighthouse runtime error", status_code=500)

        result = parse_pagespeed_result(data)
        logger.info(f"[PageSpeed] Completed {url} ({device.value})")
        return result


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None


def _percent(category: Optional[Dict[str, Any]]) -> int:
    score = (category or {}).get("score") or 0
    return int(round(float(score) * 100))


def extract_scores(categories: Dict[str, Any]) -> CategoryScores:
    return CategoryScores(
        performance=_percent(categories.get("performance")),
        accessibility=_percent(categories.get("accessibility")),
        best_practices=_percent(categories.get("best-practices")),
        seo=_percent(categories.get("seo")),
    )


def extract_field_data(loading_experience: Optional[Dict[str, Any]], audits: Dict[str, Any]) -> FieldMetrics:
    """
    Real-user percentiles when CrUX has them, lab values otherwise.
    CrUX reports CLS multiplied by 100.
    """
    metrics = (loading_experience or {}).get("metrics") or {}
    values: Dict[str, float] = {}

    def percentile(key: str) -> Optional[float]:
        entry = metrics.get(key)
        if isinstance(entry, dict) and entry.get("percentile") is not None:
            return float(entry["percentile"])
        return None

    fcp = percentile("FIRST_CONTENTFUL_PAINT_MS")
    if fcp:
        values["fcp"] = fcp
    fid = percentile("FIRST_INPUT_DELAY_MS")
    if fid:
        values["fid"] = fid
    lcp = percentile("LARGEST_CONTENTFUL_PAINT_MS")
    if lcp:
        values["lcp"] = lcp
    cls = percentile("CUMULATIVE_LAYOUT_SHIFT_SCORE")
    if cls:
        values["cls"] = cls / 100

    for key, audit_id in (
        ("fcp", "first-contentful-paint"),
        ("lcp", "largest-contentful-paint"),
        ("cls", "cumulative-layout-shift"),
    ):
        if values.get(key):
            continue
        numeric = (audits.get(audit_id) or {}).get("numericValue")
        if numeric is not None:
            values[key] = float(numeric)

    return FieldMetrics(**values)


def extract_issues(audits: Dict[str, Any]) -> List[AuditIssue]:
    issues = []
    for audit_id in RELEVANT_AUDIT_IDS:
        audit = audits.get(audit_id)
        if not audit:
            continue
        score = audit.get("score")
        if score is None or score < ISSUE_SCORE_THRESHOLD:
            issues.append(
                AuditIssue(
                    id=audit_id,
                    title=audit.get("title") or audit_id,
                    description=audit.get("description") or "",
                    score=score,
                    display_value=audit.get("displayValue"),
                )
            )
    return issues


def parse_pagespeed_result(data: Dict[str, Any]) -> DeviceResult:
    lighthouse = data.get("lighthouseResult") or {}
    audits = lighthouse.get("audits") or {}
    return DeviceResult(
        scores=extract_scores(lighthouse.get("categories") or {}),
        field_data=extract_field_data(data.get("loadingExperience"), audits),
        issues=extract_issues(audits),
    )
