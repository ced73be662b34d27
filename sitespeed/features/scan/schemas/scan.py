"""
Scan Schemas

Domain models for scan items and run state, plus request/response models for
the scan API endpoints.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Scan item models
# ============================================================================

class ScanStatus(str, Enum):
    pending = "pending"
    scanning = "scanning"
    completed = "completed"
    failed = "failed"


class Device(str, Enum):
    mobile = "mobile"
    desktop = "desktop"


DEVICE_ORDER = (Device.mobile, Device.desktop)


class CategoryScores(BaseModel):
    """Lighthouse category scores as whole percentages."""
    performance: int = Field(0, ge=0, le=100)
    accessibility: int = Field(0, ge=0, le=100)
    best_practices: int = Field(0, ge=0, le=100)
    seo: int = Field(0, ge=0, le=100)


class FieldMetrics(BaseModel):
    """Core Web Vitals. Paint/delay values are milliseconds, cls is unitless."""
    fcp: Optional[float] = Field(None, ge=0)
    lcp: Optional[float] = Field(None, ge=0)
    cls: Optional[float] = Field(None, ge=0)
    fid: Optional[float] = Field(None, ge=0)


class AuditIssue(BaseModel):
    id: str
    title: str
    description: str = ""
    score: Optional[float] = Field(None, ge=0, le=1)
    display_value: Optional[str] = None


class DeviceResult(BaseModel):
    scores: CategoryScores
    field_data: FieldMetrics = Field(default_factory=FieldMetrics)
    issues: List[AuditIssue] = Field(default_factory=list)


class ScanItem(BaseModel):
    """
    One URL in the current run.

    completed items always carry both device results and no error; failed
    items always carry an error and keep whichever device results succeeded.
    """
    url: str
    status: ScanStatus = ScanStatus.pending
    mobile: Optional[DeviceResult] = None
    desktop: Optional[DeviceResult] = None
    error: Optional[str] = None
    issues_expanded: bool = False

    @model_validator(mode="after")
    def _check_status_invariants(self):
        if self.status == ScanStatus.completed:
            if self.mobile is None or self.desktop is None or self.error is not None:
                raise ValueError("completed items need both device results and no error")
        elif self.status == ScanStatus.failed:
            if not self.error:
                raise ValueError("failed items need an error message")
        elif self.error is not None:
            raise ValueError(f"{self.status.value} items cannot carry an error")
        return self

    def result_for(self, device: Device) -> Optional[DeviceResult]:
        return self.mobile if device == Device.mobile else self.desktop


# ============================================================================
# Run state
# ============================================================================

class RunStatus(str, Enum):
    idle = "idle"
    running = "running"


class RunState(BaseModel):
    status: RunStatus = RunStatus.idle
    current_index: Optional[int] = None
    current_url: Optional[str] = None
    current_device: Optional[Device] = None
    source: Optional[str] = None
    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    scanning: int = 0


class RunSummary(BaseModel):
    """Outcome of one drained batch."""
    batch: List[str]
    attempted: List[str]
    cancelled: bool = False
    counts: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Requests
# ============================================================================

class ScanStartRequest(BaseModel):
    """
    Start a new scan. Exactly one URL source is used, checked in order:
    urls, manual_urls, sitemap_url. With none of them the already loaded
    list is rescanned.
    """
    urls: Optional[List[str]] = None
    manual_urls: Optional[str] = None
    sitemap_url: Optional[str] = None
    api_key: Optional[str] = None
    allow_insecure: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "urls": ["https://example.com/", "https://example.com/about"],
                "api_key": "AIza...",
            }
        }


class ScanRetryRequest(BaseModel):
    url: str
    api_key: Optional[str] = None


class ScanRetryFailedRequest(BaseModel):
    api_key: Optional[str] = None


class ToggleIssuesRequest(BaseModel):
    url: str


class PageSpeedRequest(BaseModel):
    """Single PageSpeed call, outside of any run."""
    url: str
    api_key: Optional[str] = None
    strategy: Device = Device.mobile


class SitemapParseRequest(BaseModel):
    sitemap_url: str
    allow_insecure: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "sitemap_url": "https://example.com/sitemap.xml",
                "allow_insecure": False,
            }
        }


class SitemapParseResponse(BaseModel):
    urls: List[str]
    count: int
