"""Report exporters: pure functions over a snapshot of scan items."""
import os
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from sitespeed.features.scan.schemas.scan import DEVICE_ORDER, DeviceResult, ScanItem, ScanStatus

current_dir = os.path.dirname(os.path.abspath(__file__))
template_dir = os.path.join(current_dir, "../template")

env = Environment(
    loader=FileSystemLoader(template_dir),
    autoescape=select_autoescape(["html"]),
)

DEVICE_LABELS = {"mobile": "📱 MOBILE", "desktop": "💻 DESKTOP"}


def score_color(score: int) -> str:
    if score >= 90:
        return "#10b981"
    if score >= 50:
        return "#f59e0b"
    return "#ef4444"


def format_metric(value: Optional[float]) -> str:
    """Human form of a metric: ratios below 1 as-is, ms under a second, seconds above."""
    if value is None:
        return "N/A"
    if value < 1:
        return f"{value:.3f}"
    if value < 1000:
        return f"{round(value)}ms"
    return f"{value / 1000:.2f}s"


env.filters["score_color"] = score_color
env.filters["metric"] = format_metric


def _summary_counts(items: List[ScanItem]) -> Dict[str, int]:
    return {
        "total": len(items),
        "completed": sum(1 for item in items if item.status == ScanStatus.completed),
        "failed": sum(1 for item in items if item.status == ScanStatus.failed),
        "pending": sum(1 for item in items if item.status == ScanStatus.pending),
    }


def _device_payload(result: Optional[DeviceResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return result.model_dump(mode="json")


def build_json_report(
    items: List[ScanItem],
    source: Optional[str],
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    exported_at = exported_at or datetime.now(timezone.utc)
    counts = _summary_counts(items)
    return {
        "export_date": exported_at.isoformat(),
        "source": source or "",
        "total_scanned": counts["total"],
        "completed_scans": counts["completed"],
        "failed_scans": counts["failed"],
        "pending_scans": counts["pending"],
        "results": [
            {
                "url": item.url,
                "status": item.status.value,
                "mobile": _device_payload(item.mobile),
                "desktop": _device_payload(item.desktop),
                "error": item.error,
            }
            for item in items
        ],
    }


def render_html_report(
    items: List[ScanItem],
    source: Optional[str],
    generated_at: Optional[datetime] = None,
) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    results = []
    for item in items:
        devices = []
        for device in DEVICE_ORDER:
            result = item.result_for(device)
            if result is not None:
                devices.append({"label": DEVICE_LABELS[device.value], "result": result})
        results.append({"item": item, "devices": devices})

    template = env.get_template("report.html")
    return template.render(
        generated_at=generated_at,
        source=source or "",
        summary=_summary_counts(items),
        results=results,
        failed_status=ScanStatus.failed,
    )


def report_filename(kind: str, day: Optional[date] = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    if kind == "json":
        return f"pagespeed-results-{day.isoformat()}.json"
    if kind == "html":
        return f"pagespeed-report-{day.isoformat()}.html"
    raise ValueError(f"Unknown report kind: {kind}")
