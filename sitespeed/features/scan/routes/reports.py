from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse

from sitespeed.features.scan.dependencies import get_orchestrator
from sitespeed.features.scan.services.exporters import (
    build_json_report,
    render_html_report,
    report_filename,
)
from sitespeed.features.scan.services.orchestrator import ScanOrchestrator

router = APIRouter(prefix="/reports", tags=["reports"])


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/json")
async def export_json(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    items = orchestrator.export_snapshot()
    report = build_json_report(items, orchestrator.state().source)
    return JSONResponse(content=report, headers=_attachment(report_filename("json")))


@router.get("/html", response_class=HTMLResponse)
async def export_html(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    items = orchestrator.export_snapshot()
    html = render_html_report(items, orchestrator.state().source)
    return HTMLResponse(content=html, headers=_attachment(report_filename("html")))
