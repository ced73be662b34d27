from fastapi import APIRouter, Depends, status

from sitespeed.features.scan.dependencies import get_orchestrator
from sitespeed.features.scan.services.orchestrator import ScanOrchestrator
from sitespeed.platform.config import settings
from sitespeed.platform.response import api_response


router = APIRouter()

@router.get("/health", tags=["health"])
async def health_check(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    return api_response(
        data={
            "status": "ok",
            "service": settings.APP_NAME,
            "scan": orchestrator.state().status.value,
        },
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
