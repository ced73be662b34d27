from fastapi import APIRouter

from sitespeed.features.health.routes.health import router as health_router
from sitespeed.features.preferences.routes.preferences import router as preferences_router

# Scan feature routes
from sitespeed.features.scan.routes.scan import router as scan_main_router
from sitespeed.features.scan.routes.sse import router as scan_stream_router
from sitespeed.features.scan.routes.sitemap import router as sitemap_router
from sitespeed.features.scan.routes.pagespeed import router as pagespeed_router
from sitespeed.features.scan.routes.reports import router as reports_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(preferences_router)

# Register scan feature routes
api_router.include_router(scan_main_router)
api_router.include_router(scan_stream_router)
api_router.include_router(sitemap_router)
api_router.include_router(pagespeed_router)
api_router.include_router(reports_router)
