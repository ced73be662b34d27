from functools import lru_cache

from sitespeed.features.scan.services.orchestrator import ScanOrchestrator
from sitespeed.features.scan.services.pacer import Pacer
from sitespeed.features.scan.services.pagespeed_client import PageSpeedClient, ScoringBackend
from sitespeed.features.scan.services.sitemap import SitemapResolver


@lru_cache
def get_scoring_backend() -> ScoringBackend:
    return PageSpeedClient()


@lru_cache
def get_orchestrator() -> ScanOrchestrator:
    """One orchestrator per process: there is a single active run at a time."""
    return ScanOrchestrator(backend=get_scoring_backend(), pacer=Pacer())


@lru_cache
def get_sitemap_resolver() -> SitemapResolver:
    return SitemapResolver()
