from fastapi import APIRouter, Depends

from sitespeed.features.preferences.dependencies import get_preferences
from sitespeed.features.preferences.services.preferences import PreferencesStore
from sitespeed.features.scan.dependencies import get_sitemap_resolver
from sitespeed.features.scan.schemas.scan import SitemapParseRequest, SitemapParseResponse
from sitespeed.features.scan.services.sitemap import SitemapResolver
from sitespeed.platform.response import api_response

router = APIRouter(prefix="/sitemap", tags=["sitemap"])


@router.post("/parse")
async def parse_sitemap(
    data: SitemapParseRequest,
    resolver: SitemapResolver = Depends(get_sitemap_resolver),
    preferences: PreferencesStore = Depends(get_preferences),
):
    """
    List the page URLs of a sitemap so the client can pick what to scan.

    `allow_insecure` skips TLS certificate checks; when omitted the stored
    preference is used. Failures come back with a `debug` payload.
    """
    allow_insecure = preferences.resolve_allow_insecure(data.allow_insecure)
    urls = await resolver.resolve(data.sitemap_url, allow_insecure=allow_insecure)
    return api_response(
        message=f"Successfully extracted {len(urls)} URLs",
        data=SitemapParseResponse(urls=urls, count=len(urls)),
    )
