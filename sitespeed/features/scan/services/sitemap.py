import gzip
import logging
import xml.etree.ElementTree as ET
from typing import List, Optional
from urllib.parse import urlparse

import httpx

from sitespeed.platform.config import settings
from sitespeed.platform.exceptions import SitemapResolutionError
from sitespeed.platform.utils.url_validator import unique_in_order

logger = logging.getLogger(__name__)

SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
GZIP_MAGIC = b"\x1f\x8b"


class SitemapResolver:
    """
    Resolve a sitemap address into the ordered list of page URLs it lists.

    Handles <urlset> and <sitemapindex> documents, namespaced or not, and
    follows child sitemaps up to max_depth levels.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_depth: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = settings.SITEMAP_FETCH_TIMEOUT if timeout is None else timeout
        self.max_depth = settings.SITEMAP_MAX_DEPTH if max_depth is None else max_depth
        self._transport = transport

    async def resolve(self, sitemap_url: str, allow_insecure: bool = False) -> List[str]:
        if not sitemap_url or not sitemap_url.strip():
            raise SitemapResolutionError("Sitemap URL is required", status_code=400)
        sitemap_url = sitemap_url.strip()
        if not _is_absolute_http_url(sitemap_url):
            raise SitemapResolutionError("Invalid Sitemap URL format", status_code=400)

        logger.info(f"[Sitemap Parser] Fetching {sitemap_url} (verify TLS: {not allow_insecure})")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                verify=not allow_insecure,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                urls = await self._collect(client, sitemap_url, depth=0)
        except httpx.HTTPStatusError as e:
            logger.error(f"[Sitemap Parser] HTTP {e.response.status_code} for {e.request.url}")
            raise SitemapResolutionError(
                f"Sitemap request failed with status {e.response.status_code}",
                status_code=502,
                debug=_debug_payload(sitemap_url, allow_insecure, e),
            ) from e
        except httpx.RequestError as e:
            logger.error(f"[Sitemap Parser] Error fetching {sitemap_url}: {e}")
            raise SitemapResolutionError(
                str(e) or "Failed to fetch sitemap",
                status_code=502,
                debug=_debug_payload(sitemap_url, allow_insecure, e),
            ) from e
        except (ET.ParseError, gzip.BadGzipFile, EOFError) as e:
            logger.error(f"[Sitemap Parser] Malformed XML in {sitemap_url}: {e}")
            raise SitemapResolutionError(
                f"Failed to parse sitemap: {e}",
                status_code=422,
                debug=_debug_payload(sitemap_url, allow_insecure, e),
            ) from e

        urls = unique_in_order(urls)
        if not urls:
            logger.error("[Sitemap Parser] No URLs found in sitemap")
            raise SitemapResolutionError(
                "No URLs found in the sitemap",
                status_code=404,
                debug={
                    "sitemap_url": sitemap_url,
                    "allow_insecure": allow_insecure,
                    "sites_found": 0,
                },
            )

        logger.info(f"[Sitemap Parser] Successfully extracted {len(urls)} URLs")
        return urls

    async def _collect(self, client: httpx.AsyncClient, url: str, depth: int) -> List[str]:
        if depth >= self.max_depth:
            logger.warning(f"[Sitemap Parser] Max depth ({self.max_depth}) reached at {url}")
            return []

        response = await client.get(url)
        response.raise_for_status()
        root = ET.fromstring(_decode_body(response.content))

        if _local_name(root.tag) == "sitemapindex":
            urls: List[str] = []
            for child_url in _locs(root, "sitemap"):
                urls.extend(await self._collect(client, child_url, depth + 1))
            return urls

        return _locs(root, "url")


def _locs(root: ET.Element, entry: str) -> List[str]:
    elements = root.findall(f"sm:{entry}/sm:loc", SITEMAP_NS)
    if not elements:
        elements = root.findall(f"{entry}/loc")
    return [element.text.strip() for element in elements if element.text and element.text.strip()]


def _local_name(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _decode_body(content: bytes) -> bytes:
    # .xml.gz sitemaps are served as plain gzip files, not Content-Encoding
    if content[:2] == GZIP_MAGIC:
        return gzip.decompress(content)
    return content


def _is_absolute_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _debug_payload(sitemap_url: str, allow_insecure: bool, error: Exception) -> dict:
    return {
        "sitemap_url": sitemap_url,
        "allow_insecure": allow_insecure,
        "name": error.__class__.__name__,
        "message": str(error),
        "cause": repr(error.__cause__) if error.__cause__ else None,
    }
