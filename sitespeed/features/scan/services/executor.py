import asyncio
import logging
from typing import Callable, Optional

from sitespeed.features.scan.schemas.scan import Device, DeviceResult, ScanItem, ScanStatus
from sitespeed.features.scan.services.pacer import Pacer
from sitespeed.features.scan.services.pagespeed_client import ScoringBackend
from sitespeed.features.scan.services.store import (
    ScanItemStore,
    mark_failed,
    mark_scanning,
    reset_bare,
)
from sitespeed.platform.exceptions import ScanBackendError

logger = logging.getLogger(__name__)

STOPPED_BEFORE_DESKTOP = "Scan stopped before desktop analysis"

DeviceCallback = Callable[[str, Optional[Device]], None]
ItemCallback = Callable[[str], None]


class ScanExecutor:
    """
    Drives one URL through mobile then desktop and records the outcome.

    The store is the only place outcomes go. Retrying an item always runs
    both devices again; there is no resuming from the desktop step.
    """

    def __init__(self, store: ScanItemStore, backend: ScoringBackend, pacer: Pacer) -> None:
        self.store = store
        self.backend = backend
        self.pacer = pacer

    async def run(
        self,
        url: str,
        *,
        api_key: str,
        cancel_event: asyncio.Event,
        pace_after: bool = True,
        on_device: Optional[DeviceCallback] = None,
        on_update: Optional[ItemCallback] = None,
    ) -> Optional[ScanStatus]:
        """
        Returns the item's final status, or None when the URL is no longer in
        the store.
        """
        if not self._write(url, mark_scanning, on_update):
            logger.warning(f"Skipping {url}: no longer part of the scan")
            return None

        try:
            mobile = await self._call(url, api_key, Device.mobile, on_device)
            self._write(url, _set_result(Device.mobile, mobile), on_update)

            cancelled = await self.pacer.wait(cancel_event)
            if cancelled or cancel_event.is_set():
                logger.info(f"Scan stopped by user before desktop analysis of {url}")
                self._write(url, mark_failed(STOPPED_BEFORE_DESKTOP), on_update)
                return ScanStatus.failed

            desktop = await self._call(url, api_key, Device.desktop, on_device)
            self._write(url, _complete_with(desktop), on_update)
            status = ScanStatus.completed
        except ScanBackendError as e:
            logger.error(f"Failed to scan {url}: {e.message} ({e.kind}, status {e.status_code})")
            self._write(url, mark_failed(e.message), on_update)
            status = ScanStatus.failed
        except asyncio.CancelledError:
            logger.warning(f"Scan task cancelled while scanning {url}")
            self._write(url, reset_bare, on_update)
            raise
        finally:
            if on_device is not None:
                on_device(url, None)

        if pace_after:
            await self.pacer.wait(cancel_event)
        return status

    async def _call(
        self,
        url: str,
        api_key: str,
        device: Device,
        on_device: Optional[DeviceCallback],
    ) -> DeviceResult:
        if on_device is not None:
            on_device(url, device)
        logger.info(f"Scanning {url} ({device.value})...")
        try:
            return await self.backend.analyze(url, api_key, device)
        except ScanBackendError:
            raise
        except Exception as e:
            # Anything the backend throws is recorded on the item, never raised past it
            raise ScanBackendError(str(e) or e.__class__.__name__) from e

    def _write(self, url: str, mutator, on_update: Optional[ItemCallback]) -> bool:
        written = self.store.update(url, mutator)
        if written and on_update is not None:
            on_update(url)
        return written


def _set_result(device: Device, result: DeviceResult):
    def _apply(item: ScanItem) -> None:
        if device == Device.mobile:
            item.mobile = result
        else:
            item.desktop = result
    return _apply


def _complete_with(desktop: DeviceResult):
    def _apply(item: ScanItem) -> None:
        item.desktop = desktop
        item.status = ScanStatus.completed
        item.error = None
    return _apply
