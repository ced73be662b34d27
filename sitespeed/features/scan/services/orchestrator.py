"""
Scan orchestration.

ScanOrchestrator owns the run-level control surface: loading a URL list,
starting a run, cooperative stop, and retrying failed or single items.

Every operation that starts a run is split in two:

- prepare_start / prepare_retry_failed / prepare_retry_one run synchronously,
  reject overlapping runs, validate input, reset the affected items and claim
  the run. They return the batch (ordered list of URLs) to scan.
- run(batch) drains that batch through the executor, one item at a time, and
  releases the run when done.

HTTP handlers prepare first and hand the drain to launch(), so two requests
can never both pass the idle check. Library callers use the start /
retry_failed / retry_one coroutines, which do both steps.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from sitespeed.features.scan.schemas.scan import (
    Device,
    DeviceResult,
    RunState,
    RunStatus,
    RunSummary,
    ScanItem,
    ScanStatus,
)
from sitespeed.features.scan.services.events import ScanEventBroker
from sitespeed.features.scan.services.executor import ScanExecutor
from sitespeed.features.scan.services.pacer import Pacer
from sitespeed.features.scan.services.pagespeed_client import ScoringBackend
from sitespeed.features.scan.services.store import (
    ScanItemStore,
    reset_bare,
    reset_pending,
    toggle_issues,
)
from sitespeed.platform.exceptions import (
    ScanAlreadyRunningError,
    ScanInputError,
    ScanItemNotFoundError,
)

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "Manual URLs"


class ScanOrchestrator:

    def __init__(
        self,
        backend: ScoringBackend,
        pacer: Optional[Pacer] = None,
        store: Optional[ScanItemStore] = None,
        events: Optional[ScanEventBroker] = None,
    ) -> None:
        self.store = store or ScanItemStore()
        self.events = events or ScanEventBroker()
        self.executor = ScanExecutor(self.store, backend, pacer or Pacer())
        self._cancel_event = asyncio.Event()
        self._state = RunState()
        self._api_key: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._single_call_active = False

    # ── Queries ─────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._state.status == RunStatus.running

    def state(self) -> RunState:
        state = self._state.model_copy()
        counts = self.store.counts()
        state.total = counts["total"]
        state.completed = counts[ScanStatus.completed.value]
        state.failed = counts[ScanStatus.failed.value]
        state.pending = counts[ScanStatus.pending.value]
        state.scanning = counts[ScanStatus.scanning.value]
        return state

    def snapshot(self) -> List[ScanItem]:
        return self.store.snapshot()

    def export_snapshot(self) -> List[ScanItem]:
        """Snapshot for report exporters, which only run while idle."""
        if self.is_running:
            raise ScanAlreadyRunningError("Reports can be exported once scanning has stopped")
        return self.store.snapshot()

    # ── Loading ─────────────────────────────────

    def load(self, urls: Iterable[str], source: Optional[str] = None) -> List[str]:
        """Replace the item list. Clears every result of the previous run."""
        self.ensure_idle()
        urls = [url for url in (urls or []) if url]
        if not urls:
            raise ScanInputError("Please enter at least one URL")
        loaded = self.store.initialize(urls)
        self._state = RunState(source=source or MANUAL_SOURCE)
        logger.info(f"Loaded {len(loaded)} URL(s) from {self._state.source}")
        return loaded

    # ── Preparing runs ──────────────────────────

    def prepare_start(
        self,
        urls: Optional[Iterable[str]] = None,
        *,
        api_key: Optional[str],
        source: Optional[str] = None,
    ) -> List[str]:
        self.ensure_idle()
        api_key = self._require_api_key(api_key)
        if urls is not None:
            self.load(urls, source)
        batch = self.store.urls()
        if not batch:
            raise ScanInputError("Please select at least one URL to scan")
        return self._claim(batch, api_key)

    def prepare_retry_failed(self, *, api_key: Optional[str]) -> List[str]:
        self.ensure_idle()
        api_key = self._require_api_key(api_key)
        failed = self.store.urls_with_status(ScanStatus.failed)
        if not failed:
            raise ScanInputError("No failed scans to retry")
        for url in failed:
            self.store.update(url, reset_pending)
        logger.info(f"Rescanning {len(failed)} failed URL(s)")
        return self._claim(failed, api_key)

    def prepare_retry_one(self, url: str, *, api_key: Optional[str]) -> List[str]:
        self.ensure_idle()
        api_key = self._require_api_key(api_key)
        if url not in self.store:
            raise ScanItemNotFoundError(url)
        self.store.update(url, reset_bare)
        logger.info(f"Rescanning {url}")
        return self._claim([url], api_key)

    # ── Running ─────────────────────────────────

    async def run(self, batch: List[str]) -> RunSummary:
        """Drain a batch claimed by one of the prepare_* methods."""
        if not self.is_running:
            raise RuntimeError("run() needs a batch claimed by a prepare_* call")

        attempted: List[str] = []
        cancelled = False
        try:
            for position, url in enumerate(batch):
                if self._cancel_event.is_set():
                    cancelled = True
                    logger.info("Scan stopped by user")
                    break

                self._state.current_index = self.store.index_of(url)
                self._state.current_url = url
                attempted.append(url)

                await self.executor.run(
                    url,
                    api_key=self._api_key,
                    cancel_event=self._cancel_event,
                    pace_after=position < len(batch) - 1,
                    on_device=self._on_device,
                    on_update=self._on_update,
                )
            else:
                cancelled = self._cancel_event.is_set()
        finally:
            self._release()

        summary = RunSummary(
            batch=list(batch),
            attempted=attempted,
            cancelled=cancelled,
            counts=self.store.counts(),
        )
        self.events.publish(
            "run_finished",
            summary=summary.model_dump(mode="json"),
            state=self.state().model_dump(mode="json"),
        )
        logger.info(
            f"Scan {'stopped' if cancelled else 'complete'}: "
            f"{len(attempted)}/{len(batch)} URL(s) attempted"
        )
        return summary

    def launch(self, batch: List[str]) -> asyncio.Task:
        """Drain a claimed batch in the background."""
        self._task = asyncio.create_task(self.run(batch))
        self._task.add_done_callback(self._log_task_failure)
        return self._task

    async def join(self) -> Optional[RunSummary]:
        """Wait for the background run started by launch(), if any."""
        if self._task is None:
            return None
        return await self._task

    async def start(
        self,
        urls: Optional[Iterable[str]] = None,
        *,
        api_key: Optional[str],
        source: Optional[str] = None,
    ) -> RunSummary:
        return await self.run(self.prepare_start(urls, api_key=api_key, source=source))

    async def retry_failed(self, *, api_key: Optional[str]) -> RunSummary:
        return await self.run(self.prepare_retry_failed(api_key=api_key))

    async def retry_one(self, url: str, *, api_key: Optional[str]) -> RunSummary:
        return await self.run(self.prepare_retry_one(url, api_key=api_key))

    def stop(self) -> bool:
        """
        Ask the current run to halt. The call in flight is allowed to finish;
        the run stops at its next checkpoint. Returns False when idle.
        """
        if not self.is_running:
            return False
        self._cancel_event.set()
        logger.info("Stop requested")
        return True

    async def score_once(self, url: str, *, api_key: Optional[str], device: Device) -> DeviceResult:
        """
        One backend call outside of any run. Holds the same exclusivity as a
        run: runs, retries and other one-off calls are refused until it returns.
        """
        self.ensure_idle()
        api_key = self._require_api_key(api_key)
        self._single_call_active = True
        try:
            return await self.executor.backend.analyze(url, api_key, device)
        finally:
            self._single_call_active = False

    # ── UI helpers ──────────────────────────────

    def toggle_issues(self, url: str) -> ScanItem:
        if not self.store.update(url, toggle_issues):
            raise ScanItemNotFoundError(url)
        return self.store.get(url)

    def ensure_idle(self) -> None:
        if self.is_running:
            raise ScanAlreadyRunningError()
        if self._single_call_active:
            raise ScanAlreadyRunningError("A PageSpeed request is already in progress")

    # ── Internals ───────────────────────────────

    def _require_api_key(self, api_key: Optional[str]) -> str:
        if not api_key or not api_key.strip():
            raise ScanInputError("Please provide your Google PageSpeed Insights API key")
        return api_key.strip()

    def _claim(self, batch: List[str], api_key: str) -> List[str]:
        self._cancel_event.clear()
        self._api_key = api_key
        self._state.status = RunStatus.running
        self._state.current_index = None
        self._state.current_url = None
        self._state.current_device = None
        self.events.publish("run_started", batch=list(batch), state=self.state().model_dump(mode="json"))
        return batch

    def _release(self) -> None:
        self._state.status = RunStatus.idle
        self._state.current_index = None
        self._state.current_url = None
        self._state.current_device = None
        self._api_key = None

    def _on_device(self, url: str, device: Optional[Device]) -> None:
        self._state.current_device = device

    def _on_update(self, url: str) -> None:
        item = self.store.get(url)
        if item is None:
            return
        self.events.publish(
            "item_updated",
            item=item.model_dump(mode="json"),
            state=self.state().model_dump(mode="json"),
        )

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background scan crashed: {exc}", exc_info=exc)
