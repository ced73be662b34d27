from typing import Callable, Dict, Iterable, List, Optional

from sitespeed.features.scan.schemas.scan import ScanItem, ScanStatus
from sitespeed.platform.utils.url_validator import unique_in_order

ItemMutator = Callable[[ScanItem], None]


class ScanItemStore:
    """
    Authoritative, URL-keyed list of scan items for the current run.

    All writes go through update(), which touches exactly one entry, so
    re-scanning a subset can never disturb the other items.
    """

    def __init__(self) -> None:
        self._items: Dict[str, ScanItem] = {}

    def initialize(self, urls: Iterable[str]) -> List[str]:
        """Replace the contents with one pending item per distinct URL."""
        ordered = unique_in_order(urls)
        self._items = {url: ScanItem(url=url) for url in ordered}
        return ordered

    def get(self, url: str) -> Optional[ScanItem]:
        item = self._items.get(url)
        return item.model_copy(deep=True) if item is not None else None

    def update(self, url: str, mutator: ItemMutator) -> bool:
        """
        Apply mutator to the item for url and commit it.

        A URL that is no longer in the store is ignored: a stale update that
        lands after the store was re-initialised must not resurrect it.
        """
        current = self._items.get(url)
        if current is None:
            return False
        draft = current.model_copy(deep=True)
        mutator(draft)
        self._items[url] = ScanItem.model_validate(draft.model_dump())
        return True

    def snapshot(self) -> List[ScanItem]:
        return [item.model_copy(deep=True) for item in self._items.values()]

    def urls(self) -> List[str]:
        return list(self._items)

    def urls_with_status(self, status: ScanStatus) -> List[str]:
        return [url for url, item in self._items.items() if item.status == status]

    def index_of(self, url: str) -> Optional[int]:
        for index, key in enumerate(self._items):
            if key == url:
                return index
        return None

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ScanStatus}
        for item in self._items.values():
            counts[item.status.value] += 1
        counts["total"] = len(self._items)
        return counts

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, url: object) -> bool:
        return url in self._items


# ── Mutators ────────────────────────────────────
# Small helpers so callers describe transitions instead of poking fields.

def mark_scanning(item: ScanItem) -> None:
    """Each attempt starts clean; results from an earlier attempt are dropped."""
    item.status = ScanStatus.scanning
    item.error = None
    item.mobile = None
    item.desktop = None


def reset_pending(item: ScanItem) -> None:
    """Back to pending with the error cleared; device results are kept."""
    item.status = ScanStatus.pending
    item.error = None


def reset_bare(item: ScanItem) -> None:
    """Back to a freshly created pending item."""
    item.status = ScanStatus.pending
    item.error = None
    item.mobile = None
    item.desktop = None


def mark_failed(message: str) -> ItemMutator:
    def _apply(item: ScanItem) -> None:
        item.status = ScanStatus.failed
        item.error = message or "Unknown error occurred"
    return _apply


def toggle_issues(item: ScanItem) -> None:
    item.issues_expanded = not item.issues_expanded
