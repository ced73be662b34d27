import pytest
from pydantic import ValidationError

from conftest import make_result
from sitespeed.features.scan.schemas.scan import ScanItem, ScanStatus
from sitespeed.features.scan.services.store import (
    ScanItemStore,
    mark_failed,
    mark_scanning,
    reset_bare,
    reset_pending,
    toggle_issues,
)


@pytest.fixture
def store():
    s = ScanItemStore()
    s.initialize(["https://a.test", "https://b.test", "https://a.test", "https://c.test"])
    return s


def test_initialize_dedupes_and_keeps_order(store):
    assert store.urls() == ["https://a.test", "https://b.test", "https://c.test"]
    assert all(item.status == ScanStatus.pending for item in store.snapshot())


def test_initialize_replaces_previous_items(store):
    store.initialize(["https://d.test"])
    assert store.urls() == ["https://d.test"]
    assert "https://a.test" not in store


def test_update_touches_only_one_item(store):
    before = {item.url: item for item in store.snapshot()}

    assert store.update("https://b.test", mark_failed("Quota exceeded"))

    after = {item.url: item for item in store.snapshot()}
    assert after["https://b.test"].status == ScanStatus.failed
    assert after["https://b.test"].error == "Quota exceeded"
    assert after["https://a.test"] == before["https://a.test"]
    assert after["https://c.test"] == before["https://c.test"]


def test_update_ignores_unknown_url(store):
    assert store.update("https://missing.test", mark_scanning) is False
    assert "https://missing.test" not in store


def test_update_rejects_broken_invariants(store):
    def complete_without_results(item: ScanItem) -> None:
        item.status = ScanStatus.completed

    with pytest.raises(ValidationError):
        store.update("https://a.test", complete_without_results)

    assert store.get("https://a.test").status == ScanStatus.pending


def test_get_returns_a_copy(store):
    item = store.get("https://a.test")
    item.issues_expanded = True
    assert store.get("https://a.test").issues_expanded is False


def test_mark_failed_falls_back_to_generic_message(store):
    store.update("https://a.test", mark_failed(""))
    assert store.get("https://a.test").error == "Unknown error occurred"


def test_mark_scanning_drops_previous_results(store):
    def with_mobile(item):
        item.mobile = make_result()

    store.update("https://a.test", with_mobile)
    store.update("https://a.test", mark_scanning)

    item = store.get("https://a.test")
    assert item.status == ScanStatus.scanning
    assert item.mobile is None


def test_reset_pending_keeps_results_but_reset_bare_does_not(store):
    def failed_with_mobile(item):
        item.mobile = make_result()
        item.status = ScanStatus.failed
        item.error = "Scan stopped before desktop analysis"

    store.update("https://a.test", failed_with_mobile)
    store.update("https://a.test", reset_pending)
    item = store.get("https://a.test")
    assert item.status == ScanStatus.pending
    assert item.error is None
    assert item.mobile is not None

    store.update("https://a.test", reset_bare)
    assert store.get("https://a.test").mobile is None


def test_toggle_issues_flips_flag(store):
    store.update("https://c.test", toggle_issues)
    assert store.get("https://c.test").issues_expanded is True
    store.update("https://c.test", toggle_issues)
    assert store.get("https://c.test").issues_expanded is False


def test_counts_and_lookup(store):
    store.update("https://b.test", mark_failed("boom"))

    counts = store.counts()
    assert counts == {"pending": 2, "scanning": 0, "completed": 0, "failed": 1, "total": 3}
    assert store.urls_with_status(ScanStatus.failed) == ["https://b.test"]
    assert store.index_of("https://c.test") == 2
    assert store.index_of("https://missing.test") is None
    assert len(store) == 3
