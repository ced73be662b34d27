import asyncio

import pytest

from conftest import API_KEY
from sitespeed.features.scan.schemas.scan import Device, ScanStatus
from sitespeed.features.scan.services.executor import STOPPED_BEFORE_DESKTOP, ScanExecutor
from sitespeed.features.scan.services.store import ScanItemStore
from sitespeed.platform.exceptions import ScanBackendError

URL = "https://a.test"


@pytest.fixture
def store():
    s = ScanItemStore()
    s.initialize([URL])
    return s


@pytest.fixture
def executor(store, fake_backend, pacer):
    return ScanExecutor(store, fake_backend, pacer)


@pytest.mark.asyncio
async def test_scans_mobile_then_desktop(executor, store, fake_backend, pacer):
    devices = []

    status = await executor.run(
        URL,
        api_key=API_KEY,
        cancel_event=asyncio.Event(),
        on_device=lambda url, device: devices.append(device),
    )

    assert status == ScanStatus.completed
    assert fake_backend.calls == [(URL, Device.mobile), (URL, Device.desktop)]
    assert devices == [Device.mobile, Device.desktop, None]
    assert pacer.waits == 2

    item = store.get(URL)
    assert item.mobile.scores.performance == 70
    assert item.desktop.scores.performance == 95
    assert item.error is None


@pytest.mark.asyncio
async def test_no_trailing_pace_for_last_item(executor, pacer):
    await executor.run(URL, api_key=API_KEY, cancel_event=asyncio.Event(), pace_after=False)
    assert pacer.waits == 1


@pytest.mark.asyncio
async def test_mobile_failure_skips_desktop(executor, store, fake_backend):
    fake_backend.failures[(URL, Device.mobile)] = ScanBackendError("Quota exceeded", status_code=429)

    status = await executor.run(URL, api_key=API_KEY, cancel_event=asyncio.Event())

    assert status == ScanStatus.failed
    assert fake_backend.calls == [(URL, Device.mobile)]
    item = store.get(URL)
    assert item.error == "Quota exceeded"
    assert item.mobile is None and item.desktop is None


@pytest.mark.asyncio
async def test_desktop_failure_keeps_mobile_result(executor, store, fake_backend):
    fake_backend.failures[(URL, Device.desktop)] = ScanBackendError("Lighthouse returned error: NO_FCP")

    status = await executor.run(URL, api_key=API_KEY, cancel_event=asyncio.Event())

    assert status == ScanStatus.failed
    item = store.get(URL)
    assert item.mobile is not None
    assert item.desktop is None
    assert item.error == "Lighthouse returned error: NO_FCP"


@pytest.mark.asyncio
async def test_unexpected_backend_exception_is_recorded(executor, store, fake_backend):
    fake_backend.failures[URL] = RuntimeError("connection reset")

    status = await executor.run(URL, api_key=API_KEY, cancel_event=asyncio.Event())

    assert status == ScanStatus.failed
    assert store.get(URL).error == "connection reset"


@pytest.mark.asyncio
async def test_cancel_between_devices_marks_item_failed(executor, store, fake_backend):
    cancel_event = asyncio.Event()
    fake_backend.on_call = lambda url, device: cancel_event.set()

    status = await executor.run(URL, api_key=API_KEY, cancel_event=cancel_event)

    assert status == ScanStatus.failed
    assert fake_backend.calls == [(URL, Device.mobile)]
    item = store.get(URL)
    assert item.error == STOPPED_BEFORE_DESKTOP
    assert item.mobile is not None


@pytest.mark.asyncio
async def test_unknown_url_is_skipped(executor, fake_backend):
    status = await executor.run("https://gone.test", api_key=API_KEY, cancel_event=asyncio.Event())
    assert status is None
    assert fake_backend.calls == []


@pytest.mark.asyncio
async def test_every_transition_is_reported(executor):
    updates = []
    await executor.run(URL, api_key=API_KEY, cancel_event=asyncio.Event(), on_update=updates.append)
    # scanning, mobile result, completed
    assert updates == [URL, URL, URL]
