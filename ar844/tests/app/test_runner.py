from __future__ import annotations

import threading

import pytest

from ar844.app.config import AppConfig, config_from_mapping
from ar844.app.runner import build_run, probe, run_acquisition
from ar844.core.errors import DeviceUnavailableError, PublishUnavailableError
from ar844.interfaces.publish_sink import PublishResult
from ar844.model.reading import Weighting
from ar844.protocol.decoder import POLL_FRAME
from ar844.transport.base import TransferStatus
from ar844.transport.errors import TransportIOError, TransportOpenError

GOOD = bytes([0x02, 0xD4, 0x40, 0, 0, 0, 0, 0])


class FakeTransfer:
    def __init__(self, owner):
        self.owner = owner
        self.callback = None

    def submit(self, on_complete):
        self.callback = on_complete
        self.owner.in_flight.append(self)

    def cancel(self):
        self.owner.cancel_requests.append(self)


class FakeTransport:
    def __init__(self, responses=None, fail_open=False):
        self.in_flight: list[FakeTransfer] = []
        self.cancel_requests: list[FakeTransfer] = []
        self.responses = list(responses or [])
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0
        self.writes: list[bytes] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.opened += 1
        if self.fail_open:
            raise TransportOpenError("no USB device 1234:5678 found")
        self._open = True

    def close(self) -> None:
        self.closed += 1
        self._open = False

    def interrupt_in(self, length: int, timeout_ms: int) -> FakeTransfer:
        return FakeTransfer(self)

    def interrupt_out(self, data: bytes, timeout_ms: int) -> FakeTransfer:
        return FakeTransfer(self)

    def handle_events(self, timeout_s: float) -> None:
        # only cancellations ever complete here
        for xfer in self.cancel_requests:
            self.in_flight.remove(xfer)
            xfer.callback(TransferStatus.CANCELLED, b"")
        self.cancel_requests = []

    def read(self, n: int, timeout_ms: int) -> bytes:
        if not self.responses:
            raise TransportIOError("timeout")
        return self.responses.pop(0)

    def write(self, data: bytes, timeout_ms: int) -> int:
        self.writes.append(data)
        return len(data)


class FakeSink:
    def __init__(self, fail_open=False):
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        self.opened += 1
        if self.fail_open:
            raise PublishUnavailableError("Failed to connect to broker server:1883.")

    def publish(self, topic: str, payload: bytes) -> PublishResult:
        return PublishResult.OK

    def reconnect(self) -> None:
        return None

    def close(self) -> None:
        self.closed += 1


def test_build_run_wires_topic_and_timing():
    cfg = config_from_mapping({"acquisition": {"poll_interval_ms": 250, "period_s": 30}})
    app = build_run(cfg, transport=FakeTransport(), sink=FakeSink(), hostname="kitchen", wall_clock=lambda: 100.0)

    assert app.topic == "tele/kitchen/ar844/data"
    assert app.pipeline.publisher.topic == app.topic
    assert app.scheduler.poll_interval_s == 0.25
    assert app.pipeline.window.period_end == 120


def test_run_opens_and_releases_everything():
    t = FakeTransport()
    sink = FakeSink()
    app = build_run(AppConfig(), transport=t, sink=sink, hostname="h")

    cancel = threading.Event()
    cancel.set()
    run_acquisition(app, cancel)

    assert (t.opened, t.closed) == (1, 1)
    assert t.in_flight == []
    assert (sink.opened, sink.closed) == (1, 1)


def test_device_missing_is_fatal_before_broker():
    t = FakeTransport(fail_open=True)
    sink = FakeSink()
    app = build_run(AppConfig(), transport=t, sink=sink, hostname="h")

    with pytest.raises(DeviceUnavailableError):
        run_acquisition(app, threading.Event())
    assert sink.opened == 0


def test_broker_unreachable_releases_device():
    t = FakeTransport()
    sink = FakeSink(fail_open=True)
    app = build_run(AppConfig(), transport=t, sink=sink, hostname="h")

    with pytest.raises(PublishUnavailableError):
        run_acquisition(app, threading.Event())
    assert t.closed == 1


def test_probe_decodes_each_exchange():
    t = FakeTransport([GOOD, GOOD[:3]])
    t.open()

    readings = probe(t, count=3)

    assert t.writes == [POLL_FRAME] * 3
    assert readings[0].level_tenths == 724
    assert readings[0].weighting is Weighting.A
    assert readings[1] is None  # short frame
    assert readings[2] is None  # timeout
