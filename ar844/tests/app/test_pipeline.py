from __future__ import annotations

import json

from ar844.app.pipeline import AcquisitionPipeline
from ar844.app.publisher import SnapshotPublisher
from ar844.interfaces.publish_sink import PublishResult
from ar844.runtime.scheduler import TransferScheduler
from ar844.runtime.window import AggregationWindow
from ar844.transport.base import TransferStatus


class FakeSink:
    def __init__(self, results=None, default=PublishResult.OK):
        self.results = list(results or [])
        self.default = default
        self.payloads: list[bytes] = []
        self.reconnects = 0

    def open(self) -> None:
        return None

    def publish(self, topic: str, payload: bytes) -> PublishResult:
        self.payloads.append(payload)
        return self.results.pop(0) if self.results else self.default

    def reconnect(self) -> None:
        self.reconnects += 1

    def close(self) -> None:
        return None


class Clock:
    def __init__(self, t: float):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _frame(tenths: int, status: int = 0x40) -> bytes:
    return bytes([tenths >> 8, tenths & 0xFF, status, 0, 0, 0, 0, 0])


def _pipeline(sink, clock):
    window = AggregationWindow(60, clock())
    publisher = SnapshotPublisher(sink, "tele/box/ar844/data")
    return AcquisitionPipeline(window, publisher, clock=clock)


def test_identical_frames_publish_equal_avg_min_max():
    sink = FakeSink()
    clock = Clock(0.0)
    p = _pipeline(sink, clock)

    clock.t = 30.0
    assert p.on_frame(bytes([0x05, 0xDC, 0x40, 0, 0, 0, 0, 0])) is None
    clock.t = 60.0
    snap = p.on_frame(bytes([0x05, 0xDC, 0x40, 0, 0, 0, 0, 0]))

    assert snap is not None
    doc = json.loads(sink.payloads[0])
    assert doc == {
        "time": "1970-01-01T00:01:00Z",
        "avg": 150.0,
        "min": 150.0,
        "max": 150.0,
        "weight": "A",
    }


def test_published_values_are_truncated_tenths():
    sink = FakeSink()
    clock = Clock(0.0)
    p = _pipeline(sink, clock)

    for t, level in ((1.0, 132), (2.0, 724), (60.0, 500)):
        clock.t = t
        p.on_frame(_frame(level))

    doc = json.loads(sink.payloads[0])
    assert (doc["min"], doc["max"], doc["avg"]) == (13.2, 72.4, 45.2)


def test_short_frame_leaves_stats_untouched():
    sink = FakeSink()
    clock = Clock(0.0)
    p = _pipeline(sink, clock)
    p.on_frame(_frame(300))

    before = (p.window.count, p.window.sum, p.window.min, p.window.max)
    assert p.on_frame(_frame(999)[:7]) is None
    assert (p.window.count, p.window.sum, p.window.min, p.window.max) == before


def test_other_curve_published_as_z():
    sink = FakeSink()
    clock = Clock(0.0)
    p = _pipeline(sink, clock)
    clock.t = 61.0
    p.on_frame(_frame(500, status=0x10))

    assert json.loads(sink.payloads[0])["weight"] == "Z"


def test_reconnect_retry_delivers_snapshot_once():
    sink = FakeSink([PublishResult.NO_CONN, PublishResult.OK])
    clock = Clock(59.0)
    p = _pipeline(sink, clock)
    clock.t = 60.0
    p.on_frame(_frame(500))

    assert len(sink.payloads) == 2
    assert sink.payloads[0] == sink.payloads[1]
    assert sink.reconnects == 1
    assert p.publisher.published == 1




class LoopTransfer:
    def __init__(self, owner, kind):
        self.owner = owner
        self.kind = kind

    def submit(self, on_complete):
        self.owner.pending.append((self, on_complete))

    def cancel(self):
        return None


class LoopTransport:
    """Answers every read with a fixed frame inside handle_events and counts polls."""
    def __init__(self, frame: bytes, read_status: TransferStatus = TransferStatus.COMPLETED):
        self.is_open = True
        self.frame = frame
        self.read_status = read_status
        self.pending: list = []
        self.polls = 0

    def interrupt_in(self, length: int, timeout_ms: int) -> LoopTransfer:
        return LoopTransfer(self, "in")

    def interrupt_out(self, data: bytes, timeout_ms: int) -> LoopTransfer:
        return LoopTransfer(self, "out")

    def handle_events(self, timeout_s: float) -> None:
        batch, self.pending = self.pending, []
        for xfer, on_complete in batch:
            if xfer.kind == "out":
                self.polls += 1
                on_complete(TransferStatus.COMPLETED, b"")
            elif self.read_status is TransferStatus.COMPLETED:
                on_complete(self.read_status, self.frame)
            else:
                on_complete(self.read_status, b"")


def test_dropped_snapshot_does_not_interrupt_polling():
    sink = FakeSink(default=PublishResult.NO_CONN)
    wall = Clock(0.0)
    mono = Clock(0.0)
    p = _pipeline(sink, wall)
    dev = LoopTransport(_frame(450))

    sched = TransferScheduler(
        dev,
        p.on_frame,
        poll_interval_s=0.5,
        wait_timeout_s=0.01,
        clock=mono,
    )
    sched.start()

    for i in range(1, 11):
        mono.t = i * 0.5
        wall.t = 55.0 + i  # crosses the 60 s boundary halfway through
        sched.run_once()

    assert p.publisher.dropped == 1
    assert len(sink.payloads) == 2
    assert dev.polls == 10
    assert sched.polls_sent == 10
    assert sched.frames_ok == 10
    assert sched.outbound.in_flight


def test_read_errors_never_reach_the_window():
    sink = FakeSink()
    wall = Clock(0.0)
    p = _pipeline(sink, wall)

    sched = TransferScheduler(
        LoopTransport(b"", read_status=TransferStatus.TIMED_OUT),
        p.on_frame,
        clock=Clock(0.0),
    )
    sched.start()
    sched.run_once()

    assert p.window.count == 0
    assert sched.frames_dropped == 1
