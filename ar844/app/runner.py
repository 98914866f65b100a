# ar844/app/runner.py
from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ar844.app.config import AppConfig
from ar844.app.pipeline import AcquisitionPipeline
from ar844.app.publisher import SnapshotPublisher
from ar844.interfaces.publish_sink import PublishSink
from ar844.model.reading import Reading
from ar844.protocol.decoder import POLL_FRAME, decode_frame
from ar844.runtime.device_link import DeviceLink
from ar844.runtime.scheduler import TransferScheduler
from ar844.runtime.window import AggregationWindow
from ar844.sink.mqtt import MqttSink
from ar844.transport.base import Transport
from ar844.transport.errors import TransportIOError
from ar844.transport.usb import USBInterruptTransport


@dataclass(frozen=True)
class AppRun:
    config: AppConfig
    topic: str
    link: DeviceLink
    sink: PublishSink
    pipeline: AcquisitionPipeline
    scheduler: TransferScheduler


def build_transport(cfg: AppConfig) -> Transport:
    d = cfg.device
    return USBInterruptTransport(
        d.vendor_id,
        d.product_id,
        interface=d.interface,
        configuration=d.configuration,
        endpoint_in=d.endpoint_in,
        endpoint_out=d.endpoint_out,
    )


def build_sink(cfg: AppConfig) -> MqttSink:
    b = cfg.broker
    return MqttSink(b.host, b.port, keepalive_s=b.keepalive_s, client_id=b.client_id)


def build_run(
    cfg: AppConfig,
    *,
    transport: Optional[Transport] = None,
    sink: Optional[PublishSink] = None,
    hostname: Optional[str] = None,
    wall_clock: Callable[[], float] = time.time,
) -> AppRun:
    """Wire transport -> scheduler -> pipeline -> publisher -> sink. Opens nothing."""
    log = logging.getLogger(__name__)

    topic = cfg.topic_for(hostname or socket.gethostname())
    transport = transport or build_transport(cfg)
    sink = sink or build_sink(cfg)

    publisher = SnapshotPublisher(sink, topic, attempts=cfg.broker.attempts)
    window = AggregationWindow(cfg.acquisition.period_s, wall_clock())
    pipeline = AcquisitionPipeline(window, publisher, clock=wall_clock)

    scheduler = TransferScheduler(
        transport,
        pipeline.on_frame,
        poll_interval_s=cfg.acquisition.poll_interval_ms / 1000.0,
        wait_timeout_s=cfg.acquisition.wait_timeout_s,
        transfer_timeout_ms=cfg.device.transfer_timeout_ms,
        frame_len_in=cfg.device.frame_len_in,
        poll_frame=POLL_FRAME.ljust(cfg.device.frame_len_out, b"\x00")[: cfg.device.frame_len_out],
    )

    log.info(
        "RUN_CONFIGURED topic=%s period_s=%d poll_interval_ms=%d next_period_end=%d",
        topic,
        cfg.acquisition.period_s,
        cfg.acquisition.poll_interval_ms,
        window.period_end,
    )

    return AppRun(
        config=cfg,
        topic=topic,
        link=DeviceLink(transport),
        sink=sink,
        pipeline=pipeline,
        scheduler=scheduler,
    )


def run_acquisition(app: AppRun, cancel: threading.Event) -> None:
    """
    Open device and broker, run the loop until cancel is set, then release
    everything. DeviceUnavailableError / PublishUnavailableError propagate.
    """
    log = logging.getLogger(__name__)

    with app.link:
        app.sink.open()
        try:
            with app.scheduler:
                app.scheduler.run(cancel)
        finally:
            try:
                app.sink.close()
            except Exception:
                log.exception("Failed to close publish sink")

    publisher = app.pipeline.publisher
    log.info("RUN_FINISHED published=%d dropped=%d", publisher.published, publisher.dropped)


def probe(transport: Transport, *, count: int = 1, timeout_ms: int = 1000) -> List[Optional[Reading]]:
    """
    Synchronous poll/response exchanges without the scheduler.
    Each entry is the decoded reading, or None if nothing valid came back.
    """
    log = logging.getLogger(__name__)
    out: List[Optional[Reading]] = []

    for _ in range(max(1, int(count))):
        try:
            transport.write(POLL_FRAME, timeout_ms)
            out.append(decode_frame(transport.read(len(POLL_FRAME), timeout_ms)))
        except TransportIOError as e:
            log.warning("PROBE_FAILED err=%s", e)
            out.append(None)

    return out
