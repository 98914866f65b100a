# ar844/runtime/scheduler.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from ar844.core.errors import DeviceUnavailableError
from ar844.protocol.decoder import FRAME_LEN, POLL_FRAME
from ar844.transport.base import Transport, TransferStatus
from ar844.transport.errors import TransportError

from .pending_transfer import PendingTransfer

FrameCallback = Callable[[bytes], None]

# handle_events() rounds allowed for cancelled transfers to report back on stop.
_DRAIN_ROUNDS = 3


class TransferScheduler:
    """
    Keeps one poll (OUT) and one response (IN) transfer outstanding against
    the meter and hands every complete response frame to on_frame.

    Both transfers are asynchronous transport transfers multiplexed through
    Transport.handle_events(), the loop's single suspension point. Completion
    callbacks and on_frame run on the calling thread; nothing here starts a
    thread.

    Re-arm rules:
      - IN is re-issued as soon as it finishes, whatever the outcome.
      - OUT is re-issued when it is not in flight and poll_interval_s has
        passed since it was last issued (cadence-limited, not periodic).
    """

    def __init__(
        self,
        transport: Transport,
        on_frame: FrameCallback,
        *,
        poll_interval_s: float = 0.5,
        wait_timeout_s: float = 1.0,
        transfer_timeout_ms: int = 1000,
        frame_len_in: int = FRAME_LEN,
        poll_frame: bytes = POLL_FRAME,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.on_frame = on_frame
        self.poll_interval_s = float(poll_interval_s)
        self.wait_timeout_s = float(wait_timeout_s)
        self.transfer_timeout_ms = int(transfer_timeout_ms)
        self.frame_len_in = int(frame_len_in)
        self.poll_frame = bytes(poll_frame)

        self._clock = clock
        self._log = logger or logging.getLogger(__name__)
        self._running = False

        self.inbound = PendingTransfer(
            "inbound",
            lambda: self.transport.interrupt_in(self.frame_len_in, self.transfer_timeout_ms),
            clock=clock,
        )
        self.outbound = PendingTransfer(
            "outbound",
            lambda: self.transport.interrupt_out(self.poll_frame, self.transfer_timeout_ms),
            clock=clock,
        )

        self.frames_ok = 0
        self.frames_dropped = 0
        self.polls_sent = 0
        self.poll_errors = 0

    # ---------------- lifecycle ----------------
    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        try:
            self.inbound.issue(self._can_submit)
            self.outbound.issue(self._can_submit)
        except Exception:
            self._log.error("TRANSFER_START_FAILED")
            self.stop()
            raise
        self._log.info("TRANSFERS_STARTED poll_interval_s=%.3f", self.poll_interval_s)

    def stop(self) -> None:
        """Cancel in-flight transfers and pump events until they report back."""
        if not self._running:
            return
        self._running = False

        self.inbound.cancel()
        self.outbound.cancel()
        self._drain()

        self._log.info(
            "TRANSFERS_STOPPED frames_ok=%d frames_dropped=%d polls_sent=%d poll_errors=%d",
            self.frames_ok,
            self.frames_dropped,
            self.polls_sent,
            self.poll_errors,
        )

    def _drain(self) -> None:
        for _ in range(_DRAIN_ROUNDS):
            if not (self.inbound.in_flight or self.outbound.in_flight):
                return
            try:
                self.transport.handle_events(self.wait_timeout_s)
            except TransportError as e:
                self._log.warning("TRANSFER_DRAIN_FAILED err=%s", e)
                return

        if self.inbound.in_flight or self.outbound.in_flight:
            self._log.warning(
                "TRANSFERS_NOT_DRAINED inbound=%s outbound=%s",
                self.inbound.state.value,
                self.outbound.state.value,
            )

    def __enter__(self) -> "TransferScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ---------------- loop ----------------
    def run(self, cancel: threading.Event) -> None:
        """
        Run until cancel is set. Cancellation is checked once per iteration,
        so it takes effect within one wait timeout.

        Raises DeviceUnavailableError when a transfer cannot be re-submitted
        or events can no longer be handled.
        """
        if not self._running:
            self.start()

        while not cancel.is_set():
            self.run_once()

    def run_once(self) -> None:
        """One loop iteration: wait for a completion, then service both transfers."""
        self._wait_for_completion()
        self._service_inbound()
        self._service_outbound()

    def _wait_for_completion(self) -> None:
        timeout = self.wait_timeout_s
        if not self.outbound.in_flight:
            timeout = min(timeout, max(0.0, self._poll_due_in()))

        try:
            self.transport.handle_events(timeout)
        except TransportError as e:
            self._log.error("TRANSFER_EVENTS_FAILED err=%s", e)
            raise DeviceUnavailableError(
                "Lost the event loop of the sound level meter.",
                hint=str(e),
            ) from None

    def _poll_due_in(self) -> float:
        last = self.outbound.last_issued_at
        if last is None:
            return 0.0
        return self.poll_interval_s - (self._clock() - last)

    def _service_inbound(self) -> None:
        if not self.inbound.finished:
            return

        status, data = self.inbound.outcome()
        self.inbound.reset()

        if status is not TransferStatus.COMPLETED:
            self.frames_dropped += 1
            self._log.debug("INBOUND_DISCARDED reason=%s", status.value)
        elif len(data) != self.frame_len_in:
            self.frames_dropped += 1
            self._log.debug("INBOUND_DISCARDED reason=length len=%d raw=%s", len(data), data.hex())
        else:
            self.frames_ok += 1
            try:
                self.on_frame(data)
            except Exception:
                self._log.exception("ON_FRAME_CALLBACK_ERROR raw=%s", data.hex())

        self._reissue(self.inbound)

    def _service_outbound(self) -> None:
        if self.outbound.in_flight:
            return

        if self.outbound.finished:
            status, _sent = self.outbound.outcome()
            self.outbound.reset()
            if status is TransferStatus.COMPLETED:
                self.polls_sent += 1
            else:
                self.poll_errors += 1
                self._log.debug("POLL_FAILED reason=%s", status.value)

        if self._poll_due_in() <= 0:
            self._reissue(self.outbound)

    def _reissue(self, transfer: PendingTransfer) -> None:
        if not self._running:
            return
        try:
            transfer.issue(self._can_submit)
        except Exception:
            self._log.error("TRANSFER_SUBMIT_FAILED transfer=%s", transfer.name)
            raise

    def _can_submit(self) -> bool:
        return self.transport.is_open
