from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

from ar844.core.errors import DeviceUnavailableError
from ar844.transport.base import Transfer, TransferStatus
from ar844.transport.errors import TransportError


class TransferState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


class PendingTransfer:
    """
    Handle for one re-armable device transfer (poll out or response in).

    The transport transfer is created on the first issue() and reused. Its
    completion callback, run from Transport.handle_events(), records the
    final status; state is derived from that status until reset() returns
    the handle to IDLE.
    """

    def __init__(self, name: str, factory: Callable[[], Transfer], *, clock: Callable[[], float]):
        self.name = str(name)
        self._factory = factory
        self._clock = clock
        self.transfer: Optional[Transfer] = None
        self.submitted = False
        self.status: Optional[TransferStatus] = None
        self.data = b""
        self.last_issued_at: Optional[float] = None

    @property
    def state(self) -> TransferState:
        if not self.submitted:
            return TransferState.IDLE
        if self.status is None:
            return TransferState.IN_FLIGHT
        if self.status is TransferStatus.COMPLETED:
            return TransferState.COMPLETED
        return TransferState.FAILED

    @property
    def in_flight(self) -> bool:
        return self.state is TransferState.IN_FLIGHT

    @property
    def finished(self) -> bool:
        return self.state in (TransferState.COMPLETED, TransferState.FAILED)

    def issue(self, can_submit: Callable[[], bool]) -> None:
        """Submit the transfer. Raises DeviceUnavailableError if it cannot be submitted."""
        if not can_submit():
            raise DeviceUnavailableError(
                f"Cannot submit {self.name} transfer: device is not open.",
                hint="Check the meter is still plugged in.",
                details={"transfer": self.name},
            )

        if self.transfer is None:
            self.transfer = self._factory()

        self.status = None
        self.data = b""
        self.submitted = True
        try:
            self.transfer.submit(self._on_complete)
        except TransportError as e:
            self.submitted = False
            raise DeviceUnavailableError(
                f"Cannot submit {self.name} transfer.",
                hint=str(e),
                details={"transfer": self.name},
            ) from None
        self.last_issued_at = self._clock()

    def _on_complete(self, status: TransferStatus, data: bytes) -> None:
        self.status = status
        self.data = bytes(data)

    def outcome(self) -> tuple[TransferStatus, bytes]:
        """(status, data) of a finished transfer."""
        if not self.finished:
            raise RuntimeError(f"{self.name} transfer has not finished")
        return self.status, self.data  # type: ignore[return-value]

    def reset(self) -> None:
        self.submitted = False
        self.status = None
        self.data = b""

    def cancel(self) -> bool:
        """Request cancellation; completion still arrives through handle_events()."""
        if not self.in_flight or self.transfer is None:
            return False
        self.transfer.cancel()
        return True
