from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable


class TransferStatus(Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    NO_DEVICE = "no_device"
    ERROR = "error"


TransferCallback = Callable[[TransferStatus, bytes], None]


class Transfer(ABC):
    """
    One re-submittable asynchronous transfer on a single endpoint.

    submit() returns immediately. The callback runs later, from inside
    Transport.handle_events(), on the thread that pumps events, with the
    final status and the bytes actually transferred.
    """

    @abstractmethod
    def submit(self, on_complete: TransferCallback) -> None: ...

    @abstractmethod
    def cancel(self) -> None: ...


class Transport(ABC):
    """
    Abstract packet transport to the meter (USB interrupt endpoints, fakes).

    Contract:
      - open()/close() manage the underlying device handle.
      - is_open reports whether transfers can be submitted at all.
      - interrupt_in()/interrupt_out() create asynchronous transfers;
        handle_events(timeout_s) is the only call that waits for them.
      - read()/write() are blocking single exchanges for one-shot use
        (probe). They raise TransportIOError on timeout or transfer error.

    Everything is driven from one thread; no method starts threads.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    def interrupt_in(self, length: int, timeout_ms: int) -> Transfer: ...

    @abstractmethod
    def interrupt_out(self, data: bytes, timeout_ms: int) -> Transfer: ...

    @abstractmethod
    def handle_events(self, timeout_s: float) -> None: ...

    @abstractmethod
    def read(self, n: int, timeout_ms: int) -> bytes: ...

    @abstractmethod
    def write(self, data: bytes, timeout_ms: int) -> int: ...

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
