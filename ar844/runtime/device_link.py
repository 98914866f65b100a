# ar844/runtime/device_link.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ar844.transport.base import Transport
from ar844.transport.errors import TransportError, TransportOpenError

from ar844.core.errors import DeviceUnavailableError


@dataclass
class DeviceLink:
    """
    Owns the meter transport for the lifetime of a run.

    Responsibilities:
      - open/close the underlying transport
      - translate low-level failures into operator-safe errors
    """

    transport: Transport
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self._log = self.logger or logging.getLogger(__name__)

    @property
    def is_started(self) -> bool:
        return self.transport.is_open

    def start(self) -> None:
        if self.is_started:
            return

        try:
            self.transport.open()
        except TransportOpenError as e:
            self._log.error("TRANSPORT_OPEN_FAILED err=%s", e)
            raise DeviceUnavailableError(
                "Could not find/open the sound level meter.",
                hint=str(e),
                details={"driver": type(self.transport).__name__},
            ) from None
        except TransportError as e:
            self._log.exception("TRANSPORT_OPEN_ERROR")
            raise DeviceUnavailableError(
                "Transport error while opening the sound level meter.",
                hint=str(e),
                details={"driver": type(self.transport).__name__},
            ) from None

        self._log.info("DEVICE_OPEN driver=%s", type(self.transport).__name__)

    def stop(self) -> None:
        try:
            self.transport.close()
        except Exception:
            self._log.exception("Failed to close transport")

    def __enter__(self) -> "DeviceLink":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
