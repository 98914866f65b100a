# ar844/transport/usb.py
from __future__ import annotations

import logging
from typing import Any, Optional, Union

import usb1

from .base import Transfer, TransferCallback, TransferStatus, Transport
from .errors import TransportIOError, TransportOpenError

_STATUS = {
    usb1.TRANSFER_COMPLETED: TransferStatus.COMPLETED,
    usb1.TRANSFER_TIMED_OUT: TransferStatus.TIMED_OUT,
    usb1.TRANSFER_CANCELLED: TransferStatus.CANCELLED,
    usb1.TRANSFER_NO_DEVICE: TransferStatus.NO_DEVICE,
}


class USBInterruptTransfer(Transfer):
    """
    Asynchronous libusb interrupt transfer, reused across submissions.

    payload is the buffer length for IN endpoints or the bytes to send for
    OUT endpoints.
    """

    def __init__(self, owner: "USBInterruptTransport", endpoint: int, payload: Union[int, bytes], timeout_ms: int):
        self._owner = owner
        self.endpoint = endpoint
        self._payload = payload
        self._timeout_ms = int(timeout_ms)
        self._xfer: Optional[Any] = None
        self._on_complete: Optional[TransferCallback] = None

    def submit(self, on_complete: TransferCallback) -> None:
        handle = self._owner.handle
        if handle is None or not self._owner.is_open:
            raise TransportIOError(f"submit on endpoint 0x{self.endpoint:02x} while transport not open")

        if self._xfer is None:
            self._xfer = handle.getTransfer()
        self._on_complete = on_complete
        self._xfer.setInterrupt(self.endpoint, self._payload, callback=self._done, timeout=self._timeout_ms)

        try:
            self._xfer.submit()
        except usb1.USBError as e:
            self._owner._on_usb_error(e)
            raise TransportIOError(f"USB transfer submit failed on endpoint 0x{self.endpoint:02x}: {e}") from None

    def cancel(self) -> None:
        xfer = self._xfer
        if xfer is None or not xfer.isSubmitted():
            return
        try:
            xfer.cancel()
        except usb1.USBErrorNotFound:
            # Already completing; the callback still fires.
            pass

    def _done(self, xfer: Any) -> None:
        status = _STATUS.get(xfer.getStatus(), TransferStatus.ERROR)
        if status is TransferStatus.NO_DEVICE:
            self._owner._mark_gone()

        data = bytes(xfer.getBuffer()[: xfer.getActualLength()])
        if self._on_complete is not None:
            self._on_complete(status, data)


class USBInterruptTransport(Transport):
    """
    USB HID-style transport using one interrupt IN and one interrupt OUT
    endpoint, implemented via python-libusb1.

    Notes:
      - The meter enumerates with a generic VID/PID, so the first match wins.
      - A kernel HID driver bound to the interface is detached on open.
      - A failing setConfiguration() is tolerated; the meter is usually
        already configured.
      - A vanished device (NO_DEVICE status or error) marks the transport
        gone: is_open turns False so later submits fail, but the handle is
        kept until close() releases it.
    """

    def __init__(
        self,
        vendor_id: int,
        product_id: int,
        *,
        interface: int = 0,
        configuration: int = 1,
        endpoint_in: int = 0x81,
        endpoint_out: int = 0x02,
        logger: Optional[logging.Logger] = None,
    ):
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.interface = interface
        self.configuration = configuration
        self.endpoint_in = endpoint_in
        self.endpoint_out = endpoint_out
        self.context: Optional[Any] = None
        self.handle: Optional[Any] = None
        self._gone = False
        self._log = logger or logging.getLogger(__name__)

    @property
    def is_open(self) -> bool:
        return self.handle is not None and not self._gone

    def _ident(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}"

    def open(self) -> None:
        context = usb1.USBContext()
        context.open()

        try:
            handle = context.openByVendorIDAndProductID(self.vendor_id, self.product_id, skip_on_error=True)
        except usb1.USBError as e:
            context.close()
            raise TransportOpenError(f"could not open USB device {self._ident()}: {e}") from None

        if handle is None:
            context.close()
            raise TransportOpenError(f"no USB device {self._ident()} found")

        try:
            try:
                if handle.kernelDriverActive(self.interface):
                    handle.detachKernelDriver(self.interface)
            except usb1.USBErrorNotSupported:
                # Platform without kernel driver support.
                pass

            try:
                handle.setConfiguration(self.configuration)
            except usb1.USBError as e:
                self._log.warning("USB_SET_CONFIGURATION_FAILED dev=%s err=%s", self._ident(), e)

            handle.claimInterface(self.interface)
        except usb1.USBError as e:
            handle.close()
            context.close()
            raise TransportOpenError(f"could not claim USB device {self._ident()}: {e}") from None

        self.context = context
        self.handle = handle
        self._gone = False

    def close(self) -> None:
        handle, context = self.handle, self.context
        if handle is None:
            return
        self.handle = None
        self.context = None
        gone, self._gone = self._gone, False

        try:
            try:
                handle.releaseInterface(self.interface)
            except usb1.USBError as e:
                self._log.warning("USB_RELEASE_FAILED dev=%s err=%s", self._ident(), e)

            if not gone:
                try:
                    handle.resetDevice()
                except usb1.USBError as e:
                    self._log.warning("USB_RESET_FAILED dev=%s err=%s", self._ident(), e)
        finally:
            handle.close()
            if context is not None:
                context.close()

    def interrupt_in(self, length: int, timeout_ms: int) -> USBInterruptTransfer:
        return USBInterruptTransfer(self, self.endpoint_in, int(length), timeout_ms)

    def interrupt_out(self, data: bytes, timeout_ms: int) -> USBInterruptTransfer:
        return USBInterruptTransfer(self, self.endpoint_out, bytes(data), timeout_ms)

    def handle_events(self, timeout_s: float) -> None:
        context = self.context
        if context is None:
            raise TransportIOError("handle_events while transport not open")

        try:
            context.handleEventsTimeout(tv=max(0.0, float(timeout_s)))
        except usb1.USBErrorInterrupted:
            # A signal arrived; the caller re-checks its cancel flag.
            pass
        except usb1.USBError as e:
            raise TransportIOError(f"USB event handling failed: {e}") from None

    def read(self, n: int, timeout_ms: int) -> bytes:
        handle = self.handle
        if handle is None or self._gone:
            raise TransportIOError("read while transport not open")

        try:
            return bytes(handle.interruptRead(self.endpoint_in, n, timeout=timeout_ms))
        except usb1.USBError as e:
            self._on_usb_error(e)
            raise TransportIOError(f"USB interrupt read failed: {e}") from None

    def write(self, data: bytes, timeout_ms: int) -> int:
        handle = self.handle
        if handle is None or self._gone:
            raise TransportIOError("write while transport not open")

        try:
            return int(handle.interruptWrite(self.endpoint_out, data, timeout=timeout_ms))
        except usb1.USBError as e:
            self._on_usb_error(e)
            raise TransportIOError(f"USB interrupt write failed: {e}") from None

    def _on_usb_error(self, e: Exception) -> None:
        if isinstance(e, usb1.USBErrorNoDevice):
            self._mark_gone()

    def _mark_gone(self) -> None:
        if not self._gone:
            self._log.error("USB_DEVICE_GONE dev=%s", self._ident())
        self._gone = True
