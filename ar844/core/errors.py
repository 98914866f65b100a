# ar844/core/errors.py
from __future__ import annotations


class Ar844Error(Exception):
    """
    Base class for all expected operational errors in the AR844 bridge.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration errors (no hardware access yet)
# ---------------------------------------------------------------------------

class ConfigError(Ar844Error):
    """
    Configuration file or overrides are invalid.

    Examples:
      - config file missing or not valid YAML
      - unknown section / key
      - value of the wrong type
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Device errors
# ---------------------------------------------------------------------------

class DeviceUnavailableError(Ar844Error):
    """
    The meter cannot be used at all.

    Examples:
      - VID/PID not found on the bus
      - interface claim refused (permissions, kernel driver)
      - a fresh transfer could not be submitted (device unplugged)
    """
    code = "device_unavailable"


# ---------------------------------------------------------------------------
# Broker errors
# ---------------------------------------------------------------------------

class PublishUnavailableError(Ar844Error):
    """
    The message broker cannot be reached.

    Raised only while connecting at startup; inside the acquisition loop the
    condition is logged and the snapshot is dropped.
    """
    code = "publish_unavailable"
