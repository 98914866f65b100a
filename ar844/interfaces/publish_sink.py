from __future__ import annotations

from enum import Enum
from typing import Protocol


class PublishResult(Enum):
    OK = "ok"
    NO_CONN = "no_conn"   # sink is not connected; a reconnect may help
    ERROR = "error"


class PublishSink(Protocol):
    def open(self) -> None: ...
    def publish(self, topic: str, payload: bytes) -> PublishResult: ...
    def reconnect(self) -> None: ...
    def close(self) -> None: ...
