# ar844/app/publisher.py
from __future__ import annotations

import logging
from typing import Optional

from ar844.interfaces.publish_sink import PublishResult, PublishSink
from ar844.model.reading import Snapshot


class SnapshotPublisher:
    """
    Best-effort delivery of snapshots to a PublishSink.

    At most `attempts` publish calls per snapshot; a NO_CONN result asks the
    sink to reconnect before the next one. When every attempt fails the
    snapshot is dropped: nothing is queued and acquisition never blocks on it.
    """

    def __init__(
        self,
        sink: PublishSink,
        topic: str,
        *,
        attempts: int = 2,
        logger: Optional[logging.Logger] = None,
    ):
        self._sink = sink
        self.topic = topic
        self.attempts = max(1, int(attempts))
        self._log = logger or logging.getLogger(__name__)

        self.published = 0
        self.dropped = 0

    def publish(self, snapshot: Snapshot) -> bool:
        payload = snapshot.to_payload().encode("utf-8")

        result = PublishResult.ERROR
        for attempt in range(1, self.attempts + 1):
            result = self._sink.publish(self.topic, payload)
            if result is PublishResult.OK:
                self.published += 1
                return True

            self._log.warning(
                "PUBLISH_FAILED topic=%s attempt=%d/%d result=%s",
                self.topic,
                attempt,
                self.attempts,
                result.value,
            )
            if result is PublishResult.NO_CONN and attempt < self.attempts:
                self._reconnect()

        self.dropped += 1
        self._log.warning(
            "PUBLISH_DROPPED topic=%s time=%s result=%s",
            self.topic,
            snapshot.time_iso,
            result.value,
        )
        return False

    def _reconnect(self) -> None:
        try:
            self._sink.reconnect()
        except Exception as e:
            self._log.warning("RECONNECT_FAILED topic=%s err=%s", self.topic, e)
