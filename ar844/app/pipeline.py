from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ar844.app.publisher import SnapshotPublisher
from ar844.model.reading import Snapshot
from ar844.protocol.decoder import decode_frame
from ar844.runtime.window import AggregationWindow


class AcquisitionPipeline:
    """Frame callback for TransferScheduler: decode -> aggregate -> publish."""

    def __init__(
        self,
        window: AggregationWindow,
        publisher: SnapshotPublisher,
        *,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.window = window
        self.publisher = publisher
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    def on_frame(self, frame: bytes) -> Optional[Snapshot]:
        reading = decode_frame(frame)
        if reading is None:
            self._log.debug("FRAME_REJECTED len=%d", len(frame))
            return None

        self._log.debug("READING %s", reading.as_dict())

        snap = self.window.observe(reading, self._clock())
        if snap is None:
            return None

        self._log.info(
            "SNAPSHOT count=%d payload=%s",
            snap.count,
            snap.to_payload(),
        )
        self.publisher.publish(snap)
        return snap
