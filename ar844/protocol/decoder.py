from __future__ import annotations

from typing import Optional

from ar844.model.reading import Reading, Weighting

FRAME_LEN = 8

# The meter answers any 8-byte packet; this is the one observed from the vendor tool.
POLL_FRAME = bytes((0xB3, 0x50, 0x05, 0x16, 0x24, 0x11, 0x19, 0x00))

SPEED_SHIFT = 6
SPEED_FAST = 1
WEIGHTING_SHIFT = 4
RANGE_MASK = 0x07


def decode_frame(frame: bytes) -> Optional[Reading]:
    """
    Decode one response frame from the meter.

    Layout:
      byte 0..1  level in tenths of dB, big-endian
      byte 2     bits 7-6 speed (1 = fast), bit 4 weighting (0 = A),
                 bits 2-0 range code
      byte 3..7  unused

    Returns None for any frame that is not exactly FRAME_LEN bytes. There is
    no checksum, so a garbled frame of the right length decodes normally.
    """
    if len(frame) != FRAME_LEN:
        return None

    status = frame[2]
    return Reading(
        level_tenths=(frame[0] << 8) | frame[1],
        fast=(status >> SPEED_SHIFT) == SPEED_FAST,
        weighting=Weighting.A if ((status >> WEIGHTING_SHIFT) & 0x01) == 0 else Weighting.C,
        range_code=status & RANGE_MASK,
    )
