# protocol/__init__.py

from .decoder import FRAME_LEN, POLL_FRAME, decode_frame

__all__ = [
    "FRAME_LEN",
    "POLL_FRAME",
    "decode_frame"]
