from .reading import Reading, Snapshot, Weighting, format_tenths

__all__ = ["Reading",
           "Snapshot",
           "Weighting",
           "format_tenths"]
