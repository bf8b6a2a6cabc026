from __future__ import annotations


class MaskEngineError(Exception):
    """Base class for failures raised by the mask engine."""


class MaskDecodeError(MaskEngineError, ValueError):
    """An externally supplied mask image could not be decoded."""


class BufferAllocationError(MaskEngineError, MemoryError):
    """A mask or preview buffer could not be allocated at native resolution.

    Fatal for the owning session: no further mask operations can run.
    """
