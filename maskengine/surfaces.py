from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image

from maskengine.errors import BufferAllocationError
from maskengine.log import get_logger

logger = get_logger(__name__)


def derive_preview(mask: np.ndarray, highlight_rgba: Tuple[int, int, int, int]) -> np.ndarray:
    """Tint the mask with the highlight color; preview alpha follows mask alpha."""
    if mask.dtype != np.uint8 or mask.ndim != 2:
        raise ValueError("mask must be HxW uint8")
    h, w = mask.shape
    r, g, b, a = highlight_rgba
    out = np.zeros((h, w, 4), dtype=np.uint8)
    out[..., 0] = r
    out[..., 1] = g
    out[..., 2] = b
    out[..., 3] = (mask.astype(np.uint16) * int(a) // 255).astype(np.uint8)
    out[mask == 0, :3] = 0
    return out


class SurfacePair:
    """
    Mask buffer (authoritative) plus preview buffer (derived), both at the
    source image's native resolution.
    """

    def __init__(self, size: Tuple[int, int], highlight_rgba: Tuple[int, int, int, int]):
        self._highlight = tuple(int(v) for v in highlight_rgba)
        self._mask: np.ndarray
        self._preview: np.ndarray
        self.allocate(size)

    @property
    def size(self) -> Tuple[int, int]:
        h, w = self._mask.shape
        return (w, h)

    @property
    def mask(self) -> np.ndarray:
        """The live mask buffer. Writers must call rederive() afterwards."""
        return self._mask

    @property
    def preview(self) -> np.ndarray:
        view = self._preview.view()
        view.flags.writeable = False
        return view

    def allocate(self, size: Tuple[int, int]) -> None:
        w, h = int(size[0]), int(size[1])
        if w <= 0 or h <= 0:
            raise ValueError(f"buffer size must be positive, got {w}x{h}")
        try:
            mask = np.zeros((h, w), dtype=np.uint8)
            preview = np.zeros((h, w, 4), dtype=np.uint8)
        except MemoryError as exc:
            raise BufferAllocationError(f"cannot allocate {w}x{h} mask buffers") from exc
        self._mask = mask
        self._preview = preview
        logger.debug("Allocated %dx%d mask/preview buffers", w, h)

    def replace_mask(self, mask: np.ndarray) -> None:
        if mask.shape != self._mask.shape:
            raise ValueError(f"mask shape {mask.shape} does not match buffer {self._mask.shape}")
        self._mask[...] = mask.astype(np.uint8, copy=False)
        self.rederive()

    def rederive(self) -> None:
        self._preview = derive_preview(self._mask, self._highlight)

    def clear(self) -> None:
        self._mask.fill(0)
        self.rederive()

    def preview_image(self) -> Image.Image:
        return Image.fromarray(self._preview)
