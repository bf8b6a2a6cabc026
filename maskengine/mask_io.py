from __future__ import annotations

import base64
import binascii
import io
import os
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from maskengine.errors import MaskDecodeError

MaskSource = Union[bytes, str, "os.PathLike[str]", Image.Image]

DATA_URL_PREFIX = "data:image/png;base64,"


def has_content(mask: np.ndarray) -> bool:
    return bool(np.any(mask))


def mask_coverage(mask: np.ndarray) -> float:
    """Fraction of pixels selected (mask > 0)."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / float(mask.size)


def invert_mask(mask: np.ndarray) -> np.ndarray:
    if mask.dtype != np.uint8 or mask.ndim != 2:
        raise ValueError("mask must be HxW uint8")
    return (255 - mask).astype(np.uint8)


def encode_mask(mask: np.ndarray) -> bytes:
    """Lossless grayscale PNG of the mask buffer."""
    if mask.dtype != np.uint8 or mask.ndim != 2:
        raise ValueError("mask must be HxW uint8")
    buf = io.BytesIO()
    Image.fromarray(mask).save(buf, format="PNG")
    return buf.getvalue()


def export_mask(mask: np.ndarray) -> Optional[bytes]:
    """The mask artifact: PNG bytes, or None when nothing is selected."""
    if not has_content(mask):
        return None
    return encode_mask(mask)


def mask_to_data_url(mask: np.ndarray) -> Optional[str]:
    data = export_mask(mask)
    if data is None:
        return None
    return DATA_URL_PREFIX + base64.b64encode(data).decode("ascii")


def _bytes_from_data_url(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:"):
        raise MaskDecodeError("malformed data URL")
    try:
        if header.endswith(";base64"):
            return base64.b64decode(payload, validate=True)
        return payload.encode("latin-1")
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise MaskDecodeError(f"malformed data URL payload: {exc}") from exc


def _open_source(source: MaskSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, str) and source.startswith("data:"):
        source = _bytes_from_data_url(source)
    try:
        if isinstance(source, bytes):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(os.fspath(source))
        img.load()
        return img
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise MaskDecodeError(f"cannot decode mask image: {exc}") from exc


def _mask_values(img: Image.Image) -> np.ndarray:
    # Luminance gated by alpha, so both white-on-transparent and opaque
    # black/white masks decode to the same buffer.
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        lum = np.array(rgba.convert("L"), dtype=np.uint16)
        alpha = np.array(rgba, dtype=np.uint16)[..., 3]
        return (lum * alpha // 255).astype(np.uint8)
    return np.array(img.convert("L"), dtype=np.uint8)


def decode_mask(source: MaskSource, size: Tuple[int, int]) -> np.ndarray:
    """
    Decode an external mask into an HxW uint8 buffer of the given native size.
    A mask of another size is stretched to fit and re-binarized.
    """
    img = _open_source(source)
    try:
        values = _mask_values(img)
    except (OSError, ValueError) as exc:
        raise MaskDecodeError(f"cannot read mask pixels: {exc}") from exc

    w, h = size
    if values.shape == (h, w):
        return values
    stretched = Image.fromarray(values).resize((w, h), resample=Image.Resampling.BILINEAR)
    arr = np.array(stretched, dtype=np.uint8)
    return np.where(arr >= 128, 255, 0).astype(np.uint8)
