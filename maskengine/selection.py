from __future__ import annotations

import math
from collections import deque
from typing import Optional, Tuple

import numpy as np
from PIL import Image

# 0-100 user tolerance -> 0-255 RGB distance threshold
TOLERANCE_SCALE = 2.55


def tolerance_threshold(tolerance: float) -> float:
    return max(0.0, float(tolerance)) * TOLERANCE_SCALE


def source_rgb(image: Image.Image) -> np.ndarray:
    return np.array(image.convert("RGB"), dtype=np.uint8)


def _distance_mask(rgb: np.ndarray, ref: Tuple[int, int, int], threshold: float) -> np.ndarray:
    r, g, b = int(ref[0]), int(ref[1]), int(ref[2])
    arr = rgb.astype(np.int32)
    dr = arr[..., 0] - r
    dg = arr[..., 1] - g
    db = arr[..., 2] - b
    d2 = dr * dr + dg * dg + db * db
    return d2 <= threshold * threshold


def _in_bounds(rgb: np.ndarray, seed_xy: Tuple[int, int]) -> bool:
    h, w = rgb.shape[:2]
    x, y = seed_xy
    return 0 <= x < w and 0 <= y < h


def color_range_select(rgb: np.ndarray, seed_xy: Tuple[int, int], tolerance: float) -> np.ndarray:
    """Every pixel whose color is within tolerance of the seed, connected or not."""
    h, w = rgb.shape[:2]
    if not _in_bounds(rgb, seed_xy):
        return np.zeros((h, w), dtype=bool)
    x, y = seed_xy
    ref = tuple(int(v) for v in rgb[y, x, :3])
    return _distance_mask(rgb, ref, tolerance_threshold(tolerance))


def _grow_region(ok: np.ndarray, seed_xy: Tuple[int, int]) -> np.ndarray:
    h, w = ok.shape
    x0, y0 = seed_xy
    out = np.zeros((h, w), dtype=bool)
    q: deque[tuple[int, int]] = deque()
    q.append((x0, y0))
    out[y0, x0] = True
    dirs = ((1, 0), (-1, 0), (0, 1), (0, -1))

    while q:
        cx, cy = q.popleft()
        for dx, dy in dirs:
            nx, ny = cx + dx, cy + dy
            if nx < 0 or ny < 0 or nx >= w or ny >= h:
                continue
            if out[ny, nx] or not ok[ny, nx]:
                continue
            out[ny, nx] = True
            q.append((nx, ny))

    return out


def flood_select(
    rgb: np.ndarray,
    seed_xy: Tuple[int, int],
    tolerance: float,
    sample_limit: Optional[int] = None,
) -> np.ndarray:
    """
    Magic wand: pixels 4-connected to the seed whose Euclidean RGB distance to
    the seed color is within tolerance * 2.55.

    When sample_limit is set and the image holds more pixels, colors are
    sampled from a downscaled copy and the region is scaled back up, so the
    returned mask is always full resolution.
    """
    if rgb.ndim != 3 or rgb.shape[2] < 3:
        raise ValueError("rgb must be HxWx3")
    h, w = rgb.shape[:2]
    if not _in_bounds(rgb, seed_xy):
        return np.zeros((h, w), dtype=bool)

    if sample_limit is not None and sample_limit > 0 and h * w > sample_limit:
        return _flood_select_sampled(rgb, seed_xy, tolerance, sample_limit)

    x0, y0 = seed_xy
    ref = tuple(int(v) for v in rgb[y0, x0, :3])
    ok = _distance_mask(rgb, ref, tolerance_threshold(tolerance))
    return _grow_region(ok, seed_xy)


def _flood_select_sampled(
    rgb: np.ndarray,
    seed_xy: Tuple[int, int],
    tolerance: float,
    sample_limit: int,
) -> np.ndarray:
    h, w = rgb.shape[:2]
    factor = math.sqrt(sample_limit / float(h * w))
    sw = max(1, int(w * factor))
    sh = max(1, int(h * factor))
    small = np.array(
        Image.fromarray(np.ascontiguousarray(rgb[..., :3])).resize((sw, sh), resample=Image.Resampling.BILINEAR),
        dtype=np.uint8,
    )
    sx = min(sw - 1, int(seed_xy[0] * sw / w))
    sy = min(sh - 1, int(seed_xy[1] * sh / h))

    # the seed color comes from the full-resolution image
    ref = tuple(int(v) for v in rgb[seed_xy[1], seed_xy[0], :3])
    ok = _distance_mask(small, ref, tolerance_threshold(tolerance))
    ok[sy, sx] = True
    region = _grow_region(ok, (sx, sy))

    full = Image.fromarray(region.astype(np.uint8) * 255).resize((w, h), resample=Image.Resampling.NEAREST)
    return np.array(full, dtype=np.uint8) > 127
