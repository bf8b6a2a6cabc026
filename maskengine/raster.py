from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

Point = Tuple[float, float]

SOFT_ERASE_STEP = 5.0


def _check_mask(mask: np.ndarray) -> None:
    if mask.dtype != np.uint8 or mask.ndim != 2:
        raise ValueError("mask must be HxW uint8")


def _footprint(shape_hw: Tuple[int, int], bounds: Tuple[float, float, float, float], draw_fn):
    """
    Rasterize `draw_fn` into a crop covering `bounds` (x0, y0, x1, y1), clipped
    to the mask. Returns (region slices, bool footprint) or None when the crop
    falls outside the mask. `draw_fn(draw, shift)` must pass its points through
    `shift` to land in crop coordinates.
    """
    h, w = shape_hw
    x0 = max(0, int(math.floor(bounds[0])) - 1)
    y0 = max(0, int(math.floor(bounds[1])) - 1)
    x1 = min(w, int(math.ceil(bounds[2])) + 2)
    y1 = min(h, int(math.ceil(bounds[3])) + 2)
    if x1 <= x0 or y1 <= y0:
        return None

    img = Image.new("L", (x1 - x0, y1 - y0), 0)
    draw_fn(ImageDraw.Draw(img), lambda p: (p[0] - x0, p[1] - y0))
    return (slice(y0, y1), slice(x0, x1)), np.array(img, dtype=np.uint8) > 0


def _stroke_footprint(shape_hw: Tuple[int, int], start: Point, end: Point, width: float):
    """Round-capped line footprint around the segment."""
    line_w = max(1, int(round(width)))
    r = line_w * 0.5

    def draw(d, shift):
        a, b = shift(start), shift(end)
        if start != end:
            d.line([a, b], fill=255, width=line_w, joint="curve")
        for cx, cy in (a, b):
            d.ellipse([cx - r, cy - r, cx + r, cy + r], fill=255)

    bounds = (
        min(start[0], end[0]) - r,
        min(start[1], end[1]) - r,
        max(start[0], end[0]) + r,
        max(start[1], end[1]) + r,
    )
    return _footprint(shape_hw, bounds, draw)


def _apply(mask: np.ndarray, footprint, value: int) -> None:
    if footprint is None:
        return
    region, hit = footprint
    mask[region][hit] = value


def paint_segment(mask: np.ndarray, start: Point, end: Point, width: float) -> None:
    _check_mask(mask)
    _apply(mask, _stroke_footprint(mask.shape, start, end, width), 255)


def _stamp_positions(start: Point, end: Point, step: float) -> list[Point]:
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    dist = math.hypot(dx, dy)
    if dist == 0:
        return [start]
    ux, uy = dx / dist, dy / dist
    out: list[Point] = []
    i = 0.0
    while i < dist:
        out.append((start[0] + ux * i, start[1] + uy * i))
        i += step
    return out


def _soft_stamp(mask: np.ndarray, center: Point, radius: float) -> None:
    h, w = mask.shape
    cx, cy = center
    x0 = max(0, int(math.floor(cx - radius)))
    y0 = max(0, int(math.floor(cy - radius)))
    x1 = min(w, int(math.ceil(cx + radius)) + 1)
    y1 = min(h, int(math.ceil(cy + radius)) + 1)
    if x1 <= x0 or y1 <= y0:
        return

    ys, xs = np.mgrid[y0:y1, x0:x1]
    # distances from pixel centers
    d = np.hypot(xs + 0.5 - cx, ys + 0.5 - cy)
    strength = np.clip(1.0 - d / radius, 0.0, 1.0)
    ix, iy = int(math.floor(cx)), int(math.floor(cy))
    if x0 <= ix < x1 and y0 <= iy < y1:
        strength[iy - y0, ix - x0] = 1.0
    region = mask[y0:y1, x0:x1].astype(np.float32)
    # destination-out: the stamp only removes alpha
    mask[y0:y1, x0:x1] = (region * (1.0 - strength)).astype(np.uint8)


def erase_segment(
    mask: np.ndarray,
    start: Point,
    end: Point,
    width: float,
    soft: bool = False,
    step: float = SOFT_ERASE_STEP,
) -> None:
    """
    Hard mode clears the stroke footprint. Soft mode stamps radial discs every
    `step` units, full strength at the center falling to zero at width/2.
    """
    _check_mask(mask)
    if not soft:
        _apply(mask, _stroke_footprint(mask.shape, start, end, width), 0)
        return

    radius = max(0.5, float(width) * 0.5)
    for pos in _stamp_positions(start, end, max(1.0, float(step))):
        _soft_stamp(mask, pos, radius)


def fill_rectangle(mask: np.ndarray, p1: Point, p2: Point) -> None:
    """Fill the half-open pixel span between two corners; zero width or height fills nothing."""
    _check_mask(mask)
    h, w = mask.shape
    x0, x1 = sorted(int(round(v)) for v in (p1[0], p2[0]))
    y0, y1 = sorted(int(round(v)) for v in (p1[1], p2[1]))
    x0, x1 = max(0, x0), min(w, x1)
    y0, y1 = max(0, y0), min(h, y1)
    if x1 <= x0 or y1 <= y0:
        return
    mask[y0:y1, x0:x1] = 255


def fill_circle(mask: np.ndarray, center: Point, radius: float) -> None:
    _check_mask(mask)
    cx, cy = center
    r = abs(float(radius))
    if r == 0:
        return

    def draw(d, shift):
        x, y = shift(center)
        d.ellipse([x - r, y - r, x + r, y + r], fill=255)

    _apply(mask, _footprint(mask.shape, (cx - r, cy - r, cx + r, cy + r), draw), 255)


def fill_polygon(mask: np.ndarray, vertices: Sequence[Point]) -> None:
    """Even-odd fill of the closed polygon; fewer than 3 vertices is a no-op."""
    _check_mask(mask)
    if len(vertices) < 3:
        return
    pts = [(float(x), float(y)) for x, y in vertices]
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]

    def draw(d, shift):
        shifted = [shift(p) for p in pts]
        d.polygon(shifted, fill=255, outline=255)

    _apply(mask, _footprint(mask.shape, (min(xs), min(ys), max(xs), max(ys)), draw), 255)
