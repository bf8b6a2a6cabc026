from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

Point = Tuple[float, float]


@dataclass(frozen=True)
class DisplayRect:
    """On-screen box occupied by the rendered source image (display units)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def has_area(self) -> bool:
        return self.width > 0 and self.height > 0


def fit_rect(container_w: float, container_h: float, native_w: int, native_h: int) -> DisplayRect:
    """Largest aspect-preserving rect for the image, centered in the container."""
    if container_w <= 0 or container_h <= 0 or native_w <= 0 or native_h <= 0:
        return DisplayRect(0.0, 0.0, 0.0, 0.0)
    scale = min(container_w / float(native_w), container_h / float(native_h))
    draw_w = native_w * scale
    draw_h = native_h * scale
    return DisplayRect((container_w - draw_w) * 0.5, (container_h - draw_h) * 0.5, draw_w, draw_h)


@dataclass(frozen=True)
class CoordinateMapper:
    """
    Maps display-space points onto the native pixel grid of the mask buffer
    and back, with independent X/Y scale factors.
    """

    rect: DisplayRect
    native_size: Tuple[int, int]

    @property
    def is_degenerate(self) -> bool:
        w, h = self.native_size
        return (not self.rect.has_area) or w <= 0 or h <= 0

    @property
    def scale(self) -> Tuple[float, float]:
        w, h = self.native_size
        return (w / float(self.rect.width), h / float(self.rect.height))

    def to_native(self, point: Point) -> Point:
        sx, sy = self.scale
        return ((point[0] - self.rect.x) * sx, (point[1] - self.rect.y) * sy)

    def to_display(self, point: Point) -> Point:
        sx, sy = self.scale
        return (point[0] / sx + self.rect.x, point[1] / sy + self.rect.y)

    def display_distance(self, a: Point, b: Point) -> float:
        ax, ay = self.to_display(a)
        bx, by = self.to_display(b)
        return math.hypot(bx - ax, by - ay)

    def display_length(self, native_length: float) -> float:
        sx, sy = self.scale
        return native_length * 2.0 / (sx + sy)
