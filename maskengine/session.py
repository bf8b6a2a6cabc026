from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

import numpy as np
from PIL import Image

from maskengine.config import MaskSettings
from maskengine.errors import BufferAllocationError, MaskDecodeError, MaskEngineError
from maskengine.geometry import CoordinateMapper, DisplayRect, Point
from maskengine.log import get_logger
from maskengine.mask_io import MaskSource, decode_mask, export_mask, invert_mask, mask_coverage
from maskengine.raster import erase_segment, fill_circle, fill_polygon, fill_rectangle, paint_segment
from maskengine.selection import color_range_select, flood_select, source_rgb
from maskengine.surfaces import SurfacePair

logger = get_logger(__name__)


class Tool(str, Enum):
    BRUSH = "brush"
    ERASER = "eraser"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    POLYGON = "polygon"
    FLOOD_FILL = "flood_fill"
    POINT_SELECT = "point_select"


DRAG_TOOLS = (Tool.BRUSH, Tool.ERASER, Tool.RECTANGLE, Tool.CIRCLE)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Dragging:
    tool: Tool
    start: Point
    last: Point
    # mask contents when the gesture began, restored if the gesture is abandoned
    baseline: np.ndarray = dataclasses.field(repr=False, compare=False)


@dataclass(frozen=True)
class PolygonBuilding:
    vertices: Tuple[Point, ...]
    hover: Optional[Point] = None


@dataclass(frozen=True)
class Committing:
    tool: Tool


SessionState = Union[Idle, Dragging, PolygonBuilding, Committing]


@dataclass(frozen=True)
class ShapeOutline:
    """Live, non-mask-affecting overlay of the shape under construction (native coords)."""

    kind: str  # "rectangle" | "circle" | "polygon"
    points: Tuple[Point, ...]
    radius: float = 0.0
    closed: bool = False


class SelectionSession:
    """
    Owns the mask/preview buffers for one source image and turns gestures
    into mask edits.

    Callbacks:
      - on_mask_changed(artifact): PNG bytes of the committed mask, or None when empty
      - on_point_select((x, y)): native seed point for an external segmentation
      - on_import_failed(error): an imported mask could not be decoded
    """

    def __init__(
        self,
        settings: Optional[MaskSettings] = None,
        on_mask_changed: Optional[Callable[[Optional[bytes]], None]] = None,
        on_point_select: Optional[Callable[[Tuple[int, int]], None]] = None,
        on_import_failed: Optional[Callable[[Exception], None]] = None,
    ):
        self.settings = (settings or MaskSettings()).clamped()
        self._on_mask_changed = on_mask_changed
        self._on_point_select = on_point_select
        self._on_import_failed = on_import_failed

        self._surfaces: Optional[SurfacePair] = None
        self._rgb: Optional[np.ndarray] = None
        self._display_rect: Optional[DisplayRect] = None
        self._mapper: Optional[CoordinateMapper] = None
        self._state: SessionState = Idle()
        self._tool = Tool.BRUSH
        self._artifact: Optional[bytes] = None

    # ---------------------------
    # Read-only views
    # ---------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def tool(self) -> Tool:
        return self._tool

    @property
    def artifact(self) -> Optional[bytes]:
        return self._artifact

    @property
    def mapper(self) -> Optional[CoordinateMapper]:
        return self._mapper

    @property
    def native_size(self) -> Optional[Tuple[int, int]]:
        return None if self._surfaces is None else self._surfaces.size

    @property
    def mask(self) -> Optional[np.ndarray]:
        if self._surfaces is None:
            return None
        view = self._surfaces.mask.view()
        view.flags.writeable = False
        return view

    @property
    def preview(self) -> Optional[np.ndarray]:
        return None if self._surfaces is None else self._surfaces.preview

    def preview_image(self) -> Optional[Image.Image]:
        return None if self._surfaces is None else self._surfaces.preview_image()

    # ---------------------------
    # Inputs
    # ---------------------------
    def set_source_image(self, image: Image.Image) -> None:
        w, h = image.size
        try:
            if self._surfaces is None:
                self._surfaces = SurfacePair((w, h), self.settings.highlight_rgba)
            else:
                self._surfaces.allocate((w, h))
        except BufferAllocationError:
            logger.error("Cannot allocate mask buffers for %dx%d image", w, h)
            self.close()
            raise
        self._rgb = source_rgb(image)
        self._state = Idle()
        self._refresh_mapper()
        logger.info("Source image set (%dx%d)", w, h)
        self._report(None)

    def set_display_rect(self, rect: DisplayRect) -> None:
        if rect == self._display_rect:
            return
        self._display_rect = rect
        self._refresh_mapper()

    def update_settings(self, **changes) -> None:
        highlight_before = self.settings.highlight_rgba
        self.settings = dataclasses.replace(self.settings, **changes).clamped()
        if self._surfaces is not None and self.settings.highlight_rgba != highlight_before:
            self._surfaces = self._rebuilt_surfaces()

    def set_tool(self, tool: Tool) -> None:
        tool = Tool(tool)
        if tool == self._tool:
            return
        self._discard_in_progress()
        self._tool = tool
        logger.debug("Tool changed to %s", tool.value)

    # ---------------------------
    # Gestures (display coordinates)
    # ---------------------------
    def gesture_start(self, display_point: Point) -> None:
        point = self._to_native(display_point)
        if point is None or self._surfaces is None:
            return
        if isinstance(self._state, Dragging):
            return

        tool = self._tool
        if tool in DRAG_TOOLS:
            baseline = self._surfaces.mask.copy()
            self._state = Dragging(tool=tool, start=point, last=point, baseline=baseline)
            if tool in (Tool.BRUSH, Tool.ERASER):
                self._stroke(point, point)
        elif tool == Tool.POLYGON:
            self._polygon_click(point)
        elif tool == Tool.FLOOD_FILL:
            self._flood_fill(point)
        elif tool == Tool.POINT_SELECT:
            self._point_select(point)

    def gesture_move(self, display_point: Point) -> None:
        point = self._to_native(display_point)
        if point is None:
            return
        state = self._state
        if isinstance(state, Dragging):
            if state.tool in (Tool.BRUSH, Tool.ERASER):
                self._stroke(state.last, point)
            self._state = dataclasses.replace(state, last=point)
        elif isinstance(state, PolygonBuilding):
            self._state = dataclasses.replace(state, hover=point)

    def gesture_end(self, display_point: Optional[Point] = None) -> None:
        """
        Finish a drag. Pointer-leave is a normal end: whatever was drawn so far
        is committed.
        """
        if display_point is not None:
            self.gesture_move(display_point)
        state = self._state
        if not isinstance(state, Dragging) or self._surfaces is None:
            return

        mask = self._surfaces.mask
        if state.tool == Tool.RECTANGLE:
            fill_rectangle(mask, state.start, state.last)
        elif state.tool == Tool.CIRCLE:
            radius = math.hypot(state.last[0] - state.start[0], state.last[1] - state.start[1])
            fill_circle(mask, state.start, radius)
        self._commit_from(state.tool)

    def import_mask(self, source: MaskSource) -> bool:
        """
        Replace the mask with an externally produced one. Returns False (and
        notifies on_import_failed) when it cannot be decoded; the mask is then
        left unchanged.
        """
        if self._surfaces is None:
            self._notify_import_failed(MaskEngineError("no source image to import a mask onto"))
            return False
        try:
            values = decode_mask(source, self._surfaces.size)
        except MaskDecodeError as exc:
            logger.warning("Mask import failed: %s", exc)
            self._notify_import_failed(exc)
            return False

        # last write wins over any gesture still in flight
        self._state = Idle()
        self._surfaces.replace_mask(values)
        logger.info("Imported external mask")
        self._commit_from(self._tool)
        return True

    def clear(self) -> None:
        self._state = Idle()
        if self._surfaces is not None:
            self._surfaces.clear()
        logger.info("Mask cleared")
        self._report(None)

    def invert(self) -> None:
        """Swap selected and unselected pixels, then commit."""
        if self._surfaces is None:
            return
        self._discard_in_progress()
        self._surfaces.replace_mask(invert_mask(self._surfaces.mask))
        self._commit_from(self._tool)

    def coverage(self) -> float:
        return 0.0 if self._surfaces is None else mask_coverage(self._surfaces.mask)

    def commit(self) -> Optional[bytes]:
        """Re-derive the preview and publish the current mask artifact."""
        if self._surfaces is None:
            return None
        if isinstance(self._state, Dragging):
            raise MaskEngineError("cannot commit while a gesture is in progress")
        self._surfaces.rederive()
        artifact = export_mask(self._surfaces.mask)
        logger.debug("Committed mask (%s)", "empty" if artifact is None else f"{len(artifact)} bytes")
        self._report(artifact)
        return artifact

    def close(self) -> None:
        self._state = Idle()
        self._surfaces = None
        self._rgb = None
        self._mapper = None
        self._artifact = None

    # ---------------------------
    # Overlays
    # ---------------------------
    def outline(self) -> Optional[ShapeOutline]:
        state = self._state
        if isinstance(state, Dragging):
            if state.tool == Tool.RECTANGLE:
                return ShapeOutline(kind="rectangle", points=(state.start, state.last))
            if state.tool == Tool.CIRCLE:
                radius = math.hypot(state.last[0] - state.start[0], state.last[1] - state.start[1])
                return ShapeOutline(kind="circle", points=(state.start,), radius=radius)
            return None
        if isinstance(state, PolygonBuilding):
            points = state.vertices
            closed = False
            if state.hover is not None:
                points = points + (state.hover,)
                usable = self._mapper is not None and not self._mapper.is_degenerate
                closed = usable and len(state.vertices) > 1 and self._near_first_vertex(state.vertices, state.hover)
            return ShapeOutline(kind="polygon", points=points, closed=closed)
        return None

    def brush_cursor_diameter(self) -> Optional[float]:
        """Brush footprint in display units, for brush/eraser cursors."""
        if self._tool not in (Tool.BRUSH, Tool.ERASER) or self._mapper is None or self._mapper.is_degenerate:
            return None
        return self._mapper.display_length(self.settings.brush_width)

    # ---------------------------
    # Internals
    # ---------------------------
    def _rebuilt_surfaces(self) -> SurfacePair:
        old = self._surfaces
        fresh = SurfacePair(old.size, self.settings.highlight_rgba)
        fresh.replace_mask(old.mask)
        return fresh

    def _refresh_mapper(self) -> None:
        if self._display_rect is None or self._surfaces is None:
            self._mapper = None
            return
        self._mapper = CoordinateMapper(self._display_rect, self._surfaces.size)

    def _to_native(self, display_point: Point) -> Optional[Point]:
        mapper = self._mapper
        if mapper is None or mapper.is_degenerate:
            logger.debug("Ignoring gesture: no usable display geometry")
            return None
        return mapper.to_native((float(display_point[0]), float(display_point[1])))

    def _seed(self, point: Point) -> Optional[Tuple[int, int]]:
        w, h = self._surfaces.size
        x, y = int(math.floor(point[0])), int(math.floor(point[1]))
        if x < 0 or y < 0 or x >= w or y >= h:
            logger.debug("Seed point (%d, %d) outside %dx%d image", x, y, w, h)
            return None
        return (x, y)

    def _stroke(self, start: Point, end: Point) -> None:
        s = self.settings
        mask = self._surfaces.mask
        if self._state.tool == Tool.BRUSH:
            paint_segment(mask, start, end, s.brush_width)
        else:
            erase_segment(mask, start, end, s.brush_width, soft=s.soft_erase, step=s.soft_erase_step)
        self._surfaces.rederive()

    def _near_first_vertex(self, vertices: Tuple[Point, ...], point: Point) -> bool:
        return self._mapper.display_distance(vertices[0], point) < self.settings.polygon_close_radius

    def _polygon_click(self, point: Point) -> None:
        state = self._state
        vertices: Tuple[Point, ...] = state.vertices if isinstance(state, PolygonBuilding) else ()
        if len(vertices) >= 3 and self._near_first_vertex(vertices, point):
            fill_polygon(self._surfaces.mask, vertices)
            self._commit_from(Tool.POLYGON)
            return
        self._state = PolygonBuilding(vertices=vertices + (point,), hover=point)

    def _flood_fill(self, point: Point) -> None:
        seed = self._seed(point)
        if seed is None:
            return
        s = self.settings
        if s.flood_contiguous:
            selected = flood_select(self._rgb, seed, s.tolerance, sample_limit=s.flood_sample_limit)
        else:
            selected = color_range_select(self._rgb, seed, s.tolerance)
        self._surfaces.mask[selected] = 255
        logger.debug("Flood fill at %s selected %d pixels", seed, int(np.count_nonzero(selected)))
        self._commit_from(Tool.FLOOD_FILL)

    def _point_select(self, point: Point) -> None:
        seed = self._seed(point)
        if seed is None or self._on_point_select is None:
            return
        logger.info("Requesting point-based mask at %s", seed)
        self._on_point_select(seed)

    def _commit_from(self, tool: Tool) -> None:
        self._state = Committing(tool=tool)
        try:
            self.commit()
        finally:
            self._state = Idle()

    def _discard_in_progress(self) -> None:
        state = self._state
        if isinstance(state, Dragging) and self._surfaces is not None:
            self._surfaces.replace_mask(state.baseline)
            logger.debug("Discarded in-progress %s gesture", state.tool.value)
        self._state = Idle()

    def _report(self, artifact: Optional[bytes]) -> None:
        self._artifact = artifact
        if self._on_mask_changed is not None:
            self._on_mask_changed(artifact)

    def _notify_import_failed(self, exc: Exception) -> None:
        if self._on_import_failed is not None:
            self._on_import_failed(exc)
