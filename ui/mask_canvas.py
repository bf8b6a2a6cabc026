from __future__ import annotations
from typing import Optional

from PIL import Image
from PySide6.QtCore import Qt, QPointF, QRectF
from PySide6.QtGui import QPainter, QImage, QPixmap, QColor, QPen, QBrush, QPolygonF
from PySide6.QtWidgets import QWidget

from maskengine.geometry import DisplayRect, fit_rect
from maskengine.session import PolygonBuilding, SelectionSession, ShapeOutline, Tool


def pil_rgba_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class MaskCanvasWidget(QWidget):
    """
    Shows the source image fitted to the widget with the mask preview on top,
    and forwards pointer input to a SelectionSession:
      - left press/move/release: gesture start/move/end (display coords)
      - leaving the widget mid-drag ends the gesture
      - hover: live polygon outline and brush cursor
    """

    def __init__(self, session: SelectionSession, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)

        self._session = session
        self._source_pixmap: Optional[QPixmap] = None
        self._native_size: Optional[tuple[int, int]] = None
        self._preview: Optional[QImage] = None
        self._pressed = False
        self._hover: Optional[QPointF] = None

    @property
    def session(self) -> SelectionSession:
        return self._session

    def set_source_image(self, img: Image.Image) -> None:
        self._session.set_source_image(img)
        self._source_pixmap = QPixmap.fromImage(pil_rgba_to_qimage(img))
        self._native_size = img.size
        self._sync_display_rect()
        self.refresh_preview()

    def display_rect(self) -> DisplayRect:
        if self._native_size is None:
            return DisplayRect(0.0, 0.0, 0.0, 0.0)
        return fit_rect(self.width(), self.height(), self._native_size[0], self._native_size[1])

    def refresh_preview(self) -> None:
        img = self._session.preview_image()
        self._preview = None if img is None else pil_rgba_to_qimage(img)
        self.update()

    def _sync_display_rect(self) -> None:
        self._session.set_display_rect(self.display_rect())

    # ---------------------------
    # Qt events
    # ---------------------------
    def resizeEvent(self, e) -> None:
        super().resizeEvent(e)
        self._sync_display_rect()

    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)
        p.fillRect(self.rect(), QColor(30, 30, 30))

        if self._source_pixmap is None:
            p.setPen(QPen(QColor(220, 220, 220)))
            p.drawText(self.rect(), Qt.AlignCenter, "No image loaded")
            return

        r = self.display_rect()
        target = QRectF(r.x, r.y, r.width, r.height)
        p.drawPixmap(target, self._source_pixmap, QRectF(self._source_pixmap.rect()))
        if self._preview is not None:
            p.drawImage(target, self._preview)

        outline = self._session.outline()
        if outline is not None:
            self._draw_outline(p, outline)
        self._draw_brush_cursor(p)

    def _to_display(self, pt: tuple[float, float]) -> QPointF:
        x, y = self._session.mapper.to_display(pt)
        return QPointF(x, y)

    def _draw_outline(self, p: QPainter, outline: ShapeOutline) -> None:
        mapper = self._session.mapper
        if mapper is None or mapper.is_degenerate:
            return
        pen = QPen(QColor(255, 255, 255), 2)
        p.setPen(pen)
        p.setBrush(Qt.NoBrush)
        if outline.kind == "rectangle":
            a = self._to_display(outline.points[0])
            b = self._to_display(outline.points[1])
            p.drawRect(QRectF(a, b).normalized())
        elif outline.kind == "circle":
            c = self._to_display(outline.points[0])
            sx, sy = mapper.scale
            p.drawEllipse(c, outline.radius / sx, outline.radius / sy)
        else:
            pts = [self._to_display(pt) for pt in outline.points]
            poly = QPolygonF(pts)
            if outline.closed:
                p.drawPolygon(poly)
            else:
                p.drawPolyline(poly)
            p.setBrush(QBrush(QColor(80, 210, 255)))
            for pt in pts:
                p.drawEllipse(pt, 3, 3)

    def _draw_brush_cursor(self, p: QPainter) -> None:
        if self._hover is None:
            return
        diameter = self._session.brush_cursor_diameter()
        if diameter is None:
            return
        radius = diameter * 0.5
        if self._session.tool == Tool.ERASER:
            pen = QPen(QColor(255, 255, 255, 200), 1)
            if self._session.settings.soft_erase:
                pen.setStyle(Qt.DashLine)
            p.setPen(pen)
            p.setBrush(Qt.NoBrush if self._session.settings.soft_erase else QBrush(QColor(255, 255, 255, 120)))
        else:
            p.setPen(QPen(QColor(96, 165, 250), 1))
            p.setBrush(QBrush(QColor(59, 130, 246, 120)))
        p.drawEllipse(self._hover, radius, radius)

    def mousePressEvent(self, e) -> None:
        if e.button() != Qt.LeftButton:
            return
        pos = e.position()
        self._pressed = True
        self._session.gesture_start((pos.x(), pos.y()))
        self.refresh_preview()

    def mouseMoveEvent(self, e) -> None:
        pos = e.position()
        self._hover = pos
        if self._pressed or isinstance(self._session.state, PolygonBuilding):
            self._session.gesture_move((pos.x(), pos.y()))
            self.refresh_preview()
        else:
            self.update()

    def mouseReleaseEvent(self, e) -> None:
        if e.button() != Qt.LeftButton or not self._pressed:
            return
        self._pressed = False
        pos = e.position()
        self._session.gesture_end((pos.x(), pos.y()))
        self.refresh_preview()

    def leaveEvent(self, e) -> None:
        self._hover = None
        if self._pressed:
            self._pressed = False
            self._session.gesture_end()
            self.refresh_preview()
        else:
            self.update()
        super().leaveEvent(e)
