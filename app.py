import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from PIL import Image
from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import QApplication, QFileDialog, QMainWindow

from maskengine.config import load_settings, save_settings
from maskengine.log import get_logger, setup_logging
from maskengine.mask_io import mask_to_data_url
from maskengine.session import SelectionSession, Tool
from ui.mask_canvas import MaskCanvasWidget

logger = get_logger(__name__)

TOOL_KEYS = {
    Tool.BRUSH: "B",
    Tool.ERASER: "E",
    Tool.RECTANGLE: "R",
    Tool.CIRCLE: "C",
    Tool.POLYGON: "P",
    Tool.FLOOD_FILL: "W",
    Tool.POINT_SELECT: "S",
}


def write_mask_file(path: Path, artifact: Optional[bytes]) -> None:
    """Mirror the latest artifact on disk; an empty mask removes the file."""
    if artifact is None:
        path.unlink(missing_ok=True)
        return
    path.write_bytes(artifact)


class MaskWindow(QMainWindow):
    def __init__(self, settings_path: Optional[Path], mask_out: Optional[Path], print_data_url: bool = False):
        super().__init__()
        self.setWindowTitle("maskpaint")
        self._settings_path = settings_path
        self._mask_out = mask_out
        self._print_data_url = print_data_url

        settings = load_settings(str(settings_path)) if settings_path is not None else None
        self.session = SelectionSession(
            settings=settings,
            on_mask_changed=self._on_mask_changed,
            on_point_select=self._on_point_select,
            on_import_failed=self._on_import_failed,
        )
        self.canvas = MaskCanvasWidget(self.session, self)
        self.setCentralWidget(self.canvas)
        self._build_actions()

    def _build_actions(self) -> None:
        for tool, key in TOOL_KEYS.items():
            act = QAction(tool.value, self)
            act.setShortcut(QKeySequence(key))
            act.triggered.connect(lambda _=False, t=tool: self._set_tool(t))
            self.addAction(act)

        bindings = [
            ("Clear mask", QKeySequence(Qt.Key_Delete), self._clear),
            ("Import mask", QKeySequence("Ctrl+I"), self._import_dialog),
            ("Invert mask", QKeySequence("Ctrl+Shift+I"), self._invert),
            ("Toggle soft erase", QKeySequence("X"), self._toggle_soft_erase),
            ("Smaller brush", QKeySequence("["), lambda: self._resize_brush(0.8)),
            ("Larger brush", QKeySequence("]"), lambda: self._resize_brush(1.25)),
        ]
        for title, seq, slot in bindings:
            act = QAction(title, self)
            act.setShortcut(seq)
            act.triggered.connect(slot)
            self.addAction(act)

    def load_image(self, path: str) -> None:
        self.canvas.set_source_image(Image.open(path))
        self.statusBar().showMessage(f"Loaded {path}", 3000)

    def import_mask(self, path: str) -> None:
        if self.session.import_mask(path):
            self.canvas.refresh_preview()

    def _set_tool(self, tool: Tool) -> None:
        self.session.set_tool(tool)
        self.canvas.refresh_preview()
        self.statusBar().showMessage(f"Tool: {tool.value}", 2000)

    def _clear(self) -> None:
        self.session.clear()
        self.canvas.refresh_preview()

    def _invert(self) -> None:
        self.session.invert()
        self.canvas.refresh_preview()

    def _toggle_soft_erase(self) -> None:
        self.session.update_settings(soft_erase=not self.session.settings.soft_erase)
        self.statusBar().showMessage(f"Soft erase: {self.session.settings.soft_erase}", 2000)

    def _resize_brush(self, factor: float) -> None:
        self.session.update_settings(brush_width=self.session.settings.brush_width * factor)
        self.canvas.update()

    def _import_dialog(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Import mask", "", "Images (*.png *.jpg *.jpeg *.webp *.bmp)")
        if path:
            self.import_mask(path)

    def _on_mask_changed(self, artifact: Optional[bytes]) -> None:
        if self._mask_out is not None:
            write_mask_file(self._mask_out, artifact)
        if artifact is None:
            self.statusBar().showMessage("No mask", 2000)
            return
        coverage = self.session.coverage()
        logger.debug("Mask committed, %.1f%% selected", coverage * 100.0)
        self.statusBar().showMessage(f"Mask updated ({coverage:.1%} selected)", 2000)

    def _on_point_select(self, seed: tuple[int, int]) -> None:
        # Segmentation is an external service; the result arrives through import_mask().
        logger.info("Point-based segmentation requested at %s", seed)
        self.statusBar().showMessage(f"Point selection requested at {seed}", 3000)

    def _on_import_failed(self, exc: Exception) -> None:
        self.statusBar().showMessage(f"Mask import failed: {exc}", 5000)

    def closeEvent(self, e) -> None:
        if self._settings_path is not None:
            save_settings(str(self._settings_path), self.session.settings)
        if self._print_data_url and self.session.mask is not None:
            print(mask_to_data_url(self.session.mask) or "")
        self.session.close()
        super().closeEvent(e)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Paint a selection mask over an image.")
    parser.add_argument("image", help="source image to mask")
    parser.add_argument("--mask", help="external mask image to import on start")
    parser.add_argument("--out", type=Path, help="write the mask PNG here on every commit (removed while the mask is empty)")
    parser.add_argument("--print-data-url", action="store_true", help="print the final mask as a PNG data URL on exit")
    parser.add_argument("--settings", type=Path, help="JSON settings file (created on exit)")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(getattr(logging, args.log_level))

    app = QApplication(sys.argv[:1])
    app.setApplicationName("maskpaint")

    w = MaskWindow(settings_path=args.settings, mask_out=args.out, print_data_url=args.print_data_url)
    w.load_image(args.image)
    if args.mask:
        w.import_mask(args.mask)
    w.resize(1024, 768)
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
