from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from maskengine.log import get_logger

logger = get_logger(__name__)

SETTINGS_VERSION = 1


@dataclass
class MaskSettings:
    # Brush/eraser width in native (source image) pixels
    brush_width: float = 40.0
    soft_erase: bool = False
    soft_erase_step: float = 5.0

    # Flood fill (magic wand); tolerance is on the 0-100 user scale
    tolerance: int = 20
    flood_contiguous: bool = True
    # Images with more pixels than this are sampled from a downscaled copy.
    # None disables downsampling.
    flood_sample_limit: Optional[int] = None

    # Polygon closes when a click lands this close (display units) to the first vertex
    polygon_close_radius: float = 20.0

    # Preview tint; alpha is scaled by the mask value
    highlight_rgba: Tuple[int, int, int, int] = (29, 161, 242, 179)

    def clamped(self) -> "MaskSettings":
        r, g, b, a = (max(0, min(255, int(v))) for v in self.highlight_rgba)
        limit = self.flood_sample_limit
        return MaskSettings(
            brush_width=max(1.0, float(self.brush_width)),
            soft_erase=bool(self.soft_erase),
            soft_erase_step=max(1.0, float(self.soft_erase_step)),
            tolerance=max(0, min(100, int(self.tolerance))),
            flood_contiguous=bool(self.flood_contiguous),
            flood_sample_limit=None if limit is None or int(limit) <= 0 else int(limit),
            polygon_close_radius=max(0.0, float(self.polygon_close_radius)),
            highlight_rgba=(r, g, b, a),
        )


def _settings_to_raw(settings: MaskSettings) -> dict:
    return {
        "brush_width": settings.brush_width,
        "soft_erase": bool(settings.soft_erase),
        "soft_erase_step": settings.soft_erase_step,
        "tolerance": settings.tolerance,
        "flood_contiguous": bool(settings.flood_contiguous),
        "flood_sample_limit": settings.flood_sample_limit,
        "polygon_close_radius": settings.polygon_close_radius,
        "highlight_rgba": list(settings.highlight_rgba),
    }


def _rgba_from_raw(raw: object, fallback: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
    if not isinstance(raw, list) or len(raw) != 4:
        return fallback
    try:
        return (int(raw[0]), int(raw[1]), int(raw[2]), int(raw[3]))
    except (TypeError, ValueError):
        return fallback


def _settings_from_raw(raw: dict) -> MaskSettings:
    defaults = MaskSettings()
    limit = raw.get("flood_sample_limit")
    settings = MaskSettings(
        brush_width=float(raw.get("brush_width", defaults.brush_width)),
        soft_erase=bool(raw.get("soft_erase", defaults.soft_erase)),
        soft_erase_step=float(raw.get("soft_erase_step", defaults.soft_erase_step)),
        tolerance=int(raw.get("tolerance", defaults.tolerance)),
        flood_contiguous=bool(raw.get("flood_contiguous", defaults.flood_contiguous)),
        flood_sample_limit=None if limit is None else int(limit),
        polygon_close_radius=float(raw.get("polygon_close_radius", defaults.polygon_close_radius)),
        highlight_rgba=_rgba_from_raw(raw.get("highlight_rgba"), defaults.highlight_rgba),
    )
    return settings.clamped()


def save_settings(path: str, settings: MaskSettings) -> None:
    payload = {"version": SETTINGS_VERSION, "settings": _settings_to_raw(settings)}
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")


def load_settings(path: str) -> MaskSettings:
    settings_file = Path(path)
    if not settings_file.exists():
        logger.info("Settings file %s not found, using defaults", settings_file)
        return MaskSettings()
    try:
        raw = json.loads(settings_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Settings file %s is not valid JSON (%s), using defaults", settings_file, exc)
        return MaskSettings()
    settings_raw = raw.get("settings", {}) if isinstance(raw, dict) else {}
    if not isinstance(settings_raw, dict):
        settings_raw = {}
    try:
        return _settings_from_raw(settings_raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Settings file %s has invalid values (%s), using defaults", settings_file, exc)
        return MaskSettings()
