from __future__ import annotations

import unittest

import numpy as np

from maskengine.raster import erase_segment, fill_circle, fill_polygon, fill_rectangle, paint_segment


def _empty(w: int = 100, h: int = 100) -> np.ndarray:
    return np.zeros((h, w), dtype=np.uint8)


class PaintEraseTests(unittest.TestCase):
    PATH = [(10.0, 10.0), (50.0, 40.0), (80.0, 80.0), (20.0, 90.0)]

    def _paint_path(self, mask: np.ndarray, width: float) -> None:
        for a, b in zip(self.PATH, self.PATH[1:]):
            paint_segment(mask, a, b, width)

    def test_paint_is_full_opacity_union(self) -> None:
        mask = _empty()
        mask[0, 99] = 255
        self._paint_path(mask, 9)
        self.assertEqual(int(mask[10, 10]), 255)
        self.assertEqual(int(mask[40, 50]), 255)
        self.assertEqual(int(mask[0, 99]), 255)
        self.assertTrue(set(np.unique(mask).tolist()) <= {0, 255})

    def test_round_caps_cover_endpoints(self) -> None:
        mask = _empty()
        paint_segment(mask, (50.0, 50.0), (50.0, 50.0), 10)
        self.assertEqual(int(mask[50, 54]), 255)
        self.assertEqual(int(mask[50, 58]), 0)

    def test_hard_erase_of_same_path_clears_mask(self) -> None:
        mask = _empty()
        self._paint_path(mask, 9)
        for a, b in zip(self.PATH, self.PATH[1:]):
            erase_segment(mask, a, b, 9)
        self.assertFalse(mask.any())

    def test_wider_hard_erase_clears_mask(self) -> None:
        mask = _empty()
        paint_segment(mask, (10.0, 50.0), (90.0, 50.0), 6)
        erase_segment(mask, (10.0, 50.0), (90.0, 50.0), 14)
        self.assertFalse(mask.any())

    def test_soft_erase_single_point(self) -> None:
        mask = np.full((100, 100), 255, dtype=np.uint8)
        before = mask.copy()
        erase_segment(mask, (50.5, 50.5), (50.5, 50.5), 40, soft=True)
        self.assertEqual(int(mask[50, 50]), 0)
        # zero stamp strength at radius width/2 and beyond
        self.assertEqual(int(mask[50, 70]), 255)
        self.assertEqual(int(mask[30, 50]), 255)
        self.assertLessEqual(abs(int(mask[50, 60]) - 127), 1)
        self.assertTrue(np.all(mask <= before))

    def test_soft_erase_clears_pixel_under_fractional_center(self) -> None:
        for center in ((50.0, 50.0), (50.3, 50.8), (50.99, 50.01)):
            mask = np.full((100, 100), 255, dtype=np.uint8)
            erase_segment(mask, center, center, 40, soft=True)
            self.assertEqual(int(mask[50, 50]), 0, center)
            self.assertEqual(int(mask[50, 75]), 255, center)

    def test_soft_erase_never_raises_alpha(self) -> None:
        rng = np.random.default_rng(7)
        mask = rng.integers(0, 256, size=(60, 60), dtype=np.uint8)
        before = mask.copy()
        erase_segment(mask, (5.0, 5.0), (55.0, 40.0), 16, soft=True)
        erase_segment(mask, (55.0, 40.0), (10.0, 50.0), 16, soft=True)
        self.assertTrue(np.all(mask <= before))
        self.assertTrue(np.any(mask < before))

    def test_soft_erase_stamps_along_segment(self) -> None:
        mask = np.full((20, 60), 255, dtype=np.uint8)
        erase_segment(mask, (10.0, 10.0), (40.0, 10.0), 8, soft=True, step=5)
        for x in (10, 15, 20, 25, 30, 35):
            self.assertEqual(int(mask[10, x]), 0)
        self.assertEqual(int(mask[10, 50]), 255)


class ShapeFillTests(unittest.TestCase):
    def test_rectangle_accepts_any_corner_order(self) -> None:
        mask = _empty()
        fill_rectangle(mask, (30, 20), (10, 5))
        self.assertEqual(int(mask[5, 10]), 255)
        self.assertEqual(int(mask[19, 29]), 255)
        self.assertEqual(int(mask[20, 30]), 0)
        self.assertEqual(int(mask[4, 10]), 0)
        self.assertEqual(int(np.count_nonzero(mask)), 20 * 15)

    def test_rectangle_covers_spanned_pixels_only(self) -> None:
        mask = _empty()
        fill_rectangle(mask, (0, 0), (10, 10))
        self.assertEqual(int(np.count_nonzero(mask)), 100)

    def test_zero_size_rectangle_fills_nothing(self) -> None:
        mask = _empty()
        fill_rectangle(mask, (5, 5), (5, 5))
        fill_rectangle(mask, (5, 5), (40, 5))
        self.assertFalse(mask.any())

    def test_rectangle_clips_to_mask(self) -> None:
        mask = _empty(20, 10)
        fill_rectangle(mask, (-5, -5), (25, 4))
        self.assertEqual(int(np.count_nonzero(mask)), 20 * 4)

    def test_stroke_entering_from_outside_the_mask(self) -> None:
        mask = _empty()
        paint_segment(mask, (-3.0, 97.0), (4.0, 97.0), 6)
        self.assertEqual(int(mask[97, 0]), 255)
        self.assertEqual(int(mask[97, 4]), 255)
        self.assertFalse(mask[:90].any())

    def test_zero_radius_circle_fills_nothing(self) -> None:
        mask = _empty()
        fill_circle(mask, (50.0, 50.0), 0.0)
        self.assertFalse(mask.any())

    def test_circle(self) -> None:
        mask = _empty()
        fill_circle(mask, (50.0, 50.0), 10.0)
        self.assertEqual(int(mask[50, 50]), 255)
        self.assertEqual(int(mask[50, 58]), 255)
        self.assertEqual(int(mask[50, 63]), 0)
        self.assertEqual(int(mask[40, 40]), 0)

    def test_polygon_fills_interior_and_keeps_existing(self) -> None:
        mask = _empty()
        mask[95, 95] = 255
        fill_polygon(mask, [(10, 10), (60, 10), (60, 60)])
        self.assertEqual(int(mask[20, 50]), 255)
        self.assertEqual(int(mask[50, 20]), 0)
        self.assertEqual(int(mask[95, 95]), 255)

    def test_polygon_needs_three_vertices(self) -> None:
        mask = _empty()
        fill_polygon(mask, [(10, 10), (60, 60)])
        self.assertFalse(mask.any())

    def test_rejects_non_mask_arrays(self) -> None:
        with self.assertRaises(ValueError):
            paint_segment(np.zeros((4, 4), dtype=np.float32), (0, 0), (1, 1), 2)


if __name__ == "__main__":
    unittest.main()
