from __future__ import annotations

import io
from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

import numpy as np
from PIL import Image

from maskengine.errors import MaskDecodeError
from maskengine.mask_io import (
    decode_mask,
    encode_mask,
    export_mask,
    invert_mask,
    mask_coverage,
    mask_to_data_url,
)


def _png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class ExportTests(unittest.TestCase):
    def test_empty_mask_exports_none(self) -> None:
        self.assertIsNone(export_mask(np.zeros((8, 8), dtype=np.uint8)))
        self.assertIsNone(mask_to_data_url(np.zeros((8, 8), dtype=np.uint8)))

    def test_export_import_is_lossless(self) -> None:
        mask = np.zeros((30, 40), dtype=np.uint8)
        mask[5:20, 10:30] = 255
        mask[25, 3] = 77  # transient soft-erase value survives too
        data = export_mask(mask)
        self.assertIsNotNone(data)
        self.assertTrue(data.startswith(b"\x89PNG"))
        np.testing.assert_array_equal(decode_mask(data, (40, 30)), mask)

    def test_data_url_round_trip(self) -> None:
        mask = np.zeros((10, 10), dtype=np.uint8)
        mask[2:4, 2:4] = 255
        url = mask_to_data_url(mask)
        self.assertTrue(url.startswith("data:image/png;base64,"))
        np.testing.assert_array_equal(decode_mask(url, (10, 10)), mask)

    def test_file_path_source(self) -> None:
        mask = np.zeros((6, 6), dtype=np.uint8)
        mask[1, 1] = 255
        with TemporaryDirectory() as td:
            path = Path(td) / "mask.png"
            path.write_bytes(encode_mask(mask))
            np.testing.assert_array_equal(decode_mask(path, (6, 6)), mask)


class DecodeTests(unittest.TestCase):
    def test_white_on_transparent(self) -> None:
        img = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
        img.paste((255, 255, 255, 255), (2, 2, 6, 6))
        out = decode_mask(_png(img), (10, 10))
        self.assertTrue((out[2:6, 2:6] == 255).all())
        self.assertEqual(int(np.count_nonzero(out)), 16)

    def test_opaque_black_and_white(self) -> None:
        img = Image.new("RGB", (10, 10), (0, 0, 0))
        img.paste((255, 255, 255), (0, 0, 5, 10))
        out = decode_mask(img, (10, 10))
        self.assertTrue((out[:, :5] == 255).all())
        self.assertFalse(out[:, 5:].any())

    def test_stretches_to_native_size(self) -> None:
        small = Image.new("L", (10, 10), 0)
        small.paste(255, (0, 0, 5, 10))
        out = decode_mask(_png(small), (40, 20))
        self.assertEqual(out.shape, (20, 40))
        self.assertTrue(set(np.unique(out).tolist()) <= {0, 255})
        self.assertTrue((out[:, :18] == 255).all())
        self.assertFalse(out[:, 22:].any())

    def test_garbage_raises_decode_error(self) -> None:
        with self.assertRaises(MaskDecodeError):
            decode_mask(b"definitely not an image", (10, 10))
        with self.assertRaises(MaskDecodeError):
            decode_mask("data:image/png;base64,@@@", (10, 10))
        with self.assertRaises(MaskDecodeError):
            decode_mask("data:nocomma", (10, 10))


class MaskHelpersTests(unittest.TestCase):
    def test_invert_and_coverage(self) -> None:
        mask = np.zeros((4, 4), dtype=np.uint8)
        mask[:2] = 255
        self.assertAlmostEqual(mask_coverage(mask), 0.5)
        inv = invert_mask(mask)
        self.assertFalse(inv[:2].any())
        self.assertTrue((inv[2:] == 255).all())


if __name__ == "__main__":
    unittest.main()
