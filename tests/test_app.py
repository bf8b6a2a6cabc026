from __future__ import annotations

import os
from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class WriteMaskFileTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        try:
            from app import write_mask_file
        except Exception as exc:  # pragma: no cover - environment dependency
            raise unittest.SkipTest(f"missing runtime dependency: {exc}")
        cls.write_mask_file = staticmethod(write_mask_file)

    def test_artifact_is_written(self) -> None:
        with TemporaryDirectory() as td:
            out = Path(td) / "mask.png"
            self.write_mask_file(out, b"\x89PNG-bytes")
            self.assertEqual(out.read_bytes(), b"\x89PNG-bytes")

    def test_empty_mask_removes_stale_file(self) -> None:
        with TemporaryDirectory() as td:
            out = Path(td) / "mask.png"
            self.write_mask_file(out, b"\x89PNG-bytes")
            self.write_mask_file(out, None)
            self.assertFalse(out.exists())
            # nothing to remove is fine too
            self.write_mask_file(out, None)
            self.assertFalse(out.exists())


if __name__ == "__main__":
    unittest.main()
