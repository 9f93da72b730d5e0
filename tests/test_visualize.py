import unittest

import numpy as np

from npu_kit.types import ClassificationResult, DetectionResult
from npu_kit.visualize import color_for_class, draw_classifications, draw_detections

try:
    import cv2  # noqa: F401
except ImportError:
    cv2 = None


class TestColors(unittest.TestCase):
    def test_deterministic(self) -> None:
        self.assertEqual(color_for_class(0), (255, 56, 56))
        self.assertEqual(color_for_class(123), color_for_class(123))
        self.assertTrue(all(0 <= c <= 255 for c in color_for_class(123)))


@unittest.skipIf(cv2 is None, "opencv-python is not installed")
class TestDraw(unittest.TestCase):
    def test_draw_detections_returns_copy(self) -> None:
        image = np.zeros((64, 64, 3), dtype=np.uint8)
        det = DetectionResult(x=10, y=20, w=30, h=20, confidence=0.9, class_id=0, class_name="person")
        out = draw_detections(image, [det])
        self.assertEqual(out.shape, image.shape)
        self.assertTrue(np.all(image == 0))
        self.assertTrue(np.any(out != 0))

    def test_draw_classifications(self) -> None:
        image = np.zeros((64, 128, 3), dtype=np.uint8)
        out = draw_classifications(image, [ClassificationResult(class_id=3, class_name="cat", confidence=0.7)])
        self.assertTrue(np.any(out != 0))

    def test_rejects_non_bgr(self) -> None:
        with self.assertRaises(ValueError):
            draw_detections(np.zeros((8, 8), dtype=np.uint8), [])


if __name__ == "__main__":
    unittest.main()
