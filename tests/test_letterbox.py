import unittest

import numpy as np

from npu_kit.letterbox import compute_letterbox, letterbox, map_boxes_to_original, stretch_resize
from npu_kit.types import LetterboxTransform

try:
    import cv2  # noqa: F401
except ImportError:
    cv2 = None


class TestComputeLetterbox(unittest.TestCase):
    def test_wide_image(self) -> None:
        t = compute_letterbox(1280, 720, 640, 640)
        self.assertAlmostEqual(t.scale, 0.5)
        self.assertEqual((t.pad_x, t.pad_y), (0, 140))

    def test_tall_image_odd_padding(self) -> None:
        t = compute_letterbox(300, 600, 321, 300)
        self.assertAlmostEqual(t.scale, 0.5)
        # scaled width 150, leftover 171 -> 85 left, 86 right
        self.assertEqual((t.pad_x, t.pad_y), (85, 0))

    def test_very_thin_image_keeps_one_pixel(self) -> None:
        t = compute_letterbox(10, 1000, 32, 32)
        # int(10 * 0.032) would be 0; one pixel column stays, 31 pixels of padding split 15/16
        self.assertEqual(t.pad_x, 15)

    def test_rejects_empty_source(self) -> None:
        with self.assertRaises(ValueError):
            compute_letterbox(0, 10, 64, 64)


class TestMapBoxes(unittest.TestCase):
    def test_point_round_trip(self) -> None:
        rng = np.random.default_rng(5)
        for src_w, src_h, dst in ((1280, 720, 640), (333, 777, 416), (640, 640, 640), (50, 20, 320)):
            t = compute_letterbox(src_w, src_h, dst, dst)
            xs = rng.uniform(0, src_w, 100)
            ys = rng.uniform(0, src_h, 100)
            fwd = np.array([t.forward_point(x, y) for x, y in zip(xs, ys)])
            boxes = np.hstack([fwd, np.zeros((100, 2))])
            back = map_boxes_to_original(boxes, t, src_w, src_h)
            self.assertTrue(np.all(np.abs(back[:, 0] - xs) <= 1.0))
            self.assertTrue(np.all(np.abs(back[:, 1] - ys) <= 1.0))

    def test_inverse_point_is_exact(self) -> None:
        t = LetterboxTransform(scale=0.37, pad_x=12, pad_y=3)
        x, y = t.inverse_point(*t.forward_point(123.25, 45.5))
        self.assertAlmostEqual(x, 123.25, places=9)
        self.assertAlmostEqual(y, 45.5, places=9)

    def test_unpad_and_unscale(self) -> None:
        t = LetterboxTransform(scale=0.5, pad_x=0, pad_y=140)
        out = map_boxes_to_original(np.array([[100.0, 200.0, 50.0, 20.0]]), t, 1280, 720)
        self.assertEqual(out.tolist(), [[200, 120, 100, 40]])

    def test_clamps_inside_image(self) -> None:
        t = LetterboxTransform(scale=1.0)
        boxes = np.array(
            [
                [-10.0, -5.0, 30.0, 30.0],  # top-left outside
                [90.0, 95.0, 30.0, 30.0],  # bottom-right outside
                [150.0, 150.0, 10.0, 10.0],  # entirely outside
            ]
        )
        out = map_boxes_to_original(boxes, t, 100, 100)
        self.assertEqual(out[0].tolist(), [0, 0, 30, 30])
        self.assertEqual(out[1].tolist(), [90, 95, 10, 5])
        self.assertEqual(out[2].tolist(), [100, 100, 0, 0])
        self.assertTrue(np.all(out[:, 0] + out[:, 2] <= 100))
        self.assertTrue(np.all(out[:, 1] + out[:, 3] <= 100))

    def test_empty(self) -> None:
        out = map_boxes_to_original(np.empty((0, 4)), LetterboxTransform(scale=1.0), 10, 10)
        self.assertEqual(out.shape, (0, 4))


@unittest.skipIf(cv2 is None, "opencv-python is not installed")
class TestLetterboxImage(unittest.TestCase):
    def test_pads_with_color_and_centres_content(self) -> None:
        image = np.full((20, 40, 3), 200, dtype=np.uint8)
        out, t = letterbox(image, new_shape=(32, 32), color=(114, 114, 114))
        self.assertEqual(out.shape, (32, 32, 3))
        self.assertEqual((t.pad_x, t.pad_y), (0, 8))
        self.assertTrue(np.all(out[:8] == 114))
        self.assertTrue(np.all(out[24:] == 114))
        self.assertTrue(np.all(out[8:24] == 200))

    def test_writes_into_buffer(self) -> None:
        buf = np.zeros((32, 32, 3), dtype=np.uint8)
        out, _ = letterbox(np.full((32, 16, 3), 9, dtype=np.uint8), new_shape=(32, 32), out=buf)
        self.assertIs(out, buf)
        self.assertTrue(np.all(buf[:, 8:24] == 9))
        self.assertTrue(np.all(buf[:, :8] == 114))

    def test_very_thin_image(self) -> None:
        out, t = letterbox(np.full((1000, 10, 3), 50, dtype=np.uint8), new_shape=(32, 32))
        self.assertEqual(out.shape, (32, 32, 3))
        self.assertEqual(t.pad_x, 15)
        self.assertTrue(np.all(out[:31, 15] == 50))
        self.assertTrue(np.all(out[:, :15] == 114))
        self.assertTrue(np.all(out[:, 16:] == 114))

    def test_stretch_resize(self) -> None:
        out = stretch_resize(np.zeros((10, 30, 3), dtype=np.uint8), (16, 16))
        self.assertEqual(out.shape, (16, 16, 3))


if __name__ == "__main__":
    unittest.main()
