import math
import unittest

import numpy as np

from npu_kit.errors import InvalidQuantParams
from npu_kit.quant import dequantize, dequantize_array, sigmoid, to_float
from npu_kit.types import QuantParams, RawTensor


class TestDequantize(unittest.TestCase):
    def test_zero_point_maps_to_zero(self) -> None:
        for zp in (-128, -3, 0, 17, 127):
            for scale in (0.003921, 0.1, 1.0, 12.5):
                self.assertEqual(dequantize(zp, zp, scale), 0.0)

    def test_difference_is_linear(self) -> None:
        scale, zp = 0.25, -7
        for raw1, raw2 in ((10, 3), (-128, 127), (0, -1), (5, 5)):
            self.assertEqual(dequantize(raw1, zp, scale) - dequantize(raw2, zp, scale), scale * (raw1 - raw2))

    def test_difference_is_linear_for_arbitrary_scale(self) -> None:
        scale, zp = 0.0173, 12
        for raw1, raw2 in ((10, 3), (-128, 127), (0, -1)):
            diff = dequantize(raw1, zp, scale) - dequantize(raw2, zp, scale)
            self.assertAlmostEqual(diff, scale * (raw1 - raw2), places=9)

    def test_numpy_int8_scalars_do_not_wrap(self) -> None:
        buf = np.array([-128, 127], dtype=np.int8)
        self.assertEqual(dequantize(buf[0], 127, 0.5), -127.5)
        self.assertEqual(dequantize(buf[1], 127, 0.5), 0.0)
        # zero point outside the int8 range
        self.assertEqual(dequantize(buf[0], 200, 1.0), -328.0)
        self.assertEqual(dequantize(np.int8(10), np.int32(200), np.float32(1.0)), -190.0)
        self.assertIsInstance(dequantize(buf[1], 0, 0.5), float)

    def test_numpy_scalars_stay_linear(self) -> None:
        buf = np.array([-128, 127], dtype=np.int8)
        diff = dequantize(buf[1], 127, 0.25) - dequantize(buf[0], 127, 0.25)
        self.assertEqual(diff, 0.25 * 255)

    def test_array_matches_scalar(self) -> None:
        params = QuantParams(scale=0.05, zero_point=-20)
        raw = np.array([-128, -20, 0, 55, 127], dtype=np.int8)
        out = dequantize_array(raw, params)
        self.assertEqual(out.dtype, np.float32)
        expected = [dequantize(int(q), params.zero_point, params.scale) for q in raw]
        self.assertTrue(np.allclose(out, expected, atol=1e-6))

    def test_array_does_not_wrap_int8(self) -> None:
        out = dequantize_array(np.array([-128, 127], dtype=np.int8), QuantParams(scale=1.0, zero_point=127))
        self.assertTrue(np.array_equal(out, np.array([-255.0, 0.0], dtype=np.float32)))


class TestQuantParams(unittest.TestCase):
    def test_rejects_non_positive_scale(self) -> None:
        for scale in (0.0, -0.5, math.nan, math.inf):
            with self.assertRaises(InvalidQuantParams):
                QuantParams(scale=scale, zero_point=0).validate()

    def test_positive_scale_is_valid(self) -> None:
        QuantParams(scale=1e-6, zero_point=3).validate()

    def test_to_float_validates_params(self) -> None:
        tensor = RawTensor(data=np.zeros(4, dtype=np.int8), quant=QuantParams(scale=0.0))
        with self.assertRaises(InvalidQuantParams):
            to_float(tensor)

    def test_to_float_passes_floats_through(self) -> None:
        data = np.array([[1.5, -2.0]], dtype=np.float32)
        out = to_float(RawTensor(data=data))
        self.assertTrue(np.array_equal(out, np.array([1.5, -2.0], dtype=np.float32)))


class TestSigmoid(unittest.TestCase):
    def test_midpoint_and_extremes(self) -> None:
        out = sigmoid(np.array([0.0, 1000.0, -1000.0]))
        self.assertAlmostEqual(float(out[0]), 0.5, places=7)
        self.assertAlmostEqual(float(out[1]), 1.0, places=7)
        self.assertAlmostEqual(float(out[2]), 0.0, places=7)

    def test_inverse_of_logit(self) -> None:
        self.assertAlmostEqual(float(sigmoid(math.log(0.9 / 0.1))), 0.9, places=6)


if __name__ == "__main__":
    unittest.main()
