import unittest

import numpy as np

from npu_kit.classify import decode_classification, softmax, top_k
from npu_kit.errors import EmptyInput, InvalidQuantParams
from npu_kit.types import QuantParams, RawTensor


class TestSoftmax(unittest.TestCase):
    def test_is_probability_distribution(self) -> None:
        rng = np.random.default_rng(0)
        for _ in range(20):
            p = softmax(rng.normal(scale=5.0, size=rng.integers(1, 50)))
            self.assertTrue(np.all(p >= 0.0) and np.all(p <= 1.0))
            self.assertAlmostEqual(float(p.sum()), 1.0, delta=1e-5)

    def test_stable_with_outliers(self) -> None:
        p = softmax(np.array([1000.0, -1000.0, 0.0, 999.0]))
        self.assertTrue(np.all(np.isfinite(p)))
        self.assertAlmostEqual(float(p.sum()), 1.0, delta=1e-5)
        self.assertGreater(p[0], p[3])
        self.assertAlmostEqual(float(p[1]), 0.0, places=12)

    def test_single_element(self) -> None:
        self.assertTrue(np.allclose(softmax(np.array([-42.0])), [1.0]))


class TestTopK(unittest.TestCase):
    def test_returns_true_top_k(self) -> None:
        rng = np.random.default_rng(1)
        for _ in range(30):
            n = int(rng.integers(1, 40))
            scores = rng.random(n)
            k = int(rng.integers(1, n + 1))
            out = top_k(scores, k)
            self.assertEqual(len(out), min(k, n))
            picked = {c.class_id for c in out}
            rest = [scores[i] for i in range(n) if i not in picked]
            if rest:
                self.assertGreaterEqual(min(c.score for c in out), max(rest))
            self.assertEqual([c.score for c in out], sorted((c.score for c in out), reverse=True))

    def test_k_larger_than_n(self) -> None:
        out = top_k(np.array([0.1, 0.7, 0.2]), 5)
        self.assertEqual([c.class_id for c in out], [1, 2, 0])

    def test_ties_prefer_lower_class_id(self) -> None:
        scores = np.array([0.2, 0.3, 0.3, 0.2])
        self.assertEqual([c.class_id for c in top_k(scores, 2)], [1, 2])
        self.assertEqual([c.class_id for c in top_k(scores, 3)], [1, 2, 0])
        self.assertEqual([c.class_id for c in top_k(scores, 4)], [1, 2, 0, 3])

    def test_ties_across_cutoff_are_deterministic(self) -> None:
        scores = np.array([0.1, 0.25, 0.25, 0.25, 0.15])
        self.assertEqual([c.class_id for c in top_k(scores, 2)], [1, 2])
        self.assertEqual([c.class_id for c in top_k(scores, 1)], [1])

    def test_zero_k(self) -> None:
        self.assertEqual(top_k(np.array([0.5, 0.5]), 0), [])


class TestDecodeClassification(unittest.TestCase):
    def test_three_class_vector(self) -> None:
        out = decode_classification(RawTensor(data=np.array([2.0, 1.0, 0.1], dtype=np.float32)), k=2)
        self.assertEqual([c.class_id for c in out], [0, 1])
        self.assertGreater(out[0].score, out[1].score)
        total = float(softmax(np.array([2.0, 1.0, 0.1])).sum())
        self.assertAlmostEqual(total, 1.0, delta=1e-5)
        self.assertAlmostEqual(out[0].score, 0.6590, places=3)
        self.assertAlmostEqual(out[1].score, 0.2424, places=3)

    def test_default_k_is_five(self) -> None:
        out = decode_classification(RawTensor(data=np.arange(10, dtype=np.float32)))
        self.assertEqual([c.class_id for c in out], [9, 8, 7, 6, 5])

    def test_quantized_matches_float(self) -> None:
        params = QuantParams(scale=0.1, zero_point=-10)
        q = np.array([30, 20, 11, -50, 20], dtype=np.int8)
        floats = params.scale * (q.astype(np.float32) - params.zero_point)
        out_q = decode_classification(RawTensor(data=q, quant=params), k=5)
        out_f = decode_classification(RawTensor(data=floats), k=5)
        self.assertEqual([c.class_id for c in out_q], [c.class_id for c in out_f])
        self.assertTrue(np.allclose([c.score for c in out_q], [c.score for c in out_f], atol=1e-6))
        # tie between class 1 and 4 resolved by id
        self.assertEqual([c.class_id for c in out_q][:3], [0, 1, 4])

    def test_empty_input(self) -> None:
        with self.assertRaises(EmptyInput):
            decode_classification(RawTensor(data=None))
        with self.assertRaises(EmptyInput):
            decode_classification(RawTensor(data=np.empty((0,), dtype=np.float32)))

    def test_invalid_quant_params(self) -> None:
        tensor = RawTensor(data=np.array([1, 2, 3], dtype=np.int8), quant=QuantParams(scale=-1.0))
        with self.assertRaises(InvalidQuantParams):
            decode_classification(tensor)


if __name__ == "__main__":
    unittest.main()
