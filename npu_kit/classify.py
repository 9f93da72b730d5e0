from __future__ import annotations

from typing import List

import numpy as np

from .errors import EmptyInput
from .quant import to_float
from .types import ClassScore, RawTensor


def softmax(logits: np.ndarray) -> np.ndarray:
    """
    Numerically stable softmax over a 1-D vector (max is subtracted before exponentiating).
    """

    x = np.asarray(logits, dtype=np.float64).reshape(-1)
    e = np.exp(x - x.max())
    return e / e.sum()


def top_k(scores: np.ndarray, k: int) -> List[ClassScore]:
    """
    Highest `k` scores, best first. Equal scores are ordered by ascending class id, and the
    same rule decides which of several tied scores make it past the k-th slot.

    Only the selected entries are sorted; the remainder is partitioned, not ordered.
    """

    s = np.asarray(scores).reshape(-1)
    n = s.shape[0]
    k = min(int(k), n)
    if k <= 0:
        return []

    kth = np.partition(s, n - k)[n - k]
    above = np.flatnonzero(s > kth)
    tied = np.flatnonzero(s == kth)[: k - above.size]
    picked = np.concatenate([above, tied])

    order = np.lexsort((picked, -s[picked]))
    return [ClassScore(class_id=int(i), score=float(s[i])) for i in picked[order]]


def decode_classification(tensor: RawTensor, k: int = 5) -> List[ClassScore]:
    """
    Turn one classifier output (one logit per class) into the top-k class probabilities.

    Raises:
        EmptyInput: the buffer is missing or has no elements.
        InvalidQuantParams: the tensor is quantized with a non-positive scale.
    """

    if tensor is None or tensor.data is None or tensor.size == 0:
        raise EmptyInput("classification output is empty")

    logits = to_float(tensor)
    return top_k(softmax(logits), k)
