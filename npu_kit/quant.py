from __future__ import annotations

import numpy as np

from .types import QuantParams, RawTensor


def dequantize(raw: int, zero_point: int, scale: float) -> float:
    # Python ints, so NumPy int8 scalars (e.g. buf[i]) neither wrap nor overflow.
    return float(scale) * (int(raw) - int(zero_point))


def dequantize_array(data: np.ndarray, params: QuantParams) -> np.ndarray:
    """
    Element-wise affine dequantization to float32. Widens to int32 before
    subtracting so int8 values never wrap.
    """

    q = np.asarray(data).astype(np.int32)
    return (np.float32(params.scale) * (q - np.int32(params.zero_point)).astype(np.float32)).astype(np.float32)


def to_float(tensor: RawTensor) -> np.ndarray:
    """
    Flat float32 copy of a tensor's values, dequantizing when the tensor carries quant params.

    Raises InvalidQuantParams if the tensor's scale is not usable.
    """

    data = np.asarray(tensor.data).reshape(-1)
    if tensor.quant is not None:
        tensor.quant.validate()
        return dequantize_array(data, tensor.quant)
    return data.astype(np.float32, copy=False)


def sigmoid(x):
    x = np.asarray(x, dtype=np.float32)
    with np.errstate(over="ignore"):
        return (1.0 / (1.0 + np.exp(-x))).astype(np.float32)
